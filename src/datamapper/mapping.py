"""
Property mapping declarations and destination type introspection.

This module provides:
- PropertyMapping: how one destination property is populated
- PerProperty / WholeRow: the two mapping strategies of a query
- EntityType: cached property table of a destination class
- resolve_property_name: turn a property expression into a property name
"""
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, fields, is_dataclass
from functools import lru_cache
from typing import Any, ClassVar, get_origin, get_type_hints

from datamapper.exceptions import ConfigurationError
from datamapper.row import RowValues

__all__ = [
    'PropertyMapping',
    'PerProperty',
    'WholeRow',
    'MappingStrategy',
    'EntityProperty',
    'EntityType',
    'get_entity_type',
    'resolve_property_name',
]

logger = logging.getLogger(__name__)

RowMapper = Callable[[RowValues], Any]


@dataclass(frozen=True, eq=False)
class PropertyMapping:
    """Mapping definition between a result column and a destination property.

    A mapping is either bound to a column (`column_name`, defaulting to the
    property name) or computed from the whole row by `row_mapper`. Two
    mappings are equal when they target the same property.
    """
    property_name: str
    column_name: str | None = None
    row_mapper: RowMapper | None = None

    @classmethod
    def column(cls, property_name: str, column_name: str | None = None) -> 'PropertyMapping':
        return cls(property_name, column_name=column_name or property_name)

    @classmethod
    def computed(cls, property_name: str, row_mapper: RowMapper) -> 'PropertyMapping':
        return cls(property_name, row_mapper=row_mapper)

    @property
    def is_computed(self) -> bool:
        return self.row_mapper is not None

    @property
    def source_column(self) -> str:
        """Column resolved against the cursor (the property name by default)."""
        return self.column_name or self.property_name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PropertyMapping):
            return NotImplemented
        return other.property_name == self.property_name

    def __hash__(self) -> int:
        return hash(self.property_name)


@dataclass(frozen=True)
class PerProperty:
    """Populate each destination property through its own mapping."""
    mappings: tuple[PropertyMapping, ...] = ()

    def find(self, property_name: str) -> PropertyMapping | None:
        for mapping in self.mappings:
            if mapping.property_name == property_name:
                return mapping
        return None


@dataclass(frozen=True)
class WholeRow:
    """Build each destination object with one function over the row."""
    mapper: Callable[[RowValues], Any]


MappingStrategy = PerProperty | WholeRow


# Destination type introspection

@dataclass(frozen=True)
class EntityProperty:
    """One settable public property of a destination class."""
    name: str
    annotation: Any = Any
    init: bool = False


@dataclass(frozen=True)
class EntityType:
    """Property table of a destination class, built once per class.
    """
    cls: type
    properties: tuple[EntityProperty, ...]
    _by_name: dict[str, EntityProperty] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._by_name.update((p.name, p) for p in self.properties)

    def get(self, name: str) -> EntityProperty | None:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return [p.name for p in self.properties]

    def _check_arguments(self, init_kwargs: dict[str, Any]) -> None:
        """Raise ConfigurationError when the constructor cannot take `init_kwargs`.

        Errors raised inside the constructor itself propagate unchanged.
        """
        signature = _constructor_signature(self.cls)
        if signature is None:
            return
        try:
            signature.bind(**init_kwargs)
        except TypeError as err:
            raise ConfigurationError(
                f'Cannot construct {self.cls.__name__} from mapped values: {err}') from err

    def create(self, values: dict[str, Any]) -> Any:
        """Construct an instance and assign the given property values.

        Dataclass init fields are passed to the constructor so properties
        without a value keep their declared default; everything else is
        assigned after construction.
        """
        init_kwargs = {k: v for k, v in values.items() if self._by_name[k].init}
        self._check_arguments(init_kwargs)
        instance = self.cls(**init_kwargs)
        for name, value in values.items():
            if not self._by_name[name].init:
                setattr(instance, name, value)
        return instance


@lru_cache(maxsize=256)
def _constructor_signature(cls: type) -> inspect.Signature | None:
    try:
        return inspect.signature(cls)
    except (TypeError, ValueError):
        return None


def _is_public(name: str) -> bool:
    return not name.startswith('_')


@lru_cache(maxsize=256)
def get_entity_type(cls: type) -> EntityType:
    """Discover the public settable properties of `cls`.

    Dataclasses contribute their fields; other classes contribute their
    public annotated attributes. Properties with a setter are included for
    both. ClassVar annotations are skipped.
    """
    try:
        hints = get_type_hints(cls)
    except NameError:
        hints = {}
        for klass in reversed(cls.__mro__):
            hints.update(getattr(klass, '__annotations__', {}))

    properties: list[EntityProperty] = []
    seen: set[str] = set()

    if is_dataclass(cls):
        for f in fields(cls):
            properties.append(EntityProperty(f.name, hints.get(f.name, Any), init=f.init))
            seen.add(f.name)
    else:
        for name, annotation in hints.items():
            if not _is_public(name) or get_origin(annotation) is ClassVar or annotation is ClassVar:
                continue
            properties.append(EntityProperty(name, annotation))
            seen.add(name)

    for klass in reversed(cls.__mro__):
        for name, member in vars(klass).items():
            if name in seen or not _is_public(name):
                continue
            if isinstance(member, property) and member.fset is not None:
                try:
                    annotation = get_type_hints(member.fget).get('return', Any)
                except NameError:
                    annotation = Any
                properties.append(EntityProperty(name, annotation))
                seen.add(name)

    entity = EntityType(cls, tuple(properties))
    logger.debug(f'Discovered {len(properties)} properties on {cls.__name__}: {entity.names()}')
    return entity


# Property expressions

class _Accessed:
    """Marker returned for a recorded attribute read."""
    __slots__ = ('name',)

    def __init__(self, name: str) -> None:
        self.name = name


class _PropertyRecorder:
    """Stand-in instance that records attribute reads."""

    def __init__(self) -> None:
        object.__setattr__(self, '_reads', [])

    def __getattr__(self, name: str) -> _Accessed:
        self._reads.append(name)
        return _Accessed(name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(name)


def resolve_property_name(entity_cls: type, expr: str | Callable[[Any], Any]) -> str:
    """Resolve a property expression to the name of a property of `entity_cls`.

    `expr` is a property name or a one-argument callable that reads a single
    attribute of its argument, e.g. `lambda c: c.first_name`.

    Raises
        ConfigurationError: the expression is not a simple property access or
        names a property the class does not have.
    """
    if isinstance(expr, str):
        name = expr
    elif callable(expr):
        recorder = _PropertyRecorder()
        try:
            result = expr(recorder)
        except Exception as err:
            raise ConfigurationError(f'Expression is not a simple property access: {err}') from err
        reads = object.__getattribute__(recorder, '_reads')
        if not isinstance(result, _Accessed) or len(reads) != 1:
            raise ConfigurationError('Expression must return exactly one property of its argument, '
                                     'e.g. lambda c: c.first_name')
        name = result.name
    else:
        raise ConfigurationError(f'Expected a property name or expression, got {type(expr).__name__}')

    entity = get_entity_type(entity_cls)
    if entity.get(name) is None:
        raise ConfigurationError(f'{entity_cls.__name__} has no settable property {name!r}')
    return name
