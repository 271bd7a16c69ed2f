"""
Row materializer: turn a data reader into typed objects.

Property mappings are resolved once per execution, against the reader's
column set, before the first row is read. Rows are then produced one at a
time in cursor order.
"""
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from datamapper.exceptions import ColumnNotFoundError
from datamapper.mapping import EntityProperty, EntityType, MappingStrategy
from datamapper.mapping import PerProperty, PropertyMapping, WholeRow
from datamapper.mapping import get_entity_type
from datamapper.protocol import DataReader
from datamapper.row import ColumnValue, RowValues
from datamapper.types import coerce_value

__all__ = [
    'ResolvedMapping',
    'find_ordinal',
    'read_row_values',
    'resolve_mappings',
    'iter_entities',
]

logger = logging.getLogger(__name__)

NOT_FOUND = -1


@dataclass(frozen=True)
class ResolvedMapping:
    """A property mapping bound to a destination property and a column ordinal."""
    mapping: PropertyMapping
    prop: EntityProperty
    ordinal: int = NOT_FOUND

    @property
    def found(self) -> bool:
        return self.ordinal != NOT_FOUND


def find_ordinal(reader: DataReader, column_name: str) -> int:
    """Position of the first column matching `column_name` ignoring case, or -1.
    """
    wanted = column_name.casefold()
    for i in range(reader.field_count):
        if reader.get_name(i).casefold() == wanted:
            return i
    return NOT_FOUND


def read_row_values(reader: DataReader) -> RowValues:
    """Every column of the reader's current row; database nulls become None.
    """
    return RowValues(
        ColumnValue(reader.get_name(i), None if reader.is_null(i) else reader.get_value(i))
        for i in range(reader.field_count)
    )


def resolve_mappings(entity: EntityType, strategy: PerProperty, reader: DataReader,
                     ignore_missing_column: bool = True) -> list[ResolvedMapping]:
    """Resolve one mapping per destination property.

    Properties without a registered mapping get the default one (column
    named like the property). A column that cannot be found raises
    ColumnNotFoundError unless missing columns are ignored or the mapping
    computes its value from the row.
    """
    resolved = []
    for prop in entity.properties:
        mapping = strategy.find(prop.name) or PropertyMapping.column(prop.name)
        ordinal = find_ordinal(reader, mapping.source_column)
        if ordinal == NOT_FOUND and not mapping.is_computed:
            if not ignore_missing_column:
                raise ColumnNotFoundError(mapping.source_column)
            logger.debug(f'Column {mapping.source_column!r} not found, skipping {entity.cls.__name__}.{prop.name}')
        resolved.append(ResolvedMapping(mapping, prop, ordinal))
    return resolved


def _build_entity(entity: EntityType, resolved: list[ResolvedMapping],
                  reader: DataReader) -> Any:
    values: dict[str, Any] = {}
    row_values = None
    for item in resolved:
        name = item.prop.name
        if item.mapping.is_computed:
            if row_values is None:
                row_values = read_row_values(reader)
            values[name] = item.mapping.row_mapper(row_values)
            continue

        if not item.found:
            continue

        if reader.is_null(item.ordinal):
            values[name] = None
            continue

        values[name] = coerce_value(reader.get_value(item.ordinal), item.prop.annotation, name)
    return entity.create(values)


def iter_entities(reader: DataReader, entity_cls: type, strategy: MappingStrategy,
                  ignore_missing_column: bool = True) -> Iterator[Any]:
    """Yield one object per remaining reader row.

    Single pass and not restartable. With a WholeRow strategy the mapper
    builds each object and no property mapping is resolved. A reader
    without columns (the command produced no result set) yields nothing.
    """
    if reader.field_count == 0:
        return
    match strategy:
        case WholeRow(mapper=mapper):
            while reader.read():
                yield mapper(read_row_values(reader))
        case PerProperty():
            entity = get_entity_type(entity_cls)
            resolved = resolve_mappings(entity, strategy, reader, ignore_missing_column)
            while reader.read():
                yield _build_entity(entity, resolved, reader)
        case _:
            raise TypeError(f'Unknown mapping strategy: {strategy!r}')
