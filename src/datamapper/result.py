"""
Query results: produced objects plus the final parameter snapshot.
"""
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Generic, TypeVar

import pandas as pd
from datamapper.mapping import get_entity_type
from datamapper.parameter import QueryParameter, normalize_parameter_name
from datamapper.types import ParameterDirection

__all__ = ['QueryResult']

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _as_record(item: Any, names: list[str]) -> dict[str, Any]:
    if is_dataclass(item):
        return {f.name: getattr(item, f.name, None) for f in fields(item)}
    return {name: getattr(item, name, None) for name in names}


@dataclass
class QueryResult(Generic[T]):
    """Objects produced by a query, in cursor order, and its parameters.

    `parameters` holds one QueryParameter per parameter sent, with the
    value read back after execution.
    """
    items: list[T] = field(default_factory=list)
    parameters: list[QueryParameter] = field(default_factory=list)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> T:
        return self.items[index]

    def first(self) -> T:
        """First object; raises IndexError when the query produced none."""
        if not self.items:
            raise IndexError('Query returned no rows')
        return self.items[0]

    def first_or_none(self) -> T | None:
        return self.items[0] if self.items else None

    def get_parameter(self, name: str) -> QueryParameter | None:
        """Parameter by name, ignoring the marker prefix and case."""
        wanted = normalize_parameter_name(name).casefold()
        for param in self.parameters:
            if param.key.casefold() == wanted:
                return param
        return None

    def output_values(self) -> dict[str, Any]:
        """Values of the parameters reported as Output, keyed by name without prefix."""
        return {p.key: p.value for p in self.parameters
                if p.direction is ParameterDirection.OUTPUT}

    def to_dataframe(self, entity_cls: type | None = None) -> pd.DataFrame:
        """Objects as a pandas DataFrame, one column per property.

        Always returns a DataFrame; columns are preserved for empty results
        when the destination type is known.
        """
        cls = entity_cls or (type(self.items[0]) if self.items else None)
        names = get_entity_type(cls).names() if cls is not None else []
        if not self.items:
            return pd.DataFrame(columns=names)
        records = [_as_record(item, names) for item in self.items]
        return pd.DataFrame.from_records(records, columns=names or None)
