"""Query parameter definitions."""
from dataclasses import dataclass
from typing import Any

from datamapper.types import DataType, ParameterDirection

__all__ = [
    'QueryParameter',
    'PARAMETER_PREFIXES',
    'normalize_parameter_name',
]

PARAMETER_PREFIXES = ('@', ':', '$')


def normalize_parameter_name(name: str) -> str:
    """Strip a leading marker prefix ('@', ':' or '$') from a parameter name.
    """
    if name and name[0] in PARAMETER_PREFIXES:
        return name[1:]
    return name


@dataclass
class QueryParameter:
    """A named command parameter.

    Optional fields left as None are not applied to the driver parameter,
    so the driver defaults stay in effect. After execution, Output,
    InputOutput and ReturnValue parameters carry the value assigned by
    the database.
    """
    name: str
    value: Any = None
    data_type: DataType | None = None
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    direction: ParameterDirection | None = None

    @property
    def key(self) -> str:
        """Parameter name without its marker prefix."""
        return normalize_parameter_name(self.name)

    @property
    def effective_direction(self) -> ParameterDirection:
        return self.direction or ParameterDirection.INPUT
