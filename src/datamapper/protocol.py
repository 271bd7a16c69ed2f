"""
Driver capability protocols.

The query builder only talks to connections, commands, parameters and
readers through these interfaces. `datamapper.connection` and
`datamapper.cursor` implement them on top of SQLAlchemy; tests substitute
in-memory fakes.
"""
import enum
from typing import Any, Protocol, runtime_checkable

from datamapper.types import DataType, ParameterDirection

__all__ = [
    'CommandType',
    'Connection',
    'Command',
    'DataReader',
    'DriverParameter',
    'Transaction',
]


class CommandType(enum.Enum):
    """How command text is interpreted."""
    TEXT = 'text'
    STORED_PROCEDURE = 'stored_procedure'


@runtime_checkable
class DriverParameter(Protocol):
    """Driver-level parameter attached to a command."""
    name: str
    value: Any
    data_type: DataType | None
    size: int | None
    precision: int | None
    scale: int | None
    direction: ParameterDirection


@runtime_checkable
class DataReader(Protocol):
    """Forward-only cursor over a command's result rows."""

    @property
    def field_count(self) -> int: ...

    def get_name(self, ordinal: int) -> str: ...

    def is_null(self, ordinal: int) -> bool: ...

    def get_value(self, ordinal: int) -> Any: ...

    def read(self) -> bool: ...

    def close(self) -> None: ...


@runtime_checkable
class Command(Protocol):
    """Executable command bound to a connection."""
    command_type: CommandType
    command_text: str
    command_timeout: int
    transaction: 'Transaction | None'
    parameters: list[DriverParameter]

    def create_parameter(self) -> DriverParameter: ...

    def execute_reader(self) -> DataReader: ...

    def close(self) -> None: ...


@runtime_checkable
class Connection(Protocol):
    """Database connection capable of creating commands."""

    @property
    def closed(self) -> bool: ...

    def open(self) -> None: ...

    def close(self) -> None: ...

    def create_command(self) -> Command: ...


@runtime_checkable
class Transaction(Protocol):
    """Caller-owned transaction; commit and rollback stay with the caller."""
    connection: Connection

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
