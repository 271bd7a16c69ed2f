"""
Base strategy interface for dialect-specific command execution.

Each concrete strategy turns a command (text or stored procedure, plus its
parameters) into SQL and arguments its driver accepts, applies the command
timeout, and reads output values back into the command's parameters. The
rest of the package works with any registered dialect through this
interface.
"""
import enum
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from datamapper.parameter import normalize_parameter_name
from datamapper.types import ParameterDirection, TypeConverter

if TYPE_CHECKING:
    from datamapper.cursor import Command, Parameter
    from datamapper.options import DatabaseOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class OutputMode(enum.Enum):
    """What a prepared statement produces."""
    ROWS = 'rows'
    OUTPUT_ROW = 'output_row'
    RETURN_VALUE = 'return_value'


@dataclass
class Statement:
    """Driver-ready SQL with its bound arguments."""
    sql: str
    params: dict[str, Any] = field(default_factory=dict)
    output_mode: OutputMode = OutputMode.ROWS


def _no_cleanup() -> None:
    return None


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Dialect identifier, as registered."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for the options."""

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return extra SQLAlchemy create_engine kwargs."""
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return the option fields a connection needs."""
        return []

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Raise ValueError when a required option is missing."""
        for name in cls.get_required_options():
            if not getattr(options, name, None):
                raise ValueError(f'{name} is required for {options.drivername} connections')

    @abstractmethod
    def configure_connection(self, raw_conn: Any) -> None:
        """Prepare a freshly opened DBAPI connection (autocommit on)."""

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode."""

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode."""

    @abstractmethod
    def prepare_command(self, command: 'Command') -> Statement:
        """Translate a command into SQL and arguments for the driver."""

    def apply_timeout(self, raw_conn: Any, cursor: Any,
                      seconds: int) -> Callable[[], None]:
        """Limit statement run time; returns a callable that removes the limit.

        A timeout of 0 means no limit.
        """
        return _no_cleanup

    def execute(self, cursor: Any, statement: Statement) -> None:
        """Run a prepared statement on a DBAPI cursor."""
        if statement.params:
            cursor.execute(statement.sql, statement.params)
        else:
            cursor.execute(statement.sql)

    def collect_outputs(self, cursor: Any, statement: Statement,
                        command: 'Command') -> None:
        """Assign output and return values to the command's parameters.

        The output row is consumed. Output values are matched to parameters
        by column name, then by position among the output parameters.
        """
        match statement.output_mode:
            case OutputMode.ROWS:
                return
            case OutputMode.RETURN_VALUE:
                row = cursor.fetchone()
                for param in command.parameters:
                    if param.direction is ParameterDirection.RETURN_VALUE:
                        param.value = row[0] if row else None
            case OutputMode.OUTPUT_ROW:
                row = cursor.fetchone()
                if row is None:
                    return
                names = [d[0].casefold() for d in cursor.description or []]
                outputs = [p for p in command.parameters
                           if p.direction.is_output and p.direction.is_argument]
                for position, param in enumerate(outputs):
                    key = normalize_parameter_name(param.name).casefold()
                    if key in names:
                        param.value = row[names.index(key)]
                    elif position < len(row):
                        param.value = row[position]

    @staticmethod
    def parameters_by_key(command: 'Command') -> dict[str, 'Parameter']:
        """Command parameters keyed by casefolded name without prefix.

        The first parameter wins when two names differ only by case or prefix.
        """
        params: dict[str, 'Parameter'] = {}
        for param in command.parameters:
            params.setdefault(normalize_parameter_name(param.name).casefold(), param)
        return params

    def bind_value(self, param: 'Parameter') -> Any:
        """Driver value for a parameter."""
        return TypeConverter.convert_value(param.value)
