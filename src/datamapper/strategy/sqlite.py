"""
SQLite-specific strategy implementation.

This module implements the DatabaseStrategy interface for sqlite3. It
handles SQLite's particular features and limitations:
- Named markers rewritten to the `:name` form, bound from a dict
- Logical parameter types applied on the Python side
- Command timeout enforced with a progress handler
- No stored procedures
"""
import datetime
import decimal
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import dateutil.parser
import sqlalchemy as sa
from datamapper.exceptions import QueryError
from datamapper.parameter import normalize_parameter_name
from datamapper.protocol import CommandType
from datamapper.sql import rewrite_markers
from datamapper.strategy.base import DatabaseStrategy, OutputMode, Statement
from datamapper.strategy.base import _no_cleanup, register_strategy
from datamapper.types import convert_scalar, to_python_type
from datamapper.utils import get_raw_connection

if TYPE_CHECKING:
    from datamapper.cursor import Command, Parameter
    from datamapper.options import DatabaseOptions

logger = logging.getLogger(__name__)

# Virtual machine instructions between deadline checks
PROGRESS_STEPS = 1000


def convert_date(value: bytes) -> datetime.date | str:
    """Converter for columns declared DATE."""
    text = value.decode()
    try:
        return dateutil.parser.parse(text).date()
    except (ValueError, OverflowError):
        logger.debug(f'Leaving unparseable date {text!r} as text')
        return text


def convert_datetime(value: bytes) -> datetime.datetime | str:
    """Converter for columns declared DATETIME or TIMESTAMP."""
    text = value.decode()
    try:
        return dateutil.parser.parse(text)
    except (ValueError, OverflowError):
        logger.debug(f'Leaving unparseable datetime {text!r} as text')
        return text


def _adapt_datetime(value: datetime.datetime) -> str:
    return value.isoformat(sep=' ')


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database, query=options.query)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        connect_args: dict[str, Any] = {
            'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
        }
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def register_type_adapters(self) -> None:
        """Register sqlite3 adapters and converters.

        Adapters (Python -> SQLite) bind values sqlite3 has no native form
        for; converters (SQLite -> Python) parse declared date columns.
        """
        sqlite3.register_adapter(decimal.Decimal, str)
        sqlite3.register_adapter(uuid.UUID, str)
        sqlite3.register_adapter(datetime.date, datetime.date.isoformat)
        sqlite3.register_adapter(datetime.datetime, _adapt_datetime)
        sqlite3.register_adapter(datetime.time, datetime.time.isoformat)

        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        sqlite3.register_converter('timestamp', convert_datetime)

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for SQLite.
        """
        sqlite_conn = get_raw_connection(raw_conn)
        self.register_type_adapters()
        sqlite_conn.execute('PRAGMA foreign_keys = ON')
        self.enable_autocommit(sqlite_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for SQLite.
        """
        get_raw_connection(raw_conn).isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for SQLite.
        """
        get_raw_connection(raw_conn).isolation_level = 'DEFERRED'

    def prepare_command(self, command: 'Command') -> Statement:
        """Rewrite markers to `:name` and bind parameters by name.

        Raises
            QueryError: the command is a stored procedure
        """
        if command.command_type is CommandType.STORED_PROCEDURE:
            raise QueryError('SQLite does not support stored procedures')

        by_key = self.parameters_by_key(command)

        def replace(name: str) -> str | None:
            param = by_key.get(name.casefold())
            if param is None:
                return None
            return f':{normalize_parameter_name(param.name)}'

        sql = rewrite_markers(command.command_text, replace)
        params = {normalize_parameter_name(p.name): self.bind_value(p)
                  for p in by_key.values() if p.direction.is_argument}
        return Statement(sql, params, OutputMode.ROWS)

    def bind_value(self, param: 'Parameter') -> Any:
        """Driver value for a parameter, converted to its logical type if set."""
        value = super().bind_value(param)
        python_type = to_python_type(param.data_type)
        if value is None or python_type is None:
            return value
        return convert_scalar(value, python_type)

    def apply_timeout(self, raw_conn: Any, cursor: Any,
                      seconds: int) -> Callable[[], None]:
        """Interrupt the statement once `seconds` have elapsed.

        sqlite3 raises OperationalError('interrupted') when the progress
        handler aborts a statement.
        """
        if not seconds:
            return _no_cleanup

        sqlite_conn = get_raw_connection(raw_conn)
        deadline = time.monotonic() + seconds

        def check_deadline() -> int:
            return 1 if time.monotonic() > deadline else 0

        sqlite_conn.set_progress_handler(check_deadline, PROGRESS_STEPS)

        def cleanup() -> None:
            sqlite_conn.set_progress_handler(None, 0)
        return cleanup
