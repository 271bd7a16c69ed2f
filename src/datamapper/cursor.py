"""
Commands, driver parameters and forward-only data readers.

A Command is created by a ConnectionWrapper, carries its text, type,
timeout, optional transaction and parameters, and executes through the
connection's dialect strategy on a raw DBAPI cursor. The DataReader it
returns owns that cursor until closed.
"""
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

from datamapper.exceptions import QueryError
from datamapper.protocol import CommandType
from datamapper.strategy import OutputMode
from datamapper.strategy.base import _no_cleanup
from datamapper.types import DataType, ParameterDirection

if TYPE_CHECKING:
    from datamapper.connection import ConnectionWrapper
    from datamapper.transaction import Transaction

__all__ = [
    'DEFAULT_COMMAND_TIMEOUT',
    'Parameter',
    'Command',
    'DataReader',
    'dumpsql',
]

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 500


@dataclass
class Parameter:
    """Driver parameter attached to a command.

    After execution, Output, InputOutput and ReturnValue parameters hold
    the value assigned by the database.
    """
    name: str = ''
    value: Any = None
    data_type: DataType | None = None
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    direction: ParameterDirection = ParameterDirection.INPUT


def dumpsql(func):
    """Decorator for logging command text, parameters and timing."""
    @wraps(func)
    def wrapper(self: 'Command', *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{self.command_text}\nargs: {self.describe_parameters()}')
        try:
            return func(self, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{self.command_text}\nargs: {self.describe_parameters()}')
            raise
        finally:
            elapsed = time.time() - start
            self.connection.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


def _release(cursor: Any, cleanup: Callable[[], None]) -> None:
    try:
        cleanup()
    finally:
        cursor.close()


class DataReader:
    """Forward-only reader over a DBAPI cursor.

    Rows are fetched one at a time; `read()` advances to the next row and
    returns False once the rows are exhausted. A reader created for a
    command without a result set has no columns and no rows.
    """

    def __init__(self, cursor: Any, cleanup: Callable[[], None] = _no_cleanup,
                 has_rows: bool = True) -> None:
        self.cursor = cursor
        self._cleanup = cleanup
        description = cursor.description if has_rows else None
        self._names: list[str] = [d[0] for d in description or []]
        self._row: tuple | None = None
        self._exhausted = not self._names
        self.closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def field_count(self) -> int:
        """Number of columns in the result set."""
        return len(self._names)

    def get_name(self, ordinal: int) -> str:
        return self._names[ordinal]

    def get_ordinal(self, name: str) -> int:
        """Position of the first column named `name`, ignoring case.

        Raises IndexError when there is no such column.
        """
        wanted = name.casefold()
        for i, column in enumerate(self._names):
            if column.casefold() == wanted:
                return i
        raise IndexError(f'Column {name!r} not found')

    def _current(self) -> tuple:
        if self._row is None:
            raise RuntimeError('No current row; call read() first')
        return self._row

    def is_null(self, ordinal: int) -> bool:
        return self._current()[ordinal] is None

    def get_value(self, ordinal: int) -> Any:
        return self._current()[ordinal]

    def read(self) -> bool:
        """Advance to the next row. Returns False when no row remains."""
        if self._exhausted or self.closed:
            return False
        row = self.cursor.fetchone()
        if row is None:
            self._exhausted = True
            self._row = None
            return False
        self._row = row
        return True

    def close(self) -> None:
        """Release the cursor and any command timeout."""
        if self.closed:
            return
        self.closed = True
        self._row = None
        _release(self.cursor, self._cleanup)


class Command:
    """Executable command bound to a ConnectionWrapper.
    """

    def __init__(self, connection: 'ConnectionWrapper', command_text: str = '',
                 command_type: CommandType = CommandType.TEXT,
                 command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
                 transaction: 'Transaction | None' = None) -> None:
        self.connection = connection
        self.command_text = command_text
        self.command_type = command_type
        self.command_timeout = command_timeout
        self.transaction = transaction
        self.parameters: list[Parameter] = []

    def create_parameter(self) -> Parameter:
        """New parameter with driver defaults; the caller appends it."""
        return Parameter()

    def describe_parameters(self) -> list[tuple[str, Any]]:
        return [(p.name, p.value) for p in self.parameters]

    def _check_transaction(self) -> None:
        tx = self.transaction
        if tx is None:
            return
        if tx.connection is not self.connection:
            raise QueryError('Transaction belongs to a different connection')
        if not tx.active:
            raise QueryError('Transaction has already been committed or rolled back')

    @dumpsql
    def execute_reader(self) -> DataReader:
        """Execute the command and return a reader over its result rows.

        Output and return values are assigned to the parameters before the
        reader is returned. Driver errors propagate unchanged.
        """
        self._check_transaction()
        raw_conn = self.connection.dbapi_connection
        strategy = self.connection.strategy
        statement = strategy.prepare_command(self)
        logger.debug(f'Driver SQL:\n{statement.sql}\nparams: {statement.params}')

        cursor = raw_conn.cursor()
        cleanup = _no_cleanup
        try:
            cleanup = strategy.apply_timeout(raw_conn, cursor, self.command_timeout)
            strategy.execute(cursor, statement)
            strategy.collect_outputs(cursor, statement, self)
        except Exception:
            try:
                _release(cursor, cleanup)
            except Exception as e:
                logger.debug(f'Error releasing cursor after failed command: {e}')
            raise

        return DataReader(cursor, cleanup, has_rows=statement.output_mode is OutputMode.ROWS)

    def close(self) -> None:
        """Commands hold no driver resources of their own."""
        self.parameters = []
