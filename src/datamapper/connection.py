"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for creating new database connections
2. The `ConnectionWrapper` class: the Connection used by queries
3. Engine creation and management through a thread-safe registry

Connections are opened in auto-commit mode; `ConnectionWrapper.begin()`
starts an explicit transaction.
"""
import atexit
import logging
import threading
from collections.abc import Callable
from typing import Any, Self

import sqlalchemy as sa
from datamapper.cursor import DEFAULT_COMMAND_TIMEOUT, Command
from datamapper.exceptions import ConnectionFailure
from datamapper.options import DatabaseOptions, load_options
from datamapper.protocol import CommandType
from datamapper.strategy import DatabaseStrategy, get_db_strategy, get_strategy
from datamapper.transaction import Transaction, abandon_transaction
from datamapper.utils import get_dialect_name
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'ConnectionWrapper',
    'connect',
    'configure_connection',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def _engine_key(options: DatabaseOptions) -> str:
    url = options.to_url().render_as_string(hide_password=False)
    return (f'{url}_{options.use_pool}_{options.pool_max_connections}'
            f'_{options.pool_max_idle_time}_{options.pool_wait_timeout}')


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    Engines use NullPool unless `options.use_pool` is set.
    """
    key = _engine_key(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)
        engine_kwargs: dict[str, Any] = {'echo': False}
        engine_kwargs.update(strategy.get_engine_kwargs(options))

        if not options.use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = options.pool_max_connections
            engine_kwargs['pool_recycle'] = options.pool_max_idle_time
            engine_kwargs['pool_timeout'] = options.pool_wait_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True
            engine_kwargs['pool_reset_on_return'] = 'rollback'

        engine_kwargs.update(kwargs)

        engine = engine_factory(options.to_url(), **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def configure_connection(sa_connection: sa.engine.Connection) -> None:
    """Configure a SQLAlchemy connection with dialect-specific settings.
    """
    strategy = get_db_strategy(sa_connection)
    strategy.configure_connection(sa_connection.connection)


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection to track calls and execution time

    This class:
    1. Opens and closes the underlying SQLAlchemy connection on demand
    2. Creates commands and transactions for the query builder
    3. Tracks query execution counts and timing, logged on close
    4. Supports the context manager protocol
    """

    def __init__(self, engine: Engine, options: DatabaseOptions | None = None) -> None:
        self.engine = engine
        self.options = options
        self.sa_connection: sa.engine.Connection | None = None
        self._dialect = get_dialect_name(engine)
        self.calls = 0
        self.time = 0
        self.in_transaction = False

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the connection when exiting the context manager
        """
        self.close()
        logger.debug('Closed connection via context manager')

    def __repr__(self) -> str:
        state = 'closed' if self.closed else 'open'
        return f'<ConnectionWrapper {self.dialect} {state}>'

    @property
    def closed(self) -> bool:
        return self.sa_connection is None or self.sa_connection.closed

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self._dialect

    @property
    def strategy(self) -> DatabaseStrategy:
        return get_strategy(self._dialect)

    @property
    def dbapi_connection(self) -> Any:
        """The pooled DBAPI connection of the open SQLAlchemy connection."""
        if self.closed:
            raise ConnectionFailure('Connection is not open')
        return self.sa_connection.connection

    def open(self) -> None:
        """Open the connection; a no-op when already open."""
        if not self.closed:
            return
        self.sa_connection = self.engine.connect()
        configure_connection(self.sa_connection)
        logger.debug(f'Opened {self.dialect} connection')

    def close(self) -> None:
        """Close the SQLAlchemy connection, rolling back an unfinished transaction
        """
        if self.closed:
            return
        if self.in_transaction:
            abandon_transaction(self)
        self.sa_connection.close()
        self.sa_connection = None
        self.in_transaction = False
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    @property
    def is_pooled(self) -> bool:
        """Check if this connection is using SQLAlchemy's connection pooling
        """
        return not isinstance(self.engine.pool, NullPool)

    def create_command(self, command_text: str = '',
                       command_type: CommandType = CommandType.TEXT,
                       command_timeout: int = DEFAULT_COMMAND_TIMEOUT) -> Command:
        """Create a command on this connection.

        Raises
            ConnectionFailure: the connection is not open
        """
        if self.closed:
            raise ConnectionFailure('Connection is not open')
        return Command(self, command_text, command_type, command_timeout)

    def begin(self) -> Transaction:
        """Start a transaction on this connection."""
        return Transaction(self).begin()


def connect(options: DatabaseOptions | dict[str, Any] | str, **kw: Any) -> ConnectionWrapper:
    """Connect to a database using SQLAlchemy for connection management

    Args:
        options: Can be:
                - SQLAlchemy URL string, e.g. 'sqlite:///chinook.db'
                - DatabaseOptions object
                - Dictionary of options
        **kw: Additional keyword arguments to override options

    Returns
        Open ConnectionWrapper
    """
    options = load_options(options, **kw)
    engine = get_engine_for_options(options)
    cn = ConnectionWrapper(engine, options)
    cn.open()
    return cn
