"""
Transaction handling and auto-commit management.

Connections run in auto-commit mode. A Transaction turns auto-commit off
for its connection until the caller commits or rolls back.
"""
import logging
import threading
from typing import TYPE_CHECKING, Any, Self

from datamapper.exceptions import ConnectionFailure

if TYPE_CHECKING:
    from datamapper.connection import ConnectionWrapper

logger = logging.getLogger(__name__)


_local = threading.local()


def _active_transactions() -> dict[int, 'Transaction']:
    if not hasattr(_local, 'active_transactions'):
        _local.active_transactions = {}
    return _local.active_transactions


class Transaction:
    """Caller-owned transaction on a ConnectionWrapper.

    Thread-local storage tracks the active transaction of each connection;
    nested transactions on the same connection within a thread are not
    supported. Used as a context manager it commits on success and rolls
    back on exception, unless the caller already finished it.

    Examples
        with cn.begin() as tx:
            QueryBuilder(Customer).set_sql(...).get_result(tx)
    """

    def __init__(self, cn: 'ConnectionWrapper') -> None:
        self.connection = cn
        self.active = False

    def begin(self) -> Self:
        """Start the transaction (auto-commit off)."""
        if self.active:
            return self
        active = _active_transactions()
        if id(self.connection) in active:
            raise RuntimeError('Nested transactions are not supported')
        if self.connection.closed:
            raise ConnectionFailure('Cannot begin a transaction on a closed connection')

        self.connection.strategy.disable_autocommit(self.connection.dbapi_connection)
        active[id(self.connection)] = self
        self.active = True
        self.connection.in_transaction = True
        logger.debug(f'Started transaction for connection {id(self.connection)}')
        return self

    def commit(self) -> None:
        self._finish(commit=True)

    def rollback(self) -> None:
        self._finish(commit=False)

    def _finish(self, commit: bool) -> None:
        if not self.active:
            raise RuntimeError('Transaction is not active')
        raw_conn = self.connection.dbapi_connection
        try:
            if commit:
                raw_conn.commit()
                logger.debug(f'Committed transaction for connection {id(self.connection)}')
            else:
                raw_conn.rollback()
                logger.warning('Rolling back the current transaction')
        finally:
            self.active = False
            _active_transactions().pop(id(self.connection), None)
            self.connection.in_transaction = False
            self.connection.strategy.enable_autocommit(raw_conn)
            logger.debug(f'Transaction cleanup complete for connection {id(self.connection)}')

    def __enter__(self) -> Self:
        return self.begin()

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        if not self.active:
            return
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()


def abandon_transaction(cn: 'ConnectionWrapper') -> None:
    """Forget the active transaction of a connection that is being closed.

    The driver discards the uncommitted work when the connection closes.
    """
    tx = _active_transactions().pop(id(cn), None)
    if tx is not None:
        tx.active = False
        logger.warning('Rolling back the current transaction')
