"""
Data mapper exception classes.
"""
import sqlite3
from typing import Any

import psycopg
import sqlalchemy as sa


class DataMapperError(Exception):
    """Base class for all data mapper errors.
    """


class ConfigurationError(DataMapperError):
    """Invalid query builder configuration.

    Raised while the builder is being configured (bad property expression,
    unknown property, malformed parameter arguments) or when execution is
    requested without enough information to run.
    """


class ColumnNotFoundError(DataMapperError):
    """A mapped column is absent from the result set.
    """

    def __init__(self, column_name: str) -> None:
        self.column_name = column_name
        super().__init__(f"Column '{column_name}' was not found.")


class TypeConversionError(DataMapperError, ValueError):
    """A cell value cannot be converted to the destination type.
    """

    def __init__(self, value: Any, target_type: Any, property_name: str | None = None,
                 reason: str | None = None) -> None:
        self.value = value
        self.target_type = target_type
        self.property_name = property_name
        type_name = getattr(target_type, '__name__', str(target_type))
        msg = f'Cannot convert {value!r} to {type_name}'
        if property_name:
            msg += f' for property {property_name!r}'
        if reason:
            msg += f': {reason}'
        super().__init__(msg)


class ConnectionFailure(DataMapperError):
    """A command was requested on a connection that is not open.
    """


class QueryError(DataMapperError):
    """A command the library cannot run as configured.

    Raised for stored procedures on a dialect without them, invalid
    procedure names and commands bound to an unusable transaction. Errors
    raised by the driver itself are not wrapped.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.InterfaceError,
    sa.exc.OperationalError,
    sa.exc.InterfaceError,
    ConnectionFailure,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    psycopg.DatabaseError,
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    sa.exc.ProgrammingError,
    QueryError,
    )

OperationalError = (
    psycopg.OperationalError,
    sqlite3.OperationalError,
    sa.exc.OperationalError,
    )
