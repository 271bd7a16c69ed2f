"""
Typed query results over plain SQL, for PostgreSQL and SQLite.

SQL text (or a stored procedure) and its parameters stay under the
caller's control; each result row becomes an object of the requested type:

    result = (QueryBuilder(Customer)
              .set_sql('select * from Customer where Country = @Country')
              .add_parameter('@Country', 'USA')
              .map_property(lambda c: c.zip, 'PostalCode')
              .get_result(cn))
"""
__version__ = '0.1.0'

from datamapper.connection import ConnectionWrapper, connect
from datamapper.cursor import DEFAULT_COMMAND_TIMEOUT
from datamapper.exceptions import ColumnNotFoundError, ConfigurationError
from datamapper.exceptions import ConnectionFailure, DataMapperError
from datamapper.exceptions import DbConnectionError, OperationalError
from datamapper.exceptions import ProgrammingError, QueryError
from datamapper.exceptions import TypeConversionError
from datamapper.mapping import PerProperty, PropertyMapping, WholeRow
from datamapper.options import DatabaseOptions
from datamapper.parameter import QueryParameter
from datamapper.protocol import CommandType
from datamapper.query import QueryBuilder, QueryPlan, execute_plan
from datamapper.result import QueryResult
from datamapper.row import ColumnValue, RowValues
from datamapper.transaction import Transaction
from datamapper.types import DataType, ParameterDirection, TypeConverter

__all__ = [
    'ColumnNotFoundError',
    'ColumnValue',
    'CommandType',
    'ConfigurationError',
    'ConnectionFailure',
    'ConnectionWrapper',
    'DEFAULT_COMMAND_TIMEOUT',
    'DataMapperError',
    'DataType',
    'DatabaseOptions',
    'DbConnectionError',
    'OperationalError',
    'ParameterDirection',
    'PerProperty',
    'ProgrammingError',
    'PropertyMapping',
    'QueryBuilder',
    'QueryError',
    'QueryParameter',
    'QueryPlan',
    'QueryResult',
    'RowValues',
    'Transaction',
    'TypeConversionError',
    'TypeConverter',
    'WholeRow',
    'connect',
    'execute_plan',
]
