"""
Fluent query builder and the stateless plan executor.

    QueryBuilder → build() → QueryPlan → execute_plan(plan, cn) → QueryResult

The builder accumulates the command, its parameters and the property
mappings. `build()` freezes that state into an immutable QueryPlan, and
`execute_plan` runs a plan against a connection: it creates the command,
binds parameters, materializes every row and reads parameter values back.

Examples
    result = (QueryBuilder(Customer)
              .set_connection_string('sqlite:///chinook.db')
              .set_sql('select * from Customer where CustomerId = @CustomerId')
              .add_parameter('@CustomerId', 19)
              .map_property(lambda c: c.zip, 'PostalCode')
              .get_result())
"""
import logging
from collections.abc import Callable
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any, Generic, Self, TypeVar

from datamapper.connection import connect
from datamapper.cursor import DEFAULT_COMMAND_TIMEOUT
from datamapper.exceptions import ConfigurationError
from datamapper.mapper import iter_entities
from datamapper.mapping import MappingStrategy, PerProperty, PropertyMapping
from datamapper.mapping import WholeRow, resolve_property_name
from datamapper.options import CONNECTION_STRING_ENV, default_connection_string
from datamapper.parameter import QueryParameter
from datamapper.protocol import Command, CommandType, Connection, Transaction
from datamapper.result import QueryResult
from datamapper.row import RowValues
from datamapper.types import ParameterDirection, read_back_direction

__all__ = [
    'QueryBuilder',
    'QueryPlan',
    'execute_plan',
    'build_command',
    'read_back_parameters',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')

_PARAMETER_OPTIONS = {'data_type', 'size', 'precision', 'scale', 'direction'}


@dataclass(frozen=True)
class QueryPlan(Generic[T]):
    """Immutable description of one query execution."""
    entity_cls: type[T]
    command_text: str
    command_type: CommandType = CommandType.TEXT
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT
    connection_string: str | None = None
    ignore_missing_column: bool = True
    parameters: tuple[QueryParameter, ...] = ()
    strategy: MappingStrategy = field(default_factory=PerProperty)


def build_command(plan: QueryPlan, cn: Connection,
                  transaction: Transaction | None = None) -> Command:
    """Create the driver command for a plan.

    Optional parameter fields are applied only when set, so driver
    defaults stay in effect otherwise.
    """
    command = cn.create_command()
    command.command_type = plan.command_type
    command.command_text = plan.command_text
    command.command_timeout = plan.command_timeout
    if transaction is not None:
        command.transaction = transaction

    for param in plan.parameters:
        driver_param = command.create_parameter()
        driver_param.name = param.name
        driver_param.value = param.value
        if param.data_type is not None:
            driver_param.data_type = param.data_type
        if param.size is not None:
            driver_param.size = param.size
        if param.precision is not None:
            driver_param.precision = param.precision
        if param.scale is not None:
            driver_param.scale = param.scale
        if param.direction is not None:
            driver_param.direction = param.direction
        command.parameters.append(driver_param)
    return command


def read_back_parameters(command: Command) -> list[QueryParameter]:
    """Snapshot the command's parameters after execution.
    """
    return [
        QueryParameter(
            name=p.name,
            value=p.value,
            data_type=p.data_type,
            size=p.size,
            precision=p.precision,
            scale=p.scale,
            direction=read_back_direction(p.direction),
        )
        for p in command.parameters
    ]


def execute_plan(plan: QueryPlan[T], cn: Connection,
                 transaction: Transaction | None = None) -> QueryResult[T]:
    """Run a plan on a connection, opening it if needed. The connection is not closed.

    Every row is materialized before this returns; the reader is closed
    before parameter values are read back.
    """
    if cn.closed:
        cn.open()

    command = build_command(plan, cn, transaction)
    try:
        with closing(command.execute_reader()) as reader:
            items = list(iter_entities(reader, plan.entity_cls, plan.strategy,
                                       plan.ignore_missing_column))
        parameters = read_back_parameters(command)
    finally:
        command.close()

    logger.debug(f'{plan.entity_cls.__name__}: materialized {len(items)} rows')
    return QueryResult(items, parameters)


class QueryBuilder(Generic[T]):
    """Fluent builder for a typed query.

    Every setter returns the builder. One builder describes one query
    configuration and is not meant to be shared between threads; `build()`
    returns an immutable plan that can be.
    """

    def __init__(self, entity_cls: type[T],
                 connection_factory: Callable[[str], Connection] = connect) -> None:
        self.entity_cls = entity_cls
        self._connection_factory = connection_factory
        self._command_type = CommandType.TEXT
        self._command_text = ''
        self._command_timeout = DEFAULT_COMMAND_TIMEOUT
        self._connection_string: str | None = None
        self._ignore_missing_column = True
        self._parameters: list[QueryParameter] = []
        self._mappings: dict[str, PropertyMapping] = {}
        self._object_mapper: Callable[[RowValues], T] | None = None

    def set_connection_string(self, connection_string: str) -> Self:
        self._connection_string = connection_string
        return self

    def set_sql(self, sql: str) -> Self:
        """Run `sql` as a text command (replaces any stored procedure)."""
        self._command_type = CommandType.TEXT
        self._command_text = sql
        return self

    def set_stored_procedure(self, name: str) -> Self:
        """Run the stored procedure `name` (replaces any SQL text)."""
        self._command_type = CommandType.STORED_PROCEDURE
        self._command_text = name
        return self

    def set_ignore_missing_column(self, ignore: bool = True) -> Self:
        """Skip (True, the default) or raise on mapped columns absent from the result."""
        self._ignore_missing_column = ignore
        return self

    def set_command_timeout(self, seconds: int) -> Self:
        self._command_timeout = seconds
        return self

    def map_property(self, prop: str | Callable[[T], Any],
                     source: str | Callable[[RowValues], Any]) -> Self:
        """Map a property to a column name or to a function of the whole row.

        `prop` is a property name or an attribute access such as
        `lambda c: c.zip`. A later mapping for the same property replaces
        the earlier one.

        Raises
            ConfigurationError: `prop` is not a simple property access, or
            `source` is neither a column name nor a callable
        """
        name = resolve_property_name(self.entity_cls, prop)
        if isinstance(source, str):
            mapping = PropertyMapping.column(name, source)
        elif callable(source):
            mapping = PropertyMapping.computed(name, source)
        else:
            raise ConfigurationError(
                f'Mapping source for {name!r} must be a column name or a function of the row')
        self._mappings[name] = mapping
        logger.debug(f'Mapped {self.entity_cls.__name__}.{name} to {source if isinstance(source, str) else "row mapper"}')
        return self

    def map_object(self, mapper: Callable[[RowValues], T]) -> Self:
        """Build each object with `mapper(row)`; property mappings are then unused."""
        if not callable(mapper):
            raise ConfigurationError('Object mapper must be callable')
        self._object_mapper = mapper
        return self

    def add_parameter(self, *args: Any, **kwargs: Any) -> Self:
        """Add a command parameter.

            add_parameter(QueryParameter('@Id', 19))
            add_parameter('@Id', 19)
            add_parameter('@Total', None, ParameterDirection.OUTPUT)
            add_parameter('@Price', price, data_type=DataType.DECIMAL, precision=10, scale=2)
            add_parameter(lambda: country is not None, '@Country', country)

        A callable first argument is a condition evaluated now; the
        parameter is added only when it returns true.
        """
        match args:
            case (QueryParameter() as param,) if not kwargs:
                self._parameters.append(param)
            case (condition, str() as name, value, *rest) if callable(condition):
                if condition():
                    self.add_parameter(name, value, *rest, **kwargs)
                else:
                    logger.debug(f'Skipped parameter {name}: condition is false')
            case (str() as name, value):
                self._parameters.append(self._make_parameter(name, value, kwargs))
            case (str() as name, value, direction):
                if 'direction' in kwargs:
                    raise ConfigurationError('direction given twice')
                self._parameters.append(self._make_parameter(name, value, kwargs | {'direction': direction}))
            case _:
                raise ConfigurationError(f'Unsupported add_parameter arguments: {args!r}')
        return self

    @staticmethod
    def _make_parameter(name: str, value: Any, options: dict[str, Any]) -> QueryParameter:
        unknown = set(options) - _PARAMETER_OPTIONS
        if unknown:
            raise ConfigurationError(f'Unknown parameter options: {sorted(unknown)}')
        direction = options.get('direction')
        if direction is not None and not isinstance(direction, ParameterDirection):
            raise ConfigurationError(f'direction must be a ParameterDirection, got {direction!r}')
        if not name:
            raise ConfigurationError('Parameter name is required')
        return QueryParameter(name, value, **options)

    @property
    def parameters(self) -> list[QueryParameter]:
        """Parameters added so far."""
        return list(self._parameters)

    def build(self) -> QueryPlan[T]:
        """Freeze the current configuration into a QueryPlan.

        Raises
            ConfigurationError: no SQL text or stored procedure was set
        """
        if not self._command_text:
            raise ConfigurationError('No SQL text or stored procedure set')
        if self._object_mapper is not None:
            strategy = WholeRow(self._object_mapper)
        else:
            strategy = PerProperty(tuple(self._mappings.values()))
        return QueryPlan(
            entity_cls=self.entity_cls,
            command_text=self._command_text,
            command_type=self._command_type,
            command_timeout=self._command_timeout,
            connection_string=self._connection_string,
            ignore_missing_column=self._ignore_missing_column,
            parameters=tuple(self._parameters),
            strategy=strategy,
        )

    def get_result(self, target: Connection | Transaction | None = None) -> QueryResult[T]:
        """Execute and return the produced objects and parameters.

        - No target: open a connection from the connection string (or the
          DATAMAPPER_CONNECTION_STRING environment variable) and close it
          afterwards, whatever the outcome.
        - A connection: use it, opening it if closed; it is left open.
        - A transaction: run on its connection inside it; commit and
          rollback stay with the caller.
        """
        plan = self.build()
        match target:
            case None:
                connection_string = plan.connection_string or default_connection_string()
                if not connection_string:
                    raise ConfigurationError(
                        f'No connection string set and {CONNECTION_STRING_ENV} is not defined')
                cn = self._connection_factory(connection_string)
                try:
                    return execute_plan(plan, cn)
                finally:
                    cn.close()
            case Transaction():
                return execute_plan(plan, target.connection, target)
            case Connection():
                return execute_plan(plan, target)
        raise ConfigurationError(f'Cannot execute against {type(target).__name__}')
