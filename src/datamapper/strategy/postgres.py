"""
PostgreSQL-specific strategy implementation.

This module implements the DatabaseStrategy interface for psycopg 3. It
handles PostgreSQL's particular features:
- Named markers rewritten to pyformat `%(name)s` placeholders
- Logical parameter types applied as `CAST(... AS <type>)`
- Command timeout applied with `SET statement_timeout`
- Stored procedures and functions called with named argument notation
"""
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa
from datamapper.parameter import normalize_parameter_name
from datamapper.protocol import CommandType
from datamapper.sql import rewrite_markers, validate_procedure_name
from datamapper.strategy.base import DatabaseStrategy, OutputMode, Statement
from datamapper.strategy.base import _no_cleanup, register_strategy
from datamapper.types import ParameterDirection, to_sqlalchemy_type
from datamapper.utils import get_raw_connection
from sqlalchemy.dialects import postgresql

if TYPE_CHECKING:
    from datamapper.cursor import Command, Parameter
    from datamapper.options import DatabaseOptions

logger = logging.getLogger(__name__)

_DIALECT = postgresql.dialect()


def compile_type(param: 'Parameter') -> str | None:
    """PostgreSQL type name for a parameter's logical type, or None."""
    sa_type = to_sqlalchemy_type(param.data_type, param.size, param.precision, param.scale)
    if sa_type is None:
        return None
    return sa_type.compile(dialect=_DIALECT)


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname
        query |= options.query

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections.

        Host and user fall back to the libpq defaults (local socket, OS user).
        """
        return ['database']

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for PostgreSQL.
        """
        self.enable_autocommit(raw_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for PostgreSQL.
        """
        get_raw_connection(raw_conn).autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for PostgreSQL.
        """
        get_raw_connection(raw_conn).autocommit = False

    def placeholder(self, param: 'Parameter') -> str:
        """Pyformat placeholder for a parameter, cast to its logical type if set."""
        marker = f'%({normalize_parameter_name(param.name)})s'
        type_name = compile_type(param)
        if type_name is None:
            return marker
        return f'CAST({marker} AS {type_name})'

    def _bind_arguments(self, params: list['Parameter']) -> dict[str, Any]:
        return {normalize_parameter_name(p.name): self.bind_value(p)
                for p in params if p.direction.is_argument}

    def prepare_command(self, command: 'Command') -> Statement:
        """Build driver SQL for a text command or a stored procedure call."""
        if command.command_type is CommandType.STORED_PROCEDURE:
            return self._prepare_procedure(command)

        by_key = self.parameters_by_key(command)
        params = self._bind_arguments(list(by_key.values()))

        def replace(name: str) -> str | None:
            param = by_key.get(name.casefold())
            if param is None or not param.direction.is_argument:
                return None
            return self.placeholder(param)

        sql = rewrite_markers(command.command_text, replace, escape_percent=bool(params))
        return Statement(sql, params, OutputMode.ROWS)

    def _prepare_procedure(self, command: 'Command') -> Statement:
        """Call a procedure or function with named arguments.

        - Output or InputOutput parameters: `CALL name(...)`; the returned
          row carries the output values.
        - A ReturnValue parameter: `SELECT name(...)`; the scalar is the
          return value.
        - Otherwise `SELECT * FROM name(...)`; the rows are the result set.
        """
        name = validate_procedure_name(command.command_text)
        params = list(self.parameters_by_key(command).values())
        arguments = [p for p in params if p.direction.is_argument]
        arglist = ', '.join(f'{normalize_parameter_name(p.name)} => {self.placeholder(p)}'
                            for p in arguments)
        directions = {p.direction for p in params}
        bound = self._bind_arguments(arguments)

        if directions & {ParameterDirection.OUTPUT, ParameterDirection.INPUT_OUTPUT}:
            sql, mode = f'CALL {name}({arglist})', OutputMode.OUTPUT_ROW
        elif ParameterDirection.RETURN_VALUE in directions:
            sql, mode = f'SELECT {name}({arglist})', OutputMode.RETURN_VALUE
        else:
            sql, mode = f'SELECT * FROM {name}({arglist})', OutputMode.ROWS

        return Statement(sql, bound, mode)

    def apply_timeout(self, raw_conn: Any, cursor: Any,
                      seconds: int) -> Callable[[], None]:
        """Set statement_timeout for the session until cleanup runs.

        psycopg raises QueryCanceled (an OperationalError) once the
        timeout expires.
        """
        if not seconds:
            return _no_cleanup

        cursor.execute(f'SET statement_timeout = {int(seconds) * 1000}')

        def cleanup() -> None:
            try:
                cursor.execute('RESET statement_timeout')
            except psycopg.Error as err:
                logger.debug(f'Could not reset statement_timeout: {err}')
        return cleanup
