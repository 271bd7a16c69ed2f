"""Unit tests for the stateless plan executor."""

import pytest
from datamapper.mapping import PerProperty, PropertyMapping
from datamapper.parameter import QueryParameter
from datamapper.protocol import CommandType
from datamapper.query import QueryPlan, build_command, execute_plan
from datamapper.types import DataType, ParameterDirection
from tests.fixtures.fakes import DRIVER_DEFAULT_SIZE, FakeTransaction
from tests.fixtures.models import Customer


def make_plan(*parameters, **kwargs):
    return QueryPlan(Customer, 'select * from customer', parameters=tuple(parameters), **kwargs)


class TestBuildCommand:
    """Copying a plan onto a driver command."""

    def test_command_fields(self, fake_connection):
        cn = fake_connection()
        plan = make_plan(command_type=CommandType.STORED_PROCEDURE, command_timeout=7)
        command = build_command(plan, cn)
        assert command.command_type is CommandType.STORED_PROCEDURE
        assert command.command_text == 'select * from customer'
        assert command.command_timeout == 7
        assert command.transaction is None

    def test_unset_fields_keep_driver_defaults(self, fake_connection):
        command = build_command(make_plan(QueryParameter('@Id', 19)), fake_connection())
        [param] = command.parameters
        assert (param.name, param.value) == ('@Id', 19)
        assert param.data_type is DataType.STRING
        assert param.size == DRIVER_DEFAULT_SIZE
        assert param.direction is ParameterDirection.INPUT

    def test_set_fields_applied(self, fake_connection):
        given = QueryParameter('@Price', 1.5, data_type=DataType.DECIMAL, size=8, precision=10,
                               scale=2, direction=ParameterDirection.INPUT_OUTPUT)
        [param] = build_command(make_plan(given), fake_connection()).parameters
        assert (param.data_type, param.size, param.precision, param.scale, param.direction) == (
            DataType.DECIMAL, 8, 10, 2, ParameterDirection.INPUT_OUTPUT)

    def test_transaction_attached(self, fake_connection):
        cn = fake_connection()
        tx = FakeTransaction(cn)
        assert build_command(make_plan(), cn, tx).transaction is tx


class TestExecutePlan:
    """Execution, parameter read-back and cleanup."""

    def test_rows_and_parameters(self, fake_connection):
        cn = fake_connection(['customer_id', 'postal_code'], [(19, '95014')])
        plan = make_plan(QueryParameter('@Id', 19),
                         strategy=PerProperty((PropertyMapping.column('zip', 'postal_code'),)))
        result = execute_plan(plan, cn)
        assert result.items == [Customer(customer_id=19, zip='95014')]
        assert result.get_parameter('id').value == 19

    def test_read_back_directions(self, fake_connection):
        cn = fake_connection(['customer_id'], [], outputs={'Out': 1, 'InOut': 2, 'Ret': 3})
        plan = make_plan(
            QueryParameter('@In', 0),
            QueryParameter('@Out', None, direction=ParameterDirection.OUTPUT),
            QueryParameter('@InOut', 0, direction=ParameterDirection.INPUT_OUTPUT),
            QueryParameter('@Ret', None, direction=ParameterDirection.RETURN_VALUE),
        )
        result = execute_plan(plan, cn)
        directions = {p.name: p.direction for p in result.parameters}
        assert directions == {
            '@In': ParameterDirection.INPUT,
            '@Out': ParameterDirection.OUTPUT,
            '@InOut': ParameterDirection.OUTPUT,
            '@Ret': ParameterDirection.INPUT,
        }
        assert result.output_values() == {'Out': 1, 'InOut': 2}
        assert result.get_parameter('@Ret').value == 3

    def test_read_back_keeps_driver_defaults(self, fake_connection):
        result = execute_plan(make_plan(QueryParameter('@Id', 19)), fake_connection(['customer_id'], []))
        [param] = result.parameters
        assert param.size == DRIVER_DEFAULT_SIZE
        assert param.data_type is DataType.STRING

    def test_reader_and_command_closed(self, fake_connection):
        cn = fake_connection(['customer_id'], [(1,)])
        execute_plan(make_plan(), cn)
        command = cn.commands[0]
        assert command.reader.closed
        assert command.closed

    def test_closed_on_materialization_error(self, fake_connection):
        cn = fake_connection(['customer_id'], [('not a number',)])
        with pytest.raises(ValueError):
            execute_plan(make_plan(), cn)
        command = cn.commands[0]
        assert command.reader.closed
        assert command.closed

    def test_command_closed_on_driver_error(self, fake_connection):
        cn = fake_connection(error=RuntimeError('driver failure'))
        with pytest.raises(RuntimeError, match='driver failure'):
            execute_plan(make_plan(), cn)
        assert cn.commands[0].closed

    def test_opens_closed_connection_and_leaves_it_open(self, fake_connection):
        cn = fake_connection(['customer_id'], [(1,)], is_open=False)
        execute_plan(make_plan(), cn)
        assert cn.open_calls == 1
        assert not cn.closed

    def test_plan_reusable(self, fake_connection):
        plan = make_plan(QueryParameter('@Id', 19))
        first = execute_plan(plan, fake_connection(['customer_id'], [(1,)]))
        second = execute_plan(plan, fake_connection(['customer_id'], [(2,)]))
        assert [c.customer_id for c in first] == [1]
        assert [c.customer_id for c in second] == [2]
        assert plan.parameters == (QueryParameter('@Id', 19),)
