"""Unit tests for RowValues lookups and typed accessors."""

import datetime
import decimal

import pytest
from datamapper.exceptions import TypeConversionError
from datamapper.row import ColumnValue, RowValues


@pytest.fixture
def row():
    return RowValues.from_pairs([
        ('CustomerId', 19),
        ('FirstName', 'Tim'),
        ('LastName', 'Goyer'),
        ('Company', None),
        ('Total', '3.98'),
        ('InvoiceDate', '2010-03-11 00:00:00'),
        ('Active', 'yes'),
        ('Big', 2**40),
        ('Small', 200),
        ('firstname', 'Shadowed'),
    ])


class TestLookup:
    """Case-insensitive, first-match column lookup."""

    def test_find_ignores_case(self, row):
        assert row.find('FIRSTNAME') == ColumnValue('FirstName', 'Tim')

    def test_first_match_wins(self, row):
        assert row.get_string('firstname') == 'Tim'

    def test_contains(self, row):
        assert 'customerid' in row
        assert 'DoesNotExist' not in row
        assert ColumnValue('LastName', 'Goyer') in row

    def test_column_names_in_order(self, row):
        assert row.column_names()[:3] == ['CustomerId', 'FirstName', 'LastName']

    def test_to_dict_keeps_first_duplicate(self):
        values = RowValues.from_pairs([('a', 1), ('a', 2), ('b', 3)])
        assert values.to_dict() == {'a': 1, 'b': 3}

    def test_from_dict(self):
        values = RowValues.from_dict({'x': 1, 'y': None})
        assert values == [ColumnValue('x', 1), ColumnValue('y', None)]

    def test_get_with_default(self, row):
        assert row.get('Company', 'n/a') == 'n/a'
        assert row.get('Missing', 'n/a') == 'n/a'
        assert row.get('CustomerId') == 19

    def test_column_value_is_immutable(self):
        value = ColumnValue('a', 1)
        with pytest.raises(AttributeError):
            value.value = 2


class TestTypedAccessors:
    """Typed accessors return None for missing and null columns."""

    @pytest.mark.parametrize('accessor', ['get_string', 'get_integer', 'get_long', 'get_byte',
                                          'get_decimal', 'get_float', 'get_datetime',
                                          'get_date', 'get_boolean', 'get_value'])
    def test_missing_and_null_are_none(self, row, accessor):
        assert getattr(row, accessor)('DoesNotExist') is None
        assert getattr(row, accessor)('Company') is None

    def test_get_string(self, row):
        assert row.get_string('CustomerId') == '19'

    def test_get_integer(self, row):
        assert row.get_integer('customerid') == 19

    def test_get_integer_out_of_range(self, row):
        with pytest.raises(TypeConversionError, match="'Big'"):
            row.get_integer('Big')

    def test_get_long(self, row):
        assert row.get_long('Big') == 2**40

    def test_get_byte(self, row):
        assert row.get_byte('Small') == 200
        with pytest.raises(TypeConversionError):
            RowValues.from_pairs([('b', 256)]).get_byte('b')

    def test_get_decimal(self, row):
        assert row.get_decimal('Total') == decimal.Decimal('3.98')

    def test_get_float(self, row):
        assert row.get_float('Total') == pytest.approx(3.98)

    def test_get_datetime(self, row):
        assert row.get_datetime('InvoiceDate') == datetime.datetime(2010, 3, 11)

    def test_get_date(self, row):
        assert row.get_date('InvoiceDate') == datetime.date(2010, 3, 11)

    def test_get_boolean(self, row):
        assert row.get_boolean('Active') is True
        assert RowValues.from_pairs([('flag', 0)]).get_boolean('flag') is False

    def test_incompatible_value_raises(self, row):
        with pytest.raises(TypeConversionError) as exc:
            row.get_integer('FirstName')
        assert exc.value.value == 'Tim'
        assert exc.value.property_name == 'FirstName'
