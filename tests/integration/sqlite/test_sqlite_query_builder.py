"""
End-to-end QueryBuilder tests on a SQLite database file.
"""
import datetime
import decimal
import sqlite3

import pytest
from datamapper import ColumnNotFoundError, DataType, QueryBuilder, QueryError
from datamapper.options import CONNECTION_STRING_ENV
from tests.fixtures.models import Customer, Genre, Invoice, MediaKind, Track

CUSTOMER_BY_ID = 'select * from customer where customer_id = @CustomerId'


def test_default_mapping(sqlite_conn):
    """Columns named like the properties map without configuration"""
    customer = (QueryBuilder(Customer)
                .set_sql(CUSTOMER_BY_ID)
                .add_parameter('@CustomerId', 19)
                .get_result(sqlite_conn)
                .first())

    assert customer.customer_id == 19
    assert customer.first_name == 'Tim'
    assert customer.company == 'Apple Inc.'
    assert customer.zip is None
    assert customer.full_name is None


def test_explicit_column_mapping(sqlite_conn):
    customer = (QueryBuilder(Customer)
                .set_sql(CUSTOMER_BY_ID)
                .add_parameter('@CustomerId', 19)
                .map_property(lambda c: c.zip, 'postal_code')
                .get_result(sqlite_conn)
                .first())
    assert customer.zip == '95014'


def test_column_names_ignore_case(sqlite_conn):
    result = (QueryBuilder(Customer)
              .set_sql('select customer_id as CUSTOMER_ID, first_name as FirstName '
                       'from customer where customer_id = :customerid')
              .add_parameter('@CustomerId', 19)
              .map_property('first_name', 'firstname')
              .get_result(sqlite_conn))
    assert result.items == [Customer(customer_id=19, first_name='Tim')]


def test_computed_property(sqlite_conn):
    customer = (QueryBuilder(Customer)
                .set_sql(CUSTOMER_BY_ID)
                .add_parameter('@CustomerId', 19)
                .map_property(lambda c: c.full_name,
                              lambda row: f"{row.get_string('first_name')} {row.get_string('last_name')}")
                .get_result(sqlite_conn)
                .first())
    assert customer.full_name == 'Tim Goyer'


def test_child_object(sqlite_conn):
    """Invoices with their customer built from the joined columns"""
    sql = """
    select i.invoice_id, i.customer_id, i.invoice_date, i.billing_city, i.total,
           c.first_name, c.last_name, c.company
    from invoice i join customer c on c.customer_id = i.customer_id
    where i.customer_id = @CustomerId
    order by i.invoice_id
    """

    def customer_of(row):
        return Customer(customer_id=row.get_integer('customer_id'),
                        first_name=row.get_string('first_name'),
                        last_name=row.get_string('last_name'),
                        company=row.get_string('company'))

    invoices = (QueryBuilder(Invoice)
                .set_sql(sql)
                .add_parameter('@CustomerId', 19)
                .map_property(lambda i: i.customer, customer_of)
                .get_result(sqlite_conn)
                .items)

    assert [i.invoice_id for i in invoices] == [98, 121]
    first = invoices[0]
    assert first.invoice_date == datetime.datetime(2010, 3, 11)
    assert first.total == decimal.Decimal('3.98')
    assert first.customer.first_name == 'Tim'
    assert first.customer.company == 'Apple Inc.'


def test_map_object(sqlite_conn):
    names = (QueryBuilder(str)
             .set_sql('select first_name, last_name from customer where country = @Country '
                      'order by customer_id')
             .add_parameter('@Country', 'USA')
             .map_object(lambda row: f"{row.get_string('last_name')}, {row.get_string('first_name')}")
             .get_result(sqlite_conn)
             .items)
    assert names == ['Harris, Frank', 'Goyer, Tim', 'Miller, Dan']


def test_null_values(sqlite_conn):
    customer = (QueryBuilder(Customer)
                .set_sql(CUSTOMER_BY_ID)
                .add_parameter('@CustomerId', 2)
                .get_result(sqlite_conn)
                .first())
    assert customer.company is None
    assert customer.state is None
    assert customer.country == 'Germany'
    assert customer.last_name == 'Köhler'


def test_enum_properties(sqlite_conn):
    tracks = (QueryBuilder(Track)
              .set_sql('select * from track order by track_id')
              .get_result(sqlite_conn)
              .items)
    assert [t.media_type_id for t in tracks] == [MediaKind.MPEG, MediaKind.PROTECTED_AAC,
                                                 MediaKind.PROTECTED_AAC, MediaKind.MPEG]
    assert [t.genre for t in tracks] == [Genre.ROCK, Genre.METAL, Genre.METAL, Genre.JAZZ]
    assert tracks[0].unit_price == decimal.Decimal('0.99')
    assert tracks[0].tags == []


def test_empty_result(sqlite_conn):
    result = (QueryBuilder(Customer)
              .set_sql(CUSTOMER_BY_ID)
              .add_parameter('@CustomerId', -1)
              .get_result(sqlite_conn))
    assert result.items == []
    assert result.first_or_none() is None
    assert list(result.to_dataframe(Customer).columns)[:2] == ['customer_id', 'first_name']


def test_missing_column_raises(sqlite_conn):
    builder = (QueryBuilder(Customer)
               .set_sql(CUSTOMER_BY_ID)
               .add_parameter('@CustomerId', 19)
               .map_property(lambda c: c.zip, 'DoesNotExist')
               .set_ignore_missing_column(False))
    with pytest.raises(ColumnNotFoundError) as exc:
        builder.get_result(sqlite_conn)
    assert exc.value.column_name == 'DoesNotExist'


def test_missing_column_ignored(sqlite_conn):
    customer = (QueryBuilder(Customer)
                .set_sql(CUSTOMER_BY_ID)
                .add_parameter('@CustomerId', 19)
                .map_property(lambda c: c.zip, 'DoesNotExist')
                .get_result(sqlite_conn)
                .first())
    assert customer.zip is None
    assert customer.first_name == 'Tim'


def test_conditional_parameter(sqlite_conn):
    def customers(country):
        return (QueryBuilder(Customer)
                .set_sql('select * from customer where country = @Country' if country
                         else 'select * from customer')
                .add_parameter(lambda: country is not None, '@Country', country)
                .get_result(sqlite_conn))

    assert len(customers('USA')) == 3
    everyone = customers(None)
    assert len(everyone) == 5
    assert everyone.parameters == []


def test_parameter_data_type(sqlite_conn):
    """Logical types are applied before binding"""
    def storage_class(**options):
        return (QueryBuilder(str)
                .set_sql('select typeof(@Id) as t')
                .add_parameter('@Id', '19', **options)
                .map_object(lambda row: row.get_string('t'))
                .get_result(sqlite_conn)
                .first())

    assert storage_class() == 'text'
    assert storage_class(data_type=DataType.INT32) == 'integer'
    assert storage_class(data_type=DataType.DOUBLE) == 'real'


def test_decimal_parameter(sqlite_conn):
    count = (QueryBuilder(int)
             .set_sql('select count(*) as n from invoice where total > @Min')
             .add_parameter('@Min', decimal.Decimal('3.97'), data_type=DataType.DECIMAL)
             .map_object(lambda row: row.get_integer('n'))
             .get_result(sqlite_conn)
             .first())
    assert count == 2


def test_datetime_parameter(sqlite_conn):
    invoices = (QueryBuilder(Invoice)
                .set_sql('select * from invoice where invoice_date >= @Since order by invoice_id')
                .add_parameter('@Since', datetime.datetime(2010, 6, 1))
                .get_result(sqlite_conn))
    assert [i.invoice_id for i in invoices] == [121, 143]


def test_supplied_connection_left_open(sqlite_conn):
    QueryBuilder(Customer).set_sql('select * from customer').get_result(sqlite_conn)
    QueryBuilder(Customer).set_sql('select * from customer').get_result(sqlite_conn)
    assert not sqlite_conn.closed
    assert sqlite_conn.calls == 2


def test_connection_string(chinook_url):
    result = (QueryBuilder(Customer)
              .set_connection_string(chinook_url)
              .set_sql('select * from customer order by customer_id')
              .get_result())
    assert [c.customer_id for c in result] == [1, 2, 16, 19, 20]


def test_environment_connection_string(chinook_url, monkeypatch):
    monkeypatch.setenv(CONNECTION_STRING_ENV, chinook_url)
    customer = (QueryBuilder(Customer)
                .set_sql(CUSTOMER_BY_ID)
                .add_parameter('@CustomerId', 16)
                .get_result()
                .first())
    assert customer.first_name == 'Frank'


def test_transaction_rollback(sqlite_conn):
    with sqlite_conn.begin() as tx:
        (QueryBuilder(Customer)
         .set_sql('update customer set city = @City where customer_id = @CustomerId')
         .add_parameter('@City', 'Paris')
         .add_parameter('@CustomerId', 19)
         .get_result(tx))
        inside = QueryBuilder(Customer).set_sql(CUSTOMER_BY_ID).add_parameter('@CustomerId', 19).get_result(tx)
        assert inside.first().city == 'Paris'
        tx.rollback()

    after = QueryBuilder(Customer).set_sql(CUSTOMER_BY_ID).add_parameter('@CustomerId', 19).get_result(sqlite_conn)
    assert after.first().city == 'Cupertino'


def test_transaction_commit(sqlite_conn, chinook_url):
    with sqlite_conn.begin() as tx:
        result = (QueryBuilder(Customer)
                  .set_sql('delete from invoice where customer_id = @CustomerId')
                  .add_parameter('@CustomerId', 16)
                  .get_result(tx))
        assert result.items == []

    count = (QueryBuilder(int)
             .set_connection_string(chinook_url)
             .set_sql('select count(*) as n from invoice')
             .map_object(lambda row: row.get_integer('n'))
             .get_result()
             .first())
    assert count == 3


def test_stored_procedure_not_supported(sqlite_conn):
    with pytest.raises(QueryError, match='SQLite does not support stored procedures'):
        QueryBuilder(Customer).set_stored_procedure('get_customer').get_result(sqlite_conn)


def test_driver_error_propagates(sqlite_conn):
    with pytest.raises(sqlite3.OperationalError, match='no such column'):
        QueryBuilder(Customer).set_sql('select nope from customer').get_result(sqlite_conn)
    assert not sqlite_conn.closed


def test_command_timeout(sqlite_conn):
    """A long-running statement is interrupted once the timeout expires"""
    sql = """
    with recursive counter(n) as (
        select 1 union all select n + 1 from counter where n < 1000000000
    )
    select count(*) as n from counter
    """
    builder = (QueryBuilder(int)
               .set_sql(sql)
               .set_command_timeout(1)
               .map_object(lambda row: row.get_long('n')))
    with pytest.raises(sqlite3.OperationalError, match='interrupted'):
        builder.get_result(sqlite_conn)

    assert QueryBuilder(Customer).set_sql('select * from customer').get_result(sqlite_conn).items


def test_to_dataframe(sqlite_conn):
    df = (QueryBuilder(Customer)
          .set_sql('select * from customer where country = @Country order by customer_id')
          .add_parameter('@Country', 'USA')
          .get_result(sqlite_conn)
          .to_dataframe())
    assert list(df['customer_id']) == [16, 19, 20]
    assert df.loc[df['customer_id'] == 20, 'company'].isna().all()
