import pytest
from datamapper.parameter import QueryParameter, normalize_parameter_name
from datamapper.types import ParameterDirection


@pytest.mark.parametrize(('name', 'expected'), [
    ('@CustomerId', 'CustomerId'),
    (':CustomerId', 'CustomerId'),
    ('$CustomerId', 'CustomerId'),
    ('CustomerId', 'CustomerId'),
    ('', ''),
])
def test_normalize_parameter_name(name, expected):
    assert normalize_parameter_name(name) == expected


def test_optional_fields_default_to_unset():
    param = QueryParameter('@Id', 19)
    assert (param.data_type, param.size, param.precision, param.scale, param.direction) == (
        None, None, None, None, None)
    assert param.effective_direction is ParameterDirection.INPUT


def test_key_strips_prefix():
    assert QueryParameter(':Country', 'USA').key == 'Country'
