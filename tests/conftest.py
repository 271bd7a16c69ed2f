import pathlib
import site

import pytest
from datamapper.connection import dispose_all_engines
from datamapper.mapping import get_entity_type

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear engine and entity caches before and after each test to ensure test isolation."""
    get_entity_type.cache_clear()
    yield
    get_entity_type.cache_clear()
    dispose_all_engines()


pytest_plugins = [
    'tests.fixtures.fakes',
    'tests.fixtures.sqlite',
    'tests.fixtures.postgres',
]
