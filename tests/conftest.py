import pytest
from dbhelper.cache import Cache
from dbhelper.meta import clear_table_meta_cache


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear all caches before and after each test to ensure test isolation."""
    Cache.get_instance().clear_all()
    clear_table_meta_cache()
    yield
    Cache.get_instance().clear_all()
    clear_table_meta_cache()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
    'tests.fixtures.postgres',
]
