import pathlib
import site

import pytest
from dbtasks.types import TypeMapper

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def reset_type_mapper():
    """Drop the shared TypeMapper so registrations never leak between tests."""
    TypeMapper._instance = None
    yield
    TypeMapper._instance = None


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.postgres',
]
