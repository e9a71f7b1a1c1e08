import pytest

from humboi.connection import reset_client
from humboi.stores import MemoryStoreClient
from tests.helpers import FAST_POLICY


@pytest.fixture(autouse=True)
def _reset_shared_client():
    reset_client()
    yield
    reset_client()


@pytest.fixture
def memory_client():
    return MemoryStoreClient()


@pytest.fixture
def fast_policy():
    return FAST_POLICY


@pytest.fixture
def sleeps():
    """Recorded sleep delays in seconds; pass sleeps.append as the sleep function."""
    return []
