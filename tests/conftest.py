import pytest

from productcache.clients.backing_store import InMemoryBackingStore
from productcache.clients.resilience import backing_store_breaker
from productcache.orchestrator import Orchestrator
from tests.factories import FakeClock


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the demo store fast and the shared breaker closed for all tests."""
    monkeypatch.setenv("FETCH_DELAY_SECONDS", "0")
    backing_store_breaker.reset()


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Provide a temporary data directory for tests that touch the filesystem."""
    return tmp_path / "data"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """Seeded in-memory backing store without simulated latency."""
    return InMemoryBackingStore(seed=7)


@pytest.fixture
def orchestrator(store, clock):
    return Orchestrator(store, clock=clock)
