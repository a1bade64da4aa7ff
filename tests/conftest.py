"""
Shared test fixtures and helpers for the Harrier test suite.
"""

import pytest

from harrier.cache import CacheManager, MemoryCacheStore
from harrier.config import CacheSettings, HarrierConfig
from harrier.controller import MetadataCompiler, MetadataStore
from harrier.di import Container
from harrier.testing import make_test_ctx, make_test_request


# ============================================================================
# Request Helpers
# ============================================================================

make_request = make_test_request
make_ctx = make_test_ctx


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    """MemoryCacheStore on the fake clock, without the background sweeper."""
    return MemoryCacheStore(max_size=100, sweep_interval=0, clock=clock)


@pytest.fixture
def cache_manager(memory_store):
    return CacheManager(memory_store)


@pytest.fixture
def container():
    return Container()


@pytest.fixture
def store():
    return MetadataStore()


@pytest.fixture
def compiler():
    return MetadataCompiler()


@pytest.fixture
def config():
    """Test configuration: debug on, in-memory cache without sweeper."""
    return HarrierConfig(debug=True, cache=CacheSettings(sweep_interval=0))
