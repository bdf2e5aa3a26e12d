"""Fixtures shared by orchestration tests."""

import pytest

from weft.core.cache import InMemoryCache
from weft.orchestration.caching import CapabilityCache
from weft.orchestration.recorder import InMemoryRecorder


@pytest.fixture
def backend(clock) -> InMemoryCache:
    return InMemoryCache(default_ttl_seconds=None, clock=clock)


@pytest.fixture
def capability_cache(backend) -> CapabilityCache:
    return CapabilityCache(backend, default_ttl_seconds=3600)


@pytest.fixture
def recorder() -> InMemoryRecorder:
    return InMemoryRecorder()
