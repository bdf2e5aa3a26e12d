"""
Shared pytest fixtures and configuration for weft tests.

This module provides:
- Settings isolation (no ambient WEFT_* environment or .env leaks in)
- A fake clock for TTL and budget tests
- Common capability doubles

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.
"""

import sys
from pathlib import Path

import pytest

# Ensure weft package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from weft.core.settings import WeftSettings, clear_settings_cache
from weft.orchestration.testing import StubCapability


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Run every test without WEFT_* variables and away from any .env file."""
    import os

    for key in list(os.environ):
        if key.startswith("WEFT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> WeftSettings:
    """Default settings, independent of the environment."""
    return WeftSettings()


# =============================================================================
# Helpers
# =============================================================================


class FakeClock:
    """Manually advanced clock for TTL and timeout tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def echo() -> StubCapability:
    """Capability whose content is its input."""
    return StubCapability(name="echo", fn=lambda value: value)
