"""Pytest configuration for fixloop_control_tower tests.

Control Tower tests exercise the kernel substrate in isolation:
retry, call budget, result cache, run context and run lifecycle.
No network, no real sleeps.

Note: mock_logger fixture is centralized in root conftest.py
"""

import pytest

from fixloop_control_tower import CallBudget, ResultCache, RetryPolicy


# =============================================================================
# PYTEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "kernel: Kernel-level tests"
    )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def recorded_sleeps():
    """List of delays (seconds) passed to the fake sleep."""
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps):
    """Async sleep replacement that records instead of waiting."""
    async def _sleep(seconds):
        recorded_sleeps.append(seconds)
    return _sleep


@pytest.fixture
def fast_policy():
    """Retry policy with small, easy-to-check delays."""
    return RetryPolicy(max_retries=3, initial_delay_ms=100, backoff_multiplier=2)


@pytest.fixture
def cache(mock_logger):
    return ResultCache(mock_logger)


@pytest.fixture
def budget(mock_logger):
    return CallBudget(limit=3, logger=mock_logger)
