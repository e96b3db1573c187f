"""Root conftest.py for fixloop tests.

This file MUST be at the repository root for fixtures to be discovered
when running tests from any subdirectory.

Provides shared fixtures used across all test modules:
- fixloop_shared/tests
- fixloop_control_tower/tests
- fixloop_avionics/tests
- fixloop_mission_system/tests
"""

import pytest
from unittest.mock import MagicMock


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Components receive their logger through the constructor and call
    ``bind`` on it, so ``bind`` returns the same mock and every log call
    lands in one place.
    """
    logger = MagicMock()
    logger.info = MagicMock()
    logger.debug = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    logger.exception = MagicMock()
    logger.bind = MagicMock(return_value=logger)
    return logger
