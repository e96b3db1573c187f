"""Pytest configuration for fixloop_mission_system tests.

Actors, code host and status checks are scripted fakes. Sleeps are
recorded instead of awaited.

Note: mock_logger fixture is centralized in root conftest.py
"""

import pytest

from fixloop_control_tower import create_run_context
from fixloop_mission_system.config import reset_settings
from fixloop_mission_system.orchestrator import QueueProgressSink


# =============================================================================
# PYTEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "e2e: End-to-end supervisor scenarios with scripted actors"
    )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def clean_settings():
    """Each test sees a fresh settings singleton."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def recorded_sleeps():
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps):
    """Async sleep replacement that records instead of waiting."""
    async def _sleep(seconds):
        recorded_sleeps.append(seconds)
    return _sleep


@pytest.fixture
def run_context(mock_logger):
    return create_run_context("run-1", max_tool_calls=100, logger=mock_logger)


@pytest.fixture
def progress_sink():
    return QueueProgressSink(maxsize=1000)


class FakeCodeHost:
    """Code host that records every call.

    ``open_proposal`` is what ``find_open_proposal`` answers.
    """

    def __init__(self, open_proposal=None):
        self.calls = []
        self.open_proposal = open_proposal

    async def fetch_issue(self, issue_number):
        self.calls.append(("fetch_issue", issue_number))
        return f"issue {issue_number}"

    async def list_files(self, path="", branch=None):
        self.calls.append(("list_files", path, branch))
        return f"files in {path}"

    async def read_file(self, path, branch=None):
        self.calls.append(("read_file", path, branch))
        return f"content of {path}"

    async def get_diff(self, pull_number):
        self.calls.append(("get_diff", pull_number))
        return "diff"

    async def fetch_sub_issues(self, issue_number):
        self.calls.append(("fetch_sub_issues", issue_number))
        return "[]"

    async def get_parent_issue(self, issue_number):
        self.calls.append(("get_parent_issue", issue_number))
        return '{"parent": null}'

    async def find_open_proposal(self, head, base="main"):
        self.calls.append(("find_open_proposal", head, base))
        return self.open_proposal

    async def comment_on_issue(self, issue_number, body):
        self.calls.append(("comment_on_issue", issue_number))
        return "{}"

    async def create_branch(self, branch, from_branch="main"):
        self.calls.append(("create_branch", branch))
        return "{}"

    async def create_or_update_file(self, path, content, message, branch):
        self.calls.append(("create_or_update_file", path, branch))
        return "{}"

    async def create_pull_request(self, title, body, head, base="main"):
        self.calls.append(("create_pull_request", head))
        return "{}"

    async def submit_review(self, pull_number, body, iteration=None):
        self.calls.append(("submit_review", pull_number, iteration))
        return "{}"

    async def create_sub_issue(self, parent_issue_number, title, body, labels=None):
        self.calls.append(("create_sub_issue", parent_issue_number, title))
        return "{}"


@pytest.fixture
def code_host():
    return FakeCodeHost()
