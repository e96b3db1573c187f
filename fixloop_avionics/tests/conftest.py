"""Pytest configuration for fixloop_avionics tests.

The GitHub API is faked with httpx.MockTransport routed through
FakeGitHub. Nothing touches the network and retries never sleep.

Note: mock_logger fixture is centralized in root conftest.py
"""

import httpx
import pytest

from fixloop_avionics import GitHubCodeHost
from fixloop_control_tower import RetryPolicy


class FakeGitHub:
    """Route table for a mock GitHub REST API.

    Each route holds a list of responses ``(status, body[, headers])``.
    Responses are served in order; the last one repeats. Unknown routes
    answer 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": "Not Found"})
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        status, body = entry[0], entry[1]
        headers = entry[2] if len(entry) > 2 else None
        if isinstance(body, str):
            return httpx.Response(status, text=body, headers=headers)
        return httpx.Response(status, json=body, headers=headers)

    def calls(self, method, path):
        return [
            r for r in self.requests
            if r.method == method and r.url.path == path
        ]


# =============================================================================
# PYTEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "github: Tests against the fake GitHub API"
    )


# =============================================================================
# FIXTURES
# =============================================================================

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
def github_api():
    return FakeGitHub()


@pytest.fixture
def code_host(github_api, mock_logger, fake_sleep):
    """GitHubCodeHost for acme/widgets wired to the fake API."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(github_api.handler))
    return GitHubCodeHost(
        "acme",
        "widgets",
        token="test-token",
        http_client=client,
        retry_policy=RetryPolicy(max_retries=2, initial_delay_ms=100, backoff_multiplier=2),
        logger=mock_logger,
        max_diff_chars=1000,
        sleep=fake_sleep,
    )
