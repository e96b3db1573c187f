"""Unit tests for the retry policy.

Covers:
- Retryable classification (status, nested status, network codes)
- Server delay hints
- Backoff timing and exhaustion
"""

import errno
import socket

import httpx
import pytest

from fixloop_control_tower.resources.retry import (
    RetryPolicy,
    is_retryable,
    retry_after_ms,
    with_retry,
)
from fixloop_protocols import CallBudgetExceededError, ExternalResourceError


class StatusError(Exception):
    def __init__(self, status=None, response=None, code=None):
        super().__init__(f"status={status}")
        if status is not None:
            self.status = status
        if response is not None:
            self.response = response
        if code is not None:
            self.code = code


class FakeResponse:
    def __init__(self, status=None, headers=None):
        if status is not None:
            self.status = status
        self.headers = headers or {}


def http_status_error(status, headers=None):
    request = httpx.Request("GET", "https://api.example.test/x")
    response = httpx.Response(status, headers=headers or {}, request=request)
    return httpx.HTTPStatusError("boom", request=request, response=response)


class FlakyOperation:
    """Fails with the given errors in order, then returns ``result``."""

    def __init__(self, errors, result="ok"):
        self._errors = list(errors)
        self._result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._result


class TestIsRetryable:
    """Test error classification."""

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 429])
    def test_transient_statuses(self, status):
        assert is_retryable(StatusError(status=status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_statuses_are_fatal(self, status):
        assert is_retryable(StatusError(status=status)) is False

    def test_nested_status_is_consulted(self):
        assert is_retryable(StatusError(response=FakeResponse(status=503))) is True
        assert is_retryable(StatusError(response=FakeResponse(status=404))) is False

    def test_top_level_status_wins_over_nested(self):
        error = StatusError(status=404, response=FakeResponse(status=503))
        assert is_retryable(error) is False

        error = StatusError(status=503, response=FakeResponse(status=404))
        assert is_retryable(error) is True

    def test_httpx_status_error(self):
        assert is_retryable(http_status_error(502)) is True
        assert is_retryable(http_status_error(404)) is False

    @pytest.mark.parametrize(
        "code",
        ["ECONNRESET", "ECONNREFUSED", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN", "EAGAIN"],
    )
    def test_network_codes(self, code):
        assert is_retryable(StatusError(code=code)) is True

    def test_unknown_code_is_fatal(self):
        assert is_retryable(StatusError(code="EACCES")) is False

    def test_os_level_network_errors(self):
        assert is_retryable(ConnectionResetError()) is True
        assert is_retryable(TimeoutError()) is True
        assert is_retryable(socket.gaierror(socket.EAI_NONAME, "dns")) is True
        assert is_retryable(OSError(errno.EHOSTUNREACH, "unreachable")) is True
        assert is_retryable(OSError(errno.ENOENT, "missing")) is False

    def test_httpx_transport_errors(self):
        assert is_retryable(httpx.ConnectError("refused")) is True
        assert is_retryable(httpx.ReadTimeout("slow")) is True

    def test_plain_errors_are_fatal(self):
        assert is_retryable(ValueError("bad")) is False
        assert is_retryable(CallBudgetExceededError(4, 3, "read_file")) is False

    def test_external_resource_error_uses_its_status(self):
        assert is_retryable(ExternalResourceError("repos/x", 404)) is False


class TestRetryAfter:
    """Test server-supplied delay hints."""

    def test_header_in_seconds(self):
        error = StatusError(status=429, response=FakeResponse(headers={"retry-after": "2"}))
        assert retry_after_ms(error) == 2000

    def test_httpx_header(self):
        assert retry_after_ms(http_status_error(429, {"Retry-After": "3"})) == 3000

    def test_attribute_hint(self):
        error = StatusError(status=429)
        error.retry_after = 1.5
        assert retry_after_ms(error) == 1500

    def test_no_hint(self):
        assert retry_after_ms(StatusError(status=503)) is None

    def test_unparseable_hint_ignored(self):
        error = StatusError(response=FakeResponse(headers={"retry-after": "soon"}))
        assert retry_after_ms(error) is None


class TestRetryPolicy:
    """Test backoff computation."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.initial_delay_ms == 1000
        assert policy.backoff_multiplier == 2

    def test_delay_grows_exponentially(self):
        policy = RetryPolicy(initial_delay_ms=100, backoff_multiplier=3)
        assert [policy.delay_for(n) for n in range(3)] == [100, 300, 900]


class TestWithRetry:
    """Test the retry loop."""

    @pytest.mark.asyncio
    async def test_succeeds_after_two_transient_failures(
        self, fast_policy, fake_sleep, recorded_sleeps
    ):
        operation = FlakyOperation([StatusError(503), StatusError(503)], result="done")

        result = await with_retry(operation, fast_policy, sleep=fake_sleep)

        assert result == "done"
        assert operation.calls == 3
        assert recorded_sleeps == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_not_found_is_never_retried(self, fast_policy, fake_sleep, recorded_sleeps):
        error = StatusError(404)
        operation = FlakyOperation([error])

        with pytest.raises(StatusError) as exc_info:
            await with_retry(operation, fast_policy, sleep=fake_sleep)

        assert exc_info.value is error
        assert operation.calls == 1
        assert recorded_sleeps == []

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error_unchanged(
        self, fast_policy, fake_sleep, recorded_sleeps
    ):
        errors = [StatusError(500) for _ in range(4)]
        operation = FlakyOperation(list(errors))

        with pytest.raises(StatusError) as exc_info:
            await with_retry(operation, fast_policy, sleep=fake_sleep)

        assert exc_info.value is errors[-1]
        assert operation.calls == 4
        assert recorded_sleeps == [0.1, 0.2, 0.4]

    @pytest.mark.asyncio
    async def test_hint_overrides_one_attempt_only(
        self, fast_policy, fake_sleep, recorded_sleeps
    ):
        hinted = StatusError(429, response=FakeResponse(headers={"retry-after": "5"}))
        operation = FlakyOperation([hinted, StatusError(503)])

        await with_retry(operation, fast_policy, sleep=fake_sleep)

        assert recorded_sleeps == [5.0, 0.2]

    @pytest.mark.asyncio
    async def test_logs_each_scheduled_retry(self, fast_policy, fake_sleep, mock_logger):
        operation = FlakyOperation([StatusError(502)])

        await with_retry(
            operation, fast_policy, sleep=fake_sleep, logger=mock_logger, label="get_diff"
        )

        mock_logger.warning.assert_called_once()
        args, kwargs = mock_logger.warning.call_args
        assert args[0] == "retry_scheduled"
        assert kwargs["label"] == "get_diff"
        assert kwargs["attempt"] == 1

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self, fake_sleep):
        operation = FlakyOperation([StatusError(503)])

        with pytest.raises(StatusError):
            await with_retry(operation, RetryPolicy(max_retries=0), sleep=fake_sleep)

        assert operation.calls == 1
