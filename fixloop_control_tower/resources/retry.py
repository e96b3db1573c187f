"""Retry Policy - transient failure classification and backoff.

Every external call (read or write) runs through ``with_retry``:
- 5xx, 429 and a fixed set of network failures are retried
- everything else propagates on the first failure
- a server-supplied retry-after hint overrides the computed delay for
  that attempt only
- once retries are exhausted the last error is re-raised unchanged

Layering: ONLY imports from fixloop_protocols (plus httpx error types for
classification).
"""

import asyncio
import errno
import socket
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from fixloop_protocols import LoggerProtocol

T = TypeVar("T")

# Symbolic network codes (as carried on a ``code`` attribute)
RETRYABLE_NETWORK_CODES = frozenset({
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
    "EAI_AGAIN",
    "EAGAIN",
    "EPIPE",
    "EHOSTUNREACH",
})

_RETRYABLE_ERRNOS = frozenset({
    errno.ECONNRESET,
    errno.ECONNREFUSED,
    errno.ETIMEDOUT,
    errno.EAGAIN,
    errno.EPIPE,
    errno.EHOSTUNREACH,
})

_RETRYABLE_OS_ERRORS = (
    ConnectionResetError,
    ConnectionRefusedError,
    BrokenPipeError,
    TimeoutError,
    socket.gaierror,
)

_RETRYABLE_HTTPX_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
)


def _int_attr(obj: Any, *names: str) -> Optional[int]:
    for name in names:
        value = getattr(obj, name, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def status_of(error: BaseException) -> Optional[int]:
    """Extract an HTTP-style status from an error.

    The error's own ``status``/``status_code`` wins; otherwise one nested
    level (``error.response``) is consulted.
    """
    status = _int_attr(error, "status", "status_code")
    if status is not None:
        return status
    response = getattr(error, "response", None)
    if response is None:
        return None
    return _int_attr(response, "status", "status_code")


def is_retryable(error: BaseException) -> bool:
    """Classify an error as transient (retry) or fatal."""
    status = status_of(error)
    if status is not None:
        return status == 429 or status >= 500

    code = getattr(error, "code", None)
    if isinstance(code, str) and code in RETRYABLE_NETWORK_CODES:
        return True

    if isinstance(error, _RETRYABLE_HTTPX_ERRORS):
        return True

    if isinstance(error, _RETRYABLE_OS_ERRORS):
        return True

    if isinstance(error, OSError) and error.errno in _RETRYABLE_ERRNOS:
        return True

    return False


def retry_after_ms(error: BaseException) -> Optional[float]:
    """Server-supplied delay hint in milliseconds, if any.

    Read from a ``retry_after`` attribute (seconds) or from the
    ``retry-after`` header of ``error.response``.
    """
    hint = getattr(error, "retry_after", None)
    if hint is None:
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
        if headers is not None:
            hint = headers.get("retry-after")
            if hint is None:
                hint = headers.get("Retry-After")
    if hint is None:
        return None
    try:
        seconds = float(hint)
    except (TypeError, ValueError):
        return None
    if seconds < 0:
        return None
    return seconds * 1000


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters."""
    max_retries: int = 3
    initial_delay_ms: float = 1000
    backoff_multiplier: float = 2

    def delay_for(self, attempt: int) -> float:
        """Delay in ms before retry number ``attempt + 1``."""
        return self.initial_delay_ms * (self.backoff_multiplier ** attempt)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    logger: Optional[LoggerProtocol] = None,
    label: str = "operation",
) -> T:
    """Run ``operation`` retrying transient failures.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Backoff parameters (defaults to RetryPolicy())
        sleep: Awaitable sleep taking seconds (injectable for tests)
        logger: Optional logger for retry scheduling
        label: Name of the operation in log lines

    Returns:
        The first successful result

    Raises:
        The last error, unchanged, once retries are exhausted or on the
        first non-retryable failure
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_retries or not is_retryable(exc):
                raise

            hint = retry_after_ms(exc)
            delay_ms = hint if hint is not None else policy.delay_for(attempt)

            if logger is not None:
                logger.warning(
                    "retry_scheduled",
                    label=label,
                    attempt=attempt + 1,
                    max_retries=policy.max_retries,
                    delay_ms=delay_ms,
                    server_hint=hint is not None,
                    error=str(exc),
                )

            await sleep(delay_ms / 1000)
            attempt += 1


__all__ = [
    "RETRYABLE_NETWORK_CODES",
    "RetryPolicy",
    "is_retryable",
    "retry_after_ms",
    "status_of",
    "with_retry",
]
