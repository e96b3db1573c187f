"""Resource guards for external calls: retry, call budget, result cache."""

from fixloop_control_tower.resources.breaker import CallBudget, wrap_with_breaker
from fixloop_control_tower.resources.cache import (
    CacheStats,
    ResultCache,
    diff_key,
    list_files_key,
    read_file_key,
    wrap_with_cache,
    wrap_write_with_invalidation,
)
from fixloop_control_tower.resources.retry import (
    RetryPolicy,
    is_retryable,
    retry_after_ms,
    with_retry,
)

__all__ = [
    "CacheStats",
    "CallBudget",
    "ResultCache",
    "RetryPolicy",
    "diff_key",
    "is_retryable",
    "list_files_key",
    "read_file_key",
    "retry_after_ms",
    "with_retry",
    "wrap_with_breaker",
    "wrap_with_cache",
    "wrap_write_with_invalidation",
]
