"""Control Tower - the fixloop kernel substrate.

This package provides the per-run resource guards and the run lifecycle:
- Retry policy for every external call
- Call budget (circuit breaker) shared by a run's operations
- Result cache with write-triggered invalidation
- Per-run context handles and cooperative cancellation
- Run manager, run store and issue context store

Exports:
    RetryPolicy, with_retry, is_retryable: transient failure handling
    CallBudget, wrap_with_breaker: circuit breaker
    ResultCache, wrap_with_cache, wrap_write_with_invalidation: result cache
    wrap_with_logging: structured tool-call logging
    RunContext, CancellationToken, create_run_context: per-run handles
    RunManager, InMemoryRunStore: run lifecycle
    InMemoryIssueContextStore: shared per-issue notes
    RunRequest, RunEvent: lifecycle types
    WorkflowRunnerProtocol: what the run manager executes
"""

from fixloop_control_tower.context import (
    CancellationToken,
    RunContext,
    create_run_context,
)
from fixloop_control_tower.lifecycle import (
    InMemoryIssueContextStore,
    InMemoryRunStore,
    RunManager,
)
from fixloop_control_tower.protocols import WorkflowRunnerProtocol
from fixloop_control_tower.resources import (
    CacheStats,
    CallBudget,
    ResultCache,
    RetryPolicy,
    diff_key,
    is_retryable,
    list_files_key,
    read_file_key,
    retry_after_ms,
    with_retry,
    wrap_with_breaker,
    wrap_with_cache,
    wrap_write_with_invalidation,
)
from fixloop_control_tower.tools import wrap_with_logging
from fixloop_control_tower.types import RunEvent, RunRequest

__all__ = [
    "CacheStats",
    "CallBudget",
    "CancellationToken",
    "InMemoryIssueContextStore",
    "InMemoryRunStore",
    "ResultCache",
    "RetryPolicy",
    "RunContext",
    "RunEvent",
    "RunManager",
    "RunRequest",
    "WorkflowRunnerProtocol",
    "create_run_context",
    "diff_key",
    "is_retryable",
    "list_files_key",
    "read_file_key",
    "retry_after_ms",
    "with_retry",
    "wrap_with_breaker",
    "wrap_with_cache",
    "wrap_with_logging",
    "wrap_write_with_invalidation",
]
