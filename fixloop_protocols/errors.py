"""Error taxonomy for fixloop.

- CallBudgetExceededError: circuit breaker trip, fatal to the run
- ExternalResourceError: non-retryable or exhausted external failure
- ActorOutputError: actor output the supervisor cannot act on
- InvalidTransitionError: illegal state machine transition

Retryable-transient failures have no class of their own. They are
absorbed by the retry policy and only surface as the underlying error
once retries are exhausted.
"""

from typing import Optional


class FixloopError(Exception):
    """Base class for fixloop errors."""

    #: Short classification recorded on failed runs.
    kind: str = "error"


class CallBudgetExceededError(FixloopError):
    """Raised when a run makes more external calls than its budget allows."""

    kind = "budget_exceeded"

    def __init__(self, call_count: int, call_limit: int, label: str):
        self.call_count = call_count
        self.call_limit = call_limit
        self.label = label
        super().__init__(
            f"Circuit breaker tripped: {call_count} calls exceeded limit of "
            f"{call_limit}. Last operation: {label}"
        )


class ExternalResourceError(FixloopError):
    """Raised when an external resource rejects a request."""

    kind = "external_resource"

    def __init__(
        self,
        resource: str,
        status_code: Optional[int] = None,
        message: str = "",
    ):
        self.resource = resource
        self.status_code = status_code
        self.status = status_code
        detail = f" ({status_code})" if status_code is not None else ""
        super().__init__(f"{resource}{detail}: {message}" if message else f"{resource}{detail}")


class ActorOutputError(FixloopError):
    """Raised when an actor's output cannot drive the next transition."""

    kind = "actor_failure"

    def __init__(self, actor_kind: str, message: str):
        self.actor_kind = actor_kind
        super().__init__(f"{actor_kind}: {message}")


class InvalidTransitionError(FixloopError):
    """Raised on an illegal state transition."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition: {current} -> {target}")
