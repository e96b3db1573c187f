"""Circuit Breaker - per-run external call budget.

One CallBudget is shared by reference across every wrapped external
operation in a run. The counter never resets: once the limit is passed
every later increment raises as well, with the count still climbing.

Layering: ONLY imports from fixloop_protocols.
"""

import threading
from dataclasses import replace
from typing import Any, Optional

from fixloop_protocols import CallBudgetExceededError, LoggerProtocol, Tool


class CallBudget:
    """Shared call counter with a fixed limit.

    Usage:
        budget = CallBudget(limit=100)
        budget.increment("read_file")   # raises CallBudgetExceededError on call 101
    """

    def __init__(
        self,
        limit: int,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        self._limit = limit
        self._count = 0
        self._logger = logger.bind(component="call_budget") if logger else None
        self._lock = threading.RLock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def count(self) -> int:
        return self._count

    @property
    def remaining(self) -> int:
        return max(0, self._limit - self._count)

    @property
    def tripped(self) -> bool:
        return self._count > self._limit

    def increment(self, label: str) -> int:
        """Count one call.

        Returns:
            The new count

        Raises:
            CallBudgetExceededError: If the new count exceeds the limit
        """
        with self._lock:
            self._count += 1
            count = self._count

        if count > self._limit:
            if self._logger:
                self._logger.warning(
                    "call_budget_exceeded",
                    call_count=count,
                    call_limit=self._limit,
                    label=label,
                )
            raise CallBudgetExceededError(count, self._limit, label)

        if count == self._limit and self._logger:
            self._logger.warning(
                "call_budget_exhausted",
                call_limit=self._limit,
                label=label,
            )

        return count


def wrap_with_breaker(tool: Tool, budget: CallBudget) -> Tool:
    """Charge every invocation of ``tool`` against ``budget``.

    The increment happens before the call, so a tripped budget stops the
    operation from running at all.
    """
    inner = tool.func

    async def guarded(**kwargs: Any) -> str:
        budget.increment(tool.name)
        return await inner(**kwargs)

    return replace(tool, func=guarded)


__all__ = ["CallBudget", "wrap_with_breaker"]
