"""Per-run handles: call budget, result cache, cancellation, logger.

Nothing here is module-level state. Each run gets its own RunContext and
every wrapped operation receives its handles explicitly, so concurrent
runs never share a budget or see each other's cached reads.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from fixloop_protocols import LoggerProtocol

from fixloop_control_tower.resources.breaker import CallBudget
from fixloop_control_tower.resources.cache import ResultCache


class CancellationToken:
    """Cooperative cancellation signal.

    Polled between transitions and inside bounded polling loops. Never
    interrupts an in-flight call.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for cancellation. Returns True if cancelled within ``timeout``."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


@dataclass
class RunContext:
    """Explicit handles for one workflow run."""
    run_id: str
    budget: CallBudget
    cache: ResultCache
    cancel: CancellationToken
    logger: LoggerProtocol

    def fork(
        self,
        branch_id: str,
        max_tool_calls: Optional[int] = None,
        share_cache: bool = True,
    ) -> "RunContext":
        """Context for a parallel branch of this run.

        The branch always gets its own call budget. The cache is shared
        unless ``share_cache`` is False. Cancellation is shared.
        """
        limit = max_tool_calls if max_tool_calls is not None else self.budget.limit
        logger = self.logger.bind(branch=branch_id)
        return RunContext(
            run_id=f"{self.run_id}/{branch_id}",
            budget=CallBudget(limit, logger),
            cache=self.cache if share_cache else ResultCache(logger),
            cancel=self.cancel,
            logger=logger,
        )


def create_run_context(
    run_id: str,
    max_tool_calls: int,
    logger: LoggerProtocol,
    cancel: Optional[CancellationToken] = None,
) -> RunContext:
    """Create fresh handles for a new run."""
    bound = logger.bind(run_id=run_id)
    return RunContext(
        run_id=run_id,
        budget=CallBudget(max_tool_calls, bound),
        cache=ResultCache(bound),
        cancel=cancel or CancellationToken(),
        logger=bound,
    )


__all__ = ["CancellationToken", "RunContext", "create_run_context"]
