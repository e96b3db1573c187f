"""Progress events for external observers.

The supervisor calls the emitter directly at every delegation start/end
and every reasoning turn. Delivery is fire-and-forget: a slow or broken
sink never blocks or fails a run.

Example:
    sink = QueueProgressSink(maxsize=100)
    emitter = ProgressEmitter(sink, run_id="run-1", logger=logger)

    emitter.delegation_started("critique", iteration=2, max_iterations=3)
    ...
    async for update in sink.updates():
        broadcast(update.to_json())
"""

from __future__ import annotations

import asyncio
import time
from typing import AsyncIterator, Callable, Dict, List, Optional

from fixloop_protocols import (
    LoggerProtocol,
    ProgressAction,
    ProgressSinkProtocol,
    ProgressUpdate,
)
from fixloop_shared import format_duration


# =============================================================================
# SINKS
# =============================================================================

class NullProgressSink:
    """Discards every update."""

    def emit(self, update: ProgressUpdate) -> None:
        return None


class CallbackProgressSink:
    """Forwards updates to a synchronous callback."""

    def __init__(self, callback: Callable[[ProgressUpdate], None]) -> None:
        self._callback = callback

    def emit(self, update: ProgressUpdate) -> None:
        self._callback(update)


class QueueProgressSink:
    """Buffers updates on a bounded asyncio.Queue.

    A full queue drops the update and counts the drop instead of waiting.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[Optional[ProgressUpdate]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    def emit(self, update: ProgressUpdate) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(update)
        except asyncio.QueueFull:
            self.dropped += 1

    def close(self) -> None:
        """Signal consumers that no more updates will arrive."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    async def updates(self) -> AsyncIterator[ProgressUpdate]:
        """Yield updates until ``close`` is called."""
        while True:
            update = await self._queue.get()
            if update is None:
                break
            yield update

    def drain(self) -> List[ProgressUpdate]:
        """Return everything buffered right now without waiting."""
        items = []
        while not self._queue.empty():
            update = self._queue.get_nowait()
            if update is not None:
                items.append(update)
        return items


# =============================================================================
# EMITTER
# =============================================================================

class ProgressEmitter:
    """Builds progress updates for one run and hands them to a sink."""

    def __init__(
        self,
        sink: Optional[ProgressSinkProtocol],
        run_id: Optional[str],
        logger: LoggerProtocol,
    ) -> None:
        self._sink = sink or NullProgressSink()
        self._run_id = run_id
        self._logger = logger.bind(component="progress_emitter")
        self._started_at: Dict[str, float] = {}

    def delegation_started(
        self,
        phase: str,
        iteration: Optional[int] = None,
        max_iterations: Optional[int] = None,
        label: str = "",
    ) -> None:
        self._started_at[phase] = time.monotonic()
        self._logger.info("delegation_started", phase=phase, label=label.strip() or None)
        self._emit(ProgressUpdate(
            phase=phase,
            action=ProgressAction.STARTED,
            iteration=iteration,
            max_iterations=max_iterations,
            detail=f"{phase}{label}",
            run_id=self._run_id,
        ))

    def delegation_completed(
        self,
        phase: str,
        iteration: Optional[int] = None,
        max_iterations: Optional[int] = None,
        label: str = "",
        outcome: Optional[str] = None,
    ) -> None:
        started = self._started_at.pop(phase, None)
        elapsed = format_duration((time.monotonic() - started) * 1000) if started is not None else None
        detail = f"{phase}{label} done"
        if elapsed:
            detail += f" in {elapsed}"
        if outcome:
            detail += f": {outcome}"
        self._logger.info("delegation_completed", phase=phase, elapsed=elapsed, outcome=outcome)
        self._emit(ProgressUpdate(
            phase=phase,
            action=ProgressAction.COMPLETED,
            iteration=iteration,
            max_iterations=max_iterations,
            detail=detail,
            run_id=self._run_id,
        ))

    def reasoning(self, phase: str, text: str, iteration: Optional[int] = None) -> None:
        self._emit(ProgressUpdate(
            phase=phase,
            action=ProgressAction.REASONING,
            iteration=iteration,
            detail=text,
            run_id=self._run_id,
        ))

    def _emit(self, update: ProgressUpdate) -> None:
        try:
            self._sink.emit(update)
        except Exception as exc:
            self._logger.warning(
                "progress_delivery_failed",
                phase=update.phase,
                action=update.action.value,
                error=str(exc),
            )


__all__ = [
    "CallbackProgressSink",
    "NullProgressSink",
    "ProgressEmitter",
    "QueueProgressSink",
]
