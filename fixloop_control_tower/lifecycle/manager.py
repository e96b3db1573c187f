"""Run Manager - workflow run lifecycle.

Owns run records from start to finalization:
- Run creation (start_analysis, continue_analysis, start_review)
- Progress application (active delegations, iteration count, logs)
- Finalization exactly once (completed | failed | cancelled)
- Cooperative cancellation
- Listing merged with the pluggable store

Each run executes as its own asyncio task. Runs are independent: every
run gets its own cancellation token and the runner builds its own call
budget and cache.

Layering: ONLY imports from fixloop_protocols and fixloop_shared.
"""

import asyncio
import uuid
from typing import Callable, Dict, List, Optional, Set

from fixloop_protocols import (
    LoggerProtocol,
    ProgressAction,
    ProgressUpdate,
    ResumeContext,
    RunKind,
    RunRecord,
    RunStatus,
    RunStoreProtocol,
    WorkflowOutcome,
)
from fixloop_shared.serialization import utc_now

from fixloop_control_tower.context import CancellationToken
from fixloop_control_tower.lifecycle.store import InMemoryRunStore
from fixloop_control_tower.protocols import WorkflowRunnerProtocol
from fixloop_control_tower.types import RunEvent, RunRequest

RunEventCallback = Callable[[RunEvent], None]


# Valid status transitions
_VALID_TRANSITIONS: Dict[RunStatus, Set[RunStatus]] = {
    RunStatus.RUNNING: {
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.CANCELLED,
    },
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
    RunStatus.CANCELLED: set(),
}


class _RecordSink:
    """Progress sink that folds updates into one run record."""

    def __init__(self, manager: "RunManager", run_id: str) -> None:
        self._manager = manager
        self._run_id = run_id

    def emit(self, update: ProgressUpdate) -> None:
        self._manager._apply_progress(self._run_id, update)


class RunManager:
    """Workflow run lifecycle manager.

    Usage:
        manager = RunManager(logger, runner)

        record = await manager.start_analysis("Issue #42: crash on empty input")
        ...
        await manager.cancel_run(record.id)
        runs = await manager.list_runs(RunStatus.RUNNING)
    """

    def __init__(
        self,
        logger: LoggerProtocol,
        runner: WorkflowRunnerProtocol,
        store: Optional[RunStoreProtocol] = None,
        default_max_iterations: int = 3,
    ) -> None:
        """Initialize run manager.

        Args:
            logger: Logger instance
            runner: Executes one run to completion
            store: Run record store (in-memory if None)
            default_max_iterations: Iteration budget when a caller gives none
        """
        self._logger = logger.bind(component="run_manager")
        self._runner = runner
        self._store = store or InMemoryRunStore()
        self._default_max_iterations = default_max_iterations

        self._runs: Dict[str, RunRecord] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._pending_writes: Set[asyncio.Task] = set()
        self._subscribers: List[RunEventCallback] = []

    # =========================================================================
    # STARTING RUNS
    # =========================================================================

    async def start_analysis(
        self,
        seed: str,
        max_iterations: Optional[int] = None,
        issue_number: Optional[int] = None,
    ) -> RunRecord:
        """Start a full analyze/implement/critique run."""
        request = RunRequest(
            run_id=self._new_id(),
            kind=RunKind.ANALYZE,
            seed=seed,
            max_iterations=max_iterations or self._default_max_iterations,
            issue_number=issue_number,
        )
        return await self._start(request)

    async def continue_analysis(
        self,
        seed: str,
        artifact_ref: str,
        branch: Optional[str] = None,
        human_feedback: Optional[str] = None,
        max_iterations: Optional[int] = None,
        issue_number: Optional[int] = None,
    ) -> RunRecord:
        """Resume work on an already-open proposal.

        Without ``human_feedback`` the run goes straight to critique; with
        it, the run first applies the feedback in fix mode.
        """
        request = RunRequest(
            run_id=self._new_id(),
            kind=RunKind.ANALYZE,
            seed=seed,
            max_iterations=max_iterations or self._default_max_iterations,
            resume=ResumeContext(
                artifact_ref=artifact_ref,
                branch=branch,
                human_feedback=human_feedback,
            ),
            issue_number=issue_number,
        )
        return await self._start(request)

    async def start_review(self, artifact_ref: str) -> RunRecord:
        """Start a single critique of an existing proposal."""
        request = RunRequest(
            run_id=self._new_id(),
            kind=RunKind.REVIEW,
            artifact_ref=artifact_ref,
            max_iterations=1,
        )
        return await self._start(request)

    # =========================================================================
    # CONTROL
    # =========================================================================

    async def cancel_run(self, run_id: str) -> bool:
        """Cancel a running run.

        The in-flight delegation is allowed to finish, but the record is
        finalized as cancelled now and nothing the runner reports later
        changes it.

        Returns:
            True if the run was running and is now cancelled
        """
        record = self._runs.get(run_id)
        if record is None or record.is_terminal:
            self._logger.debug("cancel_ignored", run_id=run_id)
            return False

        token = self._tokens.get(run_id)
        if token is not None:
            token.cancel("cancelled by user")

        return await self._finalize(
            run_id,
            RunStatus.CANCELLED,
            outcome_text="Cancelled by user",
        )

    async def wait_for(self, run_id: str) -> Optional[RunRecord]:
        """Wait until the run's task finishes, then return its record.

        Finished runs have no task left; their record comes from memory or
        the store.
        """
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)
        return await self.get_run(run_id)

    async def shutdown(self) -> None:
        """Cancel every running run and wait for their tasks."""
        for run_id, record in list(self._runs.items()):
            if not record.is_terminal:
                await self.cancel_run(run_id)
        if self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_run(self, run_id: str) -> Optional[RunRecord]:
        record = self._runs.get(run_id)
        if record is not None:
            return record.copy()
        return await self._store.get_by_id(run_id)

    async def list_runs(self, status: Optional[RunStatus] = None) -> List[RunRecord]:
        """In-memory runs merged with stored ones; memory wins on conflicts."""
        merged: Dict[str, RunRecord] = {
            r.id: r for r in await self._store.list(status)
        }
        for record in self._runs.values():
            if status is None or record.status is status:
                merged[record.id] = record.copy()
        return sorted(merged.values(), key=lambda r: r.started_at, reverse=True)

    def subscribe(self, callback: RunEventCallback) -> Callable[[], None]:
        """Register an observer. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _new_id(self) -> str:
        return uuid.uuid4().hex[:12]

    async def _start(self, request: RunRequest) -> RunRecord:
        record = RunRecord(
            id=request.run_id,
            kind=request.kind,
            seed=request.seed,
            max_iterations=request.max_iterations or self._default_max_iterations,
            artifact_ref=request.artifact_ref or (
                request.resume.artifact_ref if request.resume else None
            ),
            branch=request.resume.branch if request.resume else None,
        )
        token = CancellationToken()

        self._runs[record.id] = record
        self._tokens[record.id] = token
        await self._store.save(record)

        self._logger.info(
            "run_started",
            run_id=record.id,
            kind=record.kind.value,
            max_iterations=record.max_iterations,
            resumed=request.resume is not None,
        )
        self._notify(RunEvent.run_started(record))

        self._tasks[record.id] = asyncio.create_task(
            self._execute(request, token),
            name=f"run-{record.id}",
        )
        return record.copy()

    async def _execute(self, request: RunRequest, token: CancellationToken) -> None:
        sink = _RecordSink(self, request.run_id)
        try:
            outcome = await self._runner.execute(request, sink, token)
        except Exception as exc:
            self._logger.error(
                "run_crashed",
                run_id=request.run_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._finalize(
                request.run_id,
                RunStatus.FAILED,
                error=str(exc),
                error_kind=getattr(exc, "kind", "error"),
            )
        else:
            await self._finalize(request.run_id, outcome.status, outcome=outcome)
        finally:
            self._tasks.pop(request.run_id, None)
            self._tokens.pop(request.run_id, None)

    async def _finalize(
        self,
        run_id: str,
        status: RunStatus,
        outcome: Optional[WorkflowOutcome] = None,
        outcome_text: Optional[str] = None,
        error: Optional[str] = None,
        error_kind: Optional[str] = None,
    ) -> bool:
        """Move a run to a terminal status. Happens at most once per run."""
        record = self._runs.get(run_id)
        if record is None:
            return False

        if status not in _VALID_TRANSITIONS[record.status]:
            self._logger.debug(
                "late_result_ignored",
                run_id=run_id,
                current_status=record.status.value,
                attempted_status=status.value,
            )
            return False

        record.status = status
        record.completed_at = utc_now()
        record.active_delegations.clear()
        record.current_phase = None

        if outcome is not None:
            record.iteration_count = outcome.iteration_count
            record.outcome_text = outcome.summary
            record.artifact_ref = outcome.artifact_ref or record.artifact_ref
            record.branch = outcome.branch or record.branch
            record.error = outcome.error
            record.error_kind = outcome.error_kind
        if outcome_text is not None:
            record.outcome_text = outcome_text
        if error is not None:
            record.error = error
            record.error_kind = error_kind

        await self._store.update(record)

        log = self._logger.warning if status is RunStatus.FAILED else self._logger.info
        log(
            "run_finished",
            run_id=run_id,
            status=status.value,
            iteration_count=record.iteration_count,
            error=record.error,
        )
        self._notify(RunEvent.run_finished(record))
        return True

    def _apply_progress(self, run_id: str, update: ProgressUpdate) -> None:
        record = self._runs.get(run_id)
        if record is None or record.is_terminal:
            return

        if update.action is ProgressAction.STARTED:
            record.active_delegations[update.phase] += 1
            record.current_phase = update.phase
        elif update.action is ProgressAction.COMPLETED:
            if record.active_delegations[update.phase] > 0:
                record.active_delegations[update.phase] -= 1
            if record.active_delegations[update.phase] <= 0:
                del record.active_delegations[update.phase]

        if update.iteration is not None:
            record.iteration_count = update.iteration
        if update.max_iterations is not None:
            record.max_iterations = update.max_iterations

        if update.detail:
            message = f"[{update.phase}] {update.action.value}: {update.detail}"
            record.logs.append(message)
            self._notify(RunEvent.run_log(run_id, message))

        self._notify(RunEvent.run_updated(record))
        self._persist_soon(record)

    def _persist_soon(self, record: RunRecord) -> None:
        task = asyncio.ensure_future(self._store.update(record.copy()))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    def _notify(self, event: RunEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as exc:
                self._logger.warning(
                    "run_subscriber_failed",
                    event_type=event.event_type,
                    error=str(exc),
                )


__all__ = ["RunManager"]
