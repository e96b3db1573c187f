"""Supervisor - the fix loop state machine.

State transitions:
    IDLE -> ANALYZING -> EVALUATING -> IMPLEMENTING -> CRITIQUING
         -> (CI_CHECKING) -> DECIDING -> (IMPLEMENTING | REPORTING)
         -> (COMPLETED | FAILED | CANCELLED)

Resumed runs skip analysis: they start at CRITIQUING on the existing
proposal, or at IMPLEMENTING in fix mode when human feedback is given.
Review-only runs do a single CRITIQUING (+ CI_CHECKING) pass.

Rules:
- One delegation at a time; every delegation start/end and every
  reasoning turn emits a progress event.
- The iteration count is the number of completed critiques, capped at
  the run's maximum. Exhausting it ends the run COMPLETED, not FAILED.
- Any error raised while handling a state fails the run with the error
  text verbatim. Retries happen inside individual external calls only.
- Cancellation is checked before every transition and inside CI polling.
  An in-flight delegation is allowed to finish.
- The transcript is compacted before every delegation.
"""

import asyncio
import json
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from fixloop_control_tower import RunContext
from fixloop_protocols import (
    ActorKind,
    ActorOutputError,
    ActorProtocol,
    AnalysisBrief,
    CheckOverall,
    CodeHostProtocol,
    InvalidTransitionError,
    LoggerProtocol,
    ProgressSinkProtocol,
    ResumeContext,
    ReviewOutput,
    RunStatus,
    StatusCheckProtocol,
    StatusReport,
    WorkflowOutcome,
)
from fixloop_shared import truncate

from fixloop_mission_system.orchestrator.capabilities import Capabilities, CapabilityWiring
from fixloop_mission_system.orchestrator.events import ProgressEmitter
from fixloop_mission_system.orchestrator.instructions import (
    build_analysis_instruction,
    build_critique_instruction,
    build_fix_instruction,
    build_implementation_instruction,
    combine_feedback,
)
from fixloop_mission_system.orchestrator.parsing import (
    parse_analysis_brief,
    parse_implementation_report,
    parse_review_output,
)
from fixloop_mission_system.transcript import Transcript, TranscriptCompactor


class SupervisorState(str, Enum):
    """Supervisor states."""
    IDLE = "idle"
    ANALYZING = "analyzing"
    EVALUATING = "evaluating"
    IMPLEMENTING = "implementing"
    CRITIQUING = "critiquing"
    CI_CHECKING = "ci_checking"
    DECIDING = "deciding"
    REPORTING = "reporting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL_STATES = {
    SupervisorState.COMPLETED: RunStatus.COMPLETED,
    SupervisorState.FAILED: RunStatus.FAILED,
    SupervisorState.CANCELLED: RunStatus.CANCELLED,
}

_ABORT = {SupervisorState.FAILED, SupervisorState.CANCELLED}

# Valid state transitions
_VALID_TRANSITIONS: Dict[SupervisorState, Set[SupervisorState]] = {
    SupervisorState.IDLE: {
        SupervisorState.ANALYZING,
        SupervisorState.IMPLEMENTING,    # Resume with human feedback
        SupervisorState.CRITIQUING,      # Resume / review-only
    } | _ABORT,
    SupervisorState.ANALYZING: {SupervisorState.EVALUATING} | _ABORT,
    SupervisorState.EVALUATING: {
        SupervisorState.IMPLEMENTING,
        SupervisorState.REPORTING,       # Not actionable
    } | _ABORT,
    SupervisorState.IMPLEMENTING: {SupervisorState.CRITIQUING} | _ABORT,
    SupervisorState.CRITIQUING: {
        SupervisorState.CI_CHECKING,
        SupervisorState.DECIDING,
    } | _ABORT,
    SupervisorState.CI_CHECKING: {SupervisorState.DECIDING} | _ABORT,
    SupervisorState.DECIDING: {
        SupervisorState.IMPLEMENTING,    # Fix iteration
        SupervisorState.REPORTING,
    } | _ABORT,
    SupervisorState.REPORTING: {SupervisorState.COMPLETED} | _ABORT,
    SupervisorState.COMPLETED: set(),
    SupervisorState.FAILED: set(),
    SupervisorState.CANCELLED: set(),
}


class Supervisor:
    """Drives one run through the fix loop.

    A Supervisor instance handles exactly one run; create a new one (with
    a fresh RunContext) per run.

    Usage:
        supervisor = Supervisor(actors, context, logger, capabilities=wiring)
        outcome = await supervisor.run("Issue #42: crash on empty input", max_iterations=3)
    """

    def __init__(
        self,
        actors: Mapping[ActorKind, ActorProtocol],
        context: RunContext,
        logger: LoggerProtocol,
        capabilities: Optional[CapabilityWiring] = None,
        status_checker: Optional[StatusCheckProtocol] = None,
        code_host: Optional[CodeHostProtocol] = None,
        progress_sink: Optional[ProgressSinkProtocol] = None,
        compactor: Optional[TranscriptCompactor] = None,
        max_iterations: int = 3,
        ci_poll_interval: float = 30.0,
        ci_max_rechecks: int = 2,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize supervisor.

        Args:
            actors: Actor per kind (analysis, implementation, critique)
            context: Per-run handles (budget, cache, cancellation)
            logger: Logger instance
            capabilities: Tool wiring handed to actors (none if omitted)
            status_checker: CI-style status check; CI_CHECKING is skipped if None
            code_host: Used to look up an open proposal when the
                implementation actor does not report one
            progress_sink: Observer channel for progress updates
            compactor: Transcript compactor (defaults applied if None)
            max_iterations: Default iteration budget
            ci_poll_interval: Seconds between CI rechecks
            ci_max_rechecks: Rechecks allowed while CI is in progress
            sleep: Awaitable sleep (injectable for tests)
        """
        self._actors = dict(actors)
        self._context = context
        self._logger = logger.bind(component="supervisor", run_id=context.run_id)
        self._capabilities = capabilities
        self._status_checker = status_checker
        self._code_host = code_host
        self._emitter = ProgressEmitter(progress_sink, context.run_id, logger)
        self._compactor = compactor or TranscriptCompactor(logger=logger)
        self._default_max_iterations = max_iterations
        self._ci_poll_interval = ci_poll_interval
        self._ci_max_rechecks = ci_max_rechecks
        self._sleep = sleep

        self._handlers: Dict[SupervisorState, Callable[[], Awaitable[SupervisorState]]] = {
            SupervisorState.ANALYZING: self._analyze,
            SupervisorState.EVALUATING: self._evaluate,
            SupervisorState.IMPLEMENTING: self._implement,
            SupervisorState.CRITIQUING: self._critique,
            SupervisorState.CI_CHECKING: self._check_ci,
            SupervisorState.DECIDING: self._decide,
            SupervisorState.REPORTING: self._report,
        }

        self._state = SupervisorState.IDLE
        self._history: List[SupervisorState] = [SupervisorState.IDLE]
        self._transcript: Optional[Transcript] = None
        self._max_iterations = max_iterations
        self._review_only = False

        self._seed = ""
        self._analysis_text = ""
        self._brief: Optional[AnalysisBrief] = None
        self._artifact_ref: Optional[str] = None
        self._branch: Optional[str] = None
        self._fix_mode = False
        self._fix_count = 0
        self._feedback: Optional[str] = None
        self._feedback_history: List[str] = []
        self._review: Optional[ReviewOutput] = None
        self._ci_report: Optional[StatusReport] = None
        self._summary = ""
        self._error: Optional[str] = None
        self._error_kind: Optional[str] = None
        self._delegating: Optional[ActorKind] = None

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def history(self) -> List[SupervisorState]:
        return list(self._history)

    @property
    def transcript(self) -> Optional[Transcript]:
        return self._transcript

    @property
    def iteration_count(self) -> int:
        """Completed critique cycles, capped at the run's maximum."""
        if self._transcript is None:
            return 0
        return min(len(self._transcript.iteration_boundaries()), self._max_iterations)

    async def run(
        self,
        seed_instruction: str,
        max_iterations: Optional[int] = None,
        resume_from: Optional[ResumeContext] = None,
    ) -> WorkflowOutcome:
        """Run the full fix loop for one seed instruction."""
        self._require_actors(ActorKind.IMPLEMENTATION, ActorKind.CRITIQUE)
        if resume_from is None:
            self._require_actors(ActorKind.ANALYSIS)

        self._begin(seed_instruction, max_iterations)

        if resume_from is None:
            first = SupervisorState.ANALYZING
        else:
            self._artifact_ref = resume_from.artifact_ref
            self._branch = resume_from.branch
            self._fix_mode = True
            if resume_from.human_feedback:
                self._feedback = resume_from.human_feedback
                first = SupervisorState.IMPLEMENTING
            else:
                first = SupervisorState.CRITIQUING
            self._logger.info(
                "run_resumed",
                artifact_ref=self._artifact_ref,
                branch=self._branch,
                with_feedback=bool(resume_from.human_feedback),
            )

        return await self._drive(first)

    async def review(self, artifact_ref: str) -> WorkflowOutcome:
        """Critique an existing proposal once and report."""
        self._require_actors(ActorKind.CRITIQUE)
        self._begin(f"Review PR #{artifact_ref}", 1)
        self._review_only = True
        self._artifact_ref = artifact_ref
        return await self._drive(SupervisorState.CRITIQUING)

    # =========================================================================
    # DRIVER
    # =========================================================================

    def _begin(self, seed: str, max_iterations: Optional[int]) -> None:
        if self._state is not SupervisorState.IDLE:
            raise InvalidTransitionError(self._state.value, SupervisorState.IDLE.value)
        self._seed = seed
        self._max_iterations = max_iterations or self._default_max_iterations
        self._transcript = Transcript(seed)

    async def _drive(self, first: SupervisorState) -> WorkflowOutcome:
        self._logger.info(
            "run_started",
            first_state=first.value,
            max_iterations=self._max_iterations,
            review_only=self._review_only,
        )
        next_state = first

        while True:
            if self._context.cancel.is_cancelled:
                self._summary = self._summary or f"Cancelled: {self._context.cancel.reason}"
                self._transition(SupervisorState.CANCELLED)
                break

            self._transition(next_state)
            if next_state in _TERMINAL_STATES:
                break

            try:
                next_state = await self._handlers[next_state]()
            except Exception as exc:
                self._record_failure(exc)
                self._transition(SupervisorState.FAILED)
                break

        return self._outcome()

    def _transition(self, target: SupervisorState) -> None:
        if target not in _VALID_TRANSITIONS[self._state]:
            self._logger.error(
                "invalid_state_transition",
                current_state=self._state.value,
                target_state=target.value,
            )
            raise InvalidTransitionError(self._state.value, target.value)

        self._logger.info(
            "state_transition",
            old_state=self._state.value,
            new_state=target.value,
            iteration=self.iteration_count,
        )
        self._state = target
        self._history.append(target)

    def _record_failure(self, exc: Exception) -> None:
        self._error = str(exc)
        kind = getattr(exc, "kind", None)
        if kind is None:
            kind = "actor_failure" if self._delegating is not None else "error"
        self._error_kind = kind
        self._summary = f"Failed during {self._state.value}: {exc}"
        self._logger.error(
            "run_failed",
            state=self._state.value,
            error=self._error,
            error_kind=kind,
            error_type=type(exc).__name__,
        )

    def _outcome(self) -> WorkflowOutcome:
        outcome = WorkflowOutcome(
            status=_TERMINAL_STATES[self._state],
            final_state=self._state.value,
            iteration_count=self.iteration_count,
            max_iterations=self._max_iterations,
            verdict=self._review.verdict if self._review else None,
            ci_status=self._ci_report.overall if self._ci_report else None,
            artifact_ref=self._artifact_ref,
            branch=self._branch,
            summary=self._summary,
            feedback=self._feedback,
            error=self._error,
            error_kind=self._error_kind,
        )
        self._logger.info(
            "run_finished",
            status=outcome.status.value,
            iteration_count=outcome.iteration_count,
            verdict=outcome.verdict.value if outcome.verdict else None,
            budget_used=self._context.budget.count,
            cache=self._context.cache.get_stats().to_dict(),
        )
        return outcome

    # =========================================================================
    # STATE HANDLERS
    # =========================================================================

    async def _analyze(self) -> SupervisorState:
        self._analysis_text = await self._delegate(
            ActorKind.ANALYSIS, build_analysis_instruction(self._seed)
        )
        return SupervisorState.EVALUATING

    async def _evaluate(self) -> SupervisorState:
        brief = parse_analysis_brief(self._analysis_text)
        self._brief = brief
        if not brief.actionable:
            self._summary = f"Not actionable: {truncate(brief.summary, 500)}"
            self._reason(self._summary)
            return SupervisorState.REPORTING

        self._reason(
            f"Actionable. Tests {'required' if brief.needs_tests else 'not required'}; "
            f"base branch {brief.base_branch}."
        )
        return SupervisorState.IMPLEMENTING

    async def _implement(self) -> SupervisorState:
        label = ""
        if self._fix_mode:
            self._fix_count += 1
            label = f" [fix iteration {self._fix_count}]"
            instruction = build_fix_instruction(
                self._artifact_ref or "", self._branch, self._feedback or ""
            )
        else:
            instruction = build_implementation_instruction(
                self._seed, self._brief or AnalysisBrief(), self._branch
            )

        result = await self._delegate(
            ActorKind.IMPLEMENTATION, instruction, label, iteration=self._current_iteration()
        )
        report = parse_implementation_report(result)

        if report.branch and not self._branch:
            self._branch = report.branch
        if self._artifact_ref is None:
            self._artifact_ref = report.artifact_ref or await self._find_proposal()
        elif report.artifact_ref and report.artifact_ref != self._artifact_ref:
            self._logger.warning(
                "unexpected_new_proposal",
                expected=self._artifact_ref,
                reported=report.artifact_ref,
            )

        if self._artifact_ref is None:
            raise ActorOutputError(
                ActorKind.IMPLEMENTATION.value, "no proposal reference in result"
            )
        return SupervisorState.CRITIQUING

    async def _critique(self) -> SupervisorState:
        iteration = self._current_iteration()
        label = f" [iteration {iteration}/{self._max_iterations}]"
        result = await self._delegate(
            ActorKind.CRITIQUE,
            build_critique_instruction(self._artifact_ref or "", iteration, self._feedback_history),
            label,
            iteration=iteration,
        )
        self._review = parse_review_output(result)
        self._ci_report = None
        self._reason(f"Verdict {self._review.verdict.value}: {truncate(self._review.summary, 300)}")

        if self._status_checker is not None:
            return SupervisorState.CI_CHECKING
        return SupervisorState.DECIDING

    async def _check_ci(self) -> SupervisorState:
        report = await self._check_status()
        rechecks = 0
        while report.overall is CheckOverall.IN_PROGRESS and rechecks < self._ci_max_rechecks:
            if self._context.cancel.is_cancelled:
                break
            await self._sleep(self._ci_poll_interval)
            if self._context.cancel.is_cancelled:
                break
            rechecks += 1
            report = await self._check_status()

        self._ci_report = report
        self._reason(f"CI {report.overall.value} after {rechecks} recheck(s)")
        return SupervisorState.DECIDING

    async def _decide(self) -> SupervisorState:
        review = self._review
        ci = self._ci_report
        ci_failed = ci is not None and ci.overall is CheckOverall.FAILURE

        if review is not None and review.is_resolved and not ci_failed:
            self._summary = f"Resolved after {self.iteration_count} iteration(s): {review.summary}"
            return SupervisorState.REPORTING

        review_feedback = review.feedback_text() if review and not review.is_resolved else None
        ci_feedback = (ci.detail or ", ".join(ci.failed)) if ci_failed else None
        self._feedback = combine_feedback(review_feedback, ci_feedback)
        if review is not None and not review.is_resolved:
            self._feedback_history.extend(review.feedback_items or [review.summary])
        if ci_failed:
            self._feedback_history.append(f"CI failed: {ci_feedback}")

        if self._review_only:
            self._summary = f"Review complete: {review.verdict.value if review else 'unknown'}"
            return SupervisorState.REPORTING

        if self.iteration_count < self._max_iterations:
            self._fix_mode = True
            self._reason(
                f"Needs changes; starting fix iteration "
                f"{self.iteration_count + 1}/{self._max_iterations}"
            )
            return SupervisorState.IMPLEMENTING

        self._summary = (
            f"Iteration budget exhausted after {self.iteration_count} iteration(s); "
            f"last feedback recorded"
        )
        return SupervisorState.REPORTING

    async def _report(self) -> SupervisorState:
        if not self._summary:
            self._summary = "Run finished"
        self._reason(self._summary)
        return SupervisorState.COMPLETED

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _current_iteration(self) -> int:
        """Number of the critique cycle in progress."""
        return min(self.iteration_count + 1, self._max_iterations)

    def _require_actors(self, *kinds: ActorKind) -> None:
        missing = [k.value for k in kinds if k not in self._actors]
        if missing:
            raise ValueError(f"missing actors: {', '.join(missing)}")

    def _tools_for(self, kind: ActorKind, iteration: Optional[int]) -> Capabilities:
        if self._capabilities is None:
            return {}
        return self._capabilities.for_actor(kind, iteration)

    async def _delegate(
        self,
        kind: ActorKind,
        instruction: str,
        label: str = "",
        iteration: Optional[int] = None,
    ) -> str:
        mode = self._compactor.compact(self._transcript)
        if mode:
            self._logger.debug("compacted_before_delegation", mode=mode, actor=kind.value)

        call_id = self._transcript.append_delegation(kind, instruction)
        self._emitter.delegation_started(kind.value, iteration, self._max_iterations, label)

        self._delegating = kind
        try:
            result = await self._actors[kind].invoke(instruction, self._tools_for(kind, iteration))
        except Exception:
            self._emitter.delegation_completed(
                kind.value, iteration, self._max_iterations, label, outcome="failed"
            )
            raise

        self._delegating = None
        self._transcript.append_result(call_id, result)
        self._emitter.delegation_completed(kind.value, iteration, self._max_iterations, label)
        return result

    def _reason(self, text: str) -> None:
        self._transcript.append_reasoning(text)
        self._emitter.reasoning(self._state.value, text, self.iteration_count or None)

    async def _check_status(self) -> StatusReport:
        self._context.budget.increment("check_status")
        call_id = self._transcript.append_verification_call("check_status", self._artifact_ref or "")
        report = await self._status_checker.check(self._artifact_ref or "")
        self._transcript.append_verification_result(call_id, json.dumps(report.to_dict()))
        return report

    async def _find_proposal(self) -> Optional[str]:
        if self._code_host is None or not self._branch:
            return None
        self._context.budget.increment("find_open_proposal")
        base = self._brief.base_branch if self._brief else "main"
        number = await self._code_host.find_open_proposal(self._branch, base)
        if number is None:
            return None
        self._logger.info("proposal_found_by_branch", branch=self._branch, number=number)
        return str(number)


__all__ = ["Supervisor", "SupervisorState"]
