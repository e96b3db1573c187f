"""Core types shared by every fixloop layer.

Covers:
- Transcript turns and their kinds
- Actor kinds and critique verdicts
- Status-check reports
- Progress updates emitted by the supervisor
- Run records persisted by the run manager
- Workflow outcomes returned to callers

Layering: L0. Standard library only.
"""

from __future__ import annotations

import copy
import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class TurnKind(str, Enum):
    """Kinds of transcript turns."""
    SEED = "seed"
    ACTOR_DELEGATION = "actor_delegation"
    ACTOR_RESULT = "actor_result"
    VERIFICATION_CALL = "verification_call"
    VERIFICATION_RESULT = "verification_result"
    REASONING = "reasoning"


class ActorKind(str, Enum):
    """The three delegated roles in a fix loop."""
    ANALYSIS = "analysis"
    IMPLEMENTATION = "implementation"
    CRITIQUE = "critique"


class Verdict(str, Enum):
    """Critique verdict."""
    RESOLVED = "resolved"
    NEEDS_CHANGES = "needs_changes"


class CheckOverall(str, Enum):
    """Aggregate state of the CI-style checks on an artifact."""
    SUCCESS = "success"
    FAILURE = "failure"
    IN_PROGRESS = "in_progress"
    NO_CHECKS = "no_checks"


class RunKind(str, Enum):
    """Run kinds tracked by the run manager."""
    ANALYZE = "analyze"
    REVIEW = "review"


class RunStatus(str, Enum):
    """Run status.

    State transitions:
        RUNNING -> (COMPLETED | FAILED | CANCELLED)
    Terminal states are immutable.
    """
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class ProgressAction(str, Enum):
    """Progress update actions."""
    STARTED = "started"
    COMPLETED = "completed"
    REASONING = "reasoning"


class IssueContextType(str, Enum):
    """Kinds of shared per-issue notes."""
    ANALYSIS_BRIEF = "analysis_brief"
    IMPLEMENTATION_PLAN = "implementation_plan"
    REVIEW_FEEDBACK = "review_feedback"
    CI_RESULT = "ci_result"
    OUTCOME = "outcome"


# =============================================================================
# TRANSCRIPT
# =============================================================================

@dataclass
class Turn:
    """One entry in the ordered run transcript.

    Delegation turns carry ``actor_kind``, the instruction in ``text`` and a
    ``call_id``. Result turns carry the same ``call_id`` and the result in
    ``text``. Verification turns use ``name`` for the operation invoked.
    """
    index: int
    kind: TurnKind
    text: str
    actor_kind: Optional[ActorKind] = None
    call_id: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_result(self) -> bool:
        return self.kind in (TurnKind.ACTOR_RESULT, TurnKind.VERIFICATION_RESULT)


# =============================================================================
# CAPABILITIES
# =============================================================================

ToolFunc = Callable[..., Awaitable[str]]


@dataclass(frozen=True)
class Tool:
    """An external operation an actor may invoke.

    ``func`` is an async callable taking keyword arguments and returning
    text. Wrappers (cache, breaker, logging) return a new Tool with the
    same name around a wrapped ``func``.
    """
    name: str
    func: ToolFunc
    writes: bool = False
    description: str = ""

    async def __call__(self, **kwargs: Any) -> str:
        return await self.func(**kwargs)


# =============================================================================
# STATUS CHECKS
# =============================================================================

@dataclass
class StatusReport:
    """Aggregate CI-style check result for one artifact."""
    overall: CheckOverall
    detail: str = ""
    total: int = 0
    completed: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def is_blocking(self) -> bool:
        """True when the checks should hold back a resolved verdict."""
        return self.overall is CheckOverall.FAILURE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall.value,
            "detail": self.detail,
            "total": self.total,
            "completed": self.completed,
            "failed": list(self.failed),
        }


# =============================================================================
# ACTOR OUTPUT
# =============================================================================

@dataclass
class ReviewOutput:
    """Parsed critique output."""
    verdict: Verdict
    summary: str
    feedback_items: List[str] = field(default_factory=list)
    review_body: str = ""

    @property
    def is_resolved(self) -> bool:
        return self.verdict is Verdict.RESOLVED

    def feedback_text(self) -> str:
        """Render summary and feedback items as one block of text."""
        lines = [self.summary]
        lines.extend(f"- {item}" for item in self.feedback_items)
        return "\n".join(lines)


@dataclass
class AnalysisBrief:
    """Parsed analysis output."""
    actionable: bool = True
    needs_tests: bool = False
    base_branch: str = "main"
    summary: str = ""


@dataclass
class ImplementationReport:
    """Parsed implementation output."""
    artifact_ref: Optional[str] = None
    branch: Optional[str] = None


@dataclass
class ResumeContext:
    """Where a resumed run picks up an already-open proposal."""
    artifact_ref: str
    branch: Optional[str] = None
    human_feedback: Optional[str] = None


# =============================================================================
# PROGRESS
# =============================================================================

@dataclass
class ProgressUpdate:
    """Progress event emitted at every delegation start/end and reasoning turn."""
    phase: str
    action: ProgressAction
    iteration: Optional[int] = None
    max_iterations: Optional[int] = None
    detail: Optional[str] = None
    run_id: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "action": self.action.value,
            "iteration": self.iteration,
            "max_iterations": self.max_iterations,
            "detail": self.detail,
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# =============================================================================
# ISSUE CONTEXT
# =============================================================================

@dataclass
class IssueContextEntry:
    """One note an actor (or the run itself) left about an issue.

    Entries are scoped by repository and issue number; ``run_id`` ties an
    entry to the run that wrote it. ``id`` is assigned by the store.
    """
    repo: str
    issue_number: Optional[int]
    entry_type: IssueContextType
    actor: str
    content: str
    run_id: Optional[str] = None
    files_touched: List[str] = field(default_factory=list)
    iteration: int = 0
    id: int = 0
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "issue_number": self.issue_number,
            "entry_type": self.entry_type.value,
            "actor": self.actor,
            "content": self.content,
            "files_touched": list(self.files_touched),
            "iteration": self.iteration,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# RUNS
# =============================================================================

@dataclass
class WorkflowOutcome:
    """Result of one supervisor run."""
    status: RunStatus
    final_state: str
    iteration_count: int = 0
    max_iterations: int = 0
    verdict: Optional[Verdict] = None
    ci_status: Optional[CheckOverall] = None
    artifact_ref: Optional[str] = None
    branch: Optional[str] = None
    summary: str = ""
    feedback: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


@dataclass
class RunRecord:
    """Persistent view of one workflow run.

    ``active_delegations`` is a multiset of actor kinds (phase names) that
    have started and not yet completed.
    """
    id: str
    kind: RunKind
    status: RunStatus = RunStatus.RUNNING
    seed: str = ""
    artifact_ref: Optional[str] = None
    branch: Optional[str] = None
    iteration_count: int = 0
    max_iterations: int = 0
    active_delegations: Counter = field(default_factory=Counter)
    current_phase: Optional[str] = None
    outcome_text: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    logs: List[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def copy(self) -> "RunRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "seed": self.seed,
            "artifact_ref": self.artifact_ref,
            "branch": self.branch,
            "iteration_count": self.iteration_count,
            "max_iterations": self.max_iterations,
            "active_delegations": sorted(self.active_delegations.elements()),
            "current_phase": self.current_phase,
            "outcome_text": self.outcome_text,
            "error": self.error,
            "error_kind": self.error_kind,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
