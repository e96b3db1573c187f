"""Control Tower types - run requests and run events.

Layering: This module ONLY imports from fixloop_protocols and fixloop_shared.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from fixloop_protocols import ResumeContext, RunKind, RunRecord
from fixloop_shared.serialization import utc_now


# =============================================================================
# RUN REQUESTS
# =============================================================================

@dataclass
class RunRequest:
    """Everything a workflow runner needs to execute one run.

    ``artifact_ref`` is set for review-only runs. ``resume`` is set when
    an analysis run continues work on an already-open proposal.
    ``issue_number`` scopes shared issue notes; None for review runs.
    """
    run_id: str
    kind: RunKind
    seed: str = ""
    max_iterations: Optional[int] = None
    resume: Optional[ResumeContext] = None
    artifact_ref: Optional[str] = None
    issue_number: Optional[int] = None


# =============================================================================
# RUN EVENTS
# =============================================================================

@dataclass
class RunEvent:
    """Event emitted by the run manager for observers."""
    event_type: str
    timestamp: datetime
    run_id: str
    run: Optional[RunRecord] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def run_started(cls, run: RunRecord) -> "RunEvent":
        return cls(
            event_type="run_started",
            timestamp=utc_now(),
            run_id=run.id,
            run=run.copy(),
            data={"kind": run.kind.value},
        )

    @classmethod
    def run_updated(cls, run: RunRecord) -> "RunEvent":
        return cls(
            event_type="run_updated",
            timestamp=utc_now(),
            run_id=run.id,
            run=run.copy(),
        )

    @classmethod
    def run_finished(cls, run: RunRecord) -> "RunEvent":
        """``run_completed`` / ``run_failed`` / ``run_cancelled``."""
        return cls(
            event_type=f"run_{run.status.value}",
            timestamp=utc_now(),
            run_id=run.id,
            run=run.copy(),
            data={"error": run.error} if run.error else {},
        )

    @classmethod
    def run_log(cls, run_id: str, message: str) -> "RunEvent":
        return cls(
            event_type="run_log",
            timestamp=utc_now(),
            run_id=run_id,
            data={"message": message},
        )
