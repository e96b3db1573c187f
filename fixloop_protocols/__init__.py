"""fixloop Protocols Package - Core type contracts for all layers.

This package provides the canonical type definitions, protocols, and error
classes that form the contract between layers.

Layering:
    - All layers import from fixloop_protocols for type definitions
    - fixloop_protocols sits at L0 (no dependencies on other fixloop packages)
    - Protocols define interfaces; implementations are in other packages

Package Structure:
    - types.py: Enums and dataclasses (Turn, RunRecord, ProgressUpdate, ...)
    - protocols.py: Protocol definitions (LoggerProtocol, ActorProtocol, ...)
    - errors.py: Error taxonomy (CallBudgetExceededError, ...)
"""

from fixloop_protocols.errors import (
    ActorOutputError,
    CallBudgetExceededError,
    ExternalResourceError,
    FixloopError,
    InvalidTransitionError,
)
from fixloop_protocols.protocols import (
    ActorProtocol,
    CodeHostProtocol,
    IssueContextStoreProtocol,
    LoggerProtocol,
    ProgressSinkProtocol,
    RunStoreProtocol,
    StatusCheckProtocol,
)
from fixloop_protocols.types import (
    ActorKind,
    AnalysisBrief,
    CheckOverall,
    ImplementationReport,
    IssueContextEntry,
    IssueContextType,
    ProgressAction,
    ProgressUpdate,
    ResumeContext,
    ReviewOutput,
    RunKind,
    RunRecord,
    RunStatus,
    StatusReport,
    Tool,
    ToolFunc,
    Turn,
    TurnKind,
    Verdict,
    WorkflowOutcome,
)

__all__ = [
    # Errors
    "ActorOutputError",
    "CallBudgetExceededError",
    "ExternalResourceError",
    "FixloopError",
    "InvalidTransitionError",
    # Protocols
    "ActorProtocol",
    "CodeHostProtocol",
    "IssueContextStoreProtocol",
    "LoggerProtocol",
    "ProgressSinkProtocol",
    "RunStoreProtocol",
    "StatusCheckProtocol",
    # Types
    "ActorKind",
    "AnalysisBrief",
    "CheckOverall",
    "ImplementationReport",
    "IssueContextEntry",
    "IssueContextType",
    "ProgressAction",
    "ProgressUpdate",
    "ResumeContext",
    "ReviewOutput",
    "RunKind",
    "RunRecord",
    "RunStatus",
    "StatusReport",
    "Tool",
    "ToolFunc",
    "Turn",
    "TurnKind",
    "Verdict",
    "WorkflowOutcome",
]
