"""Orchestrator - the supervisor state machine and its helpers."""

from fixloop_mission_system.orchestrator.capabilities import Capabilities, CapabilityWiring
from fixloop_mission_system.orchestrator.events import (
    CallbackProgressSink,
    NullProgressSink,
    ProgressEmitter,
    QueueProgressSink,
)
from fixloop_mission_system.orchestrator.issue_context import IssueContextTools
from fixloop_mission_system.orchestrator.instructions import (
    build_analysis_instruction,
    build_critique_instruction,
    build_fix_instruction,
    build_implementation_instruction,
    combine_feedback,
)
from fixloop_mission_system.orchestrator.parsing import (
    extract_json_object,
    parse_analysis_brief,
    parse_implementation_report,
    parse_review_output,
)
from fixloop_mission_system.orchestrator.supervisor import Supervisor, SupervisorState

__all__ = [
    "CallbackProgressSink",
    "Capabilities",
    "CapabilityWiring",
    "IssueContextTools",
    "NullProgressSink",
    "ProgressEmitter",
    "QueueProgressSink",
    "Supervisor",
    "SupervisorState",
    "build_analysis_instruction",
    "build_critique_instruction",
    "build_fix_instruction",
    "build_implementation_instruction",
    "combine_feedback",
    "extract_json_object",
    "parse_analysis_brief",
    "parse_implementation_report",
    "parse_review_output",
]
