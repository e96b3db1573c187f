"""Mission System - the fix loop application layer.

Provides:
- Settings (pydantic-settings, env driven)
- Run transcript and compaction
- Supervisor state machine, capability wiring and progress events
- Issue note tools shared across actors and runs
- Bootstrap helpers that compose everything into a RunManager
"""

from fixloop_mission_system.bootstrap import (
    SupervisorRunner,
    create_code_host,
    create_root_logger,
    create_run_manager,
    create_status_checker,
    create_supervisor,
)
from fixloop_mission_system.config import Settings, get_settings
from fixloop_mission_system.orchestrator import (
    CallbackProgressSink,
    CapabilityWiring,
    IssueContextTools,
    NullProgressSink,
    QueueProgressSink,
    Supervisor,
    SupervisorState,
)
from fixloop_mission_system.transcript import Transcript, TranscriptCompactor

__all__ = [
    "CallbackProgressSink",
    "CapabilityWiring",
    "IssueContextTools",
    "NullProgressSink",
    "QueueProgressSink",
    "Settings",
    "Supervisor",
    "SupervisorRunner",
    "SupervisorState",
    "Transcript",
    "TranscriptCompactor",
    "create_code_host",
    "create_root_logger",
    "create_run_manager",
    "create_status_checker",
    "create_supervisor",
    "get_settings",
]
