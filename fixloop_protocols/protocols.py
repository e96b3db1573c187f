"""Protocol definitions - interfaces for dependency injection.

These are typing.Protocol classes for static type checking.
Implementations live in fixloop_control_tower, fixloop_avionics and
fixloop_mission_system, or are supplied by the host application
(actors, progress sinks).
"""

from typing import Any, List, Mapping, Optional, Protocol, runtime_checkable

from fixloop_protocols.types import (
    IssueContextEntry,
    ProgressUpdate,
    RunRecord,
    RunStatus,
    StatusReport,
    Tool,
)


# =============================================================================
# LOGGING
# =============================================================================

@runtime_checkable
class LoggerProtocol(Protocol):
    """Structured logging interface."""

    def info(self, message: str, **kwargs: Any) -> None: ...
    def debug(self, message: str, **kwargs: Any) -> None: ...
    def warning(self, message: str, **kwargs: Any) -> None: ...
    def error(self, message: str, **kwargs: Any) -> None: ...
    def bind(self, **kwargs: Any) -> "LoggerProtocol": ...


# =============================================================================
# ACTORS
# =============================================================================

@runtime_checkable
class ActorProtocol(Protocol):
    """Opaque turn-producing actor.

    Analysis, implementation and critique actors all implement this one
    contract. ``capabilities`` maps tool names to the wrapped tools the
    actor may call.
    """

    async def invoke(
        self,
        instruction_text: str,
        capabilities: Mapping[str, Tool],
    ) -> str: ...


# =============================================================================
# EXTERNAL RESOURCE
# =============================================================================

@runtime_checkable
class CodeHostProtocol(Protocol):
    """Hosted code/issue platform.

    Writes are idempotent from the caller's perspective: each checks for a
    pre-existing marker or identity first and returns a JSON "skipped"
    result instead of duplicating.
    """

    # Reads
    async def fetch_issue(self, issue_number: int) -> str: ...
    async def list_files(self, path: str = "", branch: Optional[str] = None) -> str: ...
    async def read_file(self, path: str, branch: Optional[str] = None) -> str: ...
    async def get_diff(self, pull_number: int) -> str: ...
    async def fetch_sub_issues(self, issue_number: int) -> str: ...
    async def get_parent_issue(self, issue_number: int) -> str: ...
    async def find_open_proposal(self, head: str, base: str = "main") -> Optional[int]: ...

    # Writes
    async def comment_on_issue(self, issue_number: int, body: str) -> str: ...
    async def create_branch(self, branch: str, from_branch: str = "main") -> str: ...
    async def create_or_update_file(
        self, path: str, content: str, message: str, branch: str
    ) -> str: ...
    async def create_pull_request(
        self, title: str, body: str, head: str, base: str = "main"
    ) -> str: ...
    async def submit_review(
        self, pull_number: int, body: str, iteration: Optional[int] = None
    ) -> str: ...
    async def create_sub_issue(
        self,
        parent_issue_number: int,
        title: str,
        body: str,
        labels: Optional[List[str]] = None,
    ) -> str: ...


@runtime_checkable
class StatusCheckProtocol(Protocol):
    """CI-style status check for an artifact."""

    async def check(self, artifact_ref: str) -> StatusReport: ...


# =============================================================================
# OBSERVATION
# =============================================================================

@runtime_checkable
class ProgressSinkProtocol(Protocol):
    """Receives progress updates. Must return promptly and never block."""

    def emit(self, update: ProgressUpdate) -> None: ...


# =============================================================================
# PERSISTENCE
# =============================================================================

@runtime_checkable
class RunStoreProtocol(Protocol):
    """Pluggable run record store."""

    async def save(self, record: RunRecord) -> None: ...
    async def update(self, record: RunRecord) -> None: ...
    async def get_by_id(self, run_id: str) -> Optional[RunRecord]: ...
    async def list(self, status: Optional[RunStatus] = None) -> List[RunRecord]: ...


@runtime_checkable
class IssueContextStoreProtocol(Protocol):
    """Shared per-issue notes, readable across actors and across runs.

    ``add_entry`` assigns the entry id and returns the stored entry.
    ``search_recent`` returns outcome entries only, most recent first.
    """

    async def add_entry(self, entry: IssueContextEntry) -> IssueContextEntry: ...
    async def entries_for_run(self, run_id: str) -> List[IssueContextEntry]: ...
    async def entries_for_issue(
        self, repo: str, issue_number: int
    ) -> List[IssueContextEntry]: ...
    async def search_by_files(
        self,
        repo: str,
        files: List[str],
        limit: int = 20,
        exclude_issue: Optional[int] = None,
    ) -> List[IssueContextEntry]: ...
    async def search_recent(
        self,
        repo: str,
        limit: int = 10,
        exclude_issue: Optional[int] = None,
    ) -> List[IssueContextEntry]: ...
