"""Control Tower protocols."""

from typing import Protocol, runtime_checkable

from fixloop_protocols import ProgressSinkProtocol, WorkflowOutcome

from fixloop_control_tower.context import CancellationToken
from fixloop_control_tower.types import RunRequest


@runtime_checkable
class WorkflowRunnerProtocol(Protocol):
    """Executes one run to completion.

    The run manager owns the run record; the runner reports progress
    through ``sink`` and returns the outcome. Cancellation is signalled
    through ``cancel`` and honoured cooperatively.
    """

    async def execute(
        self,
        request: RunRequest,
        sink: ProgressSinkProtocol,
        cancel: CancellationToken,
    ) -> WorkflowOutcome: ...
