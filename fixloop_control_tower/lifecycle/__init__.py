"""Run lifecycle: manager and stores."""

from fixloop_control_tower.lifecycle.issue_context import InMemoryIssueContextStore
from fixloop_control_tower.lifecycle.manager import RunManager
from fixloop_control_tower.lifecycle.store import InMemoryRunStore

__all__ = ["InMemoryIssueContextStore", "InMemoryRunStore", "RunManager"]
