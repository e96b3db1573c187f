"""Avionics - infrastructure adapters for fixloop.

Provides the concrete collaborators the orchestrator talks to:
- GitHub code host (httpx, retry on every call, idempotent writes)
- GitHub CI status checks
- Dry-run code host that logs writes instead of performing them
"""

from fixloop_avionics.dry_run import DryRunCodeHost
from fixloop_avionics.github import (
    GitHubCodeHost,
    GitHubStatusChecker,
    aggregate_check_runs,
)

__all__ = [
    "DryRunCodeHost",
    "GitHubCodeHost",
    "GitHubStatusChecker",
    "aggregate_check_runs",
]
