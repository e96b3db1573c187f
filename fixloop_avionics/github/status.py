"""CI-style status check backed by the GitHub checks API."""

import re
from typing import Any

from fixloop_protocols import ExternalResourceError, StatusReport

_PULL_URL = re.compile(r"/pull/(\d+)")
_PULL_NUMBER = re.compile(r"^(?:(?:PR|pull\s+request)\s*)?#?\s*(\d+)$", re.IGNORECASE)


def pull_number_from_ref(artifact_ref: str) -> int:
    """Pull request number from "12", "#12", "PR #12" or a pull request URL."""
    ref = artifact_ref.strip()
    match = _PULL_URL.search(ref) or _PULL_NUMBER.match(ref)
    if match is None:
        raise ExternalResourceError(artifact_ref, None, "is not a pull request reference")
    return int(match.group(1))


class GitHubStatusChecker:
    """StatusCheckProtocol over a code host exposing ``check_ci_status``.

    Works with GitHubCodeHost and DryRunCodeHost. ``artifact_ref`` is the
    pull request number, optionally written as ``#12`` or a PR URL.
    """

    def __init__(self, code_host: Any):
        self._code_host = code_host

    async def check(self, artifact_ref: str) -> StatusReport:
        return await self._code_host.check_ci_status(pull_number_from_ref(artifact_ref))


__all__ = ["GitHubStatusChecker", "pull_number_from_ref"]
