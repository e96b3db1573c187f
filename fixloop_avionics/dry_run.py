"""Dry-run code host.

Wraps a real code host: reads go through unchanged, writes are logged
and answered with a ``{"dry_run": true, ...}`` JSON result without
touching the platform.
"""

import json
from typing import Any, Dict, List, Optional

from fixloop_protocols import CheckOverall, CodeHostProtocol, LoggerProtocol, StatusReport
from fixloop_shared import truncate, utc_now_iso

_ZERO_SHA = "0" * 40


def _preview(text: str) -> str:
    return truncate(text, 80)


class DryRunCodeHost:
    """CodeHostProtocol that never writes."""

    def __init__(self, inner: CodeHostProtocol, logger: LoggerProtocol):
        self._inner = inner
        self._logger = logger.bind(component="dry_run_code_host")

    def _skip(self, operation: str, payload: Dict[str, Any], **log_fields: Any) -> str:
        self._logger.info("dry_run_write", operation=operation, **log_fields)
        return json.dumps({"dry_run": True, **payload}, indent=2)

    # Reads

    async def fetch_issue(self, issue_number: int) -> str:
        return await self._inner.fetch_issue(issue_number)

    async def list_files(self, path: str = "", branch: Optional[str] = None) -> str:
        return await self._inner.list_files(path, branch)

    async def read_file(self, path: str, branch: Optional[str] = None) -> str:
        return await self._inner.read_file(path, branch)

    async def get_diff(self, pull_number: int) -> str:
        return await self._inner.get_diff(pull_number)

    async def fetch_sub_issues(self, issue_number: int) -> str:
        return await self._inner.fetch_sub_issues(issue_number)

    async def get_parent_issue(self, issue_number: int) -> str:
        return await self._inner.get_parent_issue(issue_number)

    async def find_open_proposal(self, head: str, base: str = "main") -> Optional[int]:
        return await self._inner.find_open_proposal(head, base)

    async def check_ci_status(self, pull_number: int) -> StatusReport:
        self._logger.info("dry_run_ci_status", pull_number=pull_number)
        return StatusReport(overall=CheckOverall.SUCCESS, detail="dry run")

    async def aclose(self) -> None:
        close = getattr(self._inner, "aclose", None)
        if close is not None:
            await close()

    # Writes

    async def comment_on_issue(self, issue_number: int, body: str) -> str:
        return self._skip(
            "comment_on_issue",
            {
                "id": 0,
                "html_url": f"(dry-run) issue #{issue_number} comment",
                "created_at": utc_now_iso(),
            },
            issue_number=issue_number,
            preview=_preview(body),
        )

    async def create_branch(self, branch: str, from_branch: str = "main") -> str:
        return self._skip(
            "create_branch",
            {"branch": branch, "sha": _ZERO_SHA, "url": f"(dry-run) branch {branch}"},
            branch=branch,
            from_branch=from_branch,
        )

    async def create_or_update_file(
        self, path: str, content: str, message: str, branch: str
    ) -> str:
        return self._skip(
            "create_or_update_file",
            {
                "path": path,
                "sha": _ZERO_SHA,
                "commit_sha": _ZERO_SHA,
                "html_url": f"(dry-run) {path} on {branch}",
            },
            path=path,
            branch=branch,
            preview=_preview(content),
        )

    async def create_pull_request(
        self, title: str, body: str, head: str, base: str = "main"
    ) -> str:
        return self._skip(
            "create_pull_request",
            {"number": 0, "html_url": f"(dry-run) PR: {title}", "state": "open"},
            head=head,
            base=base,
        )

    async def submit_review(
        self, pull_number: int, body: str, iteration: Optional[int] = None
    ) -> str:
        return self._skip(
            "submit_review",
            {"id": 0, "pull_number": pull_number, "iteration": iteration},
            pull_number=pull_number,
            preview=_preview(body),
        )

    async def create_sub_issue(
        self,
        parent_issue_number: int,
        title: str,
        body: str,
        labels: Optional[List[str]] = None,
    ) -> str:
        return self._skip(
            "create_sub_issue",
            {
                "id": 0,
                "number": 0,
                "title": title,
                "html_url": f"(dry-run) sub-issue of #{parent_issue_number}",
                "parent_issue_number": parent_issue_number,
            },
            parent_issue_number=parent_issue_number,
            preview=_preview(title),
        )


__all__ = ["DryRunCodeHost"]
