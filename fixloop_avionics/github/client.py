"""GitHub code host over the REST API.

Every HTTP call runs through ``with_retry``. Once a call has failed for
good (fatal status or retries exhausted) the HTTP error is converted to
ExternalResourceError carrying the request path and status.

Writes are idempotent from the caller's perspective: each looks for an
existing marker or identity first and returns a JSON ``skipped`` result
instead of duplicating work.

Usage:
    host = GitHubCodeHost("acme", "widgets", token, logger=logger)
    issue = await host.fetch_issue(42)
    await host.create_branch("fix/issue-42")
    ...
    await host.aclose()
"""

import asyncio
import base64
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from fixloop_control_tower import RetryPolicy, with_retry
from fixloop_protocols import (
    CheckOverall,
    ExternalResourceError,
    LoggerProtocol,
    StatusReport,
)
from fixloop_shared import get_current_logger

ANALYSIS_COMMENT_MARKER = "<!-- fixloop-analysis -->"
REVIEW_MARKER = "<!-- fixloop-review -->"
REVIEW_FOOTER = "\n\n> This is an automated review. A human should verify before merging."

MAX_FILE_LINES = 500
DEFAULT_API_URL = "https://api.github.com"

_FAILED_CONCLUSIONS = frozenset({"failure", "timed_out"})


def review_marker(iteration: Optional[int] = None) -> str:
    """Marker identifying a bot review, optionally per iteration."""
    if iteration is None:
        return REVIEW_MARKER
    return f"<!-- fixloop-review-iter-{iteration} -->"


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2)


def aggregate_check_runs(check_runs: List[Dict[str, Any]]) -> StatusReport:
    """Reduce a list of check runs to one overall status."""
    total = len(check_runs)
    if total == 0:
        return StatusReport(overall=CheckOverall.NO_CHECKS, detail="No checks configured")

    completed = [run for run in check_runs if run.get("status") == "completed"]
    failed = [
        run.get("name", "unknown")
        for run in completed
        if run.get("conclusion") in _FAILED_CONCLUSIONS
    ]

    if len(completed) < total:
        overall = CheckOverall.IN_PROGRESS
    elif failed:
        overall = CheckOverall.FAILURE
    else:
        overall = CheckOverall.SUCCESS

    detail = f"{len(completed)}/{total} checks completed"
    if failed:
        detail += f"; failed: {', '.join(failed)}"

    return StatusReport(
        overall=overall,
        detail=detail,
        total=total,
        completed=len(completed),
        failed=failed,
    )


class GitHubCodeHost:
    """CodeHostProtocol implementation for one GitHub repository."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        logger: Optional[LoggerProtocol] = None,
        max_diff_chars: int = 50_000,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the code host.

        Args:
            owner: Repository owner (user or organization)
            repo: Repository name
            token: API token; anonymous requests if None
            http_client: Pre-built client (tests pass one with a mock
                transport); owned and closed by the caller
            retry_policy: Backoff parameters for every request
            logger: Logger instance
            max_diff_chars: Diffs longer than this are truncated
            api_url: REST API base URL
            timeout: Request timeout in seconds for the owned client
            sleep: Awaitable sleep used between retries
        """
        self._logger = (logger or get_current_logger()).bind(
            component="github_code_host", repo=f"{owner}/{repo}"
        )
        self.owner = owner
        self.repo = repo
        self._api_url = api_url.rstrip("/")
        self._retry_policy = retry_policy or RetryPolicy()
        self._max_diff_chars = max_diff_chars
        self._sleep = sleep

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "fixloop",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _web_url(self, suffix: str) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/{suffix}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None,
    ) -> httpx.Response:
        url = f"{self._api_url}{path}"
        headers = dict(self._headers)
        if accept:
            headers["Accept"] = accept

        async def attempt() -> httpx.Response:
            response = await self._client.request(
                method, url, params=params, json=json_body, headers=headers
            )
            response.raise_for_status()
            return response

        try:
            return await with_retry(
                attempt,
                self._retry_policy,
                sleep=self._sleep,
                logger=self._logger,
                label=f"{method} {path}",
            )
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = _error_message(exc.response)
            if status != 404:
                self._logger.warning(
                    "github_request_failed",
                    method=method,
                    path=path,
                    status=status,
                    error=message,
                )
            raise ExternalResourceError(path, status, message) from exc

    async def _get_json(self, path: str, **params: Any) -> Any:
        response = await self._request("GET", path, params=params or None)
        return response.json()

    async def _exists(self, path: str, **params: Any) -> Optional[Any]:
        """GET ``path``; None on 404."""
        try:
            return await self._get_json(path, **params)
        except ExternalResourceError as exc:
            if exc.status_code == 404:
                return None
            raise

    async def _branch_sha(self, branch: str) -> str:
        ref = await self._get_json(f"{self._repo_path}/git/ref/heads/{branch}")
        return ref["object"]["sha"]

    # =========================================================================
    # READS
    # =========================================================================

    async def fetch_issue(self, issue_number: int) -> str:
        """Issue title, body, labels and comments as JSON."""
        issue = await self._get_json(f"{self._repo_path}/issues/{issue_number}")
        comments = await self._get_json(
            f"{self._repo_path}/issues/{issue_number}/comments", per_page=100
        )
        return _dump({
            "number": issue.get("number", issue_number),
            "title": issue.get("title", ""),
            "state": issue.get("state"),
            "body": issue.get("body") or "",
            "labels": [label.get("name") for label in issue.get("labels", [])],
            "author": (issue.get("user") or {}).get("login"),
            "comments": [
                {
                    "author": (c.get("user") or {}).get("login"),
                    "body": c.get("body") or "",
                    "created_at": c.get("created_at"),
                }
                for c in comments
            ],
        })

    async def list_files(self, path: str = "", branch: Optional[str] = None) -> str:
        """Files under ``path`` on ``branch`` from the recursive git tree."""
        branch = branch or "main"
        commit_sha = await self._branch_sha(branch)
        commit = await self._get_json(f"{self._repo_path}/git/commits/{commit_sha}")
        tree = await self._get_json(
            f"{self._repo_path}/git/trees/{commit['tree']['sha']}", recursive="true"
        )

        prefix = path.strip("/")
        if prefix:
            prefix += "/"
        files = [
            entry["path"]
            for entry in tree.get("tree", [])
            if entry.get("type") == "blob" and entry.get("path", "").startswith(prefix)
        ]

        result: Dict[str, Any] = {
            "branch": branch,
            "path": path,
            "total": len(files),
            "files": files,
        }
        if tree.get("truncated"):
            result["warning"] = (
                "Tree was truncated by GitHub API (repo has too many files). "
                "Results may be incomplete."
            )
        return _dump(result)

    async def read_file(self, path: str, branch: Optional[str] = None) -> str:
        """Decoded file content, cut at MAX_FILE_LINES lines."""
        params = {"ref": branch} if branch else None
        response = await self._request(
            "GET", f"{self._repo_path}/contents/{path}", params=params
        )
        data = response.json()

        if isinstance(data, list):
            raise ExternalResourceError(path, None, "is a directory, not a file")
        if data.get("type") != "file":
            raise ExternalResourceError(path, None, f"is a {data.get('type')}, not a file")
        if not data.get("content"):
            raise ExternalResourceError(path, None, "has no content (over the 1MB API limit?)")

        text = base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        lines = text.split("\n")
        result: Dict[str, Any] = {"path": path, "sha": data.get("sha")}
        if len(lines) > MAX_FILE_LINES:
            result["content"] = "\n".join(lines[:MAX_FILE_LINES])
            result["truncated"] = True
            result["total_lines"] = len(lines)
        else:
            result["content"] = text
        return _dump(result)

    async def get_diff(self, pull_number: int) -> str:
        """Unified diff of a pull request, truncated to ``max_diff_chars``."""
        response = await self._request(
            "GET",
            f"{self._repo_path}/pulls/{pull_number}",
            accept="application/vnd.github.v3.diff",
        )
        diff = response.text
        if len(diff) > self._max_diff_chars:
            return (
                diff[: self._max_diff_chars]
                + f"\n\n... (diff truncated at {self._max_diff_chars} characters, "
                f"total: {len(diff)})"
            )
        return diff

    async def fetch_sub_issues(self, issue_number: int) -> str:
        """Child issues of ``issue_number`` as a JSON list."""
        children = await self._get_json(
            f"{self._repo_path}/issues/{issue_number}/sub_issues", per_page=100
        )
        return _dump([_issue_summary(child) for child in children])

    async def get_parent_issue(self, issue_number: int) -> str:
        """``{"parent": {...}}``, or ``{"parent": null}`` for a top-level issue."""
        parent = await self._exists(
            f"{self._repo_path}/issues/{issue_number}/sub_issues/parent"
        )
        return _dump({"parent": _issue_summary(parent) if parent else None})

    async def find_open_proposal(self, head: str, base: str = "main") -> Optional[int]:
        pulls = await self._get_json(
            f"{self._repo_path}/pulls",
            state="open",
            head=f"{self.owner}:{head}",
            base=base,
        )
        if not pulls:
            return None
        return pulls[0]["number"]

    async def check_ci_status(self, pull_number: int) -> StatusReport:
        """Aggregate check runs on the pull request's head commit."""
        pull = await self._get_json(f"{self._repo_path}/pulls/{pull_number}")
        head_sha = pull["head"]["sha"]
        checks = await self._get_json(
            f"{self._repo_path}/commits/{head_sha}/check-runs", per_page=100
        )
        report = aggregate_check_runs(checks.get("check_runs", []))
        self._logger.debug(
            "ci_status_checked",
            pull_number=pull_number,
            overall=report.overall.value,
            completed=report.completed,
            total=report.total,
        )
        return report

    # =========================================================================
    # WRITES
    # =========================================================================

    async def comment_on_issue(self, issue_number: int, body: str) -> str:
        comments = await self._get_json(
            f"{self._repo_path}/issues/{issue_number}/comments", per_page=100
        )
        if any(ANALYSIS_COMMENT_MARKER in (c.get("body") or "") for c in comments):
            self._logger.info("comment_skipped", issue_number=issue_number)
            return _dump({
                "skipped": True,
                "reason": "Analysis comment already exists on this issue.",
                "issue_number": issue_number,
            })

        response = await self._request(
            "POST",
            f"{self._repo_path}/issues/{issue_number}/comments",
            json_body={"body": f"{ANALYSIS_COMMENT_MARKER}\n{body}"},
        )
        comment = response.json()
        self._logger.info("comment_created", issue_number=issue_number, comment_id=comment.get("id"))
        return _dump({
            "id": comment.get("id"),
            "html_url": comment.get("html_url"),
            "created_at": comment.get("created_at"),
        })

    async def create_branch(self, branch: str, from_branch: str = "main") -> str:
        url = self._web_url(f"tree/{branch}")
        existing = await self._exists(f"{self._repo_path}/git/ref/heads/{branch}")
        if existing is not None:
            self._logger.info("branch_skipped", branch=branch)
            return _dump({
                "skipped": True,
                "reason": f"Branch '{branch}' already exists.",
                "branch": branch,
                "url": url,
            })

        sha = await self._branch_sha(from_branch)
        await self._request(
            "POST",
            f"{self._repo_path}/git/refs",
            json_body={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        self._logger.info("branch_created", branch=branch, from_branch=from_branch)
        return _dump({"branch": branch, "sha": sha, "url": url})

    async def create_or_update_file(
        self, path: str, content: str, message: str, branch: str
    ) -> str:
        existing = await self._exists(f"{self._repo_path}/contents/{path}", ref=branch)
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if isinstance(existing, dict) and existing.get("sha"):
            body["sha"] = existing["sha"]

        response = await self._request(
            "PUT", f"{self._repo_path}/contents/{path}", json_body=body
        )
        data = response.json()
        self._logger.info(
            "file_committed", path=path, branch=branch, updated="sha" in body
        )
        return _dump({
            "path": path,
            "sha": (data.get("content") or {}).get("sha"),
            "commit_sha": (data.get("commit") or {}).get("sha"),
            "html_url": (data.get("content") or {}).get("html_url"),
        })

    async def create_pull_request(
        self, title: str, body: str, head: str, base: str = "main"
    ) -> str:
        pulls = await self._get_json(
            f"{self._repo_path}/pulls",
            state="open",
            head=f"{self.owner}:{head}",
            base=base,
        )
        if pulls:
            existing = pulls[0]
            self._logger.info("pull_request_skipped", head=head, number=existing["number"])
            return _dump({
                "skipped": True,
                "reason": f"Open PR #{existing['number']} already exists for branch '{head}'.",
                "number": existing["number"],
                "html_url": existing.get("html_url"),
            })

        response = await self._request(
            "POST",
            f"{self._repo_path}/pulls",
            json_body={"title": title, "body": body, "head": head, "base": base},
        )
        pull = response.json()
        self._logger.info("pull_request_created", head=head, base=base, number=pull.get("number"))
        return _dump({
            "number": pull.get("number"),
            "html_url": pull.get("html_url"),
            "state": pull.get("state"),
        })

    async def submit_review(
        self, pull_number: int, body: str, iteration: Optional[int] = None
    ) -> str:
        marker = review_marker(iteration)
        reviews = await self._get_json(
            f"{self._repo_path}/pulls/{pull_number}/reviews", per_page=100
        )
        if any(marker in (r.get("body") or "") for r in reviews):
            self._logger.info("review_skipped", pull_number=pull_number, iteration=iteration)
            return _dump({
                "skipped": True,
                "reason": "Bot review already exists on this PR.",
                "pull_number": pull_number,
            })

        response = await self._request(
            "POST",
            f"{self._repo_path}/pulls/{pull_number}/reviews",
            json_body={"body": f"{marker}\n{body}{REVIEW_FOOTER}", "event": "COMMENT"},
        )
        review = response.json()
        self._logger.info("review_submitted", pull_number=pull_number, iteration=iteration)
        return _dump({
            "id": review.get("id"),
            "html_url": review.get("html_url"),
            "state": review.get("state"),
            "submitted_at": review.get("submitted_at"),
        })

    async def create_sub_issue(
        self,
        parent_issue_number: int,
        title: str,
        body: str,
        labels: Optional[List[str]] = None,
    ) -> str:
        """Create an issue and link it under ``parent_issue_number``.

        Skipped when the parent already has a child with the same title.
        Linking uses the new issue's internal id, not its number.
        """
        children = await self._get_json(
            f"{self._repo_path}/issues/{parent_issue_number}/sub_issues", per_page=100
        )
        for child in children:
            if child.get("title") == title:
                self._logger.info(
                    "sub_issue_skipped",
                    parent_issue_number=parent_issue_number,
                    number=child.get("number"),
                )
                return _dump({
                    "skipped": True,
                    "reason": f"Sub-issue #{child.get('number')} with this title already exists.",
                    "number": child.get("number"),
                    "parent_issue_number": parent_issue_number,
                })

        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        response = await self._request("POST", f"{self._repo_path}/issues", json_body=payload)
        issue = response.json()

        await self._request(
            "POST",
            f"{self._repo_path}/issues/{parent_issue_number}/sub_issues",
            json_body={"sub_issue_id": issue["id"]},
        )
        self._logger.info(
            "sub_issue_created",
            parent_issue_number=parent_issue_number,
            number=issue.get("number"),
        )
        return _dump({
            "id": issue["id"],
            "number": issue.get("number"),
            "title": issue.get("title", title),
            "html_url": issue.get("html_url"),
            "parent_issue_number": parent_issue_number,
        })


def _issue_summary(issue: Dict[str, Any]) -> Dict[str, Any]:
    labels = issue.get("labels") or []
    return {
        "id": issue.get("id"),
        "number": issue.get("number"),
        "title": issue.get("title", ""),
        "body": issue.get("body") or "(no description)",
        "state": issue.get("state"),
        "labels": [
            label if isinstance(label, str) else label.get("name", "")
            for label in labels
        ],
    }


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text[:200]


__all__ = [
    "ANALYSIS_COMMENT_MARKER",
    "GitHubCodeHost",
    "REVIEW_FOOTER",
    "REVIEW_MARKER",
    "aggregate_check_runs",
    "review_marker",
]
