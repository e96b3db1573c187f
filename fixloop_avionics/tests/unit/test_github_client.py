"""Unit tests for GitHubCodeHost.

Covers:
- Reads (issue, tree listing, file content, diff, open proposal lookup)
- Sub-issues (children, parent, linked creation)
- Idempotent writes (comment, branch, file, pull request, review)
- Retry behavior and error conversion
"""

import base64
import json

import pytest

from fixloop_avionics.github.client import (
    ANALYSIS_COMMENT_MARKER,
    REVIEW_FOOTER,
    REVIEW_MARKER,
    review_marker,
)
from fixloop_protocols import ExternalResourceError

REPO = "/repos/acme/widgets"


def b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def body_of(request):
    return json.loads(request.content)


def add_tree(github_api, branch, entries, truncated=False):
    github_api.add("GET", f"{REPO}/git/ref/heads/{branch}", (200, {"object": {"sha": "c0ffee"}}))
    github_api.add("GET", f"{REPO}/git/commits/c0ffee", (200, {"tree": {"sha": "t1"}}))
    github_api.add(
        "GET", f"{REPO}/git/trees/t1", (200, {"tree": entries, "truncated": truncated})
    )


class TestReads:
    """Read operations."""

    @pytest.mark.asyncio
    async def test_fetch_issue_includes_comments(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/42", (200, {
            "number": 42,
            "title": "Crash on empty input",
            "body": "Steps...",
            "state": "open",
            "labels": [{"name": "bug"}],
            "user": {"login": "reporter"},
        }))
        github_api.add("GET", f"{REPO}/issues/42/comments", (200, [
            {"user": {"login": "maintainer"}, "body": "Confirmed", "created_at": "2024-01-01"},
        ]))

        result = json.loads(await code_host.fetch_issue(42))

        assert result["title"] == "Crash on empty input"
        assert result["labels"] == ["bug"]
        assert result["comments"][0]["body"] == "Confirmed"

    @pytest.mark.asyncio
    async def test_requests_carry_token(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/1", (200, {"number": 1}))
        github_api.add("GET", f"{REPO}/issues/1/comments", (200, []))

        await code_host.fetch_issue(1)

        assert github_api.requests[0].headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_list_files_filters_by_path(self, code_host, github_api):
        add_tree(github_api, "main", [
            {"path": "src", "type": "tree"},
            {"path": "src/app.py", "type": "blob"},
            {"path": "src/util.py", "type": "blob"},
            {"path": "README.md", "type": "blob"},
        ])

        result = json.loads(await code_host.list_files("src"))

        assert result["files"] == ["src/app.py", "src/util.py"]
        assert result["branch"] == "main"
        assert "warning" not in result

    @pytest.mark.asyncio
    async def test_list_files_warns_on_truncated_tree(self, code_host, github_api):
        add_tree(github_api, "dev", [{"path": "a.py", "type": "blob"}], truncated=True)

        result = json.loads(await code_host.list_files(branch="dev"))

        assert result["files"] == ["a.py"]
        assert "truncated" in result["warning"]

    @pytest.mark.asyncio
    async def test_read_file_decodes_content(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/contents/src/app.py", (200, {
            "type": "file", "sha": "abc", "content": b64("print('hi')\n"),
        }))

        result = json.loads(await code_host.read_file("src/app.py", branch="dev"))

        assert result["content"] == "print('hi')\n"
        assert github_api.requests[0].url.params["ref"] == "dev"

    @pytest.mark.asyncio
    async def test_read_file_truncates_long_files(self, code_host, github_api):
        text = "\n".join(f"line {i}" for i in range(600))
        github_api.add("GET", f"{REPO}/contents/big.txt", (200, {
            "type": "file", "sha": "abc", "content": b64(text),
        }))

        result = json.loads(await code_host.read_file("big.txt"))

        assert result["truncated"] is True
        assert result["total_lines"] == 600
        assert len(result["content"].split("\n")) == 500

    @pytest.mark.asyncio
    async def test_read_file_rejects_directory(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/contents/src", (200, [{"path": "src/app.py"}]))

        with pytest.raises(ExternalResourceError, match="directory"):
            await code_host.read_file("src")

    @pytest.mark.asyncio
    async def test_get_diff_requests_diff_media_type(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls/7", (200, "diff --git a/x b/x\n"))

        diff = await code_host.get_diff(7)

        assert diff.startswith("diff --git")
        assert github_api.requests[0].headers["Accept"] == "application/vnd.github.v3.diff"

    @pytest.mark.asyncio
    async def test_get_diff_truncates_with_note(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls/7", (200, "x" * 1500))

        diff = await code_host.get_diff(7)

        assert diff.startswith("x" * 1000)
        assert diff.endswith("\n\n... (diff truncated at 1000 characters, total: 1500)")

    @pytest.mark.asyncio
    async def test_find_open_proposal(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls", (200, [{"number": 12}]))

        assert await code_host.find_open_proposal("fix/issue-42") == 12
        params = github_api.requests[0].url.params
        assert params["head"] == "acme:fix/issue-42"
        assert params["state"] == "open"

    @pytest.mark.asyncio
    async def test_find_open_proposal_none(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls", (200, []))

        assert await code_host.find_open_proposal("fix/issue-42") is None


class TestWrites:
    """Idempotent write operations."""

    @pytest.mark.asyncio
    async def test_comment_skipped_when_marker_present(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/42/comments", (200, [
            {"body": f"{ANALYSIS_COMMENT_MARKER}\nEarlier analysis"},
        ]))

        result = json.loads(await code_host.comment_on_issue(42, "New analysis"))

        assert result["skipped"] is True
        assert github_api.calls("POST", f"{REPO}/issues/42/comments") == []

    @pytest.mark.asyncio
    async def test_comment_body_is_marked(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/42/comments", (200, []))
        github_api.add("POST", f"{REPO}/issues/42/comments", (201, {"id": 5, "html_url": "u"}))

        result = json.loads(await code_host.comment_on_issue(42, "Analysis"))

        assert result["id"] == 5
        posted = body_of(github_api.calls("POST", f"{REPO}/issues/42/comments")[0])
        assert posted["body"] == f"{ANALYSIS_COMMENT_MARKER}\nAnalysis"

    @pytest.mark.asyncio
    async def test_create_branch_skipped_when_exists(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/git/ref/heads/fix/issue-42", (200, {"object": {"sha": "1"}}))

        result = json.loads(await code_host.create_branch("fix/issue-42"))

        assert result["skipped"] is True
        assert github_api.calls("POST", f"{REPO}/git/refs") == []

    @pytest.mark.asyncio
    async def test_create_branch_from_base_sha(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/git/ref/heads/main", (200, {"object": {"sha": "base-sha"}}))
        github_api.add("POST", f"{REPO}/git/refs", (201, {"ref": "refs/heads/fix/issue-42"}))

        result = json.loads(await code_host.create_branch("fix/issue-42"))

        assert result["sha"] == "base-sha"
        posted = body_of(github_api.calls("POST", f"{REPO}/git/refs")[0])
        assert posted == {"ref": "refs/heads/fix/issue-42", "sha": "base-sha"}

    @pytest.mark.asyncio
    async def test_create_new_file_sends_no_sha(self, code_host, github_api):
        github_api.add("PUT", f"{REPO}/contents/src/new.py", (201, {
            "content": {"sha": "s1", "html_url": "u"}, "commit": {"sha": "c1"},
        }))

        result = json.loads(
            await code_host.create_or_update_file("src/new.py", "x = 1\n", "Add new.py", "fix/a")
        )

        assert result["commit_sha"] == "c1"
        posted = body_of(github_api.calls("PUT", f"{REPO}/contents/src/new.py")[0])
        assert "sha" not in posted
        assert base64.b64decode(posted["content"]).decode() == "x = 1\n"
        assert posted["branch"] == "fix/a"

    @pytest.mark.asyncio
    async def test_update_file_sends_existing_sha(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/contents/src/app.py", (200, {"type": "file", "sha": "old"}))
        github_api.add("PUT", f"{REPO}/contents/src/app.py", (200, {
            "content": {"sha": "new"}, "commit": {"sha": "c2"},
        }))

        await code_host.create_or_update_file("src/app.py", "y = 2\n", "Update", "fix/a")

        posted = body_of(github_api.calls("PUT", f"{REPO}/contents/src/app.py")[0])
        assert posted["sha"] == "old"

    @pytest.mark.asyncio
    async def test_pull_request_skipped_when_open_one_exists(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls", (200, [{"number": 9, "html_url": "u"}]))

        result = json.loads(await code_host.create_pull_request("Fix", "Body", "fix/a"))

        assert result["skipped"] is True
        assert result["number"] == 9
        assert github_api.calls("POST", f"{REPO}/pulls") == []

    @pytest.mark.asyncio
    async def test_pull_request_created(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls", (200, []))
        github_api.add("POST", f"{REPO}/pulls", (201, {"number": 10, "state": "open"}))

        result = json.loads(await code_host.create_pull_request("Fix", "Body", "fix/a", "dev"))

        assert result["number"] == 10
        posted = body_of(github_api.calls("POST", f"{REPO}/pulls")[0])
        assert posted["base"] == "dev"

    @pytest.mark.asyncio
    async def test_review_posted_as_comment_with_iteration_marker(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls/7/reviews", (200, [
            {"body": f"{review_marker(1)}\nFirst pass"},
        ]))
        github_api.add("POST", f"{REPO}/pulls/7/reviews", (200, {"id": 3}))

        await code_host.submit_review(7, "Looks close", iteration=2)

        posted = body_of(github_api.calls("POST", f"{REPO}/pulls/7/reviews")[0])
        assert posted["event"] == "COMMENT"
        assert posted["body"].startswith("<!-- fixloop-review-iter-2 -->\nLooks close")
        assert posted["body"].endswith(REVIEW_FOOTER)

    @pytest.mark.asyncio
    async def test_review_skipped_for_same_marker(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/pulls/7/reviews", (200, [
            {"body": f"{REVIEW_MARKER}\nAlready reviewed"},
        ]))

        result = json.loads(await code_host.submit_review(7, "Again"))

        assert result["skipped"] is True
        assert github_api.calls("POST", f"{REPO}/pulls/7/reviews") == []


class TestSubIssues:
    """Sub-issue reads and linking."""

    @pytest.mark.asyncio
    async def test_fetch_sub_issues(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/42/sub_issues", (200, [
            {"id": 901, "number": 43, "title": "Part one", "body": None,
             "state": "open", "labels": [{"name": "bug"}]},
        ]))

        result = json.loads(await code_host.fetch_sub_issues(42))

        assert result == [{
            "id": 901,
            "number": 43,
            "title": "Part one",
            "body": "(no description)",
            "state": "open",
            "labels": ["bug"],
        }]
        assert github_api.requests[0].url.params["per_page"] == "100"

    @pytest.mark.asyncio
    async def test_parent_issue(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/43/sub_issues/parent", (200, {
            "id": 900, "number": 42, "title": "Epic", "body": "All parts", "state": "open",
        }))

        result = json.loads(await code_host.get_parent_issue(43))

        assert result["parent"]["number"] == 42
        assert result["parent"]["body"] == "All parts"

    @pytest.mark.asyncio
    async def test_top_level_issue_has_no_parent(self, code_host, github_api):
        result = json.loads(await code_host.get_parent_issue(42))
        assert result == {"parent": None}

    @pytest.mark.asyncio
    async def test_create_sub_issue_links_by_id(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/42/sub_issues", (200, []))
        github_api.add("POST", f"{REPO}/issues", (201, {
            "id": 987654, "number": 44, "title": "Follow-up",
            "html_url": "https://github.com/acme/widgets/issues/44",
        }))
        github_api.add("POST", f"{REPO}/issues/42/sub_issues", (201, {"id": 900}))

        result = json.loads(
            await code_host.create_sub_issue(42, "Follow-up", "Details", labels=["bug"])
        )

        created = github_api.calls("POST", f"{REPO}/issues")[0]
        assert body_of(created) == {"title": "Follow-up", "body": "Details", "labels": ["bug"]}
        link = github_api.calls("POST", f"{REPO}/issues/42/sub_issues")[0]
        assert body_of(link) == {"sub_issue_id": 987654}
        assert result["number"] == 44
        assert result["parent_issue_number"] == 42

    @pytest.mark.asyncio
    async def test_create_sub_issue_without_labels(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/42/sub_issues", (200, []))
        github_api.add("POST", f"{REPO}/issues", (201, {"id": 5, "number": 45}))
        github_api.add("POST", f"{REPO}/issues/42/sub_issues", (201, {}))

        await code_host.create_sub_issue(42, "Follow-up", "Details")

        created = github_api.calls("POST", f"{REPO}/issues")[0]
        assert "labels" not in body_of(created)

    @pytest.mark.asyncio
    async def test_create_sub_issue_skipped_for_same_title(self, code_host, github_api):
        github_api.add("GET", f"{REPO}/issues/42/sub_issues", (200, [
            {"id": 901, "number": 43, "title": "Follow-up"},
        ]))

        result = json.loads(await code_host.create_sub_issue(42, "Follow-up", "Details"))

        assert result["skipped"] is True
        assert result["number"] == 43
        assert github_api.calls("POST", f"{REPO}/issues") == []


class TestRetries:
    """Retry and error conversion on HTTP failures."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, code_host, github_api, recorded_sleeps):
        github_api.add(
            "GET", f"{REPO}/pulls",
            (503, {"message": "unavailable"}),
            (200, [{"number": 4}]),
        )

        assert await code_host.find_open_proposal("fix/a") == 4
        assert recorded_sleeps == [0.1]

    @pytest.mark.asyncio
    async def test_fatal_status_is_not_retried(self, code_host, github_api, recorded_sleeps):
        github_api.add("GET", f"{REPO}/pulls/7", (403, {"message": "Forbidden"}))

        with pytest.raises(ExternalResourceError) as exc_info:
            await code_host.get_diff(7)

        assert exc_info.value.status_code == 403
        assert "Forbidden" in str(exc_info.value)
        assert f"{REPO}/pulls/7" in str(exc_info.value)
        assert len(github_api.requests) == 1
        assert recorded_sleeps == []

    @pytest.mark.asyncio
    async def test_exhausted_retries_convert_last_error(self, code_host, github_api, recorded_sleeps):
        github_api.add("GET", f"{REPO}/pulls/7", (502, {"message": "Bad Gateway"}))

        with pytest.raises(ExternalResourceError) as exc_info:
            await code_host.get_diff(7)

        assert exc_info.value.status_code == 502
        assert len(github_api.requests) == 3
        assert recorded_sleeps == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_retry_after_header_overrides_delay(self, code_host, github_api, recorded_sleeps):
        github_api.add(
            "GET", f"{REPO}/pulls",
            (429, {"message": "rate limited"}, {"retry-after": "2"}),
            (200, []),
        )

        assert await code_host.find_open_proposal("fix/a") is None
        assert recorded_sleeps == [2.0]
