"""Unit tests for the in-memory issue context store.

Covers:
- Id assignment and copy-on-read
- Lookup by run and by issue
- File-overlap and recent-outcome search
"""

import pytest

from fixloop_control_tower import InMemoryIssueContextStore
from fixloop_protocols import IssueContextEntry, IssueContextStoreProtocol, IssueContextType

REPO = "acme/widgets"


def note(issue_number, entry_type=IssueContextType.ANALYSIS_BRIEF, files=(), run_id="run-1", repo=REPO):
    return IssueContextEntry(
        repo=repo,
        issue_number=issue_number,
        entry_type=entry_type,
        actor="analysis",
        content=f"note on #{issue_number}",
        run_id=run_id,
        files_touched=list(files),
    )


def outcome(issue_number, run_id):
    return note(issue_number, IssueContextType.OUTCOME, run_id=run_id)


class TestStorage:
    """Adding and reading entries."""

    @pytest.mark.asyncio
    async def test_ids_are_assigned_in_order(self):
        store = InMemoryIssueContextStore()

        first = await store.add_entry(note(1))
        second = await store.add_entry(note(2))

        assert (first.id, second.id) == (1, 2)

    @pytest.mark.asyncio
    async def test_entries_are_copied(self):
        store = InMemoryIssueContextStore()
        entry = note(1, files=["a.py"])
        await store.add_entry(entry)

        entry.files_touched.append("b.py")
        read = (await store.entries_for_run("run-1"))[0]
        read.files_touched.append("c.py")

        assert (await store.entries_for_run("run-1"))[0].files_touched == ["a.py"]

    @pytest.mark.asyncio
    async def test_entries_for_run(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(note(1, run_id="run-1"))
        await store.add_entry(note(1, run_id="run-2"))

        entries = await store.entries_for_run("run-2")

        assert [e.run_id for e in entries] == ["run-2"]

    @pytest.mark.asyncio
    async def test_entries_for_issue_are_scoped_by_repo(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(note(1))
        await store.add_entry(note(1, repo="acme/gadgets"))
        await store.add_entry(note(2))

        entries = await store.entries_for_issue(REPO, 1)

        assert [(e.repo, e.issue_number) for e in entries] == [(REPO, 1)]

    def test_implements_protocol(self):
        assert isinstance(InMemoryIssueContextStore(), IssueContextStoreProtocol)


class TestSearch:
    """Searching notes of other issues."""

    @pytest.mark.asyncio
    async def test_search_by_files_needs_overlap(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(note(1, files=["src/a.py"]))
        await store.add_entry(note(2, files=["src/b.py"]))
        await store.add_entry(note(3, files=["src/a.py", "src/c.py"]))

        entries = await store.search_by_files(REPO, ["src/a.py"])

        assert [e.issue_number for e in entries] == [1, 3]

    @pytest.mark.asyncio
    async def test_search_by_files_excludes_current_issue(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(note(1, files=["src/a.py"]))
        await store.add_entry(note(2, files=["src/a.py"]))

        entries = await store.search_by_files(REPO, ["src/a.py"], exclude_issue=2)

        assert [e.issue_number for e in entries] == [1]

    @pytest.mark.asyncio
    async def test_search_by_files_limit(self):
        store = InMemoryIssueContextStore()
        for number in range(5):
            await store.add_entry(note(number, files=["src/a.py"]))

        assert len(await store.search_by_files(REPO, ["src/a.py"], limit=3)) == 3

    @pytest.mark.asyncio
    async def test_search_recent_returns_newest_outcomes_first(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(outcome(1, "run-1"))
        await store.add_entry(note(2))
        await store.add_entry(outcome(3, "run-3"))
        await store.add_entry(outcome(4, "run-4"))

        entries = await store.search_recent(REPO, limit=2)

        assert [e.issue_number for e in entries] == [4, 3]
        assert all(e.entry_type is IssueContextType.OUTCOME for e in entries)

    @pytest.mark.asyncio
    async def test_search_recent_excludes_current_issue(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(outcome(1, "run-1"))
        await store.add_entry(outcome(2, "run-2"))

        entries = await store.search_recent(REPO, exclude_issue=2)

        assert [e.issue_number for e in entries] == [1]

    @pytest.mark.asyncio
    async def test_search_recent_zero_limit(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(outcome(1, "run-1"))

        assert await store.search_recent(REPO, limit=0) == []

    @pytest.mark.asyncio
    async def test_search_skips_notes_without_issue(self):
        store = InMemoryIssueContextStore()
        await store.add_entry(note(None, files=["src/a.py"]))
        await store.add_entry(outcome(None, "run-9"))

        assert await store.search_by_files(REPO, ["src/a.py"], exclude_issue=2) == []
        assert await store.search_recent(REPO, exclude_issue=2) == []
