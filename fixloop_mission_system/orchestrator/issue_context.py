"""Issue context tools.

Actors leave short notes about the issue they work on (briefs, plans,
review feedback, CI results) and read back what earlier actors in the
same run wrote. The analysis actor can also look at what past runs did
on other issues, either by overlapping files or by recent outcomes.

Every run records an outcome note when it finishes, so later runs can
find it through ``search_past_issues``.

Usage:
    notes = IssueContextTools(store, "acme/widgets", run_id, issue_number=42)
    tools = [notes.save_tool(ActorKind.ANALYSIS), notes.get_tool(), notes.search_tool()]
    ...
    await notes.record_outcome(summary, iteration=2)
"""

from typing import Any, Dict, List, Optional

from fixloop_protocols import (
    ActorKind,
    IssueContextEntry,
    IssueContextStoreProtocol,
    IssueContextType,
    LoggerProtocol,
    Tool,
)
from fixloop_shared import get_current_logger, to_json

MAX_OUTCOME_CHARS = 10_000
DEFAULT_SEARCH_LIMIT = 10
OUTCOME_ACTOR = "supervisor:auto"


class IssueContextTools:
    """Issue note tools bound to one run of one repository."""

    def __init__(
        self,
        store: IssueContextStoreProtocol,
        repo: str,
        run_id: str,
        issue_number: Optional[int] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        self._store = store
        self._repo = repo
        self._run_id = run_id
        self._issue_number = issue_number
        self._logger = (logger or get_current_logger()).bind(
            component="issue_context", run_id=run_id
        )

    def save_tool(self, actor_kind: ActorKind) -> Tool:
        """``save_issue_context`` with the caller's actor kind filled in."""
        store = self._store

        async def save_issue_context(
            entry_type: str,
            content: str,
            files_touched: Optional[List[str]] = None,
            iteration: Optional[int] = None,
        ) -> str:
            entry = await store.add_entry(self._entry(
                IssueContextType(entry_type),
                actor_kind.value,
                content,
                files_touched=files_touched,
                iteration=iteration,
            ))
            return to_json({"saved": True, "id": entry.id, "entry_type": entry.entry_type.value})

        return Tool(
            "save_issue_context",
            save_issue_context,
            description="Save a note about this issue for later actors",
        )

    def get_tool(self) -> Tool:
        """``get_issue_context``: notes written during this run."""
        store = self._store
        run_id = self._run_id

        async def get_issue_context(entry_type: Optional[str] = None) -> str:
            wanted = IssueContextType(entry_type) if entry_type else None
            entries = [
                entry for entry in await store.entries_for_run(run_id)
                if wanted is None or entry.entry_type is wanted
            ]
            if not entries:
                return to_json({"entries": [], "message": "No context saved yet for this run."})
            return to_json({"entries": [entry.to_dict() for entry in entries]})

        return Tool(
            "get_issue_context",
            get_issue_context,
            description="Read notes earlier actors saved in this run",
        )

    def search_tool(self) -> Tool:
        """``search_past_issues``: notes from runs on other issues."""
        store = self._store
        repo = self._repo
        current = self._issue_number

        async def search_past_issues(
            files: Optional[List[str]] = None, limit: int = DEFAULT_SEARCH_LIMIT
        ) -> str:
            if files:
                entries = await store.search_by_files(
                    repo, files, limit=limit, exclude_issue=current
                )
            else:
                entries = await store.search_recent(repo, limit=limit, exclude_issue=current)
            return to_json({"past_issues": _group_by_issue(entries)})

        return Tool(
            "search_past_issues",
            search_past_issues,
            description="Find past issues that touched the same files, or recent outcomes",
        )

    async def record_outcome(self, summary: str, iteration: int) -> IssueContextEntry:
        """Store the run's final summary as an outcome note."""
        entry = await self._store.add_entry(self._entry(
            IssueContextType.OUTCOME,
            OUTCOME_ACTOR,
            summary[:MAX_OUTCOME_CHARS],
            iteration=iteration,
        ))
        self._logger.info(
            "outcome_recorded", issue_number=self._issue_number, entry_id=entry.id
        )
        return entry

    def _entry(
        self,
        entry_type: IssueContextType,
        actor: str,
        content: str,
        files_touched: Optional[List[str]] = None,
        iteration: Optional[int] = None,
    ) -> IssueContextEntry:
        return IssueContextEntry(
            repo=self._repo,
            issue_number=self._issue_number,
            entry_type=entry_type,
            actor=actor,
            content=content,
            run_id=self._run_id,
            files_touched=list(files_touched or []),
            iteration=iteration or 0,
        )


def _group_by_issue(entries: List[IssueContextEntry]) -> List[Dict[str, Any]]:
    """Group entries by issue number, keeping first-seen order."""
    grouped: Dict[Optional[int], List[Dict[str, Any]]] = {}
    for entry in entries:
        grouped.setdefault(entry.issue_number, []).append(entry.to_dict())
    return [
        {"issue_number": number, "entries": items}
        for number, items in grouped.items()
    ]


__all__ = ["IssueContextTools", "MAX_OUTCOME_CHARS", "OUTCOME_ACTOR"]
