"""In-memory issue context store.

Implements IssueContextStoreProtocol. Entries are append-only and copied
on the way in and out. Search results never include entries for the
excluded (usually the current) issue, nor entries with no issue number.
"""

import asyncio
import copy
from dataclasses import replace
from typing import Callable, List, Optional

from fixloop_protocols import IssueContextEntry, IssueContextType


class InMemoryIssueContextStore:
    """Process-lifetime IssueContextStoreProtocol implementation."""

    def __init__(self) -> None:
        self._entries: List[IssueContextEntry] = []
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def add_entry(self, entry: IssueContextEntry) -> IssueContextEntry:
        async with self._lock:
            stored = replace(entry, id=self._next_id, files_touched=list(entry.files_touched))
            self._next_id += 1
            self._entries.append(stored)
            return copy.deepcopy(stored)

    async def entries_for_run(self, run_id: str) -> List[IssueContextEntry]:
        return await self._select(lambda e: e.run_id == run_id)

    async def entries_for_issue(self, repo: str, issue_number: int) -> List[IssueContextEntry]:
        return await self._select(
            lambda e: e.repo == repo and e.issue_number == issue_number
        )

    async def search_by_files(
        self,
        repo: str,
        files: List[str],
        limit: int = 20,
        exclude_issue: Optional[int] = None,
    ) -> List[IssueContextEntry]:
        """Entries of other issues that touched at least one of ``files``."""
        wanted = set(files)
        matches = await self._select(
            lambda e: e.repo == repo
            and e.issue_number not in (None, exclude_issue)
            and bool(wanted.intersection(e.files_touched))
        )
        return matches[:limit]

    async def search_recent(
        self,
        repo: str,
        limit: int = 10,
        exclude_issue: Optional[int] = None,
    ) -> List[IssueContextEntry]:
        """Outcome entries of other issues, most recent first."""
        outcomes = await self._select(
            lambda e: e.repo == repo
            and e.entry_type is IssueContextType.OUTCOME
            and e.issue_number not in (None, exclude_issue)
        )
        return list(reversed(outcomes[-limit:])) if limit > 0 else []

    async def _select(
        self, predicate: Callable[[IssueContextEntry], bool]
    ) -> List[IssueContextEntry]:
        async with self._lock:
            return [copy.deepcopy(e) for e in self._entries if predicate(e)]


__all__ = ["InMemoryIssueContextStore"]
