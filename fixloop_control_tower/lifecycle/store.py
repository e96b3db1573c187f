"""In-memory run store.

Implements RunStoreProtocol. Records are copied on the way in and out so
callers never share mutable state with the store.
"""

import asyncio
from typing import Dict, List, Optional

from fixloop_protocols import RunRecord, RunStatus


class InMemoryRunStore:
    """Process-lifetime RunStoreProtocol implementation."""

    def __init__(self) -> None:
        self._records: Dict[str, RunRecord] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: RunRecord) -> None:
        async with self._lock:
            self._records[record.id] = record.copy()

    async def update(self, record: RunRecord) -> None:
        async with self._lock:
            existing = self._records.get(record.id)
            # Terminal records are immutable
            if existing is not None and existing.is_terminal:
                return
            self._records[record.id] = record.copy()

    async def get_by_id(self, run_id: str) -> Optional[RunRecord]:
        async with self._lock:
            record = self._records.get(run_id)
            return record.copy() if record else None

    async def list(self, status: Optional[RunStatus] = None) -> List[RunRecord]:
        async with self._lock:
            records = [
                r.copy() for r in self._records.values()
                if status is None or r.status is status
            ]
        return sorted(records, key=lambda r: r.started_at, reverse=True)


__all__ = ["InMemoryRunStore"]
