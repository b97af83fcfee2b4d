"""In-process RecordStore used for tests and offline runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .errors import ConflictError, NotFoundError
from .records import ChangeNotifier, Record


class MemoryRecordStore(ChangeNotifier):
    """Dict-backed record store with integer change tags.

    Every call yields to the event loop once (optionally after *latency*
    seconds) so concurrent callers interleave the way remote clients do.
    """

    def __init__(self, logger: logging.Logger | None = None, latency: float = 0.0) -> None:
        super().__init__(logger or logging.getLogger("streaks.store"))
        self._records: dict[str, Record] = {}
        self._versions: dict[str, int] = {}
        self._latency = latency

        # Call counters (tests assert on these)
        self.fetch_count = 0
        self.query_count = 0
        self.save_count = 0
        self.delete_count = 0

    async def _io(self) -> None:
        await asyncio.sleep(self._latency)

    async def fetch(self, record_id: str) -> Record:
        self.fetch_count += 1
        await self._io()
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(record_id)
        return record.copy()

    async def query(
        self, record_type: str, field: str | None = None, value: Any = None,
    ) -> list[Record]:
        self.query_count += 1
        await self._io()
        return [
            r.copy()
            for r in self._records.values()
            if r.record_type == record_type and (field is None or r.fields.get(field) == value)
        ]

    async def save(self, record: Record, conditional: bool = False) -> Record:
        self.save_count += 1
        await self._io()
        existing = self._records.get(record.record_id)
        if conditional:
            if existing is None and record.change_tag is not None:
                raise NotFoundError(record.record_id)
            if existing is not None and existing.change_tag != record.change_tag:
                raise ConflictError(record.record_id, record.change_tag, existing.change_tag)

        version = self._versions.get(record.record_id, 0) + 1
        self._versions[record.record_id] = version
        stored = record.copy()
        stored.change_tag = str(version)
        self._records[record.record_id] = stored
        self._notify(stored.record_type, stored.record_id)
        return stored.copy()

    async def delete(self, record_id: str) -> None:
        self.delete_count += 1
        await self._io()
        record = self._records.pop(record_id, None)
        if record is None:
            raise NotFoundError(record_id)
        self._notify(record.record_type, record_id)

    def snapshot(self, record_id: str) -> Record | None:
        """Synchronous peek for tests and diagnostics."""
        record = self._records.get(record_id)
        return record.copy() if record else None

    def __len__(self) -> int:
        return len(self._records)
