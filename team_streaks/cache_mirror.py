"""Local cache mirror — best-effort offline snapshot of remote state.

The mirror is always subordinate to the record store: it is overwritten
after successful remote writes and read at startup before remote data
arrives, never the other way round. The ``*_async`` methods flush through
``run_in_executor`` so async callers never block the event loop on disk.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

from .codec import TeamMember

_MISSING = object()


class LocalCacheMirror:
    """Key → JSON blob store persisted as a single file."""

    def __init__(self, path: str | Path, logger: logging.Logger | None = None) -> None:
        self._path = Path(path)
        self._logger = logger or logging.getLogger("streaks.cache")
        self._lock = threading.Lock()
        self._data: dict[str, Any] = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self._logger.warning("Ignoring unreadable cache %s: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            self._logger.warning("Ignoring cache %s: top level is not an object", self._path)
            return {}
        return data

    def _write(self) -> bool:
        tmp: str | None = None
        try:
            payload = json.dumps(self._data, ensure_ascii=False, sort_keys=True)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".cache-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, self._path)
            return True
        except (OSError, TypeError, ValueError) as e:
            self._logger.warning("Cache write to %s failed: %s", self._path, e)
            if tmp is not None and os.path.exists(tmp):
                os.unlink(tmp)
            return False

    def _put(self, key: str, value: Any) -> bool:
        with self._lock:
            previous = self._data.get(key, _MISSING)
            self._data[key] = value
            if self._write():
                return True
            # Keep memory consistent with the last good file
            if previous is _MISSING:
                self._data.pop(key, None)
            else:
                self._data[key] = previous
            return False

    async def _in_executor(self, func, *args) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def load(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def store(self, key: str, value: Any) -> bool:
        """Replace *key*'s blob and flush. Returns False if the flush failed."""
        return self._put(key, value)

    async def store_async(self, key: str, value: Any) -> bool:
        return await self._in_executor(self.store, key, value)

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return True
            del self._data[key]
            return self._write()

    async def delete_async(self, key: str) -> bool:
        return await self._in_executor(self.delete, key)

    def keys(self) -> list[str]:
        return sorted(self._data)

    # ══════════════════════════════════════════════════════════
    #  Member snapshot
    # ══════════════════════════════════════════════════════════

    def load_members(self) -> list[TeamMember]:
        """Cached roster, or [] when nothing usable is stored."""
        members: list[TeamMember] = []
        for raw in self.load("members", []):
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            members.append(TeamMember(
                name=raw["name"],
                emoji=raw.get("emoji", "🙂"),
                quotesGoal=int(raw.get("quotesGoal", 1)),
                salesWTDGoal=int(raw.get("salesWTDGoal", 1)),
                salesMTDGoal=int(raw.get("salesMTDGoal", 1)),
                sortIndex=int(raw.get("sortIndex", 0)),
            ))
        return members

    def store_members(self, members: list[TeamMember]) -> bool:
        return self.store("members", [
            {
                "name": m.name,
                "emoji": m.emoji,
                "quotesGoal": m.quotesGoal,
                "salesWTDGoal": m.salesWTDGoal,
                "salesMTDGoal": m.salesMTDGoal,
                "sortIndex": m.sortIndex,
            }
            for m in members
        ])

    async def store_members_async(self, members: list[TeamMember]) -> bool:
        return await self._in_executor(self.store_members, members)


def merge_members(cached: list[TeamMember], fetched: list[TeamMember]) -> list[TeamMember]:
    """Overlay fetched members onto cached ones without dropping anyone.

    Fetched goals and sort order win; a fetched emoji wins only when it is
    non-blank. Members present only in the cache are kept, since removal
    happens through an explicit delete. Neither input list is modified.
    """
    by_name: dict[str, TeamMember] = {m.name.strip(): m for m in cached}
    for member in fetched:
        key = member.name.strip()
        existing = by_name.get(key)
        if existing is None:
            by_name[key] = replace(member)
            continue
        by_name[key] = replace(
            existing,
            emoji=member.emoji if member.emoji.strip() else existing.emoji,
            quotesGoal=member.quotesGoal,
            salesWTDGoal=member.salesWTDGoal,
            salesMTDGoal=member.salesMTDGoal,
            sortIndex=member.sortIndex,
        )
    return sorted(by_name.values(), key=lambda m: m.sortIndex)
