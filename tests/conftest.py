"""Shared test fixtures for team-streaks."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio

from team_streaks.cache_mirror import LocalCacheMirror
from team_streaks.codec import TEAM_MEMBER_TYPE
from team_streaks.config import SyncConfig
from team_streaks.database import SqliteRecordStore
from team_streaks.memory_store import MemoryRecordStore
from team_streaks.records import Record
from team_streaks.streak_engine import StreakEngine


# ── Minimal config dict matching SyncConfig schema ───────────

def make_config_dict(**overrides) -> dict:
    """Build a valid config dict with sensible test defaults."""
    base = {
        "store": {"backend": "memory", "path": ":memory:"},
        "cache": {"enabled": False},
        "periods": {
            "timezone": "UTC",
            "first_weekday": "monday",
            "minimum_days_in_first_week": 4,
        },
        "retry": {"max_retries": 6, "base_delay_seconds": 0.1},
        "trophies": {"milestones": [1, 3, 7, 14, 30]},
        "coordinator": {"debounce_seconds": 0.05, "propagate_errors": True},
        "status": {"enabled": False},
        "members": ["D.J.", "Ron", "Deanna", "Dimitri"],
    }
    base.update(overrides)
    return base


async def seed_member(store: Any, name: str, **fields) -> Record:
    """Write a bare ``member-<name>`` record with *fields*."""
    record = Record(
        record_type=TEAM_MEMBER_TYPE,
        record_id=f"member-{name}",
        fields={"name": name, **fields},
    )
    return await store.save(record)


class FakeClock:
    """Settable replacement for ``now_utc``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingSleep:
    """Async sleep stand-in that records delays and only yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def sample_config_dict() -> dict:
    """Return a config dict suitable for tests."""
    return make_config_dict()


@pytest.fixture
def sample_config(sample_config_dict: dict) -> SyncConfig:
    """Return a parsed SyncConfig."""
    return SyncConfig(**sample_config_dict)


@pytest.fixture
def clock() -> FakeClock:
    """Clock pinned to Wednesday 2024-03-13 (2024-W11)."""
    return FakeClock(datetime(2024, 3, 13, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def memory_store() -> MemoryRecordStore:
    return MemoryRecordStore(logging.getLogger("test.store"))


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    """Return a temporary SQLite database path."""
    return str(tmp_path / "test_streaks.db")


@pytest_asyncio.fixture
async def sqlite_store(tmp_db_path: str) -> AsyncGenerator[SqliteRecordStore, None]:
    """Provide an initialized SQLite store with temp file."""
    store = SqliteRecordStore(tmp_db_path, logging.getLogger("test.sqlite"))
    await store.initialize()
    yield store


@pytest.fixture
def cache(tmp_path: Path) -> LocalCacheMirror:
    return LocalCacheMirror(tmp_path / "cache.json", logging.getLogger("test.cache"))


@pytest.fixture
def engine(
    memory_store: MemoryRecordStore,
    sample_config: SyncConfig,
    clock: FakeClock,
    recording_sleep: RecordingSleep,
) -> StreakEngine:
    """StreakEngine over the in-memory store with a fixed clock."""
    return StreakEngine(
        memory_store,
        sample_config,
        logger=logging.getLogger("test.engine"),
        clock=clock,
        sleep=recording_sleep,
    )
