"""Service orchestrator — StreakSyncApp.

config → store init → cache mirror → repository → engine → coordinator →
optional status server. Composition happens here so every component stays
an explicit, constructible object.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from . import __version__
from .cache_mirror import LocalCacheMirror
from .codec import Card
from .config import SyncConfig, load_config
from .database import SqliteRecordStore
from .fetch_coordinator import FetchCoordinator
from .memory_store import MemoryRecordStore
from .records import RecordStore
from .repository import TeamRepository
from .status_server import StatusServer
from .streak_engine import StreakEngine


class StreakSyncApp:
    """Top-level application orchestrator."""

    def __init__(self, config_path: str | None = None, config: SyncConfig | None = None) -> None:
        if config_path is None and config is None:
            raise ValueError("StreakSyncApp needs a config path or a SyncConfig")
        self.config_path = Path(config_path) if config_path else None
        self.logger = logging.getLogger("streaks")

        # Components (initialized in start())
        self.config: SyncConfig | None = config
        self.store: RecordStore | None = None
        self.cache: LocalCacheMirror | None = None
        self.repository: TeamRepository | None = None
        self.engine: StreakEngine | None = None
        self.coordinator: FetchCoordinator[Card] | None = None
        self.status_server: StatusServer | None = None

        self._start_time: float | None = None
        self._running = False

    @property
    def uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Build and wire every component."""
        self.logger.info("Starting team-streaks %s...", __version__)
        self._start_time = time.time()

        # 1. Load and validate config
        if self.config is None:
            self.config = load_config(str(self.config_path))
        config = self.config

        # 2. Record store
        if config.store.backend == "sqlite":
            store = SqliteRecordStore(config.store.path, logging.getLogger("streaks.store"))
            await store.initialize()
            self.store = store
            self.logger.info("SQLite store initialized: %s", config.store.path)
        else:
            self.store = MemoryRecordStore(logging.getLogger("streaks.store"))
            self.logger.info("In-memory store initialized")

        # 3. Local cache mirror
        if config.cache.enabled:
            self.cache = LocalCacheMirror(config.cache.path, logging.getLogger("streaks.cache"))
            cached = self.cache.load_members()
            self.logger.info("Cache mirror loaded: %d cached member(s)", len(cached))

        # 4. Domain components
        self.repository = TeamRepository(
            self.store, self.cache, logging.getLogger("streaks.repository"),
        )
        self.engine = StreakEngine(
            self.store,
            config,
            logger=logging.getLogger("streaks.engine"),
            cache=self.cache,
        )
        self.coordinator = FetchCoordinator(
            self.repository.fetch_cards,
            config.coordinator,
            logging.getLogger("streaks.coordinator"),
        )

        # 5. Status endpoint
        if config.status.enabled:
            self.status_server = StatusServer(self, config.status.host, config.status.port)
            await self.status_server.start()

        self._running = True
        self.logger.info("team-streaks started")

    async def stop(self) -> None:
        """Tear down in reverse order. Safe to call more than once."""
        if self.coordinator is not None:
            await self.coordinator.close()
        if self.status_server is not None:
            await self.status_server.stop()
            self.status_server = None
        if self._running:
            self.logger.info("team-streaks stopped")
        self._running = False
