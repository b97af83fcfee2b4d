"""Fetch coalescing coordinator — one remote fetch per distinct name set.

Requests are normalised to a canonical key (trimmed, deduplicated, sorted
names joined with ``|``). A request whose key matches the in-flight fetch
joins it; anything else lands in the single pending batch, whose key is
replaced by the newest request. The pending batch starts after a quiet
debounce period, or immediately after the in-flight fetch completes if it
was queued behind one.

All state transitions run synchronously on the event loop, so the loop
itself is the serialization point; the only awaits are on the fetcher and
on the waiters' futures.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, Iterable, TypeVar

from .utils import preview

if TYPE_CHECKING:
    from .config import CoordinatorConfig

T = TypeVar("T")

KEY_SEPARATOR = "|"


class CoordinatorState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


def normalize_names(names: Iterable[str]) -> tuple[list[str], str]:
    """Return ``(sorted unique names, canonical key)``; blanks are dropped."""
    unique = sorted({n.strip() for n in names if n and n.strip()})
    return unique, KEY_SEPARATOR.join(unique)


@dataclass
class _Batch:
    key: str
    names: list[str]
    reason: str
    waiters: list[asyncio.Future] = field(default_factory=list)
    ready: bool = False


class FetchCoordinator(Generic[T]):
    """Debounces and deduplicates fetches for named data sets."""

    def __init__(
        self,
        fetcher: Callable[[list[str]], Awaitable[list[T]]],
        config: CoordinatorConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._config = config
        self._logger = logger or logging.getLogger("streaks.coordinator")

        self._in_flight: _Batch | None = None
        self._in_flight_task: asyncio.Task | None = None
        self._pending: _Batch | None = None
        self._debounce: asyncio.TimerHandle | None = None

        # Metrics counters (exposed to status_server)
        self.fetch_count: int = 0
        self.request_count: int = 0

    # ══════════════════════════════════════════════════════════
    #  Introspection
    # ══════════════════════════════════════════════════════════

    @property
    def state(self) -> CoordinatorState:
        if self._in_flight is not None:
            return CoordinatorState.IN_FLIGHT
        if self._pending is not None:
            return CoordinatorState.PENDING
        return CoordinatorState.IDLE

    @property
    def in_flight_key(self) -> str | None:
        return self._in_flight.key if self._in_flight else None

    @property
    def pending_key(self) -> str | None:
        return self._pending.key if self._pending else None

    # ══════════════════════════════════════════════════════════
    #  Public API
    # ══════════════════════════════════════════════════════════

    async def request_fetch(self, names: Iterable[str], reason: str = "unspecified") -> list[T]:
        """Return the fetch result for *names*, sharing it with overlapping callers."""
        self.request_count += 1
        normalized, key = normalize_names(names)
        if not normalized:
            self._log("skip", reason, normalized, "(empty names)")
            return []

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future = loop.create_future()

        if self._in_flight is not None and self._in_flight.key == key:
            self._log("join", reason, normalized)
            self._in_flight.waiters.append(waiter)
            return await waiter

        batch = self._pending
        if batch is None:
            batch = _Batch(key=key, names=normalized, reason=reason)
            self._pending = batch
        else:
            # Newest request's key wins; earlier waiters ride along
            batch.key, batch.names, batch.reason = key, normalized, reason
        batch.waiters.append(waiter)

        if self._in_flight is not None:
            self._log("queue", reason, normalized)
            batch.ready = True
        else:
            self._schedule(reason, normalized)
        return await waiter

    async def close(self) -> None:
        """Drop the debounce timer, cancel the in-flight fetch and all waiters."""
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        pending, self._pending = self._pending, None
        if pending:
            for waiter in pending.waiters:
                if not waiter.done():
                    waiter.cancel()
        in_flight, task = self._in_flight, self._in_flight_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        # A task cancelled before its first step never reaches its own cleanup
        self._in_flight = None
        self._in_flight_task = None
        if in_flight:
            for waiter in in_flight.waiters:
                if not waiter.done():
                    waiter.cancel()

    # ══════════════════════════════════════════════════════════
    #  State machine
    # ══════════════════════════════════════════════════════════

    def _schedule(self, reason: str, names: list[str]) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
        self._log("schedule", reason, names)
        loop = asyncio.get_running_loop()
        self._debounce = loop.call_later(self._config.debounce_seconds, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce = None
        if self._pending is not None:
            self._pending.ready = True
        self._start_pending_if_possible()

    def _start_pending_if_possible(self) -> None:
        if self._in_flight is not None:
            return
        batch = self._pending
        if batch is None or not batch.ready:
            return

        self._pending = None
        self._in_flight = batch
        self.fetch_count += 1
        self._log("start", batch.reason, batch.names)
        self._in_flight_task = asyncio.get_running_loop().create_task(self._run(batch))

    async def _run(self, batch: _Batch) -> None:
        error: Exception | None = None
        result: list[Any] = []
        try:
            result = await self._fetcher(batch.names)
        except asyncio.CancelledError:
            self._in_flight = None
            self._in_flight_task = None
            for waiter in batch.waiters:
                waiter.cancel()
            raise
        except Exception as e:
            self._logger.warning(
                "[coordinator] failed reason=%s names=%s: %s",
                batch.reason, preview(batch.names, self._config.preview_limit), e,
            )
            if self._config.propagate_errors:
                error = e

        self._in_flight = None
        self._in_flight_task = None
        self._log("complete", batch.reason, batch.names, f"count={len(result)}")

        for waiter in batch.waiters:
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(result)

        if self._pending is not None and self._pending.ready:
            self._start_pending_if_possible()

    def _log(self, action: str, reason: str, names: list[str], extra: str = "") -> None:
        self._logger.debug(
            "[coordinator] %s reason=%s count=%d names=%s %s",
            action, reason, len(names), preview(names, self._config.preview_limit), extra,
        )
