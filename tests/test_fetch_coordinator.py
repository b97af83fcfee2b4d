"""Tests for team_streaks.fetch_coordinator module."""

from __future__ import annotations

import asyncio
import logging

import pytest

from team_streaks.config import CoordinatorConfig
from team_streaks.fetch_coordinator import CoordinatorState, FetchCoordinator, normalize_names


class GatedFetcher:
    """Fetcher that blocks on an event and records every call."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.started_at: list[float] = []
        self.gate = asyncio.Event()
        self.gate.set()
        self.error: Exception | None = None
        self.active = 0
        self.max_active = 0

    async def __call__(self, names: list[str]) -> list[str]:
        self.calls.append(list(names))
        self.started_at.append(asyncio.get_running_loop().time())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.gate.wait()
            if self.error is not None:
                raise self.error
            return [f"card:{n}" for n in names]
        finally:
            self.active -= 1


async def wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


@pytest.fixture
def fetcher() -> GatedFetcher:
    return GatedFetcher()


@pytest.fixture
def coordinator(fetcher: GatedFetcher) -> FetchCoordinator:
    return FetchCoordinator(
        fetcher,
        CoordinatorConfig(debounce_seconds=0.05),
        logging.getLogger("test.coordinator"),
    )


class TestNormalizeNames:
    """Canonical request keys."""

    def test_sorted_unique(self):
        assert normalize_names(["B", "A", "B"]) == (["A", "B"], "A|B")

    def test_trims_and_drops_blanks(self):
        assert normalize_names([" Ron ", "", "  ", "D.J."]) == (["D.J.", "Ron"], "D.J.|Ron")

    def test_empty(self):
        assert normalize_names([]) == ([], "")


class TestCoalescing:
    """Overlapping requests share fetches."""

    async def test_permuted_requests_share_one_fetch(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        first, second = await asyncio.gather(
            coordinator.request_fetch(["A", "B"], reason="splash"),
            coordinator.request_fetch(["B", "A"], reason="refresh"),
        )
        assert fetcher.calls == [["A", "B"]]
        assert first == second == ["card:A", "card:B"]
        assert coordinator.fetch_count == 1
        assert coordinator.request_count == 2

    async def test_empty_names_skip_fetch(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        assert await coordinator.request_fetch([]) == []
        assert await coordinator.request_fetch(["", "  "]) == []
        assert fetcher.calls == []
        assert coordinator.state is CoordinatorState.IDLE

    async def test_debounce_newest_key_wins(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        """Requests inside one debounce window collapse to the latest name set."""
        first, second = await asyncio.gather(
            coordinator.request_fetch(["A"]),
            coordinator.request_fetch(["A", "C"]),
        )
        assert fetcher.calls == [["A", "C"]]
        assert first == second == ["card:A", "card:C"]

    async def test_each_request_rearms_debounce(self, fetcher: GatedFetcher):
        """Requests spaced inside the quiet period keep postponing the fetch."""
        coordinator = FetchCoordinator(fetcher, CoordinatorConfig(debounce_seconds=0.1))
        loop = asyncio.get_running_loop()
        tasks = []
        last_request_at = 0.0
        for names in (["A"], ["A", "B"], ["B"], ["A", "B"]):
            tasks.append(asyncio.create_task(coordinator.request_fetch(names)))
            await asyncio.sleep(0)
            last_request_at = loop.time()
            assert coordinator.state is CoordinatorState.PENDING
            assert fetcher.calls == []
            await asyncio.sleep(0.06)

        results = await asyncio.gather(*tasks)

        assert fetcher.calls == [["A", "B"]]
        assert fetcher.started_at[0] >= last_request_at + 0.1 - 0.01
        assert all(r == ["card:A", "card:B"] for r in results)

    async def test_pending_state_during_debounce(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        task = asyncio.create_task(coordinator.request_fetch(["A"]))
        await asyncio.sleep(0)
        assert coordinator.state is CoordinatorState.PENDING
        assert coordinator.pending_key == "A"
        assert await task == ["card:A"]
        assert coordinator.state is CoordinatorState.IDLE

    async def test_join_in_flight(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        fetcher.gate.clear()
        first = asyncio.create_task(coordinator.request_fetch(["A", "B"]))
        await wait_until(lambda: coordinator.state is CoordinatorState.IN_FLIGHT)

        second = asyncio.create_task(coordinator.request_fetch([" B", "A"]))
        await asyncio.sleep(0)
        assert coordinator.in_flight_key == "A|B"
        assert coordinator.pending_key is None

        fetcher.gate.set()
        assert await first == await second == ["card:A", "card:B"]
        assert len(fetcher.calls) == 1


class TestSerialization:
    """At most one fetch in flight."""

    async def test_queue_behind_in_flight(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        fetcher.gate.clear()
        first = asyncio.create_task(coordinator.request_fetch(["A"]))
        await wait_until(lambda: coordinator.state is CoordinatorState.IN_FLIGHT)

        second = asyncio.create_task(coordinator.request_fetch(["B"]))
        await asyncio.sleep(0.1)
        assert coordinator.in_flight_key == "A"
        assert coordinator.pending_key == "B"
        assert fetcher.calls == [["A"]]

        fetcher.gate.set()
        assert await first == ["card:A"]
        assert await second == ["card:B"]
        assert fetcher.calls == [["A"], ["B"]]
        assert fetcher.max_active == 1

    async def test_newest_pending_replaces_older(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        """Waiters queued behind a fetch all receive the newest pending result."""
        fetcher.gate.clear()
        first = asyncio.create_task(coordinator.request_fetch(["A"]))
        await wait_until(lambda: coordinator.state is CoordinatorState.IN_FLIGHT)

        second = asyncio.create_task(coordinator.request_fetch(["B"]))
        third = asyncio.create_task(coordinator.request_fetch(["C"]))
        await asyncio.sleep(0)
        assert coordinator.pending_key == "C"

        fetcher.gate.set()
        await first
        assert await second == await third == ["card:C"]
        assert fetcher.calls == [["A"], ["C"]]


class TestErrors:
    """Fetcher failures."""

    async def test_error_reaches_every_waiter(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        fetcher.error = RuntimeError("boom")
        results = await asyncio.gather(
            coordinator.request_fetch(["A"]),
            coordinator.request_fetch(["A"]),
            return_exceptions=True,
        )
        assert all(isinstance(r, RuntimeError) for r in results)
        assert coordinator.state is CoordinatorState.IDLE

    async def test_recovers_after_error(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        fetcher.error = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await coordinator.request_fetch(["A"])
        fetcher.error = None
        assert await coordinator.request_fetch(["A"]) == ["card:A"]

    async def test_swallowed_errors_return_empty(self, fetcher: GatedFetcher):
        coordinator = FetchCoordinator(
            fetcher, CoordinatorConfig(debounce_seconds=0.01, propagate_errors=False),
        )
        fetcher.error = RuntimeError("boom")
        assert await coordinator.request_fetch(["A"]) == []


class TestClose:
    """Shutdown cancels outstanding work."""

    async def test_close_cancels_waiters(self, coordinator: FetchCoordinator, fetcher: GatedFetcher):
        fetcher.gate.clear()
        first = asyncio.create_task(coordinator.request_fetch(["A"]))
        await wait_until(lambda: coordinator.state is CoordinatorState.IN_FLIGHT)
        second = asyncio.create_task(coordinator.request_fetch(["B"]))
        await asyncio.sleep(0)

        await coordinator.close()

        with pytest.raises(asyncio.CancelledError):
            await first
        with pytest.raises(asyncio.CancelledError):
            await second
        assert coordinator.state is CoordinatorState.IDLE

    async def test_close_idle_is_noop(self, coordinator: FetchCoordinator):
        await coordinator.close()
        assert coordinator.state is CoordinatorState.IDLE
