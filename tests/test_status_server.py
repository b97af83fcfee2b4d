"""Tests for team_streaks.status_server module."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from aiohttp import test_utils

from team_streaks.config import SyncConfig
from team_streaks.fetch_coordinator import CoordinatorState
from team_streaks.status_server import StatusServer


@pytest.fixture
def mock_app(sample_config: SyncConfig) -> MagicMock:
    """Mock StreakSyncApp with counter-bearing components."""
    app = MagicMock()
    app.config = sample_config
    app.store = object()
    app.uptime_seconds = 12.34
    app.engine.writes = 5
    app.engine.conflicts = 2
    app.engine.failures = 1
    app.coordinator.request_count = 9
    app.coordinator.fetch_count = 4
    app.coordinator.state = CoordinatorState.IDLE
    return app


class TestStatusServer:
    """Metrics and health collection."""

    def test_collect_metrics(self, mock_app: MagicMock):
        lines = StatusServer(mock_app).collect_metrics()
        assert "streaks_writes_total 5" in lines
        assert "streaks_conflicts_total 2" in lines
        assert "streaks_failures_total 1" in lines
        assert "streaks_fetch_requests_total 9" in lines
        assert "streaks_fetches_total 4" in lines
        assert 'streaks_coordinator_state{state="idle"} 1' in lines

    def test_metrics_before_start(self, mock_app: MagicMock):
        mock_app.engine = None
        mock_app.coordinator = None
        assert StatusServer(mock_app).collect_metrics() == []

    def test_health_details(self, mock_app: MagicMock):
        details = StatusServer(mock_app).health_details()
        assert details == {"status": "ok", "store": "memory", "uptime_seconds": 12.3}

    def test_health_starting(self, mock_app: MagicMock):
        mock_app.store = None
        assert StatusServer(mock_app).health_details()["status"] == "starting"

    async def test_http_endpoints(self, mock_app: MagicMock):
        server = StatusServer(mock_app)
        async with test_utils.TestClient(test_utils.TestServer(server.build_app())) as client:
            resp = await client.get("/health")
            assert resp.status == 200
            assert (await resp.json())["status"] == "ok"

            resp = await client.get("/metrics")
            assert resp.status == 200
            assert "streaks_writes_total 5" in await resp.text()
