"""Health and Prometheus metrics endpoint for team-streaks.

Serves ``/health`` (JSON) and ``/metrics`` (Prometheus text) with aiohttp.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from .main import StreakSyncApp


class StatusServer:
    """Small aiohttp server exposing engine and coordinator counters."""

    def __init__(self, app: StreakSyncApp, host: str = "127.0.0.1", port: int = 28290) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._logger = logging.getLogger("streaks.status")
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        web_app = web.Application()
        web_app.router.add_get("/health", self._handle_health)
        web_app.router.add_get("/metrics", self._handle_metrics)
        return web_app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        self._logger.info("Status server listening on %s:%d", self._host, self._port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    # ══════════════════════════════════════════════════════════
    #  Collectors
    # ══════════════════════════════════════════════════════════

    def collect_metrics(self) -> list[str]:
        """Prometheus exposition lines."""
        lines: list[str] = []
        engine = self._app.engine
        if engine is not None:
            lines.append(f"streaks_writes_total {engine.writes}")
            lines.append(f"streaks_conflicts_total {engine.conflicts}")
            lines.append(f"streaks_failures_total {engine.failures}")

        coordinator = self._app.coordinator
        if coordinator is not None:
            lines.append(f"streaks_fetch_requests_total {coordinator.request_count}")
            lines.append(f"streaks_fetches_total {coordinator.fetch_count}")
            lines.append(f'streaks_coordinator_state{{state="{coordinator.state.value}"}} 1')
        return lines

    def health_details(self) -> dict:
        config = self._app.config
        return {
            "status": "ok" if self._app.store is not None else "starting",
            "store": config.store.backend if config else None,
            "uptime_seconds": round(self._app.uptime_seconds, 1),
        }

    # ══════════════════════════════════════════════════════════
    #  Handlers
    # ══════════════════════════════════════════════════════════

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(self.health_details())

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        body = "\n".join(self.collect_metrics()) + "\n"
        return web.Response(text=body, content_type="text/plain")
