"""Periodic refresh: fetch every data source, then update the panels.

``DashboardLoader.load`` fetches all sources concurrently and hands each
successful payload to :meth:`ContentUpdateManager.coordinate_updates`. A
source that failed to fetch leaves its panel untouched, so the panel keeps
showing its last good content.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from dashkeeper.core.contracts.dashboard import LoadSummary, PanelOutcome
from dashkeeper.core.errors import DashkeeperError
from dashkeeper.core.settings import get_logger
from dashkeeper.updates.manager import ContainerUpdate, ContentUpdateManager
from dashkeeper.updates.pipeline import UpdateFn

from .client import DashboardClient
from .renderers import PANELS, ChartPanels, render_plugins, render_slow_queries, render_system_health

log = get_logger(__name__)


class DashboardLoader:
    """Glue between the REST client and the update manager."""

    def __init__(
        self,
        client: DashboardClient,
        manager: ContentUpdateManager,
        *,
        metric: str = "avg_response_time",
        sequential: bool = False,
    ) -> None:
        self.client = client
        self.manager = manager
        self.sequential = sequential
        self.charts = ChartPanels(manager.charts, metric)
        self.renderers: dict[str, UpdateFn] = {
            "metrics": self.charts.render_metrics,
            "slow_queries": render_slow_queries,
            "admin_ajax": self.charts.render_admin_ajax,
            "plugins": render_plugins,
            "system_health": render_system_health,
        }
        self.last_summary: LoadSummary | None = None
        self._cycles = 0

    @property
    def cycles(self) -> int:
        return self._cycles

    def ensure_panels(self) -> None:
        """Create any panel container the document does not have yet."""
        for container_id in PANELS.values():
            if container_id not in self.manager.document:
                self.manager.document.create(container_id)

    async def load(self) -> LoadSummary:
        started = time.perf_counter()
        summary = LoadSummary(started_at=time.time())
        self.ensure_panels()
        fetched = await self.client.fetch_all(list(self.renderers))

        updates: list[ContainerUpdate] = []
        for source, result in fetched.items():
            outcome = PanelOutcome(source=source, container_id=PANELS[source])
            summary.panels[source] = outcome
            if result.is_err():
                outcome.error = f"fetch failed: {result.unwrap_err()}"
                log.warning("%s: %s; panel left untouched", source, outcome.error)
                continue
            outcome.fetched = True
            updates.append(ContainerUpdate(PANELS[source], self.renderers[source], result.unwrap()))

        if updates:
            await self._apply(updates, summary)

        summary.duration_ms = (time.perf_counter() - started) * 1000
        self.last_summary = summary
        self._cycles += 1
        log.info(
            "refresh %d: %d/%d panel(s) updated in %.0fms",
            self._cycles,
            sum(1 for p in summary.panels.values() if p.updated),
            len(summary.panels),
            summary.duration_ms,
        )
        return summary

    async def _apply(self, updates: list[ContainerUpdate], summary: LoadSummary) -> None:
        sources = {PANELS[source]: source for source in summary.panels}
        try:
            results: list[Any] = await self.manager.coordinate_updates(
                updates, sequential=self.sequential, return_exceptions=True
            )
        except DashkeeperError as exc:
            log.error("panel updates failed: %s", exc)
            for update in updates:
                summary.panels[sources[update.container_id]].error = str(exc)
            return
        for update, items in zip(updates, results, strict=True):
            outcome = summary.panels[sources[update.container_id]]
            if isinstance(items, Exception):
                log.error("%s: update failed: %s", update.container_id, items)
                outcome.error = str(items)
                continue
            outcome.updated = items is not None
            outcome.items = items if isinstance(items, int) else None

    async def run_forever(self, interval_ms: int | None = None) -> None:
        """Refresh now and then every ``interval_ms`` until cancelled."""
        interval = interval_ms or self.manager.settings.refresh_interval_ms
        while True:
            await self.load()
            await asyncio.sleep(interval / 1000)


__all__ = ["DashboardLoader"]
