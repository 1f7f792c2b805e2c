"""Default application graph.

``build_dashboard()`` constructs every service once and wires them together:

- the performance monitor is attached to the manager, so a critical memory
  alert triggers ``emergency_stop`` and a delayed ``resume_operations``;
- the cleanup refresh hook points at ``loader.load``, so a recreated or
  emergency-cleared panel refills from the server.

Nothing here is global; callers own the returned :class:`Dashboard`.
"""

from __future__ import annotations

from dataclasses import dataclass

from dashkeeper.core.settings import Settings, load_settings
from dashkeeper.dashboard.client import DashboardClient
from dashkeeper.dashboard.loader import DashboardLoader
from dashkeeper.dom.container import ChartRegistry, Document
from dashkeeper.perf.memory import MemoryMonitor
from dashkeeper.perf.monitor import PerformanceMonitor
from dashkeeper.updates.manager import ContentUpdateManager


@dataclass(slots=True)
class Dashboard:
    settings: Settings
    document: Document
    charts: ChartRegistry
    perf: PerformanceMonitor
    manager: ContentUpdateManager
    client: DashboardClient
    loader: DashboardLoader

    def start(self, *, memory_frequency_ms: int = 10_000, memory_alerts: bool = True) -> None:
        """Start background monitoring (requires a running event loop)."""
        self.manager.start()
        self.perf.start_monitoring(memory_frequency_ms, enable_memory_alerts=memory_alerts)

    async def aclose(self) -> None:
        self.perf.stop_monitoring()
        self.perf.detach()
        await self.manager.aclose()

    async def __aenter__(self) -> Dashboard:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def build_dashboard(
    settings: Settings | None = None,
    *,
    client: DashboardClient | None = None,
    document: Document | None = None,
    metric: str = "avg_response_time",
) -> Dashboard:
    cfg = settings or load_settings()
    document = document if document is not None else Document()
    charts = ChartRegistry()
    perf = PerformanceMonitor(memory=MemoryMonitor(document.total_nodes))
    manager = ContentUpdateManager(document, charts=charts, perf=perf, settings=cfg)
    client = client or DashboardClient.from_settings(cfg)
    loader = DashboardLoader(client, manager, metric=metric)

    perf.attach(manager)
    manager.cleanup.set_refresh_hook(loader.load)
    loader.ensure_panels()
    return Dashboard(
        settings=cfg,
        document=document,
        charts=charts,
        perf=perf,
        manager=manager,
        client=client,
        loader=loader,
    )


__all__ = ["Dashboard", "build_dashboard"]
