"""Tests for the default application graph."""

from __future__ import annotations

import asyncio
from typing import Any

from dashkeeper.app import build_dashboard
from dashkeeper.core.settings import Settings
from dashkeeper.dashboard.client import DashboardClient
from dashkeeper.dashboard.loader import DashboardLoader
from dashkeeper.dashboard.renderers import PANELS
from dashkeeper.dom.container import Document, HtmlContainer


def test_build_dashboard_wires_services(cfg: Settings) -> None:
    dash = build_dashboard(cfg)

    assert dash.manager.perf is dash.perf
    assert dash.manager.charts is dash.charts
    assert dash.loader.manager is dash.manager
    assert dash.client.base_url == cfg.api_base_url
    assert set(PANELS.values()) <= set(dash.document.ids())


def test_build_dashboard_accepts_collaborators(cfg: Settings) -> None:
    client = DashboardClient("http://dash.test", demo=True)
    document = Document()
    dash = build_dashboard(cfg, client=client, document=document, metric="memory_usage")

    assert dash.client is client
    assert dash.document is document
    assert dash.loader.charts.metric == "memory_usage"


def test_memory_monitor_counts_document_nodes(cfg: Settings) -> None:
    document = Document([HtmlContainer("slowQueries", "<ul><li>a</li><li>b</li></ul>")])
    dash = build_dashboard(cfg, document=document)

    assert dash.perf.memory.measure().dom_node_count == document.total_nodes() > 0


async def test_critical_memory_alert_stops_the_manager(cfg: Settings) -> None:
    dash = build_dashboard(cfg)
    dash.perf.resume_delay_ms = 60_000

    dash.perf.handle_memory_alert("critical", dash.perf.memory.measure())

    assert dash.manager.global_lock_active
    await dash.aclose()


async def test_recreated_panel_refreshes_from_server(cfg: Settings, monkeypatch: Any) -> None:
    loads: list[str] = []

    async def fake_load(self: DashboardLoader) -> None:
        loads.append("load")

    monkeypatch.setattr(DashboardLoader, "load", fake_load)
    dash = build_dashboard(cfg)

    assert dash.manager.force_recreation("slowQueries", "stale layout")
    await asyncio.sleep(cfg.refresh_delay_ms / 1000 + 0.05)

    assert loads == ["load"]
    await dash.aclose()


async def test_context_manager_starts_and_stops_monitoring(cfg: Settings) -> None:
    async with build_dashboard(cfg) as dash:
        assert dash.perf.is_monitoring
    assert not dash.perf.is_monitoring
