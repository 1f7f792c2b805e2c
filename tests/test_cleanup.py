"""Tests for chart teardown, truncation, emergency clearing and refresh scheduling."""

from __future__ import annotations

import asyncio

import pytest

from dashkeeper.dom.cleanup import EMERGENCY_NOTICE, DomCleanup
from dashkeeper.dom.container import ChartHandle, ChartRegistry, Document, HtmlContainer


@pytest.fixture  # type: ignore[misc]
def charts() -> ChartRegistry:
    return ChartRegistry()


@pytest.fixture  # type: ignore[misc]
def document() -> Document:
    return Document(
        [
            HtmlContainer("chartPanel", '<div><canvas id="cp-canvas"></canvas></div>'),
            HtmlContainer("other", '<canvas id="other-canvas"></canvas>'),
            HtmlContainer("list"),
        ]
    )


def test_cleanup_charts_only_touches_its_container(document: Document, charts: ChartRegistry) -> None:
    mine = charts.bind(ChartHandle("cp-canvas", "chartPanel"))
    theirs = charts.bind(ChartHandle("other-canvas", "other"))
    cleanup = DomCleanup(document, charts)

    assert cleanup.cleanup_charts("chartPanel") == 1
    assert isinstance(mine, ChartHandle) and mine.destroyed
    assert isinstance(theirs, ChartHandle) and not theirs.destroyed
    assert charts.get_chart("cp-canvas") is None
    assert cleanup.cleanup_charts("ghost") == 0


def test_thorough_cleanup_truncates_repeated_items(document: Document, charts: ChartRegistry) -> None:
    """A target of 50 keeps the first 5 items of each kind."""
    panel = document.get("list")
    assert panel is not None
    panel.content = "".join(f'<div class="query-item">q{i}</div>' for i in range(100))

    final = DomCleanup(document, charts).thorough_cleanup("list", target_max_nodes=50)

    assert final == 5
    assert len(panel.select(".query-item")) == 5


def test_thorough_cleanup_escalates_when_still_too_big(document: Document, charts: ChartRegistry) -> None:
    panel = document.get("list")
    assert panel is not None
    panel.content = "<p></p>" * 200

    final = DomCleanup(document, charts).thorough_cleanup("list", target_max_nodes=50)

    assert panel.content == EMERGENCY_NOTICE
    assert final == panel.element_count()


def test_emergency_cleanup_resets_content_and_scroll(document: Document, charts: ChartRegistry) -> None:
    charts.bind(ChartHandle("cp-canvas", "chartPanel"))
    panel = document.get("chartPanel")
    assert panel is not None
    panel.scroll_top = 120

    assert DomCleanup(document, charts).emergency_cleanup("chartPanel") is True
    assert panel.content == EMERGENCY_NOTICE
    assert panel.scroll_top == 0
    assert charts.live_count() == 0
    assert DomCleanup(document, charts).emergency_cleanup("ghost") is False


async def test_emergency_cleanup_schedules_refresh(document: Document, charts: ChartRegistry) -> None:
    """The refresh hook fires once after the configured delay."""
    calls: list[int] = []

    async def refresh() -> None:
        calls.append(1)

    cleanup = DomCleanup(document, charts, refresh, refresh_delay_ms=10)
    cleanup.emergency_cleanup("list")
    assert cleanup.pending_refreshes == 1

    await asyncio.sleep(0.05)
    assert calls == [1]
    assert cleanup.pending_refreshes == 0


async def test_cancel_pending_drops_scheduled_refresh(document: Document, charts: ChartRegistry) -> None:
    calls: list[int] = []
    cleanup = DomCleanup(document, charts, lambda: calls.append(1), refresh_delay_ms=10)

    cleanup.schedule_refresh()
    cleanup.cancel_pending()
    await asyncio.sleep(0.03)

    assert calls == []


def test_schedule_refresh_without_loop_is_a_noop(document: Document, charts: ChartRegistry) -> None:
    cleanup = DomCleanup(document, charts, lambda: None)
    assert cleanup.schedule_refresh() is None
