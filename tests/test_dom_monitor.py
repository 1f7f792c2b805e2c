"""Tests for DOM size classification and the periodic sweep."""

from __future__ import annotations

import asyncio

import pytest

from dashkeeper.dom.cleanup import EMERGENCY_NOTICE, DomCleanup
from dashkeeper.dom.container import ChartRegistry, Document, HtmlContainer
from dashkeeper.dom.monitor import DEFAULT_MONITORED, DomSizeMonitor


def paragraphs(n: int) -> str:
    # n empty elements: n + 1 nodes including the container.
    return "<p></p>" * n


@pytest.fixture  # type: ignore[misc]
def document() -> Document:
    return Document([HtmlContainer("slowQueries"), HtmlContainer("custom")])


@pytest.fixture  # type: ignore[misc]
def monitor(document: Document) -> DomSizeMonitor:
    return DomSizeMonitor(document, DomCleanup(document, ChartRegistry()), default_limit=1000)


@pytest.mark.parametrize(  # type: ignore[misc]
    ("elements", "status"),
    [(6, "normal"), (7, "warning"), (9, "critical"), (11, "emergency")],
)
def test_status_bands(document: Document, monitor: DomSizeMonitor, elements: int, status: str) -> None:
    """With limit 10 the bands start at 8, 10 and 12 nodes."""
    monitor.set_limit("custom", 10)
    document.get("custom").content = paragraphs(elements)  # type: ignore[union-attr]

    result = monitor.monitor_container("custom")

    assert result.node_count == elements + 1
    assert (result.warning_limit, result.limit, result.emergency_limit) == (8, 10, 12)
    assert result.status == status


@pytest.mark.parametrize(("warning", "emergency"), [(0.5, 1.5), (0.9, 1.1)])  # type: ignore[misc]
def test_thresholds_are_configurable(document: Document, warning: float, emergency: float) -> None:
    monitor = DomSizeMonitor(
        document,
        DomCleanup(document, ChartRegistry()),
        default_limit=100,
        warning_threshold=warning,
        emergency_threshold=emergency,
    )
    result = monitor.monitor_container("custom")
    assert result.warning_limit == int(100 * warning)
    assert result.emergency_limit == int(100 * emergency)


def test_missing_container_reports_error(monitor: DomSizeMonitor) -> None:
    result = monitor.monitor_container("ghost")
    assert result.status == "unknown"
    assert result.error == "container not found"


def test_invalid_limit_rejected(monitor: DomSizeMonitor) -> None:
    with pytest.raises(ValueError):
        monitor.set_limit("custom", 0)


def test_sweep_covers_defaults_and_registered(document: Document, monitor: DomSizeMonitor) -> None:
    """Default panels are always swept; others once they have a limit."""
    assert "custom" not in monitor.monitor_all_containers()
    monitor.set_limit("custom", 50)
    results = monitor.monitor_all_containers()
    assert set(results) == {"slowQueries", "custom"}
    assert "pluginPerformance" in DEFAULT_MONITORED and "pluginPerformance" not in results


def test_sweep_clears_emergency_containers(document: Document, monitor: DomSizeMonitor) -> None:
    monitor.set_limit("custom", 10)
    document.get("custom").content = paragraphs(20)  # type: ignore[union-attr]

    results = monitor.monitor_all_containers()

    assert results["custom"].status == "emergency"
    assert document.get("custom").content == EMERGENCY_NOTICE  # type: ignore[union-attr]


def test_monitoring_stats(document: Document, monitor: DomSizeMonitor) -> None:
    monitor.set_limit("custom", 10)
    document.get("custom").content = paragraphs(8)  # type: ignore[union-attr]

    stats = monitor.get_monitoring_stats()

    assert stats.total_containers == 2
    assert stats.warning == 1 and stats.normal == 1
    assert stats.total_nodes == 9 + 1


async def test_periodic_monitoring(document: Document, monitor: DomSizeMonitor) -> None:
    monitor.set_limit("custom", 10)
    document.get("custom").content = paragraphs(20)  # type: ignore[union-attr]

    monitor.start_monitoring(10)
    assert monitor.is_monitoring
    await asyncio.sleep(0.05)
    monitor.stop_monitoring()

    assert not monitor.is_monitoring
    assert document.get("custom").content == EMERGENCY_NOTICE  # type: ignore[union-attr]
