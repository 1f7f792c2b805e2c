"""End-to-end tests for ContentUpdateManager.

Scope
-----
1.  **Rendering**: replacing content through the full pipeline.
2.  **Throttling**: bursts against one panel collapse into one mutation.
3.  **Recovery**: failed updates roll back or recreate, and are logged.
4.  **Coordination**: locks, queueing, batches and the global lock.
5.  **Introspection**: status, stats and the health check.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from dashkeeper.core.contracts import UpdateOptions
from dashkeeper.core.errors import (
    ContainerNotFound,
    CoordinationTimeout,
    UpdateCancelled,
    UpdateFailed,
    UpdateRejected,
)
from dashkeeper.core.settings import Settings
from dashkeeper.dashboard.renderers import NO_SLOW_QUERIES, render_slow_queries
from dashkeeper.dom.container import Document, HtmlContainer
from dashkeeper.perf.memory import MemoryMonitor
from dashkeeper.perf.monitor import PerformanceMonitor
from dashkeeper.updates.manager import DATA_PREVIEW_CHARS, ContainerUpdate, ContentUpdateManager

ORIGINAL = "".join(f'<div class="plugin-item"><strong>p{i}</strong></div>' for i in range(10))

QUERIES = [
    {"execution_time": 1500 + i, "query_text": f"SELECT {i}", "rows_examined": 10, "source_file": "x.php"}
    for i in range(5)
]


def write(container: HtmlContainer, data: Any) -> Any:
    container.content = f"<p>{data}</p>"
    return data


def explode(container: HtmlContainer, data: Any) -> None:
    container.content = "<div class='plugin-item'>partial"
    raise RuntimeError("renderer crashed")


class Gate:
    """An update function that blocks until released and records its calls."""

    def __init__(self) -> None:
        self.event = asyncio.Event()
        self.calls: list[Any] = []

    async def __call__(self, container: HtmlContainer, data: Any) -> Any:
        self.calls.append(data)
        if len(self.calls) == 1:
            await self.event.wait()
        container.content = f"<p>{data}</p>"
        return data


# --------------------------------------------------------------------------- #
# Rendering
# --------------------------------------------------------------------------- #


async def test_empty_payload_replaces_items_with_message(manager: ContentUpdateManager) -> None:
    """Five rendered queries collapse to the no-data message and a tiny node count."""
    drawn = await manager.update_container("slowQueries", render_slow_queries, QUERIES)
    panel = manager.document.get("slowQueries")
    assert drawn == 5 and panel is not None
    assert len(panel.select(".query-item")) == 5

    assert await manager.update_container("slowQueries", render_slow_queries, [], bypass_throttle=True) == 0

    assert panel.content == NO_SLOW_QUERIES
    assert panel.count_nodes().node_count < 10


async def test_missing_container_raises_and_logs(manager: ContentUpdateManager) -> None:
    with pytest.raises(ContainerNotFound):
        await manager.update_container("ghost", write, "x")
    assert [e.type for e in manager.get_error_log()] == ["CONTAINER_NOT_FOUND"]


async def test_missing_container_can_be_created(manager: ContentUpdateManager) -> None:
    assert await manager.update_container("fresh", write, "x", allow_missing_container=True) == "x"
    assert "fresh" in manager.document


async def test_update_history_is_recorded(manager: ContentUpdateManager) -> None:
    await manager.update_container("slowQueries", write, "x")
    assert manager.get_update_history("slowQueries") is not None
    assert manager.clear_update_history() == 1
    assert manager.get_update_history("slowQueries") is None


# --------------------------------------------------------------------------- #
# Throttling
# --------------------------------------------------------------------------- #


async def test_burst_inside_throttle_window_mutates_once(manager: ContentUpdateManager) -> None:
    """Two requests 100ms apart under a 2000ms window: one mutation, second request's data."""
    manager.set_container_throttle_delay("pluginPerformance", 2000)
    mutations: list[str] = []

    def render(container: HtmlContainer, data: str) -> str:
        mutations.append(data)
        container.content = f"<div>{data}</div>"
        return data

    await manager.update_container("pluginPerformance", render, "prime")
    first = asyncio.create_task(manager.update_container("pluginPerformance", render, "first"))
    await asyncio.sleep(0.1)
    second = asyncio.create_task(manager.update_container("pluginPerformance", render, "second"))
    await asyncio.sleep(0)

    assert mutations == ["prime"]
    manager.throttler.flush_all()
    results = await asyncio.gather(first, second)

    assert mutations == ["prime", "second"]
    assert results == ["second", "second"]
    assert manager.document.get("pluginPerformance").content == "<div>second</div>"  # type: ignore[union-attr]


async def test_critical_updates_skip_throttle(manager: ContentUpdateManager) -> None:
    manager.set_container_throttle_delay("slowQueries", 60_000)
    await manager.update_container("slowQueries", write, "a")
    assert await manager.update_container("slowQueries", write, "b", priority="critical") == "b"


async def test_throttle_configuration(manager: ContentUpdateManager) -> None:
    manager.configure_throttling({"slowQueries": 500, "custom": 50})
    assert manager.get_container_throttle_delay("slowQueries") == 500
    assert manager.get_container_throttle_delay("other") == manager.settings.default_throttle_delay_ms
    with pytest.raises(ValueError):
        manager.set_container_throttle_delay("slowQueries", -1)


# --------------------------------------------------------------------------- #
# Recovery
# --------------------------------------------------------------------------- #


async def test_failed_update_rolls_back(manager: ContentUpdateManager) -> None:
    """A throwing renderer restores the snapshot and logs the failure plus the rollback."""
    panel = manager.document.get("pluginPerformance")
    assert panel is not None
    panel.content = ORIGINAL

    with pytest.raises(UpdateFailed) as info:
        await manager.update_container("pluginPerformance", explode, {"x": 1}, priority="high")

    assert info.value.recovered
    assert isinstance(info.value.__cause__, RuntimeError)
    assert panel.content == ORIGINAL
    assert [e.type for e in manager.get_error_log()] == ["UPDATE_FAILED", "ROLLBACK_SUCCESS"]
    failed = manager.get_error_log("UPDATE_FAILED")[0]
    assert failed.context["container_id"] == "pluginPerformance"


async def test_low_priority_failures_are_suppressed(manager: ContentUpdateManager) -> None:
    panel = manager.document.get("pluginPerformance")
    assert panel is not None
    panel.content = ORIGINAL

    assert await manager.update_container("pluginPerformance", explode, None) is None
    assert panel.content == ORIGINAL

    with pytest.raises(UpdateFailed):
        await manager.update_container(
            "pluginPerformance", explode, None, UpdateOptions(suppress_errors=False, bypass_throttle=True)
        )


async def test_payload_preview_is_truncated(manager: ContentUpdateManager) -> None:
    await manager.update_container("slowQueries", explode, "x" * 2000)
    failed = manager.get_error_log("UPDATE_FAILED")[0]
    assert len(failed.context["data"]) == DATA_PREVIEW_CHARS


async def test_without_rollback_the_container_is_recreated(manager: ContentUpdateManager) -> None:
    manager.set_rollback_enabled(False)
    panel = manager.document.get("pluginPerformance")
    assert panel is not None
    panel.content = ORIGINAL

    assert await manager.update_container("pluginPerformance", explode, None) is None

    assert "Container Recreated" in panel.content
    assert manager.get_error_log()[-1].type == "CONTAINER_RECREATED"
    assert manager.get_error_recovery_status().rollback_enabled is False


async def test_rollback_never_uses_a_snapshot_from_an_earlier_update(manager: ContentUpdateManager) -> None:
    panel = manager.document.get("slowQueries")
    assert panel is not None
    panel.content = "<p>v0</p>"
    assert await manager.update_container("slowQueries", write, "v1", priority="high") == "v1"
    panel.content = "<p>v2</p>"
    manager.pipeline = manager.stages.pipeline(["snapshot"])

    with pytest.raises(UpdateFailed):
        await manager.update_container("slowQueries", explode, None, priority="high")

    assert "v0" not in panel.content
    assert "Container Recreated" in panel.content
    assert [e.type for e in manager.get_error_log()] == ["UPDATE_FAILED", "CONTAINER_RECREATED"]


async def test_retry_after_recovered_failure(manager: ContentUpdateManager) -> None:
    attempts: list[int] = []

    def flaky(container: HtmlContainer, data: Any) -> str:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("transient")
        container.content = "<p>ok</p>"
        return "ok"

    result = await manager.update_container(
        "slowQueries", flaky, None, retry_attempts=2, retry_delay_ms=1, priority="high"
    )

    assert result == "ok"
    assert len(attempts) == 2
    assert [e.type for e in manager.get_error_log()] == ["UPDATE_FAILED", "ROLLBACK_SUCCESS"]


async def test_unrecoverable_failure_is_always_raised(manager: ContentUpdateManager) -> None:
    """When the container vanishes mid-update nothing can recover it."""

    def vanish(container: HtmlContainer, data: Any) -> None:
        manager.document.remove(container.container_id)
        raise RuntimeError("gone")

    with pytest.raises(UpdateFailed) as info:
        await manager.update_container("slowQueries", vanish, None, priority="low")

    assert info.value.recovered is False
    types = [e.type for e in manager.get_error_log()]
    assert types[0] == "UPDATE_FAILED"
    assert types[-1] == "COMPLETE_RECOVERY_FAILED"


async def test_critical_corruption_recreates_before_update(manager: ContentUpdateManager) -> None:
    panel = manager.document.get("slowQueries")
    assert panel is not None
    manager.set_container_limit("slowQueries", 10)
    panel.content = "".join('<div class="query-item" onclick="x()">same</div>' for _ in range(25))

    result = await manager.update_container("slowQueries", write, "never")

    assert result is None
    assert "Container Recreated" in panel.content
    assert "CORRUPTION_DETECTED" in [e.type for e in manager.get_error_log()]


async def test_manual_recovery_controls(manager: ContentUpdateManager) -> None:
    panel = manager.document.get("slowQueries")
    assert panel is not None
    panel.content = ORIGINAL
    manager.recovery.create_snapshot("slowQueries")
    panel.content = "<p>changed</p>"

    assert manager.force_rollback("slowQueries") is True
    assert panel.content == ORIGINAL
    assert manager.force_recreation("slowQueries") is True
    assert "Manual recreation requested" in panel.content

    manager.set_max_rollback_attempts(5)
    manager.set_corruption_detection_enabled(False)
    status = manager.get_error_recovery_status()
    assert status.max_rollback_attempts == 5
    assert status.corruption_detection_enabled is False
    assert status.error_log_size == 2

    manager.clear_error_log()
    manager.clear_all_snapshots()
    manager.clear_rollback_attempts()
    assert manager.get_error_recovery_status().error_log_size == 0


# --------------------------------------------------------------------------- #
# Coordination
# --------------------------------------------------------------------------- #


async def test_concurrent_updates_are_serialized(manager: ContentUpdateManager) -> None:
    gate = Gate()
    first = asyncio.create_task(manager.update_container("slowQueries", gate, 1, bypass_throttle=True))
    await asyncio.sleep(0)
    status = manager.get_update_status("slowQueries")
    assert status.in_progress and status.locked

    second = asyncio.create_task(manager.update_container("slowQueries", gate, 2, bypass_throttle=True))
    await asyncio.sleep(0)
    assert manager.get_update_status("slowQueries").queue_length == 1
    assert manager.get_all_update_status().total_queued_updates == 1

    gate.event.set()
    assert await asyncio.gather(first, second) == [1, 2]
    assert gate.calls == [1, 2]
    assert manager.document.get("slowQueries").content == "<p>2</p>"  # type: ignore[union-attr]


async def test_superseded_queued_requests_are_dropped(manager: ContentUpdateManager) -> None:
    """Only the newest queued request runs; earlier ones resolve to None."""
    gate = Gate()
    running = asyncio.create_task(manager.update_container("slowQueries", gate, 1, bypass_throttle=True))
    await asyncio.sleep(0)
    queued = [
        asyncio.create_task(manager.update_container("slowQueries", gate, n, bypass_throttle=True))
        for n in (2, 3, 4)
    ]
    await asyncio.sleep(0)

    gate.event.set()
    results = await asyncio.gather(running, *queued)

    assert results == [1, None, None, 4]
    assert gate.calls == [1, 4]


async def test_cancelled_queued_request_does_not_supersede_live_one(manager: ContentUpdateManager) -> None:
    gate = Gate()
    holder = asyncio.create_task(manager.update_container("slowQueries", gate, 1, bypass_throttle=True))
    await asyncio.sleep(0)
    live = asyncio.create_task(manager.update_container("slowQueries", gate, "live", bypass_throttle=True))
    await asyncio.sleep(0)
    abandoned = asyncio.create_task(manager.update_container("slowQueries", gate, "gone", bypass_throttle=True))
    await asyncio.sleep(0)

    abandoned.cancel()
    with pytest.raises(asyncio.CancelledError):
        await abandoned
    assert manager.get_update_status("slowQueries").queue_length == 1

    gate.event.set()
    assert await asyncio.gather(holder, live) == [1, "live"]
    assert gate.calls == [1, "live"]
    assert manager.document.get("slowQueries").content == "<p>live</p>"  # type: ignore[union-attr]


async def test_global_lock_rejects_non_critical(manager: ContentUpdateManager) -> None:
    manager.set_global_update_lock(True, "maintenance")
    assert manager.global_lock_active

    with pytest.raises(UpdateRejected):
        await manager.update_container("slowQueries", write, "x")
    assert await manager.update_container("slowQueries", write, "y", priority="critical") == "y"

    manager.set_global_update_lock(False)
    assert await manager.update_container("slowQueries", write, "z") == "z"


async def test_emergency_stop_cancels_pending_work(manager: ContentUpdateManager) -> None:
    manager.set_container_throttle_delay("pluginPerformance", 60_000)
    await manager.update_container("pluginPerformance", write, "prime")
    throttled = asyncio.create_task(manager.update_container("pluginPerformance", write, "later"))

    gate = Gate()
    running = asyncio.create_task(manager.update_container("slowQueries", gate, 1, bypass_throttle=True))
    await asyncio.sleep(0)
    queued = asyncio.create_task(manager.update_container("slowQueries", gate, 2, bypass_throttle=True))
    await asyncio.sleep(0)

    manager.emergency_stop()

    with pytest.raises(UpdateCancelled):
        await throttled
    with pytest.raises(UpdateCancelled):
        await queued
    with pytest.raises(UpdateRejected):
        await manager.update_container("slowQueries", write, "blocked")

    gate.event.set()
    assert await running == 1

    manager.resume_operations()
    assert not manager.global_lock_active
    assert manager.dom_monitor.is_monitoring
    assert await manager.update_container("slowQueries", write, "again") == "again"


async def test_force_release_all_locks(manager: ContentUpdateManager) -> None:
    manager.locks.acquire("slowQueries", "critical")
    manager.set_global_update_lock(True)

    manager.force_release_all_locks()

    assert not manager.global_lock_active
    assert await manager.update_container("slowQueries", write, "x") == "x"


async def test_coordinated_batch_in_parallel(manager: ContentUpdateManager) -> None:
    updates = [
        ContainerUpdate("slowQueries", write, "a"),
        ContainerUpdate("pluginPerformance", write, "b"),
    ]
    assert await manager.coordinate_updates(updates, max_concurrent=1) == ["a", "b"]


async def test_coordinated_batch_sequential_keeps_order(manager: ContentUpdateManager) -> None:
    order: list[str] = []

    async def slow(container: HtmlContainer, data: str) -> str:
        await asyncio.sleep(0.01 if data == "a" else 0)
        order.append(data)
        return data

    updates = [ContainerUpdate("slowQueries", slow, "a"), ContainerUpdate("pluginPerformance", slow, "b")]
    assert await manager.coordinate_updates(updates, sequential=True) == ["a", "b"]
    assert order == ["a", "b"]


async def test_coordination_timeout(manager: ContentUpdateManager) -> None:
    async def hang(container: HtmlContainer, data: Any) -> None:
        await asyncio.sleep(5)

    with pytest.raises(CoordinationTimeout) as info:
        await manager.coordinate_updates([ContainerUpdate("slowQueries", hang)], timeout_ms=50)

    assert info.value.timeout_ms == 50
    assert not manager.get_update_status("slowQueries").in_progress


async def test_timed_out_batch_member_never_runs_later(manager: ContentUpdateManager) -> None:
    """A member still queued when its batch times out is dropped, not run afterwards."""
    gate = Gate()
    holder = asyncio.create_task(manager.update_container("slowQueries", gate, 1, bypass_throttle=True))
    await asyncio.sleep(0)

    with pytest.raises(CoordinationTimeout):
        await manager.coordinate_updates([ContainerUpdate("slowQueries", gate, "late")], timeout_ms=50)
    assert manager.get_update_status("slowQueries").queue_length == 0

    gate.event.set()
    assert await holder == 1
    await asyncio.sleep(0.01)

    assert gate.calls == [1]
    assert manager.document.get("slowQueries").content == "<p>1</p>"  # type: ignore[union-attr]


# --------------------------------------------------------------------------- #
# Introspection & lifecycle
# --------------------------------------------------------------------------- #


async def test_status_and_stats(manager: ContentUpdateManager) -> None:
    manager.configure_throttling({"slowQueries": 5000})
    await manager.update_container("slowQueries", write, "x")

    stats = manager.get_throttling_stats()
    assert stats.container_delays == {"slowQueries": 5000}
    assert stats.throttles["slowQueries"].last_update_ms_ago is not None

    overview = manager.get_all_update_status()
    assert "slowQueries" in overview.containers
    assert overview.total_active_updates == 0

    dom = manager.get_dom_stats()
    assert dom.total_containers == 2
    assert set(manager.check_all_containers()) == {"slowQueries", "pluginPerformance"}


async def test_health_check_grades_containers(manager: ContentUpdateManager) -> None:
    report = manager.perform_health_check()
    assert report.overall_health == "good"
    assert set(report.containers) == {"slowQueries", "pluginPerformance"}

    manager.document.get("slowQueries").content = "<div>broken</div><"  # type: ignore[union-attr]
    report = manager.perform_health_check()
    assert report.overall_health == "warning"
    assert report.containers["slowQueries"].status == "warning"

    manager.document.remove("pluginPerformance")
    report = manager.perform_health_check()
    assert report.overall_health == "critical"
    assert report.containers["pluginPerformance"].status == "missing"
    assert report.recommendations


async def test_performance_instrumentation(document: Document, cfg: Settings) -> None:
    perf = PerformanceMonitor(memory=MemoryMonitor(rss_probe=lambda: 0))
    async with ContentUpdateManager(document, settings=cfg, perf=perf) as mgr:
        await mgr.update_container("slowQueries", write, "x")
        await mgr.update_container(
            "slowQueries", write, "y", bypass_throttle=True, enable_performance_monitoring=False
        )

    assert perf.timer.get_stats("slowQueries_update").count == 1
    assert len(perf.frequency.events("slowQueries")) == 1


async def test_start_schedules_dom_monitoring(document: Document, cfg: Settings) -> None:
    fast = cfg.model_copy(update={"monitoring_start_delay_ms": 10, "dom_monitor_frequency_ms": 10})
    mgr = ContentUpdateManager(document, settings=fast)
    async with mgr:
        assert not mgr.dom_monitor.is_monitoring
        await asyncio.sleep(0.05)
        assert mgr.dom_monitor.is_monitoring
    assert not mgr.dom_monitor.is_monitoring
