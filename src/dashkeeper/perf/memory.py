"""Process memory sampling with threshold alerts.

Heap usage is approximated by the growth of the process resident set size
(``psutil``) over the baseline taken when the monitor is created, so the
warning/critical thresholds measure what the dashboard session itself has
accumulated rather than interpreter start-up cost.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import psutil

from dashkeeper.core.contracts.perf import DomNodeStats, HeapStats, MemoryStats, Trend
from dashkeeper.core.settings import get_logger

from .timer import linear_slope

log = get_logger(__name__)

MB = 1024 * 1024
#: Rough per-node cost used for the DOM memory estimate.
BYTES_PER_NODE = 100
DOM_NODE_WARNING = 10_000


def process_rss() -> int | None:
    """Resident set size of this process in bytes, or ``None`` if unavailable."""
    try:
        return int(psutil.Process().memory_info().rss)
    except psutil.Error as exc:
        log.debug("memory probe failed: %s", exc)
        return None


@dataclass(frozen=True, slots=True)
class MemoryMeasurement:
    timestamp: float
    context: str
    rss: int | None
    used_heap: int | None
    dom_node_count: int
    estimated_dom_memory: int


AlertCallback = Callable[[str, MemoryMeasurement], None]


class MemoryMonitor:
    """Bounded history of memory samples; alerts subscribers on thresholds."""

    def __init__(
        self,
        node_counter: Callable[[], int] = lambda: 0,
        rss_probe: Callable[[], int | None] = process_rss,
        *,
        max_measurements: int = 1000,
        warning_bytes: int = 50 * MB,
        critical_bytes: int = 100 * MB,
    ) -> None:
        self._node_counter = node_counter
        self._rss_probe = rss_probe
        self._measurements: deque[MemoryMeasurement] = deque(maxlen=max_measurements)
        self.alert_thresholds: dict[str, int] = {"warning": warning_bytes, "critical": critical_bytes}
        self._subscribers: list[AlertCallback] = []
        self._task: asyncio.Task[None] | None = None
        self._baseline = rss_probe()

    # ----- Subscribers -------------------------------------------------------
    def subscribe(self, callback: AlertCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: AlertCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def set_alert_thresholds(self, warning: int | None = None, critical: int | None = None) -> None:
        if warning is not None:
            self.alert_thresholds["warning"] = warning
        if critical is not None:
            self.alert_thresholds["critical"] = critical

    # ----- Sampling ----------------------------------------------------------
    def measure(self, context: str = "manual") -> MemoryMeasurement:
        rss = self._rss_probe()
        used = None
        if rss is not None:
            used = max(0, rss - (self._baseline or 0))
        nodes = self._node_counter()
        measurement = MemoryMeasurement(
            timestamp=time.time(),
            context=context,
            rss=rss,
            used_heap=used,
            dom_node_count=nodes,
            estimated_dom_memory=nodes * BYTES_PER_NODE,
        )
        self._measurements.append(measurement)
        self._check_alerts(measurement)
        return measurement

    def _check_alerts(self, m: MemoryMeasurement) -> None:
        if m.used_heap is not None:
            if m.used_heap > self.alert_thresholds["critical"]:
                log.error("critical memory usage: %.1fMB", m.used_heap / MB)
                self._emit("critical", m)
            elif m.used_heap > self.alert_thresholds["warning"]:
                log.warning("high memory usage: %.1fMB", m.used_heap / MB)
                self._emit("warning", m)
        if m.dom_node_count > DOM_NODE_WARNING:
            log.warning("high DOM node count: %d", m.dom_node_count)

    def _emit(self, level: str, m: MemoryMeasurement) -> None:
        for callback in list(self._subscribers):
            callback(level, m)

    # ----- Periodic sampling -------------------------------------------------
    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_monitoring(self, frequency_ms: int = 10_000) -> None:
        if self.is_monitoring:
            log.warning("memory monitoring already running")
            return
        self.measure("monitoring_start")
        self._task = asyncio.get_running_loop().create_task(self._loop(frequency_ms))

    def stop_monitoring(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _loop(self, frequency_ms: int) -> None:
        while True:
            await asyncio.sleep(frequency_ms / 1000)
            self.measure("continuous")

    # ----- Reporting ---------------------------------------------------------
    def get_stats(self, recent_count: int = 100) -> MemoryStats | None:
        recent = list(self._measurements)[-recent_count:]
        if not recent:
            return None
        nodes = [m.dom_node_count for m in recent]
        stats = MemoryStats(
            measurement_count=len(recent),
            time_span_ms=(recent[-1].timestamp - recent[0].timestamp) * 1000,
            dom_nodes=DomNodeStats(
                current=nodes[-1], min=min(nodes), max=max(nodes), average=sum(nodes) / len(nodes)
            ),
        )
        heap = [m.used_heap for m in recent if m.used_heap is not None]
        if heap:
            stats.heap = HeapStats(
                current=heap[-1],
                min=min(heap),
                max=max(heap),
                average=sum(heap) / len(heap),
                current_mb=round(heap[-1] / MB, 1),
                trend=self.calculate_trend(heap[-10:]),
            )
        return stats

    @staticmethod
    def calculate_trend(heap_sizes: list[int]) -> Trend:
        if len(heap_sizes) < 3:
            return Trend()
        slope_mb = linear_slope([float(h) for h in heap_sizes]) / MB
        trend = "increasing" if slope_mb > 0.5 else "decreasing" if slope_mb < -0.5 else "stable"
        sign = "+" if slope_mb > 0 else ""
        return Trend(
            trend=trend,
            slope=round(slope_mb, 3),
            description=f"{sign}{slope_mb:.1f}MB per measurement",
        )

    def export_measurements(self, count: int = 100) -> list[MemoryMeasurement]:
        return list(self._measurements)[-count:]

    def clear_measurements(self) -> None:
        self._measurements.clear()

    def __len__(self) -> int:
        return len(self._measurements)


__all__ = ["BYTES_PER_NODE", "MB", "MemoryMeasurement", "MemoryMonitor", "process_rss"]
