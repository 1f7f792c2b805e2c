"""Facade over timing, memory and frequency instrumentation.

``PerformanceMonitor`` wraps each update with a timer and before/after memory
samples and feeds the frequency benchmark. When memory alerts are enabled, a
*critical* alert makes an attached manager stop all operations and resume
them after ``resume_delay_ms``.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

from dashkeeper.core.contracts.perf import PerformanceReport, Recommendation
from dashkeeper.core.settings import get_logger

from .frequency import UpdateFrequencyBenchmark
from .memory import MemoryMeasurement, MemoryMonitor
from .timer import PerformanceTimer

log = get_logger(__name__)

T = TypeVar("T")

_PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}


class Stoppable(Protocol):
    def emergency_stop(self) -> None: ...

    def resume_operations(self) -> None: ...


def _size(value: Any) -> int:
    try:
        return len(json.dumps(value if value is not None else {}, default=str))
    except (TypeError, ValueError):
        return 0


class PerformanceMonitor:
    """Timing, memory and frequency instrumentation for container updates."""

    def __init__(
        self,
        timer: PerformanceTimer | None = None,
        memory: MemoryMonitor | None = None,
        frequency: UpdateFrequencyBenchmark | None = None,
        *,
        resume_delay_ms: int = 5000,
    ) -> None:
        self.timer = timer if timer is not None else PerformanceTimer()
        self.memory = memory if memory is not None else MemoryMonitor()
        self.frequency = frequency if frequency is not None else UpdateFrequencyBenchmark()
        self.resume_delay_ms = resume_delay_ms
        self._manager: Stoppable | None = None
        self._resume_handle: asyncio.TimerHandle | None = None
        self._started_at: float | None = None

    # ----- Wiring ------------------------------------------------------------
    def attach(self, manager: Stoppable) -> None:
        """Let critical memory alerts stop and later resume ``manager``."""
        self._manager = manager

    def detach(self) -> None:
        self._manager = None
        self._cancel_resume()

    @property
    def is_monitoring(self) -> bool:
        return self._started_at is not None

    def start_monitoring(self, memory_frequency_ms: int = 10_000, enable_memory_alerts: bool = True) -> None:
        if self.is_monitoring:
            log.warning("performance monitoring already running")
            return
        self._started_at = time.time()
        if enable_memory_alerts:
            self.memory.subscribe(self.handle_memory_alert)
        self.memory.start_monitoring(memory_frequency_ms)
        log.info("performance monitoring started (memory every %dms)", memory_frequency_ms)

    def stop_monitoring(self) -> None:
        if not self.is_monitoring:
            return
        self.memory.stop_monitoring()
        self.memory.unsubscribe(self.handle_memory_alert)
        self._cancel_resume()
        elapsed = time.time() - (self._started_at or time.time())
        self._started_at = None
        log.info("performance monitoring stopped after %.1fs", elapsed)

    # ----- Alerts ------------------------------------------------------------
    def handle_memory_alert(self, level: str, measurement: MemoryMeasurement) -> None:
        log.warning("memory alert (%s) during %s", level, measurement.context)
        if level != "critical" or self._manager is None:
            return
        log.warning("critical memory: stopping updates for %dms", self.resume_delay_ms)
        self._manager.emergency_stop()
        self._cancel_resume()
        self._resume_handle = asyncio.get_running_loop().call_later(
            self.resume_delay_ms / 1000, self._resume
        )

    def _resume(self) -> None:
        self._resume_handle = None
        if self._manager is not None:
            self._manager.resume_operations()

    def _cancel_resume(self) -> None:
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

    # ----- Instrumentation ---------------------------------------------------
    async def instrument_update(
        self,
        container_id: str,
        update_fn: Callable[[Any], Awaitable[T]],
        data: Any = None,
    ) -> T:
        """Run ``update_fn(data)`` under a timer with memory samples around it."""
        operation_id = f"{container_id}_update"
        before = self.memory.measure(f"before_{operation_id}")
        self.timer.start(operation_id, {"container_id": container_id, "data_size": _size(data)})
        try:
            result = await update_fn(data)
        except Exception as exc:
            self.timer.end(operation_id, success=False, error=str(exc))
            self.frequency.record_update(container_id, success=False, error=str(exc))
            raise

        timing = self.timer.end(operation_id, success=True, result_size=_size(result))
        after = self.memory.measure(f"after_{operation_id}")
        delta = None
        if before.used_heap is not None and after.used_heap is not None:
            delta = after.used_heap - before.used_heap
        self.frequency.record_update(
            container_id,
            duration_ms=timing.duration_ms if timing else None,
            memory_delta=delta,
        )
        return result

    def record_update(self, container_id: str, **details: Any) -> None:
        self.frequency.record_update(container_id, **details)

    def benchmark(self, container_id: str) -> Any:
        stats = self.timer.get_stats(f"{container_id}_update")
        return self.frequency.benchmark_frequency(
            container_id, average_update_time_ms=stats.average if stats.count else None
        )

    # ----- Reporting ---------------------------------------------------------
    def get_performance_report(self) -> PerformanceReport:
        now = time.time()
        return PerformanceReport(
            timestamp=now,
            monitoring_duration_ms=(now - self._started_at) * 1000 if self._started_at else 0.0,
            is_monitoring=self.is_monitoring,
            timing=self.timer.get_all_stats(),
            memory=self.memory.get_stats(),
            frequency=self.frequency.get_all_frequency_stats(),
            benchmarks=self.frequency.get_all_benchmark_results(),
        )

    def generate_optimization_recommendations(self) -> list[Recommendation]:
        report = self.get_performance_report()
        recs: list[Recommendation] = []
        for op, stats in report.timing.items():
            if stats.average > 200:
                recs.append(
                    Recommendation(
                        type="timing_optimization",
                        priority="high",
                        operation=op,
                        message=f"Operation {op} is slow ({stats.average:.1f}ms avg)",
                        suggestion="Consider optimizing update logic or reducing payload size",
                    )
                )
            if stats.recent_trend.trend == "degrading":
                recs.append(
                    Recommendation(
                        type="performance_degradation",
                        priority="medium",
                        operation=op,
                        message=f"Performance degrading for {op} (slope: {stats.recent_trend.slope})",
                        suggestion="Monitor for memory leaks or increasing complexity",
                    )
                )
        heap = report.memory.heap if report.memory else None
        if heap is not None and heap.trend.trend == "increasing":
            recs.append(
                Recommendation(
                    type="memory_leak",
                    priority="high",
                    message=f"Memory usage trending upward ({heap.trend.description})",
                    suggestion="Check for memory leaks in update operations",
                )
            )
        for bench in report.benchmarks.values():
            recs.extend(bench.recommendations)
        return sorted(recs, key=lambda r: -_PRIORITY_ORDER.get(r.priority, 0))

    def export_data(self) -> dict[str, Any]:
        return {
            "report": self.get_performance_report().model_dump(),
            "recommendations": [r.model_dump() for r in self.generate_optimization_recommendations()],
            "raw_data": {
                "timing": self.timer.export(),
                "memory": [
                    {"timestamp": m.timestamp, "context": m.context, "used_heap": m.used_heap}
                    for m in self.memory.export_measurements()
                ],
                "frequency": self.frequency.export_data(),
            },
            "export_timestamp": time.time(),
        }

    def clear_all_data(self) -> None:
        self.timer.clear_all()
        self.memory.clear_measurements()
        self.frequency.clear_all()


__all__ = ["PerformanceMonitor", "Stoppable"]
