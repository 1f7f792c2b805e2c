"""Update-frequency analysis per container.

Each recorded update is an event with a timestamp. From the gaps between
events the benchmark derives interval statistics, updates per minute and a
regularity pattern (coefficient of variation of the last 20 intervals):

- ``> 0.5`` irregular
- ``< 0.2`` very regular
- otherwise regular

``benchmark_frequency`` turns those numbers into an estimated CPU, memory
and user-experience impact plus concrete recommendations. It needs at least
ten events to say anything.
"""

from __future__ import annotations

import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from dashkeeper.core.contracts.perf import (
    BenchmarkResult,
    FrequencyStats,
    IntervalStats,
    MemoryImpact,
    PerformanceImpact,
    RecentActivity,
    Recommendation,
    UxImpact,
)
from dashkeeper.core.settings import get_logger

from .timer import median

log = get_logger(__name__)

MAX_EVENTS = 1000
MIN_BENCHMARK_EVENTS = 10
DEFAULT_UPDATE_TIME_MS = 50.0
DEFAULT_MEMORY_PER_UPDATE = 1024


@dataclass(frozen=True, slots=True)
class UpdateEvent:
    container_id: str
    timestamp_ms: float
    duration_ms: float | None = None
    success: bool = True
    memory_delta: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def describe_pattern(pattern: str, avg_interval_ms: float) -> str:
    seconds = f"{avg_interval_ms / 1000:.1f}"
    if pattern == "very_regular":
        return f"Very consistent updates every ~{seconds}s"
    if pattern == "regular":
        return f"Regular updates every ~{seconds}s"
    if pattern == "irregular":
        return f"Irregular update pattern, average ~{seconds}s"
    return "Unknown pattern"


class UpdateFrequencyBenchmark:
    """Per-container event history and the statistics derived from it."""

    def __init__(self, clock: Callable[[], float] = time.time, max_events: int = MAX_EVENTS) -> None:
        self._clock = clock
        self._max_events = max_events
        self._events: dict[str, deque[UpdateEvent]] = {}
        self._stats: dict[str, FrequencyStats] = {}
        self._benchmarks: dict[str, BenchmarkResult] = {}

    def record_update(
        self,
        container_id: str,
        *,
        duration_ms: float | None = None,
        success: bool = True,
        memory_delta: int | None = None,
        **extra: Any,
    ) -> UpdateEvent:
        event = UpdateEvent(
            container_id=container_id,
            timestamp_ms=self._clock() * 1000,
            duration_ms=duration_ms,
            success=success,
            memory_delta=memory_delta,
            extra=extra,
        )
        self._events.setdefault(container_id, deque(maxlen=self._max_events)).append(event)
        self._refresh_stats(container_id)
        return event

    def events(self, container_id: str) -> list[UpdateEvent]:
        return list(self._events.get(container_id, ()))

    # ----- Statistics --------------------------------------------------------
    def _refresh_stats(self, container_id: str) -> None:
        events = self.events(container_id)
        if len(events) < 2:
            return
        stamps = [e.timestamp_ms for e in events]
        intervals = [b - a for a, b in zip(stamps, stamps[1:])]
        span = stamps[-1] - stamps[0]
        self._stats[container_id] = FrequencyStats(
            container_id=container_id,
            total_updates=len(events),
            time_span_ms=span,
            intervals=IntervalStats(
                min=min(intervals),
                max=max(intervals),
                average=sum(intervals) / len(intervals),
                median=median(intervals),
            ),
            updates_per_minute=round(len(events) / (span / 60_000), 2) if span > 0 else 0.0,
            recent_activity=self.analyze_recent_activity(stamps[-20:]),
        )

    @staticmethod
    def analyze_recent_activity(stamps: list[float]) -> RecentActivity:
        if len(stamps) < 3:
            return RecentActivity()
        intervals = [b - a for a, b in zip(stamps, stamps[1:])]
        avg = sum(intervals) / len(intervals)
        if avg <= 0:
            return RecentActivity()
        variance = sum((i - avg) ** 2 for i in intervals) / len(intervals)
        coefficient = math.sqrt(variance) / avg
        if coefficient > 0.5:
            pattern = "irregular"
        elif coefficient < 0.2:
            pattern = "very_regular"
        else:
            pattern = "regular"
        return RecentActivity(
            pattern=pattern,
            average_interval_ms=round(avg),
            variability=round(coefficient, 3),
            description=describe_pattern(pattern, avg),
        )

    def get_frequency_stats(self, container_id: str) -> FrequencyStats | None:
        return self._stats.get(container_id)

    def get_all_frequency_stats(self) -> dict[str, FrequencyStats]:
        return dict(self._stats)

    # ----- Benchmarks --------------------------------------------------------
    def benchmark_frequency(
        self,
        container_id: str,
        average_update_time_ms: float | None = None,
        memory_per_update: int | None = None,
    ) -> BenchmarkResult | None:
        events = self.events(container_id)
        stats = self._stats.get(container_id)
        if stats is None or len(events) < MIN_BENCHMARK_EVENTS:
            log.warning("not enough update events to benchmark %s", container_id)
            return None

        impact = self.calculate_performance_impact(stats, average_update_time_ms, memory_per_update)
        result = BenchmarkResult(
            container_id=container_id,
            timestamp=self._clock(),
            update_count=len(events),
            time_span_ms=stats.time_span_ms,
            average_frequency=stats.updates_per_minute,
            performance_impact=impact,
            recommendations=self.generate_frequency_recommendations(
                container_id, stats, average_update_time_ms, memory_per_update
            ),
        )
        self._benchmarks[container_id] = result
        log.info("benchmarked %s: %.2f updates/min", container_id, stats.updates_per_minute)
        return result

    @staticmethod
    def estimate_cpu_impact(updates_per_minute: float, avg_update_time_ms: float | None) -> float:
        avg = DEFAULT_UPDATE_TIME_MS if avg_update_time_ms is None else avg_update_time_ms
        return min((updates_per_minute / 60 * avg) / 10, 100.0)

    @staticmethod
    def estimate_memory_impact(update_count: int, memory_per_update: int | None) -> MemoryImpact:
        per_update = memory_per_update or DEFAULT_MEMORY_PER_UPDATE
        total = update_count * per_update
        return MemoryImpact(
            estimated_memory_per_update=per_update,
            total_estimated_memory=total,
            total_estimated_memory_mb=round(total / 1024 / 1024, 2),
        )

    @staticmethod
    def assess_user_experience(updates_per_minute: float, avg_update_time_ms: float | None) -> UxImpact:
        avg = DEFAULT_UPDATE_TIME_MS if avg_update_time_ms is None else avg_update_time_ms
        ux = UxImpact(updates_per_minute=updates_per_minute, avg_update_time_ms=avg)
        if updates_per_minute > 30 and avg > 100:
            ux.impact = "high"
            ux.description = "Frequent updates with long duration may cause UI lag"
        elif updates_per_minute > 20 or avg > 200:
            ux.impact = "medium"
            ux.description = "Moderate impact on user experience"
        return ux

    def calculate_performance_impact(
        self,
        stats: FrequencyStats,
        average_update_time_ms: float | None = None,
        memory_per_update: int | None = None,
    ) -> PerformanceImpact:
        avg = average_update_time_ms or 0.0
        return PerformanceImpact(
            update_frequency=stats.updates_per_minute,
            average_update_time_ms=avg,
            total_update_time_ms=avg * stats.total_updates,
            cpu_impact_percent=self.estimate_cpu_impact(stats.updates_per_minute, average_update_time_ms),
            memory_impact=self.estimate_memory_impact(stats.total_updates, memory_per_update),
            user_experience_impact=self.assess_user_experience(
                stats.updates_per_minute, average_update_time_ms
            ),
        )

    def generate_frequency_recommendations(
        self,
        container_id: str,
        stats: FrequencyStats,
        average_update_time_ms: float | None = None,
        memory_per_update: int | None = None,
    ) -> list[Recommendation]:
        upm = stats.updates_per_minute
        avg = DEFAULT_UPDATE_TIME_MS if average_update_time_ms is None else average_update_time_ms
        recs: list[Recommendation] = []
        if upm > 20:
            recs.append(
                Recommendation(
                    type="frequency_reduction",
                    priority="high",
                    container_id=container_id,
                    message=f"Consider reducing update frequency from {upm}/min to improve performance",
                    suggested_frequency=max(10.0, upm / 2),
                )
            )
        if avg > 100:
            recs.append(
                Recommendation(
                    type="performance_optimization",
                    priority="medium",
                    container_id=container_id,
                    message=f"Update operations are slow ({avg:.0f}ms avg). Consider optimizing update logic",
                    target_time_ms=50,
                )
            )
        if stats.recent_activity.pattern == "irregular":
            recs.append(
                Recommendation(
                    type="pattern_optimization",
                    priority="low",
                    container_id=container_id,
                    message="Update pattern is irregular. Consider implementing consistent update intervals",
                    suggestion="Use fixed intervals or throttling",
                )
            )
        memory = self.estimate_memory_impact(stats.total_updates, memory_per_update)
        if memory.total_estimated_memory_mb > 10:
            recs.append(
                Recommendation(
                    type="memory_optimization",
                    priority="medium",
                    container_id=container_id,
                    message=(
                        f"High estimated memory usage ({memory.total_estimated_memory_mb}MB). "
                        "Consider cleanup optimizations"
                    ),
                    suggestion="Implement more aggressive cleanup or reduce update payload size",
                )
            )
        return recs

    def get_benchmark_results(self, container_id: str) -> BenchmarkResult | None:
        return self._benchmarks.get(container_id)

    def get_all_benchmark_results(self) -> dict[str, BenchmarkResult]:
        return dict(self._benchmarks)

    # ----- Housekeeping ------------------------------------------------------
    def clear_container(self, container_id: str) -> None:
        self._events.pop(container_id, None)
        self._stats.pop(container_id, None)
        self._benchmarks.pop(container_id, None)

    def clear_all(self) -> None:
        self._events.clear()
        self._stats.clear()
        self._benchmarks.clear()

    def export_data(self) -> dict[str, Any]:
        return {
            "update_events": {
                cid: [
                    {"timestamp_ms": e.timestamp_ms, "duration_ms": e.duration_ms, "success": e.success}
                    for e in events
                ]
                for cid, events in self._events.items()
            },
            "frequency_stats": {cid: s.model_dump() for cid, s in self._stats.items()},
            "benchmark_results": {cid: b.model_dump() for cid, b in self._benchmarks.items()},
            "export_timestamp": self._clock(),
        }


__all__ = ["UpdateEvent", "UpdateFrequencyBenchmark", "describe_pattern"]
