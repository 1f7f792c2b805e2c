"""Wall-clock timing of named operations with summary statistics."""

from __future__ import annotations

import math
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from dashkeeper.core.contracts.perf import TimerStats, Trend
from dashkeeper.core.settings import get_logger

log = get_logger(__name__)


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_xx = (n - 1) * n * (2 * n - 1) / 6
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    denom = n * sum_xx - sum_x * sum_x
    return (n * sum_xy - sum_x * sum_y) / denom if denom else 0.0


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0.0
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2


@dataclass(frozen=True, slots=True)
class Measurement:
    operation_id: str
    duration_ms: float
    started_at: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class _Running:
    started: float
    wall: float
    metadata: dict[str, Any]


class PerformanceTimer:
    """Start/end timers keyed by operation id; keep every finished measurement."""

    def __init__(self) -> None:
        self._running: dict[str, _Running] = {}
        self._measurements: dict[str, list[Measurement]] = {}

    def start(self, operation_id: str, metadata: dict[str, Any] | None = None) -> None:
        self._running[operation_id] = _Running(time.perf_counter(), time.time(), dict(metadata or {}))

    def end(self, operation_id: str, **extra: Any) -> Measurement | None:
        running = self._running.pop(operation_id, None)
        if running is None:
            log.warning("no timer running for %s", operation_id)
            return None
        measurement = Measurement(
            operation_id=operation_id,
            duration_ms=(time.perf_counter() - running.started) * 1000,
            started_at=running.wall,
            metadata={**running.metadata, **extra},
        )
        self._measurements.setdefault(operation_id, []).append(measurement)
        log.debug("%s took %.2fms", operation_id, measurement.duration_ms)
        return measurement

    def record(self, operation_id: str, duration_ms: float, **metadata: Any) -> Measurement:
        """Store an externally measured duration."""
        measurement = Measurement(operation_id, duration_ms, time.time(), dict(metadata))
        self._measurements.setdefault(operation_id, []).append(measurement)
        return measurement

    def get_measurements(self, operation_id: str, limit: int = 100) -> list[Measurement]:
        return self._measurements.get(operation_id, [])[-limit:]

    def get_stats(self, operation_id: str, recent_count: int = 50) -> TimerStats:
        measurements = self.get_measurements(operation_id, recent_count)
        if not measurements:
            return TimerStats(operation_id=operation_id)
        durations = [m.duration_ms for m in measurements]
        ordered = sorted(durations)
        n = len(ordered)
        return TimerStats(
            operation_id=operation_id,
            count=n,
            min=ordered[0],
            max=ordered[-1],
            average=sum(durations) / n,
            median=median(durations),
            p95=ordered[min(math.floor(n * 0.95), n - 1)],
            p99=ordered[min(math.floor(n * 0.99), n - 1)],
            recent_trend=self.calculate_trend(durations[-10:]),
            span_ms=(measurements[-1].started_at - measurements[0].started_at) * 1000,
        )

    @staticmethod
    def calculate_trend(durations: Sequence[float]) -> Trend:
        if len(durations) < 3:
            return Trend()
        slope = linear_slope(durations)
        trend = "degrading" if slope > 1 else "improving" if slope < -1 else "stable"
        return Trend(trend=trend, slope=round(slope, 3))

    def get_all_stats(self) -> dict[str, TimerStats]:
        return {op: self.get_stats(op) for op in self._measurements}

    def export(self) -> dict[str, list[dict[str, Any]]]:
        return {
            op: [
                {"duration_ms": m.duration_ms, "started_at": m.started_at, **m.metadata}
                for m in ms
            ]
            for op, ms in self._measurements.items()
        }

    def clear_measurements(self, operation_id: str) -> None:
        self._measurements.pop(operation_id, None)

    def clear_all(self) -> None:
        self._measurements.clear()
        self._running.clear()


__all__ = ["Measurement", "PerformanceTimer", "linear_slope", "median"]
