"""Performance report contracts: timing, memory and update-frequency views.

Producers live in :mod:`dashkeeper.perf`. These models are what
``PerformanceMonitor.get_performance_report()`` and ``export_data()`` hand
out, so their field names are the stable part of the reporting surface.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

TimingTrend = Literal["insufficient_data", "stable", "degrading", "improving"]
MemoryTrend = Literal["insufficient_data", "stable", "increasing", "decreasing"]
ActivityPattern = Literal["insufficient_data", "very_regular", "regular", "irregular"]
RecommendationPriority = Literal["high", "medium", "low"]


class Trend(BaseModel):
    """Linear-regression trend over the most recent samples."""

    trend: str = "insufficient_data"
    slope: float = 0.0
    description: str | None = None


class TimerStats(BaseModel):
    operation_id: str
    count: int = 0
    min: float = 0.0
    max: float = 0.0
    average: float = 0.0
    median: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    recent_trend: Trend = Field(default_factory=Trend)
    span_ms: float = 0.0


class DomNodeStats(BaseModel):
    current: int = 0
    min: int = 0
    max: int = 0
    average: float = 0.0


class HeapStats(BaseModel):
    current: int = 0
    min: int = 0
    max: int = 0
    average: float = 0.0
    current_mb: float = 0.0
    trend: Trend = Field(default_factory=Trend)


class MemoryStats(BaseModel):
    measurement_count: int = 0
    time_span_ms: float = 0.0
    dom_nodes: DomNodeStats = Field(default_factory=DomNodeStats)
    heap: HeapStats | None = None


class IntervalStats(BaseModel):
    min: float = 0.0
    max: float = 0.0
    average: float = 0.0
    median: float = 0.0


class RecentActivity(BaseModel):
    pattern: ActivityPattern = "insufficient_data"
    average_interval_ms: float = 0.0
    variability: float = 0.0
    description: str = "Unknown pattern"


class FrequencyStats(BaseModel):
    container_id: str
    total_updates: int = 0
    time_span_ms: float = 0.0
    intervals: IntervalStats = Field(default_factory=IntervalStats)
    updates_per_minute: float = 0.0
    recent_activity: RecentActivity = Field(default_factory=RecentActivity)


class Recommendation(BaseModel):
    type: str
    priority: RecommendationPriority
    message: str
    suggestion: str | None = None
    container_id: str | None = None
    operation: str | None = None
    suggested_frequency: float | None = None
    target_time_ms: float | None = None


class UxImpact(BaseModel):
    impact: Literal["low", "medium", "high"] = "low"
    description: str = "Updates are infrequent and fast"
    updates_per_minute: float = 0.0
    avg_update_time_ms: float = 0.0


class MemoryImpact(BaseModel):
    estimated_memory_per_update: int = 1024
    total_estimated_memory: int = 0
    total_estimated_memory_mb: float = 0.0


class PerformanceImpact(BaseModel):
    update_frequency: float = 0.0
    average_update_time_ms: float = 0.0
    total_update_time_ms: float = 0.0
    cpu_impact_percent: float = 0.0
    memory_impact: MemoryImpact = Field(default_factory=MemoryImpact)
    user_experience_impact: UxImpact = Field(default_factory=UxImpact)


class BenchmarkResult(BaseModel):
    container_id: str
    timestamp: float
    update_count: int
    time_span_ms: float
    average_frequency: float
    performance_impact: PerformanceImpact
    recommendations: list[Recommendation] = Field(default_factory=list)


class PerformanceReport(BaseModel):
    timestamp: float
    monitoring_duration_ms: float = 0.0
    is_monitoring: bool = False
    timing: dict[str, TimerStats] = Field(default_factory=dict)
    memory: MemoryStats | None = None
    frequency: dict[str, FrequencyStats] = Field(default_factory=dict)
    benchmarks: dict[str, BenchmarkResult] = Field(default_factory=dict)


__all__ = [
    "ActivityPattern",
    "BenchmarkResult",
    "DomNodeStats",
    "FrequencyStats",
    "HeapStats",
    "IntervalStats",
    "MemoryImpact",
    "MemoryStats",
    "MemoryTrend",
    "PerformanceImpact",
    "PerformanceReport",
    "RecentActivity",
    "Recommendation",
    "RecommendationPriority",
    "TimerStats",
    "TimingTrend",
    "Trend",
    "UxImpact",
]
