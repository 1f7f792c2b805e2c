"""Timing, memory and update-frequency instrumentation."""

from __future__ import annotations

from .frequency import UpdateFrequencyBenchmark
from .memory import MemoryMonitor
from .monitor import PerformanceMonitor
from .timer import PerformanceTimer

__all__ = ["MemoryMonitor", "PerformanceMonitor", "PerformanceTimer", "UpdateFrequencyBenchmark"]
