"""Pydantic contracts shared across the update engine."""

from __future__ import annotations

from .recovery import CorruptionReport, ErrorLogEntry, Severity, Snapshot
from .status import (
    AllUpdateStatus,
    ContainerHealth,
    ContainerUpdateStatus,
    HealthReport,
    MonitoringStats,
    MonitorResult,
    RecoveryStatus,
    ThrottleStatus,
    ThrottlingStats,
)
from .update import (
    PRIORITY_LEVELS,
    Priority,
    UpdateHistoryRecord,
    UpdateMetrics,
    UpdateOptions,
    priority_level,
)

__all__ = [
    "PRIORITY_LEVELS",
    "AllUpdateStatus",
    "ContainerHealth",
    "ContainerUpdateStatus",
    "CorruptionReport",
    "ErrorLogEntry",
    "HealthReport",
    "MonitorResult",
    "MonitoringStats",
    "Priority",
    "RecoveryStatus",
    "Severity",
    "Snapshot",
    "ThrottleStatus",
    "ThrottlingStats",
    "UpdateHistoryRecord",
    "UpdateMetrics",
    "UpdateOptions",
    "priority_level",
]
