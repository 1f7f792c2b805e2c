"""Status payloads returned by monitors and the update manager.

All of these are read-only views assembled on demand; none of them are
stored. They exist so the CLI and tests can ``model_dump()`` a stable shape.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .recovery import ErrorLogEntry

DomStatus = Literal["normal", "warning", "critical", "emergency", "unknown"]
HealthLevel = Literal["good", "warning", "critical"]
ContainerHealthLevel = Literal["good", "warning", "critical", "missing"]


# --------------------------------------------------------------------------- #
# DOM size
# --------------------------------------------------------------------------- #


class MonitorResult(BaseModel):
    """Node counts of one container measured against its limit."""

    container_id: str
    node_count: int = 0
    text_nodes: int = 0
    element_nodes: int = 0
    limit: int = 0
    warning_limit: int = 0
    emergency_limit: int = 0
    status: DomStatus = "unknown"
    percentage: int = 0
    error: str | None = None


class MonitoringStats(BaseModel):
    """Aggregate of one sweep over every monitored container."""

    total_containers: int = 0
    normal: int = 0
    warning: int = 0
    critical: int = 0
    emergency: int = 0
    total_nodes: int = 0
    containers: dict[str, MonitorResult] = Field(default_factory=dict)


# --------------------------------------------------------------------------- #
# Throttling / coordination
# --------------------------------------------------------------------------- #


class ThrottleStatus(BaseModel):
    """Pending state of one throttle key."""

    key: str
    has_pending: bool = False
    last_update_ms_ago: float | None = None
    waiters: int = 0


class ThrottlingStats(BaseModel):
    default_delay_ms: int
    container_delays: dict[str, int] = Field(default_factory=dict)
    active_throttles: int = 0
    pending_throttles: int = 0
    throttles: dict[str, ThrottleStatus] = Field(default_factory=dict)


class ContainerUpdateStatus(BaseModel):
    """Coordination state of one container."""

    container_id: str
    in_progress: bool = False
    locked: bool = False
    lock_priority: str | None = None
    lock_age_ms: float = 0.0
    queue_length: int = 0
    queued_priorities: list[str] = Field(default_factory=list)
    throttle_delay_ms: int = 0
    throttle: ThrottleStatus | None = None
    has_snapshot: bool = False
    rollback_attempts: int = 0
    global_lock_active: bool = False


class AllUpdateStatus(BaseModel):
    global_lock_active: bool = False
    total_active_updates: int = 0
    total_queued_updates: int = 0
    total_locks: int = 0
    containers: dict[str, ContainerUpdateStatus] = Field(default_factory=dict)


# --------------------------------------------------------------------------- #
# Recovery / health
# --------------------------------------------------------------------------- #


class RecoveryStatus(BaseModel):
    rollback_enabled: bool
    corruption_detection_enabled: bool
    max_rollback_attempts: int
    snapshots: int = 0
    containers_with_rollback_attempts: int = 0
    error_log_size: int = 0
    recent_errors: list[ErrorLogEntry] = Field(default_factory=list)


class ContainerHealth(BaseModel):
    container_id: str
    status: ContainerHealthLevel = "good"
    issues: list[str] = Field(default_factory=list)
    node_count: int = 0
    dom_status: DomStatus = "unknown"
    corrupted: bool = False
    rollback_attempts: int = 0
    last_update: float | None = None


class HealthReport(BaseModel):
    """Overall health verdict plus per-container findings."""

    timestamp: float = 0.0
    overall_health: HealthLevel = "good"
    containers: dict[str, ContainerHealth] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)


__all__ = [
    "AllUpdateStatus",
    "ContainerHealth",
    "ContainerHealthLevel",
    "ContainerUpdateStatus",
    "DomStatus",
    "HealthLevel",
    "HealthReport",
    "MonitorResult",
    "MonitoringStats",
    "RecoveryStatus",
    "ThrottleStatus",
    "ThrottlingStats",
]
