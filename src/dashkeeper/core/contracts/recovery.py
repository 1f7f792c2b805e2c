"""Recovery contracts: snapshots, error-log entries and corruption reports."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["none", "moderate", "critical"]


class Snapshot(BaseModel):
    """Immutable copy of a container taken right before an update.

    ``node_count`` is the element count (not the full node count) because
    rollback verification compares element counts.
    """

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    container_id: str
    content: str
    scroll_top: int = 0
    scroll_height: int = 0
    client_height: int = 0
    node_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ErrorLogEntry(BaseModel):
    """One structured event recorded by the recovery machinery."""

    error_id: str
    type: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    memory_usage: int | None = Field(default=None, description="Process RSS in bytes")


class CorruptionReport(BaseModel):
    """Result of running every corruption check against one container."""

    container_id: str
    corrupted: bool = False
    reasons: list[str] = Field(default_factory=list)
    severity: Severity = "none"
    node_count: int = 0
    limit: int = 0
    checks: dict[str, bool] = Field(default_factory=dict)


__all__ = ["CorruptionReport", "ErrorLogEntry", "Severity", "Snapshot"]
