"""Update request contracts: priorities, per-request options and history.

- :class:`UpdateOptions` is what callers pass to
  ``ContentUpdateManager.update_container``; unset fields inherit manager
  settings at execution time.
- :class:`UpdateHistoryRecord` describes the last successful update of a
  container.
- :class:`UpdateMetrics` is the before/after measurement of one update.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

# --------------------------------------------------------------------------- #
# Priorities
# --------------------------------------------------------------------------- #

Priority = Literal["low", "normal", "high", "critical"]

#: Numeric rank of each priority; higher wins lock contention.
PRIORITY_LEVELS: dict[str, int] = {"low": 1, "normal": 2, "high": 3, "critical": 4}


def priority_level(priority: str) -> int:
    """Return the numeric rank of ``priority`` (unknown names rank as normal)."""
    return PRIORITY_LEVELS.get(priority, PRIORITY_LEVELS["normal"])


# --------------------------------------------------------------------------- #
# Options
# --------------------------------------------------------------------------- #


class UpdateOptions(BaseModel):
    """Per-request behaviour switches.

    Fields
    ------
    priority : Priority
        Lock priority. ``critical`` also skips throttling and the global lock.
    enable_rollback : bool | None
        ``None`` means "use the manager setting".
    suppress_errors : bool | None
        ``None`` means suppress for ``low``/``normal`` and raise for
        ``high``/``critical``.
    coordination_id : str | None
        Set by ``coordinate_updates`` to tie batch members together in logs.
    """

    preserve_scroll: bool = True
    cleanup_required: bool = True
    priority: Priority = "normal"
    bypass_throttle: bool = False
    enable_rollback: bool | None = None
    retry_attempts: int = Field(default=0, ge=0)
    retry_delay_ms: int = Field(default=0, ge=0)
    suppress_errors: bool | None = None
    allow_missing_container: bool = False
    enable_performance_monitoring: bool = True
    coordination_id: str | None = None

    @property
    def level(self) -> int:
        """Numeric priority rank."""
        return priority_level(self.priority)

    @property
    def is_critical(self) -> bool:
        return self.priority == "critical"

    def should_suppress(self) -> bool:
        """Resolve the effective error-suppression flag."""
        if self.suppress_errors is not None:
            return self.suppress_errors
        return self.priority in ("low", "normal")


# --------------------------------------------------------------------------- #
# Outcomes
# --------------------------------------------------------------------------- #


class UpdateMetrics(BaseModel):
    """Measurements taken around one successful update."""

    container_id: str
    duration_ms: float = Field(ge=0.0)
    nodes_before: int = 0
    nodes_after: int = 0
    node_delta: int = 0
    status: str = "normal"


class UpdateHistoryRecord(BaseModel):
    """Last successful update of a container."""

    timestamp: float
    node_count: int
    duration_ms: float
    success: bool = True
    data_size: int = 0


__all__ = [
    "PRIORITY_LEVELS",
    "Priority",
    "UpdateHistoryRecord",
    "UpdateMetrics",
    "UpdateOptions",
    "priority_level",
]
