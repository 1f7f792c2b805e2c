"""DOM size monitoring against per-container node limits.

Status bands, relative to a container's limit ``L``:

========= ===========================
normal    count < floor(L * 0.8)
warning   floor(L * 0.8) <= count < L
critical  L <= count < floor(L * 1.2)
emergency count >= floor(L * 1.2)
========= ===========================

A periodic sweep (:meth:`DomSizeMonitor.start_monitoring`) runs emergency
cleanup on any container that reached the emergency band.
"""

from __future__ import annotations

import asyncio
import math

from dashkeeper.core.contracts import MonitoringStats, MonitorResult
from dashkeeper.core.settings import get_logger

from .cleanup import DomCleanup
from .container import Document

log = get_logger(__name__)

#: Scrollable panels that are always swept, registered limit or not.
DEFAULT_MONITORED: tuple[str, ...] = ("slowQueries", "pluginPerformance")


class DomSizeMonitor:
    """Count nodes per container and classify them against limits."""

    def __init__(
        self,
        document: Document,
        cleanup: DomCleanup,
        *,
        default_limit: int = 1000,
        warning_threshold: float = 0.8,
        emergency_threshold: float = 1.2,
    ) -> None:
        self._document = document
        self._cleanup = cleanup
        self.default_limit = default_limit
        self.warning_threshold = warning_threshold
        self.emergency_threshold = emergency_threshold
        self._limits: dict[str, int] = {}
        self._task: asyncio.Task[None] | None = None

    # ----- Limits ------------------------------------------------------------
    def set_limit(self, container_id: str, limit: int) -> None:
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self._limits[container_id] = limit

    def get_limit(self, container_id: str) -> int:
        return self._limits.get(container_id, self.default_limit)

    def limited_ids(self) -> list[str]:
        return list(self._limits)

    # ----- Measuring ---------------------------------------------------------
    def monitor_container(self, container_id: str) -> MonitorResult:
        limit = self.get_limit(container_id)
        warning_limit = math.floor(limit * self.warning_threshold)
        emergency_limit = math.floor(limit * self.emergency_threshold)
        container = self._document.get(container_id)
        if container is None:
            return MonitorResult(
                container_id=container_id,
                limit=limit,
                warning_limit=warning_limit,
                emergency_limit=emergency_limit,
                error="container not found",
            )

        counts = container.count_nodes()
        if counts.node_count >= emergency_limit:
            status = "emergency"
        elif counts.node_count >= limit:
            status = "critical"
        elif counts.node_count >= warning_limit:
            status = "warning"
        else:
            status = "normal"

        if status != "normal":
            log.warning(
                "%s at %s: %d nodes (limit %d)", container_id, status, counts.node_count, limit
            )
        return MonitorResult(
            container_id=container_id,
            node_count=counts.node_count,
            text_nodes=counts.text_nodes,
            element_nodes=counts.element_nodes,
            limit=limit,
            warning_limit=warning_limit,
            emergency_limit=emergency_limit,
            status=status,
            percentage=round(counts.node_count / limit * 100),
        )

    def monitored_ids(self) -> list[str]:
        ids = list(DEFAULT_MONITORED)
        ids.extend(cid for cid in self._limits if cid not in ids)
        return ids

    def monitor_all_containers(self) -> dict[str, MonitorResult]:
        """Sweep every monitored container; emergency ones are cleared."""
        results: dict[str, MonitorResult] = {}
        for container_id in self.monitored_ids():
            if container_id not in self._document:
                continue
            result = self.monitor_container(container_id)
            results[container_id] = result
            if result.status == "emergency":
                self._cleanup.emergency_cleanup(container_id)
        return results

    def get_monitoring_stats(self) -> MonitoringStats:
        results = {
            cid: self.monitor_container(cid)
            for cid in self.monitored_ids()
            if cid in self._document
        }
        stats = MonitoringStats(total_containers=len(results), containers=results)
        for result in results.values():
            stats.total_nodes += result.node_count
            if result.status in ("normal", "warning", "critical", "emergency"):
                setattr(stats, result.status, getattr(stats, result.status) + 1)
        return stats

    # ----- Periodic sweep ----------------------------------------------------
    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_monitoring(self, frequency_ms: int = 30_000) -> None:
        self.stop_monitoring()
        self._task = asyncio.get_running_loop().create_task(self._sweep(frequency_ms))
        log.debug("DOM size monitoring every %dms", frequency_ms)

    def stop_monitoring(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _sweep(self, frequency_ms: int) -> None:
        while True:
            await asyncio.sleep(frequency_ms / 1000)
            self.monitor_all_containers()


__all__ = ["DEFAULT_MONITORED", "DomSizeMonitor"]
