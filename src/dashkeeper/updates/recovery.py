"""Snapshot, rollback and recreation of containers.

Recovery escalates in two steps:

1. **Rollback** restores the last snapshot and verifies the element count
   came back (within ``tolerance``). Each container has a rollback budget;
   once it is spent, rollback is skipped.
2. **Recreation** wipes the container down to a notice, resets its scroll
   and cached state, and schedules a data refresh.

A rollback that fails verification escalates to recreation *without*
clearing the attempt counter, so a container whose snapshots keep failing
reaches its budget instead of bouncing between the two forever.
"""

from __future__ import annotations

import html
import uuid
from typing import Literal

from dashkeeper.core.contracts import Snapshot
from dashkeeper.core.errors import ContainerNotFound, RollbackFailed
from dashkeeper.core.settings import get_logger
from dashkeeper.dom.cleanup import DomCleanup
from dashkeeper.dom.container import Document, HtmlContainer
from dashkeeper.dom.scroll import ScrollPositionTracker

from .error_log import ErrorLog

log = get_logger(__name__)

RollbackOutcome = Literal["success", "skipped", "recreated", "failed"]
RecoveryOutcome = Literal["rolled_back", "recreated", "failed"]


def recreation_notice(reason: str) -> str:
    return (
        '<div class="container-recreation-notice">'
        '<div class="notice-title">Container Recreated</div>'
        f'<div class="notice-body">{html.escape(reason)}<br>Loading fresh data...</div>'
        "</div>"
    )


class RecoveryEngine:
    """Own snapshots and rollback budgets; perform rollback and recreation."""

    def __init__(
        self,
        document: Document,
        cleanup: DomCleanup,
        scroll: ScrollPositionTracker,
        error_log: ErrorLog,
        *,
        rollback_enabled: bool = True,
        max_rollback_attempts: int = 3,
        tolerance: int = 5,
    ) -> None:
        self._document = document
        self._cleanup = cleanup
        self._scroll = scroll
        self._error_log = error_log
        self.rollback_enabled = rollback_enabled
        self._max_attempts = max(1, max_rollback_attempts)
        self.tolerance = tolerance
        self._snapshots: dict[str, Snapshot] = {}
        self._attempts: dict[str, int] = {}

    # ----- Settings ----------------------------------------------------------
    @property
    def max_rollback_attempts(self) -> int:
        return self._max_attempts

    @max_rollback_attempts.setter
    def max_rollback_attempts(self, value: int) -> None:
        self._max_attempts = max(1, int(value))

    # ----- Snapshots ---------------------------------------------------------
    def create_snapshot(self, container_id: str) -> Snapshot | None:
        container = self._document.get(container_id)
        if container is None:
            self._error_log.log(
                "SNAPSHOT_FAILED",
                f"cannot snapshot missing container {container_id}",
                {"container_id": container_id},
            )
            return None
        snapshot = Snapshot(
            snapshot_id=uuid.uuid4().hex[:12],
            container_id=container_id,
            content=container.content,
            scroll_top=container.scroll_top,
            scroll_height=container.scroll_height,
            client_height=container.client_height,
            node_count=container.element_count(),
        )
        self._snapshots[container_id] = snapshot
        log.debug("snapshot %s of %s (%d elements)", snapshot.snapshot_id, container_id, snapshot.node_count)
        return snapshot

    def get_snapshot(self, container_id: str) -> Snapshot | None:
        return self._snapshots.get(container_id)

    def has_snapshot(self, container_id: str) -> bool:
        return container_id in self._snapshots

    def snapshot_count(self) -> int:
        return len(self._snapshots)

    def clear_all_snapshots(self) -> None:
        self._snapshots.clear()

    # ----- Attempts ----------------------------------------------------------
    def rollback_attempts(self, container_id: str) -> int:
        return self._attempts.get(container_id, 0)

    def containers_with_attempts(self) -> int:
        return len(self._attempts)

    def clear_rollback_attempts(self, container_id: str | None = None) -> None:
        if container_id is None:
            self._attempts.clear()
        else:
            self._attempts.pop(container_id, None)

    # ----- Rollback ----------------------------------------------------------
    def _restore(self, container: HtmlContainer, snapshot: Snapshot) -> None:
        self._cleanup.cleanup_charts(container.container_id)
        container.content = snapshot.content
        container.scroll_top = snapshot.scroll_top
        restored = container.element_count()
        if abs(restored - snapshot.node_count) > self.tolerance:
            raise RollbackFailed(
                f"restored {restored} elements, snapshot had {snapshot.node_count}"
            )

    def rollback(self, container_id: str, reason: str = "update failed") -> bool:
        """Restore the last snapshot; escalate to recreation when that is not possible."""
        return self._rollback(container_id, reason) == "success"

    def _rollback(self, container_id: str, reason: str, snapshot: Snapshot | None = None) -> RollbackOutcome:
        ctx = {"container_id": container_id, "reason": reason}
        if not self.rollback_enabled:
            self._error_log.log("ROLLBACK_DISABLED", f"rollback disabled for {container_id}", ctx)
            return "skipped"
        if snapshot is None:
            snapshot = self._snapshots.get(container_id)
        if snapshot is None:
            self._error_log.log("ROLLBACK_NO_SNAPSHOT", f"no snapshot for {container_id}", ctx)
            return "skipped"

        attempts = self._attempts.get(container_id, 0)
        if attempts >= self._max_attempts:
            self._error_log.log(
                "ROLLBACK_MAX_ATTEMPTS",
                f"rollback budget of {self._max_attempts} spent for {container_id}",
                {**ctx, "attempts": attempts},
            )
            return self._escalate(container_id, f"Max rollback attempts exceeded: {reason}", reset_attempts=True)

        self._attempts[container_id] = attempts + 1
        try:
            container = self._document.get(container_id)
            if container is None:
                raise ContainerNotFound(container_id)
            self._restore(container, snapshot)
        except RollbackFailed as exc:
            self._error_log.log(
                "ROLLBACK_VERIFICATION_FAILED",
                f"rollback of {container_id} did not verify: {exc}",
                {**ctx, "attempt": attempts + 1},
            )
            return self._escalate(container_id, f"Rollback verification failed: {reason}")
        except Exception as exc:
            self._error_log.log(
                "ROLLBACK_EXCEPTION",
                f"rollback of {container_id} raised: {exc}",
                {**ctx, "attempt": attempts + 1, "error": repr(exc)},
            )
            return self._escalate(container_id, f"Rollback exception: {reason}")

        self._attempts.pop(container_id, None)
        self._error_log.log(
            "ROLLBACK_SUCCESS",
            f"rolled back {container_id} to snapshot {snapshot.snapshot_id}",
            {**ctx, "snapshot_id": snapshot.snapshot_id, "attempt": attempts + 1},
        )
        return "success"

    def _escalate(self, container_id: str, reason: str, *, reset_attempts: bool = False) -> RollbackOutcome:
        if self.recreate(container_id, reason, reset_attempts=reset_attempts):
            return "recreated"
        return "failed"

    def recover(
        self,
        container_id: str,
        reason: str,
        *,
        use_rollback: bool = True,
        snapshot: Snapshot | None = None,
    ) -> RecoveryOutcome:
        """Bring a container back after a failed update.

        Tries rollback first (when enabled and a snapshot exists), then
        recreation. ``snapshot`` pins the rollback target to the state taken
        for the failing update instead of the last stored one.

        Returns
        -------
        RecoveryOutcome
            ``"rolled_back"``, ``"recreated"`` or ``"failed"`` when neither
            strategy left the container in a clean state.
        """
        has_snapshot = snapshot is not None or container_id in self._snapshots
        if use_rollback and self.rollback_enabled and has_snapshot:
            outcome = self._rollback(container_id, reason, snapshot)
            if outcome == "success":
                return "rolled_back"
            if outcome == "recreated":
                return "recreated"
            self._error_log.log(
                "ROLLBACK_AFTER_UPDATE_FAILED",
                f"rollback could not restore {container_id}; recreating",
                {"container_id": container_id, "reason": reason},
            )
        if self.recreate(container_id, f"Update failed: {reason}"):
            return "recreated"
        return "failed"

    # ----- Recreation --------------------------------------------------------
    def recreate(self, container_id: str, reason: str = "recreated", *, reset_attempts: bool = True) -> bool:
        """Reset the container to a clean notice and schedule a refresh."""
        container = self._document.get(container_id)
        if container is None:
            self._error_log.log(
                "RECREATION_CONTAINER_MISSING",
                f"cannot recreate missing container {container_id}",
                {"container_id": container_id, "reason": reason},
            )
            return False
        try:
            self._cleanup.cleanup_charts(container_id)
            class_name, style = container.class_name, container.style
            container.content = recreation_notice(reason)
            container.class_name, container.style = class_name, style
            container.scroll_top = 0
        except Exception as exc:
            self._error_log.log(
                "RECREATION_EXCEPTION",
                f"recreating {container_id} raised: {exc}",
                {"container_id": container_id, "reason": reason, "error": repr(exc)},
            )
            return False

        self._snapshots.pop(container_id, None)
        if reset_attempts:
            self._attempts.pop(container_id, None)
        self._scroll.clear(container_id)
        self._cleanup.schedule_refresh()
        self._error_log.log(
            "CONTAINER_RECREATED",
            f"recreated {container_id}: {reason}",
            {"container_id": container_id, "reason": reason},
        )
        return True


__all__ = ["RecoveryEngine", "RecoveryOutcome", "recreation_notice"]
