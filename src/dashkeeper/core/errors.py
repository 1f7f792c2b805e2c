"""Exception taxonomy for the update engine.

Everything raised across a public boundary derives from `DashkeeperError`, so
callers can catch one base class. Data-source fetches do not raise; they
return `dashkeeper.core.result.Result` values instead.
"""

from __future__ import annotations


class DashkeeperError(Exception):
    """Base class for all dashkeeper errors."""


class ContainerNotFound(DashkeeperError):
    """The requested container id is not present in the document."""

    def __init__(self, container_id: str) -> None:
        super().__init__(f"container not found: {container_id}")
        self.container_id = container_id


class UpdateFailed(DashkeeperError):
    """An update could not be applied (the cause is chained via ``__cause__``).

    ``recovered`` is ``False`` when neither rollback nor recreation could put
    the container back into a clean state.
    """

    def __init__(self, container_id: str, message: str, *, recovered: bool = True) -> None:
        super().__init__(f"update of {container_id!r} failed: {message}")
        self.container_id = container_id
        self.recovered = recovered


class RollbackFailed(DashkeeperError):
    """Restoring a snapshot did not reproduce the snapshot's structure."""


class RecreationFailed(DashkeeperError):
    """A container could not be rebuilt into a clean state."""


class CoordinationTimeout(DashkeeperError):
    """A batch of coordinated updates exceeded its time budget."""

    def __init__(self, coordination_id: str, timeout_ms: int) -> None:
        super().__init__(f"coordination {coordination_id} exceeded {timeout_ms}ms")
        self.coordination_id = coordination_id
        self.timeout_ms = timeout_ms


class LockUnavailable(DashkeeperError):
    """A queued request was dropped before it could take the container lock."""


class UpdateRejected(DashkeeperError):
    """The global update lock refused a non-critical request."""


class UpdateCancelled(DashkeeperError):
    """A pending throttled or queued request was cancelled."""


__all__ = [
    "ContainerNotFound",
    "CoordinationTimeout",
    "DashkeeperError",
    "LockUnavailable",
    "RecreationFailed",
    "RollbackFailed",
    "UpdateCancelled",
    "UpdateFailed",
    "UpdateRejected",
]
