"""Update engine: throttling, locking, recovery and the orchestrating manager."""

from __future__ import annotations

from .corruption import DEFAULT_CHECKS, CheckContext, CorruptionCheck, CorruptionDetector
from .error_log import ErrorLog, SessionErrorStore
from .locks import QueueEntry, UpdateLock, UpdateLockTable, UpdateQueue
from .manager import ContainerUpdate, ContentUpdateManager
from .pipeline import PipelineStage, UpdateContext, UpdatePipeline, UpdateStages
from .recovery import RecoveryEngine, recreation_notice
from .throttle import UpdateThrottler

__all__ = [
    "DEFAULT_CHECKS",
    "CheckContext",
    "ContainerUpdate",
    "ContentUpdateManager",
    "CorruptionCheck",
    "CorruptionDetector",
    "ErrorLog",
    "PipelineStage",
    "QueueEntry",
    "RecoveryEngine",
    "SessionErrorStore",
    "UpdateContext",
    "UpdateLock",
    "UpdateLockTable",
    "UpdatePipeline",
    "UpdateQueue",
    "UpdateStages",
    "UpdateThrottler",
    "recreation_notice",
]
