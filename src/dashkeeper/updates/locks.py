"""Per-container update locks and bounded priority queues.

Lock rules
----------
``acquire`` succeeds when the container is unlocked, when the requested
priority strictly outranks the holder, or when the holder's lock is older
than the stale timeout. Anything else must wait in the container's queue.

Queue rules
-----------
- Each container queue holds at most ``max_size`` entries.
- When full, the oldest non-critical entry is evicted (the oldest entry
  overall if all are critical).
- Critical entries go to the front; others are appended.
- Before popping, the queue is collapsed to every critical entry plus the
  most recent non-critical one. Superseded requests are never worth
  replaying on a dashboard that only shows the latest data.
- Dropped entries fail their future with ``LockUnavailable``.
"""

from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from dashkeeper.core.contracts import UpdateOptions, priority_level
from dashkeeper.core.errors import DashkeeperError, LockUnavailable
from dashkeeper.core.settings import get_logger

log = get_logger(__name__)

_seq = itertools.count()


@dataclass(frozen=True, slots=True)
class UpdateLock:
    priority: str
    timestamp: float
    lock_id: str

    @property
    def level(self) -> int:
        return priority_level(self.priority)


class UpdateLockTable:
    """At most one lock per container, overridable by priority or staleness."""

    def __init__(self, stale_after_ms: int = 30_000, clock: Callable[[], float] = time.monotonic) -> None:
        self.stale_after_ms = stale_after_ms
        self._clock = clock
        self._locks: dict[str, UpdateLock] = {}

    def acquire(self, container_id: str, priority: str = "normal") -> bool:
        now = self._clock()
        held = self._locks.get(container_id)
        if held is not None:
            age_ms = (now - held.timestamp) * 1000
            if priority_level(priority) > held.level:
                log.debug("%s: %s lock overrides %s", container_id, priority, held.priority)
            elif age_ms > self.stale_after_ms:
                log.warning("%s: breaking stale lock (%.0fms old)", container_id, age_ms)
            else:
                return False
        self._locks[container_id] = UpdateLock(priority, now, uuid.uuid4().hex[:8])
        return True

    def release(self, container_id: str) -> None:
        self._locks.pop(container_id, None)

    def get(self, container_id: str) -> UpdateLock | None:
        return self._locks.get(container_id)

    def is_locked(self, container_id: str) -> bool:
        return container_id in self._locks

    def ids(self) -> list[str]:
        return list(self._locks)

    def clear(self) -> None:
        self._locks.clear()

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(slots=True)
class QueueEntry:
    update_fn: Callable[..., Any]
    data: Any
    options: UpdateOptions
    timestamp: float
    queue_id: str
    future: asyncio.Future[Any]
    seq: int = field(default_factory=lambda: next(_seq))

    @property
    def is_critical(self) -> bool:
        return self.options.is_critical

    def fail(self, exc: DashkeeperError) -> None:
        if not self.future.done():
            self.future.set_exception(exc)


class UpdateQueue:
    """Bounded per-container queues of deferred update requests."""

    def __init__(self, max_size: int = 5, clock: Callable[[], float] = time.monotonic) -> None:
        if max_size < 1:
            raise ValueError("queue size must be >= 1")
        self.max_size = max_size
        self._clock = clock
        self._queues: dict[str, list[QueueEntry]] = {}

    def enqueue(
        self,
        container_id: str,
        update_fn: Callable[..., Any],
        data: Any,
        options: UpdateOptions,
    ) -> QueueEntry:
        queue = self._queues.setdefault(container_id, [])
        if len(queue) >= self.max_size:
            victim = self._eviction_candidate(queue)
            queue.remove(victim)
            victim.fail(LockUnavailable(f"{container_id}: queued update {victim.queue_id} evicted"))
            log.warning("%s: queue full, evicted %s", container_id, victim.queue_id)

        entry = QueueEntry(
            update_fn=update_fn,
            data=data,
            options=options,
            timestamp=self._clock(),
            queue_id=uuid.uuid4().hex[:8],
            future=asyncio.get_running_loop().create_future(),
        )
        if entry.is_critical:
            queue.insert(0, entry)
        else:
            queue.append(entry)
        log.debug("%s: queued %s (%s), depth %d", container_id, entry.queue_id, options.priority, len(queue))
        return entry

    @staticmethod
    def _eviction_candidate(queue: list[QueueEntry]) -> QueueEntry:
        pool = [e for e in queue if not e.is_critical] or queue
        return min(pool, key=lambda e: (e.timestamp, e.seq))

    def discard(self, container_id: str, entry: QueueEntry) -> bool:
        """Remove ``entry`` whose caller stopped waiting for it."""
        queue = self._queues.get(container_id)
        if not queue or entry not in queue:
            return False
        queue.remove(entry)
        if not queue:
            del self._queues[container_id]
        log.debug("%s: discarded queued update %s", container_id, entry.queue_id)
        return True

    def _prune(self, container_id: str) -> list[QueueEntry]:
        # Entries whose future already resolved have nobody waiting on them.
        queue = [e for e in self._queues.get(container_id, ()) if not e.future.done()]
        if queue:
            self._queues[container_id] = queue
        else:
            self._queues.pop(container_id, None)
        return queue

    def collapse(self, container_id: str) -> list[QueueEntry]:
        """Keep critical entries plus the newest non-critical one; return the dropped."""
        queue = self._prune(container_id)
        if not queue:
            return []
        regular = [e for e in queue if not e.is_critical]
        if len(regular) <= 1:
            return []
        newest = max(regular, key=lambda e: (e.timestamp, e.seq))
        dropped = [e for e in regular if e is not newest]
        self._queues[container_id] = [e for e in queue if e.is_critical or e is newest]
        for entry in dropped:
            entry.fail(LockUnavailable(f"{container_id}: queued update {entry.queue_id} superseded"))
        return dropped

    def pop_next(self, container_id: str) -> QueueEntry | None:
        """Collapse, then remove and return the highest-priority, oldest entry."""
        self.collapse(container_id)
        queue = self._prune(container_id)
        if not queue:
            return None
        queue.sort(key=lambda e: (-e.options.level, e.timestamp, e.seq))
        entry = queue.pop(0)
        if not queue:
            del self._queues[container_id]
        return entry

    def length(self, container_id: str) -> int:
        return len(self._queues.get(container_id, ()))

    def priorities(self, container_id: str) -> list[str]:
        return [e.options.priority for e in self._queues.get(container_id, ())]

    def ids(self) -> list[str]:
        return [cid for cid, q in self._queues.items() if q]

    def clear(
        self,
        container_id: str | None = None,
        exc_type: type[DashkeeperError] = LockUnavailable,
    ) -> int:
        """Drop queued entries (one container or all) and fail their futures."""
        ids = [container_id] if container_id is not None else list(self._queues)
        dropped = 0
        for cid in ids:
            for entry in self._queues.pop(cid, []):
                entry.fail(exc_type(f"{cid}: queued update {entry.queue_id} dropped"))
                dropped += 1
        return dropped

    def __len__(self) -> int:
        return sum(len(q) for q in self._queues.values())


__all__ = ["QueueEntry", "UpdateLock", "UpdateLockTable", "UpdateQueue"]
