"""Bounded structured log of recovery events.

Every rollback, recreation, corruption finding and failed update is recorded
as an :class:`~dashkeeper.core.contracts.ErrorLogEntry` in a ring buffer and
echoed to the process logger at a level chosen by event type. Entries can
optionally be mirrored to a small JSON file (:class:`SessionErrorStore`) so
the last few events survive a restart.

Persistence is best-effort: a failing disk write is logged, never raised.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import Any

from dashkeeper.core.contracts import ErrorLogEntry
from dashkeeper.core.settings import get_logger
from dashkeeper.perf.memory import process_rss

log = get_logger(__name__)

#: Log level per event type; anything unlisted is a warning.
EVENT_LEVELS: dict[str, int] = {
    "ROLLBACK_SUCCESS": logging.INFO,
    "CONTAINER_RECREATED": logging.INFO,
    "ROLLBACK_FAILED": logging.ERROR,
    "RECREATION_EXCEPTION": logging.ERROR,
    "COMPLETE_RECOVERY_FAILED": logging.ERROR,
}


class SessionErrorStore:
    """Mirror the most recent entries to a JSON file on disk."""

    def __init__(self, path: Path | str, max_entries: int = 50) -> None:
        self.path = Path(path)
        self.max_entries = max_entries

    def load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("session error store unreadable (%s): %s", self.path, exc)
            return []
        return data if isinstance(data, list) else []

    def append(self, entry: ErrorLogEntry) -> None:
        records = self.load()
        records.append(entry.model_dump(mode="json"))
        records = records[-self.max_entries :]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
        except OSError as exc:
            log.warning("could not persist error entry to %s: %s", self.path, exc)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("could not clear session error store %s: %s", self.path, exc)


class ErrorLog:
    """Ring buffer of recovery events with optional session mirroring."""

    def __init__(
        self,
        max_entries: int = 100,
        session_store: SessionErrorStore | None = None,
        memory_probe: Callable[[], int | None] = process_rss,
    ) -> None:
        self._entries: deque[ErrorLogEntry] = deque(maxlen=max_entries)
        self._session_store = session_store
        self._memory_probe = memory_probe

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    def log(self, type: str, message: str, context: dict[str, Any] | None = None) -> ErrorLogEntry:
        entry = ErrorLogEntry(
            error_id=uuid.uuid4().hex[:12],
            type=type,
            message=message,
            context=dict(context or {}),
            memory_usage=self._memory_probe(),
        )
        self._entries.append(entry)
        log.log(EVENT_LEVELS.get(type, logging.WARNING), "[%s] %s", type, message)
        if self._session_store is not None:
            self._session_store.append(entry)
        return entry

    def entries(self, type: str | None = None) -> list[ErrorLogEntry]:
        if type is None:
            return list(self._entries)
        return [e for e in self._entries if e.type == type]

    def types(self) -> list[str]:
        return [e.type for e in self._entries]

    def recent(self, n: int = 5) -> list[ErrorLogEntry]:
        return list(self._entries)[-n:] if n > 0 else []

    def clear(self) -> None:
        self._entries.clear()
        if self._session_store is not None:
            self._session_store.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["EVENT_LEVELS", "ErrorLog", "SessionErrorStore"]
