"""Scroll position tracking across content replacement.

When a panel's content is replaced its height usually changes, so restoring
the raw pixel offset would land the reader somewhere else. The tracker
restores the same *fraction* of the scrollable extent instead, and falls back
to a conservative position when the content grew or shrank dramatically.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from dashkeeper.core.settings import get_logger

from .container import Document

log = get_logger(__name__)

#: A save younger than this counts as "the user is interacting".
USER_SCROLL_WINDOW_MS = 2000
#: Movement beyond this many pixels since the last save counts as scrolling.
USER_SCROLL_MIN_PX = 50


@dataclass(frozen=True, slots=True)
class SavedPosition:
    scroll_top: int
    scroll_height: int
    client_height: int
    saved_at: float


class ScrollPositionTracker:
    """Save and proportionally restore scroll positions per container."""

    def __init__(self, document: Document, clock: Callable[[], float] = time.monotonic) -> None:
        self._document = document
        self._clock = clock
        self._positions: dict[str, SavedPosition] = {}

    def save_position(self, container_id: str) -> SavedPosition | None:
        container = self._document.get(container_id)
        if container is None:
            return None
        saved = SavedPosition(
            scroll_top=container.scroll_top,
            scroll_height=container.scroll_height,
            client_height=container.client_height,
            saved_at=self._clock(),
        )
        self._positions[container_id] = saved
        return saved

    def save_position_safe(self, container_id: str, force: bool = False) -> bool:
        """Save unless the user is mid-scroll; return whether a save happened."""
        if not force and self.is_user_scrolling(container_id):
            log.debug("skip scroll save for %s: user is scrolling", container_id)
            return False
        return self.save_position(container_id) is not None

    def is_user_scrolling(self, container_id: str) -> bool:
        saved = self._positions.get(container_id)
        container = self._document.get(container_id)
        if saved is None or container is None:
            return False
        age_ms = (self._clock() - saved.saved_at) * 1000
        moved = abs(container.scroll_top - saved.scroll_top)
        return age_ms < USER_SCROLL_WINDOW_MS and moved > USER_SCROLL_MIN_PX

    def restore_position(self, container_id: str) -> bool:
        """Apply the saved position proportionally and discard it.

        Returns
        -------
        bool
            ``True`` if a saved position existed and the container is present.
        """
        saved = self._positions.pop(container_id, None)
        container = self._document.get(container_id)
        if saved is None or container is None:
            return False

        old_scrollable = saved.scroll_height - saved.client_height
        new_scrollable = container.scroll_height - container.client_height
        if old_scrollable <= 0 or new_scrollable <= 0:
            container.scroll_top = 0
            return True

        ratio = saved.scroll_top / old_scrollable
        height_ratio = container.scroll_height / saved.scroll_height if saved.scroll_height else 1.0
        if height_ratio < 0.5 or height_ratio > 2:
            target = min(round(ratio * new_scrollable * 0.8), new_scrollable * 0.9)
        else:
            target = min(round(ratio * new_scrollable), new_scrollable)
        container.scroll_top = max(0, target)
        return True

    def has_saved(self, container_id: str) -> bool:
        return container_id in self._positions

    def clear(self, container_id: str) -> None:
        self._positions.pop(container_id, None)

    def clear_all(self) -> None:
        self._positions.clear()


__all__ = ["SavedPosition", "ScrollPositionTracker"]
