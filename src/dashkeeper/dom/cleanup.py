"""Release chart resources and shrink oversized panels.

Three levels of intervention, from mild to drastic:

1. :meth:`DomCleanup.cleanup_charts`   : destroy charts bound to canvases in a panel.
2. :meth:`DomCleanup.thorough_cleanup` : also truncate repeated list items.
3. :meth:`DomCleanup.emergency_cleanup`: wipe the panel, show a notice and
   schedule a data refresh so the panel refills from the server.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from dashkeeper.core.settings import get_logger

from .container import ChartRegistry, Document

log = get_logger(__name__)

RefreshHook = Callable[[], Awaitable[Any] | None]

#: Repeated list items produced by the panel renderers.
ITEM_SELECTORS: tuple[str, ...] = (".query-item", ".plugin-item", ".metric-item", ".performance-item")

EMERGENCY_NOTICE = (
    '<div class="cleanup-notice">'
    '<div class="notice-title">Emergency Cleanup Performed</div>'
    '<div class="notice-body">Container exceeded size limits and was cleared.<br>'
    "Refreshing data...</div>"
    "</div>"
)


class DomCleanup:
    """Chart teardown, item truncation and emergency clearing for panels."""

    def __init__(
        self,
        document: Document,
        charts: ChartRegistry,
        refresh: RefreshHook | None = None,
        refresh_delay_ms: int = 2000,
    ) -> None:
        self._document = document
        self._charts = charts
        self._refresh = refresh
        self.refresh_delay_ms = refresh_delay_ms
        self._handles: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    def set_refresh_hook(self, refresh: RefreshHook | None) -> None:
        self._refresh = refresh

    # ----- Charts ------------------------------------------------------------
    def cleanup_charts(self, container_id: str) -> int:
        """Destroy every chart bound to a canvas inside the container."""
        container = self._document.get(container_id)
        if container is None:
            return 0
        destroyed = 0
        for canvas_id in container.canvas_ids():
            chart = self._charts.unbind(canvas_id)
            if chart is not None:
                chart.destroy()
                destroyed += 1
        if destroyed:
            log.debug("destroyed %d chart(s) in %s", destroyed, container_id)
        return destroyed

    # ----- Content -----------------------------------------------------------
    def emergency_cleanup(self, container_id: str) -> bool:
        container = self._document.get(container_id)
        if container is None:
            return False
        log.warning("emergency cleanup on %s", container_id)
        self.cleanup_charts(container_id)
        container.content = EMERGENCY_NOTICE
        container.scroll_top = 0
        self.schedule_refresh()
        return True

    def thorough_cleanup(self, container_id: str, target_max_nodes: int = 500) -> int:
        """Truncate repeated items; escalate to emergency cleanup if still too big.

        Returns
        -------
        int
            Element count after cleanup (``0`` if the container is missing).
        """
        container = self._document.get(container_id)
        if container is None:
            return 0
        initial = container.element_count()
        self.cleanup_charts(container_id)

        keep = target_max_nodes // 10
        for selector in ITEM_SELECTORS:
            removed = container.remove_beyond(selector, keep)
            if removed:
                log.warning("%s: trimmed %d %s item(s), kept %d", container_id, removed, selector, keep)

        final = container.element_count()
        log.info("thorough cleanup of %s: %d -> %d elements", container_id, initial, final)
        if final > target_max_nodes * 1.5:
            self.emergency_cleanup(container_id)
            return container.element_count()
        return final

    # ----- Refresh scheduling ------------------------------------------------
    def schedule_refresh(self, delay_ms: int | None = None) -> asyncio.TimerHandle | None:
        """Invoke the refresh hook after ``delay_ms`` on the running loop."""
        if self._refresh is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning("no running event loop; data refresh not scheduled")
            return None
        delay = self.refresh_delay_ms if delay_ms is None else delay_ms
        handle = loop.call_later(delay / 1000, self._fire_refresh)
        self._handles.add(handle)
        return handle

    def _fire_refresh(self) -> None:
        self._handles = {h for h in self._handles if not h.cancelled() and h.when() > _now()}
        if self._refresh is None:
            return
        outcome = self._refresh()
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._tasks.add(task)
            task.add_done_callback(self._on_refresh_done)

    def _on_refresh_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("scheduled refresh failed: %s", task.exception())

    @property
    def pending_refreshes(self) -> int:
        return len([h for h in self._handles if not h.cancelled()]) + len(self._tasks)

    def cancel_pending(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()


def _now() -> float:
    return asyncio.get_running_loop().time()


__all__ = ["EMERGENCY_NOTICE", "ITEM_SELECTORS", "DomCleanup", "RefreshHook"]
