"""Per-key throttling with trailing coalescing.

``throttle(key, fn)`` runs ``fn`` right away when the key has been quiet for
at least ``delay`` since its last execution started. Otherwise the call is
parked until the window closes; a newer call for the same key replaces the
parked function, and every caller that was coalesced into that single
execution receives its outcome.

Example
-------
Two calls 100 ms apart inside a 2000 ms window produce one execution that
uses the second call's function; both callers get the same result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from dashkeeper.core.contracts import ThrottleStatus
from dashkeeper.core.errors import UpdateCancelled
from dashkeeper.core.settings import get_logger

log = get_logger(__name__)

ThrottledFn = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class _KeyState:
    last_update: float | None = None
    pending: ThrottledFn | None = None
    timer: asyncio.TimerHandle | None = None
    waiters: list[asyncio.Future[Any]] = field(default_factory=list)


class UpdateThrottler:
    """Leading-edge throttle with a replaceable trailing execution per key."""

    def __init__(self, default_delay_ms: int = 1000) -> None:
        self.default_delay_ms = default_delay_ms
        self._states: dict[str, _KeyState] = {}
        self._running: set[asyncio.Task[Any]] = set()

    def set_default_delay(self, delay_ms: int) -> None:
        if delay_ms < 0:
            raise ValueError("throttle delay must be >= 0")
        self.default_delay_ms = delay_ms

    # ----- Scheduling --------------------------------------------------------
    def throttle(self, key: str, fn: ThrottledFn, delay_ms: int | None = None) -> asyncio.Future[Any]:
        """Schedule ``fn`` under ``key`` and return a future for its outcome."""
        loop = asyncio.get_running_loop()
        state = self._states.setdefault(key, _KeyState())
        delay = (self.default_delay_ms if delay_ms is None else delay_ms) / 1000

        waiter: asyncio.Future[Any] = loop.create_future()
        state.waiters.append(waiter)
        if state.pending is not None:
            log.debug("throttle %s: replacing pending update", key)
        state.pending = fn
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None

        elapsed = float("inf") if state.last_update is None else loop.time() - state.last_update
        if elapsed >= delay:
            self._execute(key)
        else:
            state.timer = loop.call_later(delay - elapsed, self._execute, key)
        return waiter

    def _execute(self, key: str) -> None:
        state = self._states.get(key)
        if state is None or state.pending is None:
            return
        fn, waiters = state.pending, state.waiters
        state.pending, state.waiters, state.timer = None, [], None

        loop = asyncio.get_running_loop()
        state.last_update = loop.time()
        task = loop.create_task(self._run(fn, waiters))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    @staticmethod
    async def _run(fn: ThrottledFn, waiters: list[asyncio.Future[Any]]) -> None:
        try:
            result = await fn()
        except asyncio.CancelledError:
            for w in waiters:
                w.cancel()
            raise
        except Exception as exc:
            for w in waiters:
                if not w.done():
                    w.set_exception(exc)
        else:
            for w in waiters:
                if not w.done():
                    w.set_result(result)

    # ----- Control -----------------------------------------------------------
    def cancel(self, key: str) -> bool:
        """Drop the pending execution for ``key``; its waiters get ``UpdateCancelled``."""
        state = self._states.get(key)
        if state is None or state.pending is None:
            return False
        if state.timer is not None:
            state.timer.cancel()
        for w in state.waiters:
            if not w.done():
                w.set_exception(UpdateCancelled(f"throttled update for {key!r} cancelled"))
        state.pending, state.waiters, state.timer = None, [], None
        return True

    def cancel_all(self) -> int:
        return sum(1 for key in list(self._states) if self.cancel(key))

    def flush_all(self) -> int:
        """Run every pending execution now; return how many were started."""
        started = 0
        for key, state in list(self._states.items()):
            if state.pending is None:
                continue
            if state.timer is not None:
                state.timer.cancel()
            self._execute(key)
            started += 1
        return started

    async def wait_idle(self) -> None:
        """Wait for all executions that have already started."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    # ----- Introspection -----------------------------------------------------
    def status(self, key: str) -> ThrottleStatus:
        state = self._states.get(key)
        if state is None:
            return ThrottleStatus(key=key)
        ago = None
        if state.last_update is not None:
            ago = (asyncio.get_running_loop().time() - state.last_update) * 1000
        return ThrottleStatus(
            key=key,
            has_pending=state.pending is not None,
            last_update_ms_ago=ago,
            waiters=len(state.waiters),
        )

    def keys(self) -> list[str]:
        return list(self._states)

    @property
    def active_count(self) -> int:
        return sum(1 for s in self._states.values() if s.pending is not None)


__all__ = ["ThrottledFn", "UpdateThrottler"]
