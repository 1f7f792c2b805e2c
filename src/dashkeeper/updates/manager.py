"""Content update manager: the single entry point for panel updates.

``ContentUpdateManager.update_container`` routes a request through

    global lock -> throttle -> container lock / queue -> retry loop
                -> instrumented pipeline -> release -> drain one queued request

and owns the services the pipeline stages use (recovery engine, corruption
detector, DOM monitor, scroll tracker, cleanup). Everything is constructed
here from :class:`~dashkeeper.core.settings.Settings`; tests pass their own
settings and a fake clock.

Failure policy
--------------
A failing update is logged as ``UPDATE_FAILED`` and recovered (rollback,
then recreation). A recovered failure is retried up to ``retry_attempts``
and then raised as :class:`UpdateFailed` or turned into ``None`` when the
request suppresses errors. If recovery itself fails the error is logged as
``COMPLETE_RECOVERY_FAILED`` and always raised.
"""

from __future__ import annotations

import asyncio
import functools
import json
import time
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from dashkeeper.core.contracts import (
    AllUpdateStatus,
    ContainerHealth,
    ContainerUpdateStatus,
    ErrorLogEntry,
    HealthReport,
    MonitoringStats,
    MonitorResult,
    RecoveryStatus,
    ThrottlingStats,
    UpdateHistoryRecord,
    UpdateOptions,
)
from dashkeeper.core.errors import (
    ContainerNotFound,
    CoordinationTimeout,
    LockUnavailable,
    RecreationFailed,
    UpdateCancelled,
    UpdateFailed,
    UpdateRejected,
)
from dashkeeper.core.settings import Settings, get_logger, load_settings
from dashkeeper.dom.cleanup import DomCleanup, RefreshHook
from dashkeeper.dom.container import ChartRegistry, Document, HtmlContainer
from dashkeeper.dom.monitor import DEFAULT_MONITORED, DomSizeMonitor
from dashkeeper.dom.scroll import ScrollPositionTracker
from dashkeeper.perf.monitor import PerformanceMonitor

from .corruption import CorruptionDetector
from .error_log import ErrorLog, SessionErrorStore
from .locks import UpdateLockTable, UpdateQueue
from .pipeline import UpdateContext, UpdateFn, UpdateStages
from .recovery import RecoveryEngine
from .throttle import UpdateThrottler

log = get_logger(__name__)

#: Characters of the payload kept in ``UPDATE_FAILED`` context.
DATA_PREVIEW_CHARS = 500


@dataclass(slots=True)
class ContainerUpdate:
    """One member of a :meth:`ContentUpdateManager.coordinate_updates` batch."""

    container_id: str
    update_fn: UpdateFn
    data: Any = None
    options: UpdateOptions | None = None


def _preview(data: Any) -> str:
    if isinstance(data, str):
        return data[:DATA_PREVIEW_CHARS]
    try:
        text = json.dumps(data, default=str)
    except (TypeError, ValueError):
        text = repr(data)
    return text[:DATA_PREVIEW_CHARS]


class ContentUpdateManager:
    """Throttled, locked, recoverable updates of dashboard containers.

    Parameters
    ----------
    document : Document
        Registry of the containers this manager may touch.
    charts : ChartRegistry, optional
        Chart handles bound to canvases; destroyed before content changes.
    error_log : ErrorLog, optional
        Shared recovery log. Built from settings when omitted.
    perf : PerformanceMonitor, optional
        When given, each update runs inside ``perf.instrument_update``.
    settings : Settings, optional
        Defaults to the cached :func:`load_settings` instance.
    clock : callable
        Monotonic seconds; drives lock ages, queue order and scroll timing.
    refresh : callable, optional
        Data refresh hook scheduled after recreation or emergency cleanup.
    """

    def __init__(
        self,
        document: Document,
        *,
        charts: ChartRegistry | None = None,
        error_log: ErrorLog | None = None,
        perf: PerformanceMonitor | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        refresh: RefreshHook | None = None,
    ) -> None:
        cfg = settings or load_settings()
        self.settings = cfg
        self.document = document
        self.charts = charts or ChartRegistry()
        self.perf = perf
        self._clock = clock

        if error_log is None:
            store = (
                SessionErrorStore(cfg.session_log_path, cfg.session_log_size)
                if cfg.session_log_path
                else None
            )
            error_log = ErrorLog(cfg.max_error_log_size, session_store=store)
        self.error_log = error_log

        self.throttler = UpdateThrottler(cfg.default_throttle_delay_ms)
        self.locks = UpdateLockTable(cfg.stale_lock_ms, clock)
        self.queue = UpdateQueue(cfg.max_queue_size, clock)
        self.scroll = ScrollPositionTracker(document, clock)
        self.cleanup = DomCleanup(document, self.charts, refresh, cfg.refresh_delay_ms)
        self.dom_monitor = DomSizeMonitor(
            document,
            self.cleanup,
            default_limit=cfg.default_container_limit,
            warning_threshold=cfg.warning_threshold,
            emergency_threshold=cfg.emergency_threshold,
        )
        self.recovery = RecoveryEngine(
            document,
            self.cleanup,
            self.scroll,
            self.error_log,
            rollback_enabled=cfg.rollback_enabled,
            max_rollback_attempts=cfg.max_rollback_attempts,
            tolerance=cfg.rollback_tolerance,
        )
        self.detector = CorruptionDetector(
            document,
            self.error_log,
            self.dom_monitor.get_limit,
            cfg.corruption,
            enabled=cfg.corruption_detection,
        )
        self._history: dict[str, UpdateHistoryRecord] = {}
        self.stages = UpdateStages(
            recovery=self.recovery,
            detector=self.detector,
            dom_monitor=self.dom_monitor,
            cleanup=self.cleanup,
            scroll=self.scroll,
            error_log=self.error_log,
            history=self._history,
        )
        self.pipeline = self.stages.pipeline(cfg.skipped_stages)

        self._throttle_delays: dict[str, int] = dict(cfg.container_throttle_delays)
        self._in_progress: set[str] = set()
        self._global_lock = False
        self._drains: set[asyncio.Task[Any]] = set()
        self._monitor_start: asyncio.TimerHandle | None = None

    # ----- Public update API -------------------------------------------------
    async def update_container(
        self,
        container_id: str,
        update_fn: UpdateFn,
        data: Any = None,
        options: UpdateOptions | None = None,
        **overrides: Any,
    ) -> Any:
        """Apply ``update_fn(container, data)`` to one container.

        Parameters
        ----------
        container_id : str
            Target container.
        update_fn : callable
            ``update_fn(container, data)``; may be sync or async. It must only
            mutate the container it is given.
        data : Any
            Payload passed through to ``update_fn``.
        options : UpdateOptions, optional
            Request options; ``**overrides`` are applied on top, so
            ``update_container(cid, fn, data, priority="high")`` works.

        Returns
        -------
        Any
            Whatever ``update_fn`` returned, or ``None`` when the pipeline
            stopped early or a recovered failure was suppressed.

        Raises
        ------
        UpdateRejected
            The global update lock is active and the request is not critical.
        ContainerNotFound
            The container is missing and ``allow_missing_container`` is off.
        UpdateFailed
            The update failed and errors are not suppressed, or recovery
            failed as well.
        """
        opts = self._resolve_options(options, overrides)
        if self._global_lock and not opts.is_critical:
            log.warning("global update lock active: rejecting %s update of %s", opts.priority, container_id)
            raise UpdateRejected(f"global update lock active: {container_id} update rejected")

        if opts.bypass_throttle or opts.is_critical:
            return await self._execute_container_update(container_id, update_fn, data, opts)

        run = functools.partial(self._execute_container_update, container_id, update_fn, data, opts)
        return await self.throttler.throttle(
            container_id, run, self.get_container_throttle_delay(container_id)
        )

    def _resolve_options(self, options: UpdateOptions | None, overrides: Mapping[str, Any]) -> UpdateOptions:
        opts = options or UpdateOptions()
        if overrides:
            opts = opts.model_copy(update=dict(overrides))
        if opts.enable_rollback is None:
            opts = opts.model_copy(update={"enable_rollback": self.recovery.rollback_enabled})
        return opts

    async def _execute_container_update(
        self,
        container_id: str,
        update_fn: UpdateFn,
        data: Any,
        options: UpdateOptions,
    ) -> Any:
        if not self.locks.acquire(container_id, options.priority):
            log.debug("%s: lock held, queueing %s update", container_id, options.priority)
            return await self._wait_in_queue(container_id, update_fn, data, options)

        if container_id in self._in_progress:
            log.debug("%s: update already in progress, queueing", container_id)
            self.locks.release(container_id)
            return await self._wait_in_queue(container_id, update_fn, data, options)

        self._in_progress.add(container_id)
        try:
            container = self._lookup(container_id, options)
            return await self._run_with_retries(container, update_fn, data, options)
        finally:
            self._in_progress.discard(container_id)
            self.locks.release(container_id)
            self._schedule_drain(container_id)

    async def _wait_in_queue(
        self,
        container_id: str,
        update_fn: UpdateFn,
        data: Any,
        options: UpdateOptions,
    ) -> Any:
        entry = self.queue.enqueue(container_id, update_fn, data, options)
        try:
            return await entry.future
        except asyncio.CancelledError:
            # A cancelled caller must not leave work behind that writes later.
            self.queue.discard(container_id, entry)
            raise
        except LockUnavailable as exc:
            if options.should_suppress():
                log.debug("%s: %s", container_id, exc)
                return None
            raise

    def _lookup(self, container_id: str, options: UpdateOptions) -> HtmlContainer:
        container = self.document.get(container_id)
        if container is not None:
            return container
        if not options.allow_missing_container:
            self.error_log.log(
                "CONTAINER_NOT_FOUND",
                f"container {container_id} not found",
                {"container_id": container_id, "options": options.model_dump()},
            )
            raise ContainerNotFound(container_id)
        log.warning("%s: container missing, creating an empty one", container_id)
        return self.document.create(container_id)

    async def _run_with_retries(
        self,
        container: HtmlContainer,
        update_fn: UpdateFn,
        data: Any,
        options: UpdateOptions,
    ) -> Any:
        attempts = options.retry_attempts
        for attempt in range(attempts + 1):
            try:
                return await self._attempt(container, update_fn, data, options)
            except UpdateFailed as exc:
                if not exc.recovered:
                    raise
                if attempt >= attempts:
                    if options.should_suppress():
                        log.debug("suppressed failure: %s", exc)
                        return None
                    raise
                log.debug("%s: retry %d/%d", container.container_id, attempt + 1, attempts)
                if options.retry_delay_ms:
                    await asyncio.sleep(options.retry_delay_ms / 1000)
        return None

    async def _attempt(
        self,
        container: HtmlContainer,
        update_fn: UpdateFn,
        data: Any,
        options: UpdateOptions,
    ) -> Any:
        container_id = container.container_id
        contexts: list[UpdateContext] = []

        async def run(payload: Any) -> Any:
            ctx = UpdateContext(
                container_id=container_id,
                container=container,
                update_fn=update_fn,
                data=payload,
                options=options,
            )
            contexts.append(ctx)
            await self.pipeline.run(ctx)
            return ctx.result

        try:
            if options.enable_performance_monitoring and self.perf is not None:
                return await self.perf.instrument_update(container_id, run, data)
            return await run(data)
        except RecreationFailed:
            raise
        except Exception as exc:
            self.error_log.log(
                "UPDATE_FAILED",
                f"update failed for {container_id}: {exc}",
                {
                    "container_id": container_id,
                    "error": repr(exc),
                    "data": _preview(data),
                    "coordination_id": options.coordination_id,
                },
            )
            # Only the snapshot taken for this attempt is a valid rollback target.
            snapshot = contexts[-1].snapshot if contexts else None
            outcome = self.recovery.recover(
                container_id,
                str(exc),
                use_rollback=bool(options.enable_rollback) and snapshot is not None,
                snapshot=snapshot,
            )
            if outcome == "failed":
                self.error_log.log(
                    "COMPLETE_RECOVERY_FAILED",
                    f"all recovery mechanisms failed for {container_id}",
                    {"container_id": container_id, "error": repr(exc)},
                )
                raise UpdateFailed(container_id, str(exc), recovered=False) from exc
            raise UpdateFailed(container_id, str(exc)) from exc

    # ----- Queue draining ----------------------------------------------------
    def _schedule_drain(self, container_id: str) -> None:
        if not self.queue.length(container_id):
            return
        task = asyncio.get_running_loop().create_task(self._process_queue(container_id))
        self._drains.add(task)
        task.add_done_callback(self._drains.discard)

    async def _process_queue(self, container_id: str) -> None:
        entry = self.queue.pop_next(container_id)
        if entry is None:
            return
        log.debug("%s: processing queued %s update %s", container_id, entry.options.priority, entry.queue_id)
        options = entry.options.model_copy(update={"bypass_throttle": True})
        try:
            result = await self._execute_container_update(container_id, entry.update_fn, entry.data, options)
        except asyncio.CancelledError:
            entry.future.cancel()
            raise
        except Exception as exc:
            if not entry.future.done():
                entry.future.set_exception(exc)
        else:
            if not entry.future.done():
                entry.future.set_result(result)

    # ----- Coordination ------------------------------------------------------
    async def coordinate_updates(
        self,
        updates: Sequence[ContainerUpdate],
        *,
        sequential: bool = False,
        priority: str = "normal",
        max_concurrent: int | None = None,
        timeout_ms: int | None = None,
        return_exceptions: bool = False,
    ) -> list[Any]:
        """Run a batch of updates, sequentially or in bounded parallel chunks.

        Every member is forced onto ``priority``, tagged with a shared
        coordination id and bypasses throttling. With ``return_exceptions``
        a failing member is returned in its slot and the rest of the batch
        still runs, as with ``asyncio.gather``.

        Raises
        ------
        CoordinationTimeout
            The whole batch did not finish within ``timeout_ms``.
        """
        limit = max(1, max_concurrent or self.settings.coordination_max_concurrent)
        budget = timeout_ms if timeout_ms is not None else self.settings.coordination_timeout_ms
        coordination_id = uuid.uuid4().hex[:9]
        started = time.perf_counter()
        log.info("coordination %s: %d update(s), sequential=%s", coordination_id, len(updates), sequential)

        def launch(update: ContainerUpdate) -> Any:
            opts = (update.options or UpdateOptions()).model_copy(
                update={"priority": priority, "coordination_id": coordination_id, "bypass_throttle": True}
            )
            return self.update_container(update.container_id, update.update_fn, update.data, opts)

        async def batch() -> list[Any]:
            results: list[Any] = []
            if sequential:
                for update in updates:
                    try:
                        results.append(await launch(update))
                    except Exception as exc:
                        if not return_exceptions:
                            raise
                        results.append(exc)
                return results
            for i in range(0, len(updates), limit):
                chunk = updates[i : i + limit]
                results.extend(
                    await asyncio.gather(*(launch(u) for u in chunk), return_exceptions=return_exceptions)
                )
            return results

        try:
            results = await asyncio.wait_for(batch(), budget / 1000)
        except asyncio.TimeoutError as exc:
            log.error("coordination %s exceeded %dms", coordination_id, budget)
            raise CoordinationTimeout(coordination_id, budget) from exc
        log.info("coordination %s completed in %.0fms", coordination_id, (time.perf_counter() - started) * 1000)
        return results

    # ----- Throttling & limits -----------------------------------------------
    def set_container_throttle_delay(self, container_id: str, delay_ms: int) -> None:
        if delay_ms < 0:
            raise ValueError("throttle delay must be >= 0")
        self._throttle_delays[container_id] = delay_ms

    def get_container_throttle_delay(self, container_id: str) -> int:
        return self._throttle_delays.get(container_id, self.throttler.default_delay_ms)

    def configure_throttling(self, delays: Mapping[str, int]) -> None:
        for container_id, delay_ms in delays.items():
            self.set_container_throttle_delay(container_id, delay_ms)
        log.info("configured throttling for %s", ", ".join(delays))

    def set_container_limit(self, container_id: str, limit: int) -> None:
        self.dom_monitor.set_limit(container_id, limit)

    # ----- Emergency control -------------------------------------------------
    def set_global_update_lock(self, locked: bool, reason: str = "Emergency lock") -> None:
        self._global_lock = locked
        if locked:
            log.warning("global update lock enabled: %s", reason)
        else:
            log.info("global update lock disabled")

    @property
    def global_lock_active(self) -> bool:
        return self._global_lock

    def emergency_stop(self) -> None:
        """Cancel pending work and reject non-critical updates until resumed."""
        log.warning("emergency stop: halting all update operations")
        self.throttler.cancel_all()
        self.queue.clear(exc_type=UpdateCancelled)
        self.locks.clear()
        self.scroll.clear_all()
        self.dom_monitor.stop_monitoring()
        self._cancel_monitor_start()
        self.cleanup.cancel_pending()
        self.set_global_update_lock(True, "Emergency stop activated")

    def resume_operations(self) -> None:
        log.info("resuming operations after emergency stop")
        self.set_global_update_lock(False)
        self.dom_monitor.start_monitoring(self.settings.dom_monitor_frequency_ms)

    def force_release_all_locks(self) -> None:
        log.warning("force releasing all update locks")
        self.locks.clear()
        self._in_progress.clear()
        self._global_lock = False

    def clear_queue(self) -> int:
        dropped = self.queue.clear()
        log.debug("cleared %d queued update(s)", dropped)
        return dropped

    # ----- Status ------------------------------------------------------------
    def get_update_status(self, container_id: str) -> ContainerUpdateStatus:
        lock = self.locks.get(container_id)
        queued = self.queue.length(container_id)
        return ContainerUpdateStatus(
            container_id=container_id,
            in_progress=container_id in self._in_progress,
            locked=lock is not None,
            lock_priority=lock.priority if lock else None,
            lock_age_ms=(self._clock() - lock.timestamp) * 1000 if lock else 0.0,
            queue_length=queued,
            queued_priorities=self.queue.priorities(container_id),
            throttle_delay_ms=self.get_container_throttle_delay(container_id),
            throttle=self.throttler.status(container_id),
            has_snapshot=self.recovery.has_snapshot(container_id),
            rollback_attempts=self.recovery.rollback_attempts(container_id),
            global_lock_active=self._global_lock,
        )

    def get_all_update_status(self) -> AllUpdateStatus:
        ids = dict.fromkeys(
            [*self._in_progress, *self.queue.ids(), *self.locks.ids(), *self._throttle_delays]
        )
        return AllUpdateStatus(
            global_lock_active=self._global_lock,
            total_active_updates=len(self._in_progress),
            total_queued_updates=len(self.queue),
            total_locks=len(self.locks),
            containers={cid: self.get_update_status(cid) for cid in ids},
        )

    def get_throttling_stats(self) -> ThrottlingStats:
        keys = dict.fromkeys([*self._throttle_delays, *self.throttler.keys()])
        statuses = {key: self.throttler.status(key) for key in keys}
        return ThrottlingStats(
            default_delay_ms=self.throttler.default_delay_ms,
            container_delays=dict(self._throttle_delays),
            active_throttles=self.throttler.active_count,
            pending_throttles=sum(1 for s in statuses.values() if s.has_pending),
            throttles=statuses,
        )

    # ----- DOM size ----------------------------------------------------------
    def get_dom_stats(self) -> MonitoringStats:
        return self.dom_monitor.get_monitoring_stats()

    def check_all_containers(self) -> dict[str, MonitorResult]:
        return self.dom_monitor.monitor_all_containers()

    def start_dom_monitoring(self, frequency_ms: int | None = None) -> None:
        self.dom_monitor.start_monitoring(frequency_ms or self.settings.dom_monitor_frequency_ms)

    def stop_dom_monitoring(self) -> None:
        self.dom_monitor.stop_monitoring()

    # ----- Error log & recovery ----------------------------------------------
    def get_error_log(self, type: str | None = None) -> list[ErrorLogEntry]:
        return self.error_log.entries(type)

    def clear_error_log(self) -> None:
        self.error_log.clear()

    def set_rollback_enabled(self, enabled: bool) -> None:
        self.recovery.rollback_enabled = enabled
        log.info("rollback %s", "enabled" if enabled else "disabled")

    def set_corruption_detection_enabled(self, enabled: bool) -> None:
        self.detector.enabled = enabled
        log.info("corruption detection %s", "enabled" if enabled else "disabled")

    def set_max_rollback_attempts(self, attempts: int) -> None:
        self.recovery.max_rollback_attempts = attempts

    def get_error_recovery_status(self) -> RecoveryStatus:
        return RecoveryStatus(
            rollback_enabled=self.recovery.rollback_enabled,
            corruption_detection_enabled=self.detector.enabled,
            max_rollback_attempts=self.recovery.max_rollback_attempts,
            snapshots=self.recovery.snapshot_count(),
            containers_with_rollback_attempts=self.recovery.containers_with_attempts(),
            error_log_size=len(self.error_log),
            recent_errors=self.error_log.recent(5),
        )

    def force_rollback(self, container_id: str, reason: str = "Manual rollback requested") -> bool:
        return self.recovery.rollback(container_id, reason)

    def force_recreation(self, container_id: str, reason: str = "Manual recreation requested") -> bool:
        return self.recovery.recreate(container_id, reason)

    def clear_all_snapshots(self) -> None:
        self.recovery.clear_all_snapshots()

    def clear_rollback_attempts(self, container_id: str | None = None) -> None:
        self.recovery.clear_rollback_attempts(container_id)

    def get_update_history(self, container_id: str) -> UpdateHistoryRecord | None:
        return self._history.get(container_id)

    def clear_update_history(self) -> int:
        count = len(self._history)
        self._history.clear()
        log.info("cleared update history for %d container(s)", count)
        return count

    def perform_health_check(self, container_ids: Iterable[str] = DEFAULT_MONITORED) -> HealthReport:
        """Grade each container and the dashboard as a whole.

        A container is ``critical`` when it is missing, critically corrupted,
        at critical/emergency DOM size, or has spent its rollback budget;
        ``warning`` on moderate corruption or DOM size warning.
        """
        report = HealthReport(timestamp=time.time())
        critical = warnings = 0
        for container_id in container_ids:
            if container_id not in self.document:
                report.containers[container_id] = ContainerHealth(
                    container_id=container_id, status="missing", issues=["Container not found"]
                )
                critical += 1
                continue

            corruption = self.detector.detect(container_id)
            monitor = self.dom_monitor.monitor_container(container_id)
            attempts = self.recovery.rollback_attempts(container_id)
            history = self._history.get(container_id)
            health = ContainerHealth(
                container_id=container_id,
                node_count=monitor.node_count,
                dom_status=monitor.status,
                corrupted=corruption.corrupted,
                rollback_attempts=attempts,
                last_update=history.timestamp if history else None,
            )

            if corruption.corrupted:
                health.issues.append(f"Corruption detected: {', '.join(corruption.reasons)}")
                if corruption.severity == "critical":
                    health.status = "critical"
                    critical += 1
                else:
                    health.status = "warning"
                    warnings += 1

            if monitor.status in ("critical", "emergency"):
                health.status = "critical"
                health.issues.append(f"DOM size {monitor.status}: {monitor.node_count} nodes")
                critical += 1
            elif monitor.status == "warning":
                if health.status == "good":
                    health.status = "warning"
                health.issues.append(f"DOM size warning: {monitor.node_count} nodes")
                warnings += 1

            if attempts:
                health.issues.append(f"{attempts} rollback attempts")
                if attempts >= self.recovery.max_rollback_attempts:
                    health.status = "critical"
                    critical += 1

            report.containers[container_id] = health

        if critical:
            report.overall_health = "critical"
            report.recommendations.append("Immediate attention required for critical issues")
        elif warnings:
            report.overall_health = "warning"
            report.recommendations.append("Monitor containers with warnings closely")
        if len(self.error_log) > self.error_log.max_entries * 0.8:
            report.recommendations.append("Consider clearing error log to free memory")
        if self.recovery.snapshot_count() > 10:
            report.recommendations.append("Consider clearing old snapshots to free memory")
        return report

    # ----- Lifecycle ---------------------------------------------------------
    def start(self) -> None:
        """Start DOM monitoring after ``monitoring_start_delay_ms``."""
        self._cancel_monitor_start()
        delay = self.settings.monitoring_start_delay_ms / 1000
        self._monitor_start = asyncio.get_running_loop().call_later(delay, self._start_monitoring_now)

    def _start_monitoring_now(self) -> None:
        self._monitor_start = None
        self.start_dom_monitoring()

    def _cancel_monitor_start(self) -> None:
        if self._monitor_start is not None:
            self._monitor_start.cancel()
            self._monitor_start = None

    async def aclose(self) -> None:
        """Stop timers and background work; in-flight updates are cancelled."""
        self._cancel_monitor_start()
        self.dom_monitor.stop_monitoring()
        self.throttler.cancel_all()
        self.queue.clear(exc_type=UpdateCancelled)
        self.cleanup.cancel_pending()
        drains = list(self._drains)
        for task in drains:
            task.cancel()
        await asyncio.gather(*drains, return_exceptions=True)
        await self.throttler.wait_idle()

    async def __aenter__(self) -> ContentUpdateManager:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["DATA_PREVIEW_CHARS", "ContainerUpdate", "ContentUpdateManager"]
