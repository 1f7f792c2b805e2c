"""The ordered stages one container update passes through.

Default order::

    snapshot -> corruption_precheck -> dom_size_precheck -> save_scroll
             -> cleanup_charts -> execute -> verify -> restore_scroll
             -> record_metrics

Stages share an :class:`UpdateContext`. A stage may *halt* the pipeline
(for example when a pre-check already recreated or emptied the container)
or raise; raising hands control back to the manager's recovery path.
Individual stages can be skipped by name (``Settings.skipped_stages``).
"""

from __future__ import annotations

import asyncio
import inspect
import json
import math
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from dashkeeper.core.contracts import MonitorResult, Snapshot, UpdateHistoryRecord, UpdateMetrics, UpdateOptions
from dashkeeper.core.errors import RecreationFailed, UpdateFailed
from dashkeeper.core.settings import get_logger
from dashkeeper.dom.cleanup import DomCleanup
from dashkeeper.dom.container import HtmlContainer
from dashkeeper.dom.monitor import DomSizeMonitor
from dashkeeper.dom.scroll import ScrollPositionTracker

from .corruption import CorruptionDetector
from .error_log import ErrorLog
from .recovery import RecoveryEngine

log = get_logger(__name__)

#: ``update_fn(container, data)``; may be sync or async.
UpdateFn = Callable[[HtmlContainer, Any], Any]

#: Updates slower than this are logged as slow.
SLOW_UPDATE_MS = 200


@dataclass(slots=True)
class UpdateContext:
    container_id: str
    container: HtmlContainer
    update_fn: UpdateFn
    data: Any
    options: UpdateOptions
    snapshot: Snapshot | None = None
    pre_monitor: MonitorResult | None = None
    post_monitor: MonitorResult | None = None
    result: Any = None
    metrics: UpdateMetrics | None = None
    halted: bool = False
    halt_reason: str | None = None
    completed: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.perf_counter)

    def halt(self, reason: str) -> None:
        self.halted = True
        self.halt_reason = reason

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000


StageFn = Callable[[UpdateContext], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class PipelineStage:
    name: str
    run: StageFn


class UpdatePipeline:
    """Run stages in order until one halts or raises."""

    def __init__(self, stages: Sequence[PipelineStage], skipped: Iterable[str] = ()) -> None:
        self._stages = list(stages)
        self.skipped: set[str] = set(skipped)
        unknown = self.skipped - set(self.stage_names)
        if unknown:
            raise ValueError(f"unknown pipeline stage(s): {sorted(unknown)}")

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self._stages]

    async def run(self, ctx: UpdateContext) -> UpdateContext:
        for stage in self._stages:
            if stage.name in self.skipped:
                continue
            await stage.run(ctx)
            ctx.completed.append(stage.name)
            if ctx.halted:
                log.debug("%s: pipeline halted after %s (%s)", ctx.container_id, stage.name, ctx.halt_reason)
                break
        return ctx


def payload_size(data: Any) -> int:
    try:
        return len(json.dumps(data, default=str))
    except (TypeError, ValueError):
        return 0


class UpdateStages:
    """Default stage implementations bound to the engine's services."""

    def __init__(
        self,
        *,
        recovery: RecoveryEngine,
        detector: CorruptionDetector,
        dom_monitor: DomSizeMonitor,
        cleanup: DomCleanup,
        scroll: ScrollPositionTracker,
        error_log: ErrorLog,
        history: dict[str, UpdateHistoryRecord],
    ) -> None:
        self.recovery = recovery
        self.detector = detector
        self.dom_monitor = dom_monitor
        self.cleanup = cleanup
        self.scroll = scroll
        self.error_log = error_log
        self.history = history

    def pipeline(self, skipped: Iterable[str] = ()) -> UpdatePipeline:
        return UpdatePipeline(
            [
                PipelineStage("snapshot", self.snapshot),
                PipelineStage("corruption_precheck", self.corruption_precheck),
                PipelineStage("dom_size_precheck", self.dom_size_precheck),
                PipelineStage("save_scroll", self.save_scroll),
                PipelineStage("cleanup_charts", self.cleanup_charts),
                PipelineStage("execute", self.execute),
                PipelineStage("verify", self.verify),
                PipelineStage("restore_scroll", self.restore_scroll),
                PipelineStage("record_metrics", self.record_metrics),
            ],
            skipped=skipped,
        )

    # ----- Stages ------------------------------------------------------------
    async def snapshot(self, ctx: UpdateContext) -> None:
        if ctx.options.enable_rollback is False:
            return
        ctx.snapshot = self.recovery.create_snapshot(ctx.container_id)

    async def corruption_precheck(self, ctx: UpdateContext) -> None:
        report = self.detector.detect(ctx.container_id)
        if report.severity != "critical":
            return
        reason = f"Critical corruption detected: {', '.join(report.reasons)}"
        if not self.recovery.recreate(ctx.container_id, reason):
            self.error_log.log(
                "RECREATION_FAILED",
                f"could not recreate corrupted container {ctx.container_id}",
                {"container_id": ctx.container_id, "reasons": report.reasons},
            )
            raise RecreationFailed(f"{ctx.container_id}: {reason}")
        ctx.halt("recreated after critical corruption")

    async def dom_size_precheck(self, ctx: UpdateContext) -> None:
        result = self.dom_monitor.monitor_container(ctx.container_id)
        ctx.pre_monitor = result
        if result.status == "emergency":
            self.cleanup.emergency_cleanup(ctx.container_id)
            ctx.halt("emergency cleanup before update")
        elif result.status == "critical":
            self.cleanup.thorough_cleanup(ctx.container_id, math.floor(result.limit * 0.5))

    async def save_scroll(self, ctx: UpdateContext) -> None:
        if ctx.options.preserve_scroll:
            self.scroll.save_position_safe(ctx.container_id)

    async def cleanup_charts(self, ctx: UpdateContext) -> None:
        if ctx.options.cleanup_required:
            self.cleanup.cleanup_charts(ctx.container_id)

    async def execute(self, ctx: UpdateContext) -> None:
        outcome = ctx.update_fn(ctx.container, ctx.data)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        ctx.result = outcome

    async def verify(self, ctx: UpdateContext) -> None:
        report = self.detector.detect(ctx.container_id)
        if report.corrupted:
            raise UpdateFailed(
                ctx.container_id, f"update left container corrupted: {', '.join(report.reasons)}"
            )

    async def restore_scroll(self, ctx: UpdateContext) -> None:
        if not ctx.options.preserve_scroll:
            return
        # Let the new content settle for one loop iteration first.
        await asyncio.sleep(0)
        self.scroll.restore_position(ctx.container_id)

    async def record_metrics(self, ctx: UpdateContext) -> None:
        post = self.dom_monitor.monitor_container(ctx.container_id)
        ctx.post_monitor = post
        before = ctx.pre_monitor.node_count if ctx.pre_monitor else 0
        metrics = UpdateMetrics(
            container_id=ctx.container_id,
            duration_ms=ctx.elapsed_ms(),
            nodes_before=before,
            nodes_after=post.node_count,
            node_delta=post.node_count - before,
            status=post.status,
        )
        ctx.metrics = metrics
        if post.status in ("warning", "critical") or metrics.duration_ms > SLOW_UPDATE_MS:
            log.warning(
                "%s updated in %.1fms, %d nodes (%s)",
                ctx.container_id,
                metrics.duration_ms,
                metrics.nodes_after,
                metrics.status,
            )
        self.history[ctx.container_id] = UpdateHistoryRecord(
            timestamp=time.time(),
            node_count=post.node_count,
            duration_ms=metrics.duration_ms,
            data_size=payload_size(ctx.data),
        )
        self.recovery.clear_rollback_attempts(ctx.container_id)


__all__ = [
    "SLOW_UPDATE_MS",
    "PipelineStage",
    "UpdateContext",
    "UpdateFn",
    "UpdatePipeline",
    "UpdateStages",
    "payload_size",
]
