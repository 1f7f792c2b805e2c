"""Heuristic corruption detection as pluggable checks.

Each :class:`CorruptionCheck` is a name plus a predicate over a
:class:`CheckContext`. The detector runs all registered checks and reports
which ones fired; more than ``critical_reason_count`` hits makes the
corruption critical, which the update pipeline answers with recreation.

Built-in checks
---------------
excessive_size
    More elements than ``size_multiplier`` times the container limit.
duplicate_content
    At least ``duplicate_min_items`` list items and more than
    ``duplicate_ratio`` of them repeat an earlier item's text prefix.
malformed_structure
    Unequal counts of ``<`` and ``>`` in the serialized markup.
memory_leak_signs
    Inline handlers, inline styles and tracking data attributes on more than
    ``leak_ratio`` of at least ``leak_min_elements`` elements.
scroll_anomalies
    Scroll offset past the end (plus slack) or an extent far beyond the
    visible height.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from dashkeeper.core.contracts import CorruptionReport
from dashkeeper.core.settings import CorruptionThresholds
from dashkeeper.dom.cleanup import ITEM_SELECTORS
from dashkeeper.dom.container import Document, HtmlContainer

from .error_log import ErrorLog

ITEM_QUERY = ", ".join(ITEM_SELECTORS)


@dataclass(frozen=True, slots=True)
class CheckContext:
    container: HtmlContainer
    limit: int
    thresholds: CorruptionThresholds


@dataclass(frozen=True, slots=True)
class CorruptionCheck:
    name: str
    predicate: Callable[[CheckContext], bool]

    def __call__(self, ctx: CheckContext) -> bool:
        return bool(self.predicate(ctx))


# --------------------------------------------------------------------------- #
# Built-in predicates
# --------------------------------------------------------------------------- #


def excessive_size(ctx: CheckContext) -> bool:
    return ctx.container.element_count() > ctx.limit * ctx.thresholds.size_multiplier


def duplicate_content(ctx: CheckContext) -> bool:
    t = ctx.thresholds
    items = ctx.container.select(ITEM_QUERY)
    if len(items) < t.duplicate_min_items:
        return False
    seen: set[str] = set()
    duplicates = 0
    for item in items:
        key = item.get_text().strip()[: t.duplicate_prefix_chars]
        if key in seen:
            duplicates += 1
        else:
            seen.add(key)
    return duplicates > len(items) * t.duplicate_ratio


def malformed_structure(ctx: CheckContext) -> bool:
    html = ctx.container.content
    if "<" not in html:
        return False
    return html.count("<") != html.count(">")


def memory_leak_signs(ctx: CheckContext) -> bool:
    t = ctx.thresholds
    total = ctx.container.element_count()
    if total < t.leak_min_elements:
        return False
    c = ctx.container
    handlers = len(c.elements_with_attr(("onclick", "onload", "onerror")))
    styles = len(c.elements_with_attr(("style",)))
    tracking = len(c.elements_with_attr(("data-chart-id", "data-update-id")))
    return handlers + styles + tracking > total * t.leak_ratio


def scroll_anomalies(ctx: CheckContext) -> bool:
    c, t = ctx.container, ctx.thresholds
    height, visible = c.scroll_height, c.client_height
    if height == 0 or visible == 0:
        return False
    if c.scroll_top > height - visible + t.scroll_slack_px:
        return True
    return height > visible * t.scroll_extent_ratio


DEFAULT_CHECKS: tuple[CorruptionCheck, ...] = (
    CorruptionCheck("excessive_size", excessive_size),
    CorruptionCheck("duplicate_content", duplicate_content),
    CorruptionCheck("malformed_structure", malformed_structure),
    CorruptionCheck("memory_leak_signs", memory_leak_signs),
    CorruptionCheck("scroll_anomalies", scroll_anomalies),
)


# --------------------------------------------------------------------------- #
# Detector
# --------------------------------------------------------------------------- #


class CorruptionDetector:
    """Run every registered check against a container and grade the result."""

    def __init__(
        self,
        document: Document,
        error_log: ErrorLog,
        limit_for: Callable[[str], int],
        thresholds: CorruptionThresholds | None = None,
        checks: Iterable[CorruptionCheck] = DEFAULT_CHECKS,
        enabled: bool = True,
    ) -> None:
        self._document = document
        self._error_log = error_log
        self._limit_for = limit_for
        self.thresholds = thresholds or CorruptionThresholds()
        self._checks: list[CorruptionCheck] = list(checks)
        self.enabled = enabled

    @property
    def checks(self) -> list[str]:
        return [c.name for c in self._checks]

    def register(self, check: CorruptionCheck) -> None:
        """Add ``check``, replacing any existing check with the same name."""
        self._checks = [c for c in self._checks if c.name != check.name]
        self._checks.append(check)

    def unregister(self, name: str) -> bool:
        before = len(self._checks)
        self._checks = [c for c in self._checks if c.name != name]
        return len(self._checks) != before

    def detect(self, container_id: str) -> CorruptionReport:
        limit = self._limit_for(container_id)
        if not self.enabled:
            return CorruptionReport(container_id=container_id, limit=limit)

        container = self._document.get(container_id)
        if container is None:
            return CorruptionReport(
                container_id=container_id,
                corrupted=True,
                reasons=["container_missing"],
                severity="moderate",
                limit=limit,
            )

        ctx = CheckContext(container=container, limit=limit, thresholds=self.thresholds)
        results = {check.name: check(ctx) for check in self._checks}
        reasons = [name for name, hit in results.items() if hit]
        report = CorruptionReport(
            container_id=container_id,
            corrupted=bool(reasons),
            reasons=reasons,
            node_count=container.element_count(),
            limit=limit,
            checks=results,
        )
        if reasons:
            report.severity = (
                "critical" if len(reasons) > self.thresholds.critical_reason_count else "moderate"
            )
            self._error_log.log(
                "CORRUPTION_DETECTED",
                f"container corruption detected for {container_id}",
                report.model_dump(mode="json"),
            )
        return report


__all__ = [
    "DEFAULT_CHECKS",
    "CheckContext",
    "CorruptionCheck",
    "CorruptionDetector",
    "duplicate_content",
    "excessive_size",
    "malformed_structure",
    "memory_leak_signs",
    "scroll_anomalies",
]
