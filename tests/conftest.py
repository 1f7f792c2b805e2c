"""Shared fixtures for the update-engine tests.

Every manager built here uses zero throttle windows (tests that care about
throttling set their own), a long DOM-monitor start delay so no background
sweep interferes, no session log on disk, and a hand-driven clock for lock
ages, queue order and scroll timing.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest

from dashkeeper.core.settings import Settings, load_settings
from dashkeeper.dom.container import Document, HtmlContainer
from dashkeeper.updates.manager import ContentUpdateManager


class FakeClock:
    """Monotonic seconds that only move when a test says so."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture  # type: ignore[misc]
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture  # type: ignore[misc]
def cfg() -> Settings:
    """Engine settings tuned for fast, deterministic tests."""
    overrides: dict[str, Any] = {
        "environment": "test",
        "default_throttle_delay_ms": 0,
        "container_throttle_delays": {},
        "monitoring_start_delay_ms": 60_000,
        "refresh_delay_ms": 10,
        "session_log_path": None,
        "skipped_stages": [],
    }
    return load_settings().model_copy(update=overrides)


@pytest.fixture  # type: ignore[misc]
def document() -> Document:
    return Document([HtmlContainer("slowQueries"), HtmlContainer("pluginPerformance")])


@pytest.fixture  # type: ignore[misc]
async def manager(document: Document, cfg: Settings, clock: FakeClock) -> AsyncIterator[ContentUpdateManager]:
    mgr = ContentUpdateManager(document, settings=cfg, clock=clock)
    yield mgr
    await mgr.aclose()
