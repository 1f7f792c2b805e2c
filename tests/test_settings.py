"""Typed smoke tests for the settings loader.

These tests verify four guarantees:
1) Importing the module-level `settings` yields a `Settings` instance.
2) Environment variables override defaults after clearing the loader cache.
3) Structured values (per-container throttle windows, corruption
   thresholds) can be supplied as JSON in the environment.
4) `get_logger()` respects the configured LOG_LEVEL when constructing loggers.
"""

from __future__ import annotations

import logging
from typing import Any

from dashkeeper.core.settings import (
    CorruptionThresholds,
    Settings,
    get_logger,
    load_settings,
    settings,
)


def test_settings_instance_type() -> None:
    """`settings` should be an instance of the typed `Settings` model."""
    assert isinstance(settings, Settings)


def test_engine_defaults() -> None:
    """Defaults mirror the dashboard's tuned values."""
    s = Settings()
    assert s.default_throttle_delay_ms == 1000
    assert s.container_throttle_delays["slowQueries"] == 2000
    assert s.max_queue_size == 5
    assert s.max_rollback_attempts == 3
    assert s.default_container_limit == 1000
    assert isinstance(s.corruption, CorruptionThresholds)


def test_env_overrides_with_cache_clear(monkeypatch: Any) -> None:
    """Changing env vars should take effect after `load_settings.cache_clear()`."""
    monkeypatch.setenv("DASHKEEPER_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DASHKEEPER_MAX_QUEUE_SIZE", "9")

    load_settings.cache_clear()
    try:
        s = load_settings()
        assert s.environment == "test"
        assert s.is_test and not s.is_dev
        assert s.log_level == "DEBUG"
        assert s.max_queue_size == 9
    finally:
        load_settings.cache_clear()


def test_structured_values_from_json_env(monkeypatch: Any) -> None:
    """Dict and nested-model fields are decoded from JSON strings."""
    monkeypatch.setenv("DASHKEEPER_CONTAINER_THROTTLE_DELAYS", '{"slowQueries": 50, "custom": 10}')
    monkeypatch.setenv("DASHKEEPER_CORRUPTION", '{"duplicate_ratio": 0.5, "critical_reason_count": 1}')

    s = Settings()

    assert s.container_throttle_delays == {"slowQueries": 50, "custom": 10}
    assert s.corruption.duplicate_ratio == 0.5
    assert s.corruption.critical_reason_count == 1
    # Untouched thresholds keep their defaults.
    assert s.corruption.duplicate_min_items == 10


def test_get_logger_respects_level(monkeypatch: Any) -> None:
    """`get_logger()` should apply the numeric level derived from `LOG_LEVEL`."""
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    load_settings.cache_clear()
    try:
        logger = get_logger("dashkeeper.test.level")
        assert logger.level == logging.ERROR
        assert logger.handlers, "a stream handler should be attached"
    finally:
        load_settings.cache_clear()
