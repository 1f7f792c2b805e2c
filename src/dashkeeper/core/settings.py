"""Engine configuration backed by pydantic-settings.

`load_settings()` builds one cached `Settings` object. Values come from
`DASHKEEPER_*` environment variables first, then from the `.env` family of
files in the working directory (`.env`, `.env.local`, `.env.<env>`).

Every tunable of the update engine lives here so that throttle windows,
DOM limits and corruption heuristics are configuration rather than magic
numbers scattered through the code. The corruption thresholds in particular
are tuned by eye and should be treated as defaults, not contracts.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class CorruptionThresholds(BaseModel):
    """Tunable limits used by the corruption heuristics."""

    size_multiplier: float = Field(default=2.0, gt=0)
    duplicate_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    duplicate_min_items: int = Field(default=10, ge=1)
    duplicate_prefix_chars: int = Field(default=100, ge=1)
    leak_ratio: float = Field(default=0.6, ge=0.0)
    leak_min_elements: int = Field(default=20, ge=1)
    scroll_slack_px: int = Field(default=10, ge=0)
    scroll_extent_ratio: float = Field(default=50.0, gt=0)
    critical_reason_count: int = Field(default=2, ge=0)


class Settings(BaseSettings):
    """Every knob of the update engine, the REST client and the refresh loop.

    Attributes
    ----------
    environment : EnvName
        Runtime environment flag; maps from `DASHKEEPER_ENV`.
    log_level : LogLevelName
        Global log level string; maps from `LOG_LEVEL`.
    api_base_url : str
        Root URL of the dashboard REST server.
    container_throttle_delays : dict[str, int]
        Per-container throttle windows in milliseconds; anything not listed
        falls back to `default_throttle_delay_ms`.
    """

    environment: EnvName = Field(default="dev", alias="DASHKEEPER_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")

    # ----- Data sources ------------------------------------------------------
    api_base_url: str = Field(default="http://localhost:3000", alias="DASHKEEPER_API_BASE_URL")
    fetch_timeout_ms: int = Field(default=10_000, alias="DASHKEEPER_FETCH_TIMEOUT_MS")
    fetch_retries: int = Field(default=2, alias="DASHKEEPER_FETCH_RETRIES")
    fetch_backoff_ms: int = Field(default=500, alias="DASHKEEPER_FETCH_BACKOFF_MS")
    refresh_interval_ms: int = Field(default=30_000, alias="DASHKEEPER_REFRESH_INTERVAL_MS")

    # ----- Throttling & coordination ----------------------------------------
    default_throttle_delay_ms: int = Field(default=1000, alias="DASHKEEPER_THROTTLE_DELAY_MS")
    container_throttle_delays: dict[str, int] = Field(
        default_factory=lambda: {
            "slowQueries": 2000,
            "pluginPerformance": 1500,
            "real-time-metrics": 500,
        },
        alias="DASHKEEPER_CONTAINER_THROTTLE_DELAYS",
    )
    max_queue_size: int = Field(default=5, alias="DASHKEEPER_MAX_QUEUE_SIZE")
    stale_lock_ms: int = Field(default=30_000, alias="DASHKEEPER_STALE_LOCK_MS")
    coordination_timeout_ms: int = Field(default=30_000, alias="DASHKEEPER_COORDINATION_TIMEOUT_MS")
    coordination_max_concurrent: int = Field(default=3, alias="DASHKEEPER_MAX_CONCURRENT")
    skipped_stages: list[str] = Field(default_factory=list, alias="DASHKEEPER_SKIPPED_STAGES")

    # ----- DOM size ----------------------------------------------------------
    default_container_limit: int = Field(default=1000, alias="DASHKEEPER_CONTAINER_LIMIT")
    warning_threshold: float = Field(default=0.8, alias="DASHKEEPER_WARNING_THRESHOLD")
    emergency_threshold: float = Field(default=1.2, alias="DASHKEEPER_EMERGENCY_THRESHOLD")
    dom_monitor_frequency_ms: int = Field(default=30_000, alias="DASHKEEPER_DOM_MONITOR_MS")
    monitoring_start_delay_ms: int = Field(default=5_000, alias="DASHKEEPER_MONITOR_START_MS")

    # ----- Recovery ----------------------------------------------------------
    rollback_enabled: bool = Field(default=True, alias="DASHKEEPER_ROLLBACK_ENABLED")
    corruption_detection: bool = Field(default=True, alias="DASHKEEPER_CORRUPTION_DETECTION")
    max_rollback_attempts: int = Field(default=3, alias="DASHKEEPER_MAX_ROLLBACK_ATTEMPTS")
    rollback_tolerance: int = Field(default=5, alias="DASHKEEPER_ROLLBACK_TOLERANCE")
    refresh_delay_ms: int = Field(default=2_000, alias="DASHKEEPER_REFRESH_DELAY_MS")
    corruption: CorruptionThresholds = Field(
        default_factory=CorruptionThresholds, alias="DASHKEEPER_CORRUPTION"
    )

    # ----- Error log ---------------------------------------------------------
    max_error_log_size: int = Field(default=100, alias="DASHKEEPER_MAX_ERROR_LOG")
    session_log_size: int = Field(default=50, alias="DASHKEEPER_SESSION_LOG_SIZE")
    session_log_path: str | None = Field(default=None, alias="DASHKEEPER_SESSION_LOG")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local", ".env.dev", ".env.test", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_dev(self) -> bool:
        """`DASHKEEPER_ENV=dev`."""
        return self.environment == "dev"

    @property
    def is_test(self) -> bool:
        """`DASHKEEPER_ENV=test`."""
        return self.environment == "test"

    def log_level_numeric(self) -> int:
        """`log_level` as a `logging` constant."""
        return getattr(logging, self.log_level, logging.INFO)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Return the process-wide `Settings`, built on first use.

    Call `load_settings.cache_clear()` after changing `os.environ` to pick
    the new values up.
    """
    os.environ.setdefault("DASHKEEPER_ENV", "dev")
    return Settings()


# Module-level default for callers that do not need a fresh load.
settings: Settings = load_settings()


def get_logger(name: str = "dashkeeper") -> logging.Logger:
    """Named logger writing `time | level | name | message` lines to stderr.

    Handlers are attached once per name; the level follows `LOG_LEVEL`.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(load_settings().log_level_numeric())
    logger.propagate = False
    return logger
