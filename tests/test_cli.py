# tests/test_cli.py
"""
Tests for the dashkeeper command-line interface (CLI).

Scope
-----
1.  **Command Registration**: `--help` lists every command.
2.  **Offline scenario**: `simulate` runs end to end and reports the error log.
3.  **Refresh**: one cycle against a patched `DashboardClient._get`, including
    the exit code when no data source answers.

We use `typer.testing.CliRunner` to invoke the app in-process.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
from rich.console import Console
from typer.testing import CliRunner

from dashkeeper.cli import app
from dashkeeper.core.settings import load_settings
from dashkeeper.dashboard.client import DashboardClient, FetchError


@pytest.fixture  # type: ignore[misc]
def runner() -> CliRunner:
    """A fresh CliRunner for each test."""
    return CliRunner()


@pytest.fixture(autouse=True)  # type: ignore[misc]
def wide_console(monkeypatch: Any) -> None:
    """Keep rich tables from wrapping cell text in the captured output."""
    monkeypatch.setattr("dashkeeper.cli.console", Console(width=200))


@pytest.fixture  # type: ignore[misc]
def no_retries(monkeypatch: Any) -> Iterator[None]:
    """Fail fetches on the first attempt so refresh tests stay fast."""
    monkeypatch.setenv("DASHKEEPER_FETCH_RETRIES", "0")
    load_settings.cache_clear()
    try:
        yield
    finally:
        load_settings.cache_clear()


def test_cli_help_lists_commands(runner: CliRunner) -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0, f"Help failed: {result.output}"
    for command in ("refresh", "watch", "simulate"):
        assert command in result.output


def test_simulate_json_reports_recovery(runner: CliRunner) -> None:
    """The offline scenario rolls back one failure and recreates one panel."""
    result = runner.invoke(app, ["simulate", "--throttle-ms", "20", "--json"])

    assert result.exit_code == 0, f"CLI failed: {result.output}"
    assert '"steps"' in result.output
    for entry_type in ("UPDATE_FAILED", "ROLLBACK_SUCCESS", "CONTAINER_RECREATED"):
        assert entry_type in result.output


def test_simulate_prints_tables(runner: CliRunner) -> None:
    result = runner.invoke(app, ["simulate", "--throttle-ms", "20"])

    assert result.exit_code == 0, f"CLI failed: {result.output}"
    assert "Error log" in result.output
    assert "Health check" in result.output


def test_refresh_prints_summary(runner: CliRunner, monkeypatch: Any, no_retries: None) -> None:
    def fake_get(self: DashboardClient, url: str) -> Any:
        if "/api/system-health" in url:
            return {"status": "Good"}
        if "/api/plugins" in url:
            raise FetchError("HTTP 502: Bad Gateway")
        return []

    monkeypatch.setattr(DashboardClient, "_get", fake_get)
    result = runner.invoke(app, ["refresh", "--base-url", "http://dash.test", "--demo"])

    assert result.exit_code == 0, f"CLI failed: {result.output}"
    assert "slowQueries" in result.output
    assert "updated" in result.output
    assert "fetch failed: HTTP 502" in result.output


def test_refresh_exits_nonzero_when_every_source_fails(
    runner: CliRunner, monkeypatch: Any, no_retries: None
) -> None:
    def down(self: DashboardClient, url: str) -> Any:
        raise FetchError("network error: connection refused")

    monkeypatch.setattr(DashboardClient, "_get", down)
    result = runner.invoke(app, ["refresh", "--base-url", "http://dash.test"])

    assert result.exit_code == 1
    assert "No data source could be reached" in result.output
