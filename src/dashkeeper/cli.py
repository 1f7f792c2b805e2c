# src/dashkeeper/cli.py
"""
dashkeeper Command Line Interface (CLI).

Built on `typer` and `rich`.

Commands
--------
- **refresh**: run one refresh cycle against a dashboard server and print a
  per-panel summary.
- **watch**: refresh periodically (optionally for a fixed number of cycles).
- **simulate**: run an offline scenario that exercises throttling, rollback
  and recreation, then print the error log and a health check.

Usage
-----
    $ dashkeeper refresh --base-url http://localhost:3000 --demo
    $ dashkeeper watch --interval 30000 --cycles 5
    $ dashkeeper simulate --json
"""

from __future__ import annotations

import asyncio
import json
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dashkeeper import __version__
from dashkeeper.app import Dashboard, build_dashboard
from dashkeeper.core.contracts import ErrorLogEntry, HealthReport, UpdateOptions
from dashkeeper.core.contracts.dashboard import LoadSummary
from dashkeeper.core.errors import DashkeeperError, UpdateFailed
from dashkeeper.core.settings import Settings, load_settings
from dashkeeper.dashboard.client import DashboardClient
from dashkeeper.dashboard.renderers import render_plugins, render_slow_queries
from dashkeeper.dom.container import Document, HtmlContainer
from dashkeeper.updates.manager import ContentUpdateManager

# Pick up DASHKEEPER_* variables from a local .env before settings are read.
load_dotenv()

app = typer.Typer(
    help="dashkeeper: keep a long-lived dashboard consistent and leak-free.",
    rich_markup_mode="markdown",
)
console = Console()


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #


def _settings(base_url: str | None) -> Settings:
    cfg = load_settings()
    if base_url:
        cfg = cfg.model_copy(update={"api_base_url": base_url})
    return cfg


def _build(base_url: str | None, time_range: str | None, demo: bool, metric: str) -> Dashboard:
    cfg = _settings(base_url)
    client = DashboardClient.from_settings(cfg, time_range=time_range, demo=demo)
    return build_dashboard(cfg, client=client, metric=metric)


def _render_summary(summary: LoadSummary) -> None:
    table = Table(title=f"Refresh ({summary.duration_ms:.0f}ms)")
    table.add_column("Source")
    table.add_column("Container")
    table.add_column("Items", justify="right")
    table.add_column("Status")
    for name, panel in summary.panels.items():
        if panel.error:
            status = f"[red]{panel.error}[/red]"
        elif panel.updated:
            status = "[green]updated[/green]"
        else:
            status = "[yellow]skipped[/yellow]"
        items = "-" if panel.items is None else str(panel.items)
        table.add_row(name, panel.container_id, items, status)
    console.print(table)


def _render_error_log(entries: list[ErrorLogEntry]) -> None:
    table = Table(title="Error log")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Message")
    for i, entry in enumerate(entries, start=1):
        table.add_row(str(i), entry.type, entry.message)
    console.print(table)


def _render_health(report: HealthReport) -> None:
    colour = {"good": "green", "warning": "yellow", "critical": "red"}[report.overall_health]
    lines = [f"Overall: [{colour}]{report.overall_health}[/{colour}]"]
    for cid, health in report.containers.items():
        issues = "; ".join(health.issues) or "no issues"
        lines.append(f"  {cid}: {health.status} ({health.node_count} nodes) - {issues}")
    lines.extend(f"  • {rec}" for rec in report.recommendations)
    console.print(Panel("\n".join(lines), title="Health check", border_style=colour))


# --------------------------------------------------------------------------- #
# Offline scenario
# --------------------------------------------------------------------------- #

SAMPLE_QUERIES: list[dict[str, Any]] = [
    {
        "execution_time": 1200 + i * 150,
        "query_text": f"SELECT * FROM wp_posts WHERE post_status = 'publish' LIMIT {i * 10}",
        "rows_examined": 5000 * (i + 1),
        "source_file": "wp-includes/class-wp-query.php",
    }
    for i in range(5)
]

SAMPLE_PLUGINS: list[dict[str, Any]] = [
    {"plugin_name": "Heavy SEO", "impact_score": 82, "memory_usage": 48, "query_count": 35, "load_time": 420},
    {"plugin_name": "Forms Lite", "impact_score": 45, "memory_usage": 12, "query_count": 6, "load_time": 90},
    {"plugin_name": "Cache Helper", "impact_score": 12, "memory_usage": 4, "query_count": 1, "load_time": 15},
]


def _broken_update(container: HtmlContainer, data: Any) -> None:
    container.content = "<div class='query-item'>partial"
    raise RuntimeError("renderer crashed mid-update")


async def _simulate(throttle_ms: int) -> tuple[ContentUpdateManager, list[str]]:
    cfg = load_settings().model_copy(
        update={
            "container_throttle_delays": {"slowQueries": throttle_ms, "pluginPerformance": throttle_ms},
            "monitoring_start_delay_ms": 60_000,
        }
    )
    document = Document([HtmlContainer("slowQueries"), HtmlContainer("pluginPerformance")])
    manager = ContentUpdateManager(document, settings=cfg)
    steps: list[str] = []

    async with manager:
        rendered = await manager.update_container("slowQueries", render_slow_queries, SAMPLE_QUERIES)
        steps.append(f"rendered {rendered} slow queries")

        first = manager.update_container("pluginPerformance", render_plugins, SAMPLE_PLUGINS[:1])
        burst = [
            manager.update_container("pluginPerformance", render_plugins, SAMPLE_PLUGINS[: n + 1])
            for n in range(3)
        ]
        results = await asyncio.gather(first, *burst)
        steps.append(f"throttled burst of {len(results)} plugin updates -> last drew {results[-1]} items")

        strict = UpdateOptions(bypass_throttle=True, suppress_errors=False)
        try:
            await manager.update_container("slowQueries", _broken_update, None, strict)
        except UpdateFailed as exc:
            steps.append(f"failed update rolled back: {exc}")

        manager.force_recreation("pluginPerformance", "simulated corruption")
        steps.append("pluginPerformance recreated")

        empty = await manager.update_container("slowQueries", render_slow_queries, [], bypass_throttle=True)
        steps.append(f"slow queries cleared ({empty} items)")
    return manager, steps


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #

BaseUrl = Annotated[str | None, typer.Option("--base-url", "-u", help="Dashboard server root URL.")]
TimeRange = Annotated[str | None, typer.Option("--time-range", "-t", help="Value for the `timeRange` parameter.")]
Demo = Annotated[bool, typer.Option("--demo/--no-demo", help="Request demo data from the server.")]
Metric = Annotated[str, typer.Option("--metric", "-m", help="Metric plotted on the performance chart.")]


@app.command()  # type: ignore[misc]
def refresh(
    base_url: BaseUrl = None,
    time_range: TimeRange = None,
    demo: Demo = False,
    metric: Metric = "avg_response_time",
) -> None:
    """Run one refresh cycle and print a per-panel summary."""

    async def run() -> LoadSummary:
        dashboard = _build(base_url, time_range, demo, metric)
        try:
            return await dashboard.loader.load()
        finally:
            await dashboard.aclose()

    summary = asyncio.run(run())
    _render_summary(summary)
    if len(summary.failed) == len(summary.panels):
        console.print("[bold red]❌ No data source could be reached.[/bold red]")
        raise typer.Exit(code=1)


@app.command()  # type: ignore[misc]
def watch(
    base_url: BaseUrl = None,
    time_range: TimeRange = None,
    demo: Demo = False,
    metric: Metric = "avg_response_time",
    interval: Annotated[int | None, typer.Option("--interval", "-i", help="Refresh interval in ms.")] = None,
    cycles: Annotated[int, typer.Option("--cycles", "-n", help="Stop after N cycles (0 = forever).")] = 0,
) -> None:
    """Refresh periodically, printing a summary after every cycle."""

    async def run() -> None:
        dashboard = _build(base_url, time_range, demo, metric)
        every = interval or dashboard.settings.refresh_interval_ms
        async with dashboard:
            done = 0
            while not cycles or done < cycles:
                _render_summary(await dashboard.loader.load())
                done += 1
                if cycles and done >= cycles:
                    break
                await asyncio.sleep(every / 1000)

    console.print(Panel.fit(f"[bold cyan]dashkeeper {__version__}[/bold cyan] watching", border_style="cyan"))
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("[dim]stopped[/dim]")


@app.command()  # type: ignore[misc]
def simulate(
    throttle_ms: Annotated[int, typer.Option("--throttle-ms", help="Throttle window for the scenario.")] = 200,
    as_json: Annotated[bool, typer.Option("--json", help="Print machine-readable output.")] = False,
) -> None:
    """Exercise throttling, rollback and recreation offline."""
    try:
        manager, steps = asyncio.run(_simulate(throttle_ms))
    except DashkeeperError as exc:
        console.print(f"\n[bold red]❌ Scenario failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    report = manager.perform_health_check()
    entries = manager.get_error_log()
    if as_json:
        payload = {
            "steps": steps,
            "error_log": [e.model_dump(mode="json") for e in entries],
            "health": report.model_dump(mode="json"),
        }
        console.print_json(json.dumps(payload))
        return

    for step in steps:
        console.print(f" • {step}")
    _render_error_log(entries)
    _render_health(report)


if __name__ == "__main__":
    app()
