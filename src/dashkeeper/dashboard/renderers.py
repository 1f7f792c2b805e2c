"""Panel renderers: turn API payloads into container markup.

Each renderer is an update function with the ``update_fn(container, data)``
shape the update manager expects and returns the number of items it drew.
All interpolated values are HTML-escaped.

Chart panels write a ``<canvas>`` and bind a fresh :class:`ChartHandle` to
it. The previous chart on that canvas has already been destroyed by the
``cleanup_charts`` pipeline stage; binding again replaces whatever is left.
"""

from __future__ import annotations

import html
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from dashkeeper.dom.container import ChartHandle, ChartRegistry, HtmlContainer

# ----- Panels ----------------------------------------------------------------

#: Data source name -> container id.
PANELS: dict[str, str] = {
    "metrics": "performanceChart",
    "slow_queries": "slowQueries",
    "admin_ajax": "adminAjaxChart",
    "plugins": "pluginPerformance",
    "system_health": "systemHealth",
}

NO_SLOW_QUERIES = '<div class="no-data">No slow queries detected 🎉</div>'
NO_PLUGINS = '<div class="no-data">No plugin data available</div>'

QUERY_TEXT_LIMIT = 150
AJAX_TOP_N = 10

#: Selectable metric -> (dataset label, colour).
CHART_METRICS: dict[str, tuple[str, str]] = {
    "avg_response_time": ("Response Time (ms)", "#58a6ff"),
    "memory_usage": ("Memory Usage (MB)", "#238636"),
    "queries_per_second": ("Queries per Second", "#f85149"),
}


def _e(value: Any) -> str:
    return html.escape(str(value))


def impact_color(score: float) -> str:
    if score > 70:
        return "#f85149"
    if score > 40:
        return "#f9826c"
    return "#238636"


def time_label(timestamp: Any) -> str:
    """Render an epoch-ms number or ISO string as ``HH:MM:SS``."""
    if isinstance(timestamp, (int, float)):
        return datetime.fromtimestamp(timestamp / 1000).strftime("%H:%M:%S")
    text = str(timestamp)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).strftime("%H:%M:%S")
    except ValueError:
        return text


# ----- List panels -----------------------------------------------------------


def render_slow_queries(container: HtmlContainer, queries: Sequence[Mapping[str, Any]]) -> int:
    if not queries:
        container.content = NO_SLOW_QUERIES
        return 0
    items = []
    for q in queries:
        text = str(q.get("query_text", ""))
        if len(text) > QUERY_TEXT_LIMIT:
            text = text[:QUERY_TEXT_LIMIT] + "..."
        items.append(
            '<div class="query-item">'
            '<div class="query-header"><strong>Query:</strong>'
            f'<span class="query-time">{_e(q.get("execution_time", 0))}ms</span></div>'
            f'<div class="query-text">{_e(text)}</div>'
            '<div class="query-meta">'
            f'<span>📊 {_e(q.get("rows_examined", 0))} rows</span> | '
            f'<span>📁 {_e(q.get("source_file") or "Unknown")}</span>'
            "</div></div>"
        )
    container.content = "".join(items)
    return len(queries)


def render_plugins(container: HtmlContainer, plugins: Sequence[Mapping[str, Any]]) -> int:
    if not plugins:
        container.content = NO_PLUGINS
        return 0
    items = []
    for p in plugins:
        score = float(p.get("impact_score") or 0)
        items.append(
            '<div class="plugin-item">'
            '<div class="plugin-main">'
            f'<strong>{_e(p.get("plugin_name", "unknown"))}</strong>'
            f'<span class="plugin-impact" style="color: {impact_color(score)}">'
            f'{_e(p.get("impact_score", 0))}/100</span></div>'
            '<div class="plugin-stats">'
            f'<span>💾 {_e(p.get("memory_usage", 0))}MB</span>'
            f'<span>🔍 {_e(p.get("query_count", 0))} queries</span>'
            f'<span>⚡ {_e(p.get("load_time", 0))}ms</span>'
            "</div></div>"
        )
    container.content = "".join(items)
    return len(plugins)


def render_system_health(container: HtmlContainer, health: Mapping[str, Any]) -> int:
    rows = [
        ("health-slow-queries", "Slow queries (1h)", health.get("slow_queries_1h") or 0),
        ("health-avg-response", "Avg response", f"{round(health.get('avg_response_time') or 0)}ms"),
        ("health-active-plugins", "Active plugins", health.get("active_plugins") or 0),
        ("health-status", "Status", health.get("status") or "Unknown"),
    ]
    container.content = "".join(
        f'<div class="health-item"><span class="health-label">{_e(label)}</span>'
        f'<span class="health-value" id="{key}">{_e(value)}</span></div>'
        for key, label, value in rows
    )
    return len(rows)


# ----- Chart panels ----------------------------------------------------------


class ChartPanels:
    """Renderers for panels backed by a chart handle."""

    def __init__(self, charts: ChartRegistry, metric: str = "avg_response_time") -> None:
        self.charts = charts
        self.metric = metric

    @staticmethod
    def canvas_id(container_id: str) -> str:
        return f"{container_id}-canvas"

    def _chart(self, container: HtmlContainer, kind: str) -> ChartHandle:
        canvas = self.canvas_id(container.container_id)
        container.content = f'<div class="chart-wrapper"><canvas id="{canvas}"></canvas></div>'
        chart = ChartHandle(canvas_id=canvas, container_id=container.container_id, kind=kind)
        self.charts.bind(chart)
        return chart

    def render_metrics(self, container: HtmlContainer, metrics: Sequence[Mapping[str, Any]]) -> int:
        if not metrics:
            return 0
        label, color = CHART_METRICS.get(self.metric, CHART_METRICS["avg_response_time"])
        chart = self._chart(container, "line")
        rows = list(reversed(metrics))
        chart.update(
            [time_label(m.get("timestamp")) for m in rows],
            [
                {
                    "label": label,
                    "data": [m.get(self.metric) for m in rows],
                    "borderColor": color,
                    "backgroundColor": f"{color}20",
                }
            ],
        )
        return len(rows)

    def render_admin_ajax(self, container: HtmlContainer, calls: Sequence[Mapping[str, Any]]) -> int:
        top = list(calls)[:AJAX_TOP_N]
        chart = self._chart(container, "bar")
        chart.update(
            [str(a.get("action_name", "")) for a in top],
            [{"label": "Calls", "data": [a.get("call_count", 0) for a in top]}],
        )
        return len(top)


__all__ = [
    "AJAX_TOP_N",
    "CHART_METRICS",
    "NO_PLUGINS",
    "NO_SLOW_QUERIES",
    "PANELS",
    "QUERY_TEXT_LIMIT",
    "ChartPanels",
    "impact_color",
    "render_plugins",
    "render_slow_queries",
    "render_system_health",
    "time_label",
]
