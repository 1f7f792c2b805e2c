"""Data loading and panel rendering for the dashboard."""

from __future__ import annotations

from .client import ENDPOINTS, DashboardClient, FetchError
from .loader import DashboardLoader
from .renderers import PANELS, ChartPanels, render_plugins, render_slow_queries, render_system_health

__all__ = [
    "ENDPOINTS",
    "PANELS",
    "ChartPanels",
    "DashboardClient",
    "DashboardLoader",
    "FetchError",
    "render_plugins",
    "render_slow_queries",
    "render_system_health",
]
