"""Container model, scroll tracking, DOM size monitoring and cleanup."""

from __future__ import annotations

from .cleanup import DomCleanup
from .container import ChartHandle, ChartRegistry, Document, HtmlContainer, NodeCount, Renderable
from .monitor import DomSizeMonitor
from .scroll import ScrollPositionTracker

__all__ = [
    "ChartHandle",
    "ChartRegistry",
    "Document",
    "DomCleanup",
    "DomSizeMonitor",
    "HtmlContainer",
    "NodeCount",
    "Renderable",
    "ScrollPositionTracker",
]
