"""Outcome of one dashboard refresh cycle."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PanelOutcome(BaseModel):
    """What happened to one panel during a refresh."""

    source: str
    container_id: str
    fetched: bool = False
    updated: bool = False
    items: int | None = None
    error: str | None = None


class LoadSummary(BaseModel):
    started_at: float
    duration_ms: float = 0.0
    panels: dict[str, PanelOutcome] = Field(default_factory=dict)

    @property
    def failed(self) -> list[str]:
        return [name for name, p in self.panels.items() if p.error is not None]


__all__ = ["LoadSummary", "PanelOutcome"]
