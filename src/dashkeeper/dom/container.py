"""In-memory UI regions addressed by a stable container id.

The engine never touches a browser. A container is modelled as serialized
HTML plus scroll geometry; BeautifulSoup parses the markup on demand for
node counting, selector queries and truncation.

- :class:`HtmlContainer` : one panel (content, scroll geometry, class/style).
- :class:`Document`      : registry of containers keyed by id.
- :class:`ChartHandle`   : in-memory chart bound to a ``<canvas>`` id.
- :class:`ChartRegistry` : live charts keyed by canvas id.

Geometry
--------
``scroll_height`` is derived from the number of top-level blocks times
``row_height`` (never below ``client_height``) unless a caller overrides it.
``scroll_top`` clamps at 0 on assignment but not at the maximum, so
out-of-range scroll positions remain observable to the corruption checks.
Replacing ``content`` clamps it to the new maximum, as a browser would.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from bs4 import BeautifulSoup, NavigableString, Tag


@dataclass(frozen=True, slots=True)
class NodeCount:
    """Full subtree count (the container itself, elements and text nodes)."""

    node_count: int
    text_nodes: int
    element_nodes: int


class HtmlContainer:
    """A single addressable panel holding serialized HTML."""

    def __init__(
        self,
        container_id: str,
        markup: str = "",
        *,
        client_height: int = 400,
        row_height: int = 40,
        class_name: str = "",
        style: str = "",
    ) -> None:
        self.container_id = container_id
        self.client_height = client_height
        self.row_height = row_height
        self.class_name = class_name
        self.style = style
        self._markup = markup
        self._soup: BeautifulSoup | None = None
        self._scroll_top = 0
        self._scroll_height_override: int | None = None

    def __repr__(self) -> str:
        return f"HtmlContainer({self.container_id!r}, {len(self._markup)} chars)"

    # ----- Content -----------------------------------------------------------
    @property
    def content(self) -> str:
        """Markup exactly as last written (or as re-serialized after a mutation)."""
        return self._markup

    @content.setter
    def content(self, markup: str) -> None:
        self._markup = markup
        self._soup = None
        self._scroll_height_override = None
        # Replacing content clamps the scroll offset to the new extent.
        self._scroll_top = min(self._scroll_top, max(0, self.max_scroll))

    def _tree(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self._markup, "html.parser")
        return self._soup

    def _commit(self) -> None:
        # Re-serialize after an in-place mutation of the parsed tree.
        self._markup = self._tree().decode()

    def text(self) -> str:
        return self._tree().get_text()

    # ----- Traversal ---------------------------------------------------------
    def count_nodes(self) -> NodeCount:
        elements = 0
        texts = 0
        for node in self._tree().descendants:
            if isinstance(node, Tag):
                elements += 1
            elif type(node) is NavigableString:
                texts += 1
        return NodeCount(node_count=1 + elements + texts, text_nodes=texts, element_nodes=elements)

    def element_count(self) -> int:
        """Number of descendant elements, excluding the container itself."""
        return len(self._tree().find_all(True))

    def select(self, css: str) -> list[Tag]:
        return list(self._tree().select(css))

    def remove_beyond(self, css: str, keep: int) -> int:
        """Remove every match of ``css`` past the first ``keep``; return how many went."""
        extra = self.select(css)[max(keep, 0) :]
        for tag in extra:
            tag.decompose()
        if extra:
            self._commit()
        return len(extra)

    def elements_with_attr(self, names: Iterable[str]) -> list[Tag]:
        wanted = tuple(names)
        return self._tree().find_all(lambda t: any(t.has_attr(n) for n in wanted))

    def canvas_ids(self) -> list[str]:
        ids: list[str] = []
        for canvas in self._tree().find_all("canvas"):
            cid = canvas.get("id")
            if isinstance(cid, str) and cid:
                ids.append(cid)
        return ids

    def top_level_blocks(self) -> int:
        return sum(1 for child in self._tree().children if isinstance(child, Tag))

    # ----- Geometry ----------------------------------------------------------
    @property
    def scroll_height(self) -> int:
        if self._scroll_height_override is not None:
            return self._scroll_height_override
        return max(self.client_height, self.top_level_blocks() * self.row_height)

    @scroll_height.setter
    def scroll_height(self, value: int) -> None:
        self._scroll_height_override = int(value)

    @property
    def scroll_top(self) -> int:
        return self._scroll_top

    @scroll_top.setter
    def scroll_top(self, value: float) -> None:
        self._scroll_top = max(0, int(round(value)))

    @property
    def max_scroll(self) -> int:
        return self.scroll_height - self.client_height


class Document:
    """Registry of containers keyed by their id."""

    def __init__(self, containers: Iterable[HtmlContainer] = ()) -> None:
        self._containers: dict[str, HtmlContainer] = {c.container_id: c for c in containers}

    def get(self, container_id: str) -> HtmlContainer | None:
        return self._containers.get(container_id)

    def create(self, container_id: str, markup: str = "", **kwargs: Any) -> HtmlContainer:
        """Create (or replace) a container and return it."""
        container = HtmlContainer(container_id, markup, **kwargs)
        self._containers[container_id] = container
        return container

    def add(self, container: HtmlContainer) -> HtmlContainer:
        self._containers[container.container_id] = container
        return container

    def remove(self, container_id: str) -> HtmlContainer | None:
        return self._containers.pop(container_id, None)

    def ids(self) -> list[str]:
        return list(self._containers)

    def total_nodes(self) -> int:
        return sum(c.count_nodes().node_count for c in self._containers.values())

    def __contains__(self, container_id: object) -> bool:
        return container_id in self._containers


# --------------------------------------------------------------------------- #
# Charts
# --------------------------------------------------------------------------- #


@runtime_checkable
class Renderable(Protocol):
    """Anything that owns resources tied to a canvas and can release them."""

    canvas_id: str

    def destroy(self) -> None: ...

    def attached_to(self, container_id: str) -> bool: ...


@dataclass(slots=True)
class ChartHandle:
    """Minimal chart state standing in for a charting-library instance."""

    canvas_id: str
    container_id: str
    kind: str = "line"
    labels: list[str] = field(default_factory=list)
    datasets: list[dict[str, Any]] = field(default_factory=list)
    destroyed: bool = False
    update_count: int = 0

    def update(self, labels: list[str], datasets: list[dict[str, Any]]) -> None:
        if self.destroyed:
            raise RuntimeError(f"chart on canvas {self.canvas_id!r} was destroyed")
        self.labels = list(labels)
        self.datasets = list(datasets)
        self.update_count += 1

    def destroy(self) -> None:
        self.destroyed = True
        self.labels.clear()
        self.datasets.clear()

    def attached_to(self, container_id: str) -> bool:
        return self.container_id == container_id


class ChartRegistry:
    """Live charts keyed by canvas id; one chart per canvas."""

    def __init__(self) -> None:
        self._charts: dict[str, Renderable] = {}

    def bind(self, chart: Renderable) -> Renderable:
        """Register ``chart``, destroying whatever was bound to its canvas before."""
        previous = self._charts.get(chart.canvas_id)
        if previous is not None and previous is not chart:
            previous.destroy()
        self._charts[chart.canvas_id] = chart
        return chart

    def get_chart(self, canvas_id: str) -> Renderable | None:
        return self._charts.get(canvas_id)

    def unbind(self, canvas_id: str) -> Renderable | None:
        return self._charts.pop(canvas_id, None)

    def attached_to(self, container_id: str) -> list[Renderable]:
        return [c for c in self._charts.values() if c.attached_to(container_id)]

    def live_count(self) -> int:
        return len(self._charts)


__all__ = [
    "ChartHandle",
    "ChartRegistry",
    "Document",
    "HtmlContainer",
    "NodeCount",
    "Renderable",
]
