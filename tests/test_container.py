"""Tests for the in-memory container model and chart registry."""

from __future__ import annotations

import pytest

from dashkeeper.dom.container import ChartHandle, ChartRegistry, Document, HtmlContainer, Renderable


def rows(n: int) -> str:
    return "".join(f"<div>row {i}</div>" for i in range(n))


def test_count_nodes_includes_container_elements_and_text() -> None:
    """The full count is the container itself plus every element and text node."""
    c = HtmlContainer("c", "<div><span>a</span>b</div>")
    counts = c.count_nodes()
    assert counts.element_nodes == 2
    assert counts.text_nodes == 2
    assert counts.node_count == 5
    assert c.element_count() == 2


def test_empty_container_counts_only_itself() -> None:
    assert HtmlContainer("c").count_nodes().node_count == 1


def test_scroll_height_follows_top_level_blocks() -> None:
    """Extent is rows times row height, never below the visible height."""
    c = HtmlContainer("c", rows(3), client_height=400, row_height=40)
    assert c.scroll_height == 400
    c.content = rows(20)
    assert c.scroll_height == 800
    assert c.max_scroll == 400


def test_scroll_top_clamps_low_but_not_high() -> None:
    """Negative offsets clamp to 0; overshoot stays visible to corruption checks."""
    c = HtmlContainer("c", rows(20))
    c.scroll_top = -30
    assert c.scroll_top == 0
    c.scroll_top = 5000
    assert c.scroll_top == 5000


def test_replacing_content_clamps_scroll_offset() -> None:
    c = HtmlContainer("c", rows(30))
    c.scroll_top = 800
    c.content = rows(12)
    assert c.scroll_top == c.max_scroll == 80


def test_scroll_height_override_is_reset_by_new_content() -> None:
    c = HtmlContainer("c", rows(1))
    c.scroll_height = 9000
    assert c.scroll_height == 9000
    c.content = rows(1)
    assert c.scroll_height == 400


def test_remove_beyond_keeps_first_matches() -> None:
    """Truncation removes trailing matches and re-serializes the markup."""
    c = HtmlContainer("c", "".join(f'<div class="query-item">q{i}</div>' for i in range(5)))
    removed = c.remove_beyond(".query-item", 2)
    assert removed == 3
    assert len(c.select(".query-item")) == 2
    assert "q4" not in c.content and "q1" in c.content


def test_canvas_ids_and_attribute_queries() -> None:
    c = HtmlContainer(
        "c",
        '<div onclick="x()"><canvas id="a-canvas"></canvas></div><canvas></canvas><p style="color:red"></p>',
    )
    assert c.canvas_ids() == ["a-canvas"]
    assert len(c.elements_with_attr(("onclick", "style"))) == 2


def test_document_registry() -> None:
    doc = Document([HtmlContainer("a", "<p>x</p>")])
    assert "a" in doc and "b" not in doc
    created = doc.create("b", "<p>y</p>", client_height=200)
    assert doc.get("b") is created and created.client_height == 200
    assert doc.total_nodes() == 6
    assert doc.remove("a") is not None
    assert doc.ids() == ["b"]


def test_chart_handle_destroy_and_update() -> None:
    chart = ChartHandle("cv", "panel")
    chart.update(["t1"], [{"data": [1]}])
    assert chart.update_count == 1 and chart.labels == ["t1"]
    chart.destroy()
    assert chart.destroyed and chart.labels == []
    with pytest.raises(RuntimeError):
        chart.update(["t2"], [])


def test_registry_bind_replaces_and_destroys_previous() -> None:
    """One chart per canvas: rebinding destroys the old handle."""
    registry = ChartRegistry()
    first = ChartHandle("cv", "panel")
    second = ChartHandle("cv", "panel")
    registry.bind(first)
    registry.bind(second)
    assert first.destroyed and not second.destroyed
    assert registry.get_chart("cv") is second
    assert registry.live_count() == 1
    assert registry.attached_to("panel") == [second]
    assert isinstance(second, Renderable)
    assert registry.unbind("cv") is second
    assert registry.live_count() == 0
