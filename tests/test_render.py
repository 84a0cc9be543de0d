"""Tests for the emoji mini-map and route helpers."""

from __future__ import annotations

from fastmap.constants import LORE_SENTINEL
from fastmap.models import (
    DiscoveryState,
    MapPoint,
    OriginKind,
    ViewportTransform,
    Waypoint,
    WaypointCategory,
)
from fastmap.render import CATEGORY_GLYPHS, MiniMapRenderer, connection_pairs, faint_hints
from fastmap.session import VisibleWaypoint


def _make_entry(
    name: str,
    position: int,
    *,
    x: float = 160.0,
    y: float = 200.0,
    discovered: bool = True,
    current: bool = False,
    category: WaypointCategory = WaypointCategory.PLAINS,
    origin: OriginKind = OriginKind.DYNAMIC,
) -> VisibleWaypoint:
    waypoint = Waypoint(
        id=f"wp_{name.lower()}",
        name=name,
        position_index=position,
        coordinates=MapPoint(x, y),
        category=category,
        origin=origin,
    )
    return VisibleWaypoint(waypoint=waypoint, discovered=discovered, is_current=current)


def _grid(text: str) -> list[list[str]]:
    rows = []
    for line in text.split("\n"):
        cells: list[str] = []
        for char in line:
            if char == "\ufe0f" and cells:
                cells[-1] += char
            else:
                cells.append(char)
        rows.append(cells)
    return rows


def test_waypoint_lands_in_expected_cell() -> None:
    renderer = MiniMapRenderer(ViewportTransform())
    entry = _make_entry("Oakwood", 0, category=WaypointCategory.FOREST)

    assert renderer.cell_for(entry.waypoint, 14, 14) == (6, 7)
    grid = _grid(renderer.render([entry]))
    assert len(grid) == 14
    assert grid[7][6] == CATEGORY_GLYPHS[WaypointCategory.FOREST]


def test_offscreen_and_hidden_waypoints_are_not_drawn() -> None:
    renderer = MiniMapRenderer(ViewportTransform(pan_x=-1000.0))
    visible = _make_entry("Oakwood", 0)
    hidden = _make_entry("Mistwood", 1, discovered=False)

    assert renderer.cell_for(visible.waypoint, 14, 14) is None
    rendered = MiniMapRenderer(ViewportTransform()).render([hidden])
    assert set(rendered.replace("\n", "")) == {MiniMapRenderer.EMPTY_GLYPH}


def test_current_position_wins_over_other_glyphs() -> None:
    renderer = MiniMapRenderer(ViewportTransform())
    here = _make_entry("Ironford", 3, current=True)
    neighbour = _make_entry("Mistwood", 4, x=161.0)
    state = DiscoveryState(current_position_index=3, discovery_radius=1)
    hint = _make_entry("Ravenport", 8, x=162.0, discovered=False)

    grid = _grid(renderer.render([here, neighbour, hint], state=state))

    assert grid[7][6] == MiniMapRenderer.CURRENT_GLYPH


def test_faint_hints_skip_lore_and_distant_waypoints() -> None:
    state = DiscoveryState(current_position_index=10, discovery_radius=5)
    entries = [
        _make_entry("Near", 18, discovered=False),
        _make_entry("Far", 30, discovered=False),
        _make_entry("Lore", LORE_SENTINEL, discovered=False, origin=OriginKind.LORE),
        _make_entry("Known", 12),
    ]

    assert [wp.name for wp in faint_hints(entries, state)] == ["Near"]


def test_connections_skip_large_gaps() -> None:
    entries = [
        _make_entry("First", 0),
        _make_entry("Second", 10),
        _make_entry("Hidden", 20, discovered=False),
        _make_entry("Third", 70),
    ]

    pairs = connection_pairs(entries)

    assert [(a.name, b.name) for a, b in pairs] == [("First", "Second")]


def test_legend_lists_latest_discoveries() -> None:
    entries = [
        _make_entry("Silverdale", LORE_SENTINEL, origin=OriginKind.LORE),
        _make_entry("Oakwood", 2, category=WaypointCategory.FOREST, current=True),
        _make_entry("Mistwood", 5, discovered=False),
    ]

    lines = MiniMapRenderer.legend(entries, limit=5)

    assert lines == [
        f"{CATEGORY_GLYPHS[WaypointCategory.PLAINS]} Silverdale · Lore",
        f"{MiniMapRenderer.CURRENT_GLYPH} Oakwood · #2",
    ]
