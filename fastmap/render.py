"""Text rendering of the world map for Discord embeds."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .constants import CONNECTION_MAX_GAP, CURRENT_POSITION_EMOJI, MAP_SURFACE_SIZE
from .models.discovery import DiscoveryState
from .models.map import OriginKind, Waypoint, WaypointCategory
from .models.viewport import ViewportTransform
from .session import VisibleWaypoint

HINT_MARGIN = 5

CATEGORY_GLYPHS: Dict[WaypointCategory, str] = {
    WaypointCategory.FOREST: "🌲",
    WaypointCategory.MOUNTAIN: "⛰️",
    WaypointCategory.WATER: "🌊",
    WaypointCategory.DESERT: "🏜️",
    WaypointCategory.CITY: "🏰",
    WaypointCategory.DUNGEON: "💀",
    WaypointCategory.TEMPLE: "⛩️",
    WaypointCategory.PLAINS: "🌾",
}


def connection_pairs(entries: Sequence[VisibleWaypoint]) -> List[Tuple[Waypoint, Waypoint]]:
    """Path segments between consecutive discovered waypoints.

    Each discovered waypoint links to the first later-discovered one whose
    position index is larger, provided the two are less than
    ``CONNECTION_MAX_GAP`` messages apart.
    """

    discovered = [entry.waypoint for entry in entries if entry.discovered]
    pairs: List[Tuple[Waypoint, Waypoint]] = []
    for current in discovered[:-1]:
        following = next(
            (wp for wp in discovered if wp.position_index > current.position_index),
            None,
        )
        if following is None:
            continue
        if following.position_index - current.position_index < CONNECTION_MAX_GAP:
            pairs.append((current, following))
    return pairs


def faint_hints(entries: Iterable[VisibleWaypoint], state: DiscoveryState) -> List[Waypoint]:
    """Undiscovered narrative waypoints close enough to show as a faint dot."""

    limit = state.discovery_radius + HINT_MARGIN
    return [
        entry.waypoint
        for entry in entries
        if not entry.discovered
        and entry.waypoint.origin is not OriginKind.LORE
        and entry.waypoint.is_anchored
        and abs(entry.waypoint.position_index - state.current_position_index) <= limit
    ]


class MiniMapRenderer:
    """Renders emoji mini-maps of the visible surface for Discord embeds."""

    EMPTY_GLYPH = "⬛"
    HINT_GLYPH = "▫️"
    CURRENT_GLYPH = CURRENT_POSITION_EMOJI

    def __init__(
        self,
        viewport: ViewportTransform,
        *,
        surface_size: Tuple[int, int] = MAP_SURFACE_SIZE,
    ) -> None:
        self.viewport = viewport
        self.surface_size = surface_size

    def cell_for(self, waypoint: Waypoint, columns: int, rows: int) -> Optional[Tuple[int, int]]:
        width, height = self.surface_size
        sx, sy = self.viewport.world_to_screen(waypoint.coordinates.x, waypoint.coordinates.y)
        if not (0 <= sx < width and 0 <= sy < height):
            return None
        column = min(columns - 1, int(sx * columns / width))
        row = min(rows - 1, int(sy * rows / height))
        return column, row

    def render(
        self,
        entries: Sequence[VisibleWaypoint],
        *,
        state: DiscoveryState | None = None,
        columns: int = 14,
        rows: int = 14,
    ) -> str:
        """Render the viewport surface as a ``columns`` x ``rows`` emoji grid.

        Discovered waypoints show their category glyph, the waypoint at the
        current position is marked with a pin and, when ``state`` is given,
        nearby undiscovered waypoints appear as faint hints.
        """

        columns = max(1, columns)
        rows = max(1, rows)
        grid = [[self.EMPTY_GLYPH] * columns for _ in range(rows)]
        priority = [[0] * columns for _ in range(rows)]

        def _place(waypoint: Waypoint, glyph: str, rank: int) -> None:
            cell = self.cell_for(waypoint, columns, rows)
            if cell is None:
                return
            column, row = cell
            if rank >= priority[row][column]:
                grid[row][column] = glyph
                priority[row][column] = rank

        if state is not None:
            for waypoint in faint_hints(entries, state):
                _place(waypoint, self.HINT_GLYPH, 1)
        for entry in entries:
            if not entry.discovered:
                continue
            if entry.is_current:
                _place(entry.waypoint, self.CURRENT_GLYPH, 3)
            else:
                _place(entry.waypoint, CATEGORY_GLYPHS[entry.waypoint.category], 2)
        return "\n".join("".join(row) for row in grid)

    @staticmethod
    def legend(entries: Sequence[VisibleWaypoint], *, limit: int = 10) -> List[str]:
        lines: List[str] = []
        for entry in entries:
            if not entry.discovered:
                continue
            waypoint = entry.waypoint
            glyph = CURRENT_POSITION_EMOJI if entry.is_current else CATEGORY_GLYPHS[waypoint.category]
            where = "Lore" if not waypoint.is_anchored else f"#{waypoint.position_index}"
            lines.append(f"{glyph} {waypoint.name} · {where}")
        return lines[-limit:] if limit > 0 else lines


__all__ = ["CATEGORY_GLYPHS", "MiniMapRenderer", "connection_pairs", "faint_hints"]
