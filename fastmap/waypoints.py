"""Ownership and identity rules for the waypoints of one map."""

from __future__ import annotations

import time
import uuid
from typing import Callable, Dict, Iterator, List, Optional

from .constants import LORE_SENTINEL
from .models.map import (
    MapPoint,
    OriginKind,
    Waypoint,
    determine_category,
    identity_key,
)
from .models.viewport import ViewportTransform
from .placement import SpatialPlacer


def _new_waypoint_id() -> str:
    return f"wp_{uuid.uuid4().hex[:12]}"


class WaypointStore:
    """Insertion-ordered collection of waypoints deduplicated by name and anchor."""

    def __init__(
        self,
        placer: SpatialPlacer | None = None,
        *,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_waypoint_id,
    ) -> None:
        self.placer = placer or SpatialPlacer()
        self._clock = clock
        self._id_factory = id_factory
        self._waypoints: List[Waypoint] = []
        self._by_id: Dict[str, Waypoint] = {}
        self._by_key: Dict[tuple[str, int], Waypoint] = {}

    def __len__(self) -> int:
        return len(self._waypoints)

    def __iter__(self) -> Iterator[Waypoint]:
        return iter(list(self._waypoints))

    def __contains__(self, waypoint_id: object) -> bool:
        return waypoint_id in self._by_id

    def ids(self) -> set[str]:
        return set(self._by_id)

    def get(self, waypoint_id: str) -> Optional[Waypoint]:
        return self._by_id.get(waypoint_id)

    def lookup(self, name: str, position_index: int) -> Optional[Waypoint]:
        return self._by_key.get(identity_key(name, position_index))

    def find_by_name(self, name: str) -> List[Waypoint]:
        needle = name.strip().casefold()
        return [wp for wp in self._waypoints if wp.name.casefold() == needle]

    def upsert(
        self,
        name: str,
        position_index: int,
        origin: OriginKind = OriginKind.DYNAMIC,
    ) -> Waypoint:
        """Return the waypoint for ``(name, position_index)``, creating it if new."""

        name = name.strip()
        if not name:
            raise ValueError("Waypoint name cannot be empty")
        existing = self.lookup(name, position_index)
        if existing is not None:
            return existing
        # Placement follows the current size, so after a reset a new waypoint
        # can land on the coordinates of one that was kept.
        coordinates = self.placer.place(len(self._waypoints))
        return self._insert(name, int(position_index), coordinates, origin)

    def manual_insert(
        self,
        name: str,
        coordinates: MapPoint,
        *,
        position_index: int = LORE_SENTINEL,
    ) -> Waypoint:
        """Pin a waypoint at explicit world coordinates, bypassing placement."""

        name = name.strip()
        if not name:
            raise ValueError("Waypoint name cannot be empty")
        existing = self.lookup(name, position_index)
        if existing is not None:
            return existing
        return self._insert(name, int(position_index), coordinates, OriginKind.MANUAL)

    def restore(self, waypoint: Waypoint) -> Waypoint:
        """Insert a previously persisted waypoint as-is."""

        if waypoint.id in self._by_id:
            raise ValueError(f"Duplicate waypoint id: {waypoint.id}")
        existing = self._by_key.get(waypoint.key)
        if existing is not None:
            return existing
        self._add(waypoint)
        return waypoint

    def reset(self, keep: Callable[[Waypoint], bool]) -> List[Waypoint]:
        """Remove every waypoint failing ``keep`` and return the removed ones."""

        kept: List[Waypoint] = []
        removed: List[Waypoint] = []
        for waypoint in self._waypoints:
            (kept if keep(waypoint) else removed).append(waypoint)
        self._waypoints = kept
        self._by_id = {wp.id: wp for wp in kept}
        self._by_key = {wp.key: wp for wp in kept}
        return removed

    def find_near(
        self,
        world_point: MapPoint,
        max_screen_radius: float,
        viewport: ViewportTransform,
    ) -> Optional[Waypoint]:
        """Return the topmost waypoint within a screen-space radius of a point."""

        world_radius = max_screen_radius / viewport.zoom
        for waypoint in reversed(self._waypoints):
            if waypoint.coordinates.distance_to(world_point) <= world_radius:
                return waypoint
        return None

    def _insert(
        self,
        name: str,
        position_index: int,
        coordinates: MapPoint,
        origin: OriginKind,
    ) -> Waypoint:
        waypoint_id = self._id_factory()
        while waypoint_id in self._by_id:
            waypoint_id = self._id_factory()
        waypoint = Waypoint(
            id=waypoint_id,
            name=name,
            position_index=position_index,
            coordinates=coordinates,
            category=determine_category(name),
            origin=origin,
            created_at=self._clock(),
        )
        self._add(waypoint)
        return waypoint

    def _add(self, waypoint: Waypoint) -> None:
        self._waypoints.append(waypoint)
        self._by_id[waypoint.id] = waypoint
        self._by_key[waypoint.key] = waypoint


__all__ = ["WaypointStore"]
