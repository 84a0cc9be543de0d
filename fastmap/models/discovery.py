"""Fog of war tracking for waypoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List, Set

from .map import OriginKind, Waypoint

if TYPE_CHECKING:  # pragma: no cover - imported for annotations only
    from ..waypoints import WaypointStore


@dataclass(slots=True)
class DiscoveryState:
    """Per-chat exploration state."""

    discovered_ids: Set[str] = field(default_factory=set)
    current_position_index: int = 0
    fog_enabled: bool = True
    discovery_radius: int = 5

    def __post_init__(self) -> None:
        self.discovered_ids = set(self.discovered_ids)
        if self.discovery_radius < 0:
            raise ValueError("discovery_radius cannot be negative")


class DiscoveryEngine:
    """Evaluates and records which waypoints the user may see.

    The engine holds no state of its own; every call receives the
    :class:`DiscoveryState` it should read or update.
    """

    @staticmethod
    def within_radius(waypoint: Waypoint, state: DiscoveryState, *, margin: int = 0) -> bool:
        if not waypoint.is_anchored:
            return False
        distance = abs(waypoint.position_index - state.current_position_index)
        return distance <= state.discovery_radius + margin

    def is_permanently_discovered(self, waypoint: Waypoint, state: DiscoveryState) -> bool:
        return not state.fog_enabled or waypoint.is_permanent

    def is_discovered(self, waypoint: Waypoint, state: DiscoveryState) -> bool:
        if self.is_permanently_discovered(waypoint, state):
            return True
        if waypoint.id in state.discovered_ids:
            return True
        return self.within_radius(waypoint, state)

    def reveal(self, waypoint: Waypoint, state: DiscoveryState) -> bool:
        """Record ``waypoint`` as discovered; returns ``True`` if newly added."""

        if waypoint.id in state.discovered_ids:
            return False
        if self.is_permanently_discovered(waypoint, state):
            return False
        state.discovered_ids.add(waypoint.id)
        return True

    def sweep(self, store: Iterable[Waypoint], state: DiscoveryState) -> List[Waypoint]:
        """Reveal every waypoint in range of the current position."""

        revealed: List[Waypoint] = []
        for waypoint in store:
            if self.within_radius(waypoint, state) and self.reveal(waypoint, state):
                revealed.append(waypoint)
        return revealed

    def reveal_all(self, store: Iterable[Waypoint], state: DiscoveryState) -> List[Waypoint]:
        return [waypoint for waypoint in store if self.reveal(waypoint, state)]

    def prune(self, store: "WaypointStore", state: DiscoveryState) -> int:
        """Drop ids that no longer exist in ``store``; returns how many went."""

        stale = {key for key in state.discovered_ids if key not in store}
        state.discovered_ids.difference_update(stale)
        return len(stale)

    def pending_nearby(
        self, store: Iterable[Waypoint], state: DiscoveryState, *, margin: int = 2
    ) -> int:
        """Count undiscovered narrative waypoints just beyond the radius."""

        count = 0
        for waypoint in store:
            if waypoint.origin is not OriginKind.DYNAMIC:
                continue
            if waypoint.id in state.discovered_ids:
                continue
            if self.within_radius(waypoint, state, margin=margin):
                count += 1
        return count


__all__ = ["DiscoveryEngine", "DiscoveryState"]
