"""Deterministic golden-angle placement of new waypoints."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .constants import GOLDEN_ANGLE, MAP_ORIGIN
from .models.map import MapPoint


@dataclass(frozen=True, slots=True)
class SpatialPlacer:
    """Maps an insertion index onto a phyllotaxis-style spiral.

    The angle advances by the golden angle per index while the radius grows
    by ``radius_step`` and wraps inside ``radius_span``, so the layout stays
    bounded around ``origin`` and depends on nothing but the index.
    """

    origin_x: float = MAP_ORIGIN[0]
    origin_y: float = MAP_ORIGIN[1]
    base_radius: float = 30.0
    radius_step: float = 5.0
    radius_span: float = 100.0
    angle: float = GOLDEN_ANGLE

    def __post_init__(self) -> None:
        if self.radius_span <= 0:
            raise ValueError("radius_span must be positive")
        if self.base_radius < 0 or self.radius_step < 0:
            raise ValueError("radius settings cannot be negative")

    def radius_for(self, index: int) -> float:
        return self.base_radius + (index * self.radius_step) % self.radius_span

    def place(self, index: int) -> MapPoint:
        if index < 0:
            raise ValueError(f"Placement index cannot be negative: {index}")
        theta = index * self.angle
        radius = self.radius_for(index)
        return MapPoint(
            self.origin_x + radius * math.cos(theta),
            self.origin_y + radius * math.sin(theta),
        )


__all__ = ["SpatialPlacer"]
