"""World map primitives: points, waypoint entities and their classification."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping

from ..constants import LORE_SENTINEL
from ._validation import (
    FieldSpec,
    ModelValidationError,
    ModelValidator,
    is_non_empty_str,
)


# ---------------------------------------------------------------------------
# Core map primitives
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MapPoint:
    """A point in world space."""

    x: float
    y: float

    def distance_to(self, other: "MapPoint") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


class OriginKind(str, Enum):
    """How a waypoint came to exist."""

    DYNAMIC = "dynamic"
    LORE = "lore"
    MANUAL = "manual"


class WaypointCategory(str, Enum):
    """Coarse theming tag used by renderers and image prompts."""

    FOREST = "forest"
    MOUNTAIN = "mountain"
    WATER = "water"
    DESERT = "desert"
    CITY = "city"
    DUNGEON = "dungeon"
    TEMPLE = "temple"
    PLAINS = "plains"


_CATEGORY_KEYWORDS: tuple[tuple[WaypointCategory, tuple[str, ...]], ...] = (
    (WaypointCategory.FOREST, ("forest", "wood", "grove")),
    (WaypointCategory.MOUNTAIN, ("mountain", "peak", "cliff")),
    (WaypointCategory.WATER, ("water", "lake", "river", "sea")),
    (WaypointCategory.DESERT, ("desert", "sand", "dune")),
    (WaypointCategory.CITY, ("city", "town", "burg", "capital")),
    (WaypointCategory.DUNGEON, ("cave", "dungeon", "crypt")),
    (WaypointCategory.TEMPLE, ("temple", "shrine")),
)


def determine_category(name: str) -> WaypointCategory:
    """Classify ``name`` by the first matching keyword group."""

    lowered = name.casefold()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return WaypointCategory.PLAINS


def identity_key(name: str, position_index: int) -> tuple[str, int]:
    """Return the deduplication key for a waypoint name and anchor."""

    return name.strip().casefold(), int(position_index)


# ---------------------------------------------------------------------------
# Waypoints
# ---------------------------------------------------------------------------


class WaypointValidator(ModelValidator):
    fields: ClassVar[Mapping[str, FieldSpec]] = {
        "id": FieldSpec(is_non_empty_str, "non-empty string"),
        "name": FieldSpec(is_non_empty_str, "non-empty string"),
        "position_index": FieldSpec(int, "integer message index"),
        "x": FieldSpec(float, "number"),
        "y": FieldSpec(float, "number"),
        "origin": FieldSpec(str, "origin kind"),
        "category": FieldSpec(str, "category name", required=False, allow_none=True),
        "created_at": FieldSpec(float, "timestamp", required=False, allow_none=True),
    }


@dataclass(frozen=True, slots=True)
class Waypoint:
    """A named location anchored to a chat message or placed by hand."""

    id: str
    name: str
    position_index: int
    coordinates: MapPoint
    category: WaypointCategory
    origin: OriginKind
    created_at: float = 0.0

    validator: ClassVar[type[ModelValidator]]

    @property
    def key(self) -> tuple[str, int]:
        return identity_key(self.name, self.position_index)

    @property
    def is_anchored(self) -> bool:
        """``True`` when the waypoint points at a real chat message."""

        return self.position_index != LORE_SENTINEL

    @property
    def is_permanent(self) -> bool:
        return self.origin in (OriginKind.LORE, OriginKind.MANUAL)

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "position_index": self.position_index,
            "x": float(self.coordinates.x),
            "y": float(self.coordinates.y),
            "category": self.category.value,
            "origin": self.origin.value,
            "created_at": float(self.created_at),
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Waypoint":
        payload = cls.validator.validate(data)
        try:
            origin = OriginKind(str(payload["origin"]).lower())
        except ValueError:
            raise ModelValidationError(
                cls, [f"Unknown origin kind {payload['origin']!r}"]
            ) from None
        name = str(payload["name"]).strip()
        raw_category = payload.get("category")
        try:
            category = WaypointCategory(str(raw_category).lower())
        except ValueError:
            category = determine_category(name)
        return cls(
            id=str(payload["id"]),
            name=name,
            position_index=int(payload["position_index"]),
            coordinates=MapPoint(float(payload["x"]), float(payload["y"])),
            category=category,
            origin=origin,
            created_at=float(payload.get("created_at") or 0.0),
        )


WaypointValidator.model = Waypoint
Waypoint.validator = WaypointValidator


__all__ = [
    "MapPoint",
    "OriginKind",
    "Waypoint",
    "WaypointCategory",
    "WaypointValidator",
    "determine_category",
    "identity_key",
]
