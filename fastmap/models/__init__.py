"""Domain models for the fast travel map."""

from ._validation import ModelValidationError
from .discovery import DiscoveryEngine, DiscoveryState
from .map import (
    MapPoint,
    OriginKind,
    Waypoint,
    WaypointCategory,
    determine_category,
    identity_key,
)
from .viewport import ViewportTransform, ease_in_out

__all__ = [
    "DiscoveryEngine",
    "DiscoveryState",
    "MapPoint",
    "ModelValidationError",
    "OriginKind",
    "ViewportTransform",
    "Waypoint",
    "WaypointCategory",
    "determine_category",
    "ease_in_out",
    "identity_key",
]
