"""Fast travel world map with fog of war."""

from .extraction import LocationExtractor, extract_locations
from .host import ChatLog, ChatMessage, HostEvents, LoreBook, LoreEntry
from .models import DiscoveryEngine, DiscoveryState, MapPoint, OriginKind, ViewportTransform, Waypoint
from .placement import SpatialPlacer
from .session import MapSession, SessionSettings, VisibleWaypoint
from .travel import TravelController, TravelOutcome, TravelSettings
from .waypoints import WaypointStore

__all__ = [
    "ChatLog",
    "ChatMessage",
    "DiscoveryEngine",
    "DiscoveryState",
    "HostEvents",
    "LocationExtractor",
    "LoreBook",
    "LoreEntry",
    "MapPoint",
    "MapSession",
    "OriginKind",
    "SessionSettings",
    "SpatialPlacer",
    "TravelController",
    "TravelOutcome",
    "TravelSettings",
    "ViewportTransform",
    "VisibleWaypoint",
    "Waypoint",
    "WaypointStore",
    "extract_locations",
]
