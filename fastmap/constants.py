"""Shared constants used across the map engine and the Discord cogs."""

from __future__ import annotations

import math

# Position index used for waypoints that are not tied to a chat message, such
# as locations seeded from the lore book.
LORE_SENTINEL = -1

# Golden angle in radians (~2.399963). Successive multiples never line up,
# which keeps spiral placements spread out.
GOLDEN_ANGLE = math.pi * (3.0 - math.sqrt(5.0))

# Centre of the world-space spiral, matching the default map surface.
MAP_ORIGIN = (160.0, 200.0)
MAP_SURFACE_SIZE = (340, 380)

# Hit radius (screen pixels) used when a pointer click selects a waypoint.
WAYPOINT_HIT_RADIUS = 12.0

# Connections are only drawn between waypoints closer than this many messages.
CONNECTION_MAX_GAP = 50

MAP_EMOJI = "🗺️"
LORE_EMOJI = "📚"
CURRENT_POSITION_EMOJI = "📍"
