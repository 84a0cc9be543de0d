"""Convert map records saved in the legacy camelCase layout."""

from __future__ import annotations

from typing import Any, Mapping

FROM_VERSION = 0
TO_VERSION = 1
DESCRIPTION = "Rename legacy map fields and tag lore waypoints"

_LEGACY_MARKERS = ("lastPosition", "discoveredIds", "showFogOfWar", "mapImage")


def _is_legacy(record: Mapping[str, Any]) -> bool:
    if any(marker in record for marker in _LEGACY_MARKERS):
        return True
    waypoints = record.get("waypoints")
    return isinstance(waypoints, list) and any(
        isinstance(item, Mapping) and "mesId" in item for item in waypoints
    )


def _convert_waypoint(raw: Mapping[str, Any]) -> dict[str, Any]:
    position = int(raw.get("mesId", raw.get("position_index", -1)))
    lore = bool(raw.get("fromWorldInfo")) or position == -1
    timestamp = raw.get("timestamp", raw.get("created_at", 0))
    try:
        created_at = float(timestamp)
    except (TypeError, ValueError):
        created_at = 0.0
    # Browser timestamps are milliseconds.
    if created_at > 1e11:
        created_at /= 1000.0
    converted = {
        "id": str(raw.get("id", "")),
        "name": str(raw.get("name", "")),
        "position_index": position,
        "x": float(raw.get("x", 0.0)),
        "y": float(raw.get("y", 0.0)),
        "origin": "lore" if lore else str(raw.get("origin", "dynamic")),
        "created_at": created_at,
    }
    category = raw.get("biome", raw.get("category"))
    if category:
        converted["category"] = str(category)
    return converted


def convert_record(record: Mapping[str, Any]) -> dict[str, Any]:
    if not _is_legacy(record):
        return dict(record)
    waypoints = [
        _convert_waypoint(item)
        for item in record.get("waypoints") or ()
        if isinstance(item, Mapping)
    ]
    converted: dict[str, Any] = {
        "waypoints": waypoints,
        "discovered_ids": [str(item) for item in record.get("discoveredIds") or ()],
        "current_position_index": int(record.get("lastPosition", 0) or 0),
        "fog_enabled": bool(record.get("showFogOfWar", True)),
        "discovery_radius": int(record.get("discoveryRadius", 5)),
        "viewport": {
            "pan_x": float(record.get("panX", 0.0) or 0.0),
            "pan_y": float(record.get("panY", 0.0) or 0.0),
            "zoom": float(record.get("zoom", 1.0) or 1.0),
        },
    }
    if record.get("mapImage"):
        converted["map_image"] = str(record["mapImage"])
    return converted


def apply(context) -> None:  # type: ignore[override]
    converted = 0
    for path in context.records():
        record = context.read(path)
        if record is None or not _is_legacy(record):
            continue
        context.write(path, convert_record(record))
        converted += 1
    if converted:
        context.log(f"Converted {converted} legacy map record(s)")
