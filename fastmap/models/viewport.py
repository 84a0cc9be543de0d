"""Pan and zoom mapping between world space and the rendered surface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple

from .map import MapPoint

DEFAULT_ZOOM_MIN = 0.5
DEFAULT_ZOOM_MAX = 3.0


def ease_in_out(t: float) -> float:
    """Quadratic ease-in-out over ``[0, 1]``."""

    t = min(1.0, max(0.0, t))
    if t < 0.5:
        return 2 * t * t
    return -1 + (4 - 2 * t) * t


@dataclass(slots=True)
class ViewportTransform:
    """Affine pan/zoom transform with a clamped zoom factor."""

    pan_x: float = 0.0
    pan_y: float = 0.0
    zoom: float = 1.0
    zoom_min: float = DEFAULT_ZOOM_MIN
    zoom_max: float = DEFAULT_ZOOM_MAX

    def __post_init__(self) -> None:
        if self.zoom_min <= 0:
            raise ValueError("zoom_min must be positive")
        if self.zoom_min > self.zoom_max:
            self.zoom_min, self.zoom_max = self.zoom_max, self.zoom_min
        self.zoom = self.clamp_zoom(self.zoom)

    def clamp_zoom(self, value: float) -> float:
        return max(self.zoom_min, min(self.zoom_max, float(value)))

    def world_to_screen(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.zoom + self.pan_x, y * self.zoom + self.pan_y

    def screen_to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        return (sx - self.pan_x) / self.zoom, (sy - self.pan_y) / self.zoom

    def pan_by(self, dx: float, dy: float) -> None:
        self.pan_x += dx
        self.pan_y += dy

    def zoom_at(self, sx: float, sy: float, factor: float) -> float:
        """Scale around the screen point ``(sx, sy)``.

        The world point under the pointer stays under the pointer; the new
        zoom is returned after clamping.
        """

        if factor <= 0:
            raise ValueError("Zoom factor must be positive")
        new_zoom = self.clamp_zoom(self.zoom * factor)
        ratio = new_zoom / self.zoom
        self.pan_x = sx - (sx - self.pan_x) * ratio
        self.pan_y = sy - (sy - self.pan_y) * ratio
        self.zoom = new_zoom
        return new_zoom

    def center_on(self, point: MapPoint, width: float, height: float) -> Tuple[float, float]:
        """Return the pan that puts ``point`` in the middle of a surface."""

        return width / 2 - point.x * self.zoom, height / 2 - point.y * self.zoom

    def glide(
        self,
        start: Tuple[float, float],
        target: Tuple[float, float],
        t: float,
    ) -> None:
        """Move the pan along an eased path from ``start`` to ``target``."""

        eased = ease_in_out(t)
        self.pan_x = start[0] + (target[0] - start[0]) * eased
        self.pan_y = start[1] + (target[1] - start[1]) * eased

    def to_mapping(self) -> Dict[str, float]:
        return {"pan_x": float(self.pan_x), "pan_y": float(self.pan_y), "zoom": float(self.zoom)}

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any] | None,
        *,
        zoom_min: float = DEFAULT_ZOOM_MIN,
        zoom_max: float = DEFAULT_ZOOM_MAX,
    ) -> "ViewportTransform":
        data = data or {}

        def _number(key: str, default: float) -> float:
            try:
                return float(data.get(key, default))
            except (TypeError, ValueError):
                return default

        return cls(
            pan_x=_number("pan_x", 0.0),
            pan_y=_number("pan_y", 0.0),
            zoom=_number("zoom", 1.0),
            zoom_min=zoom_min,
            zoom_max=zoom_max,
        )


__all__ = ["ViewportTransform", "ease_in_out"]
