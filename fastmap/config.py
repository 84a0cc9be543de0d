"""Bot configuration utilities."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .session import SessionSettings
from .travel import TravelSettings

_TRUTHY = {"1", "true", "yes", "on"}


def env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(slots=True)
class MapConfig:
    token: str
    discovery_radius: int = 5
    fog_of_war: bool = True
    travel_speed: int = 100
    min_travel_time: int = 500
    max_travel_time: int = 8000
    instant_travel_threshold: int = 3
    travel_tick_ms: int = 50
    zoom_min: float = 0.5
    zoom_max: float = 3.0
    animate_travel: bool = True
    history_limit: int = 200
    image_api_url: str | None = None

    @classmethod
    def from_env(cls) -> "MapConfig":
        token = env("DISCORD_TOKEN")
        discovery_radius = max(0, int(os.getenv("DISCOVERY_RADIUS", "5")))
        fog_of_war = env_flag("FOG_OF_WAR", True)
        travel_speed = max(0, int(os.getenv("TRAVEL_SPEED", "100")))
        min_travel_time = int(os.getenv("MIN_TRAVEL_TIME", "500"))
        max_travel_time = int(os.getenv("MAX_TRAVEL_TIME", "8000"))
        instant_threshold = max(0, int(os.getenv("INSTANT_TRAVEL_THRESHOLD", "3")))
        travel_tick_ms = max(1, int(os.getenv("TRAVEL_TICK_MS", "50")))
        zoom_min = float(os.getenv("ZOOM_MIN", "0.5"))
        zoom_max = float(os.getenv("ZOOM_MAX", "3.0"))
        animate_travel = env_flag("TRAVEL_ANIMATION", True)
        history_limit = max(1, int(os.getenv("HISTORY_LIMIT", "200")))
        image_api_url = os.getenv("IMAGE_API_URL") or None

        if min_travel_time > max_travel_time:
            min_travel_time, max_travel_time = max_travel_time, min_travel_time
        min_travel_time = max(0, min_travel_time)
        max_travel_time = max(min_travel_time, max_travel_time)
        if zoom_min > zoom_max:
            zoom_min, zoom_max = zoom_max, zoom_min
        if zoom_min <= 0:
            raise RuntimeError("ZOOM_MIN must be positive")

        return cls(
            token=token,
            discovery_radius=discovery_radius,
            fog_of_war=fog_of_war,
            travel_speed=travel_speed,
            min_travel_time=min_travel_time,
            max_travel_time=max_travel_time,
            instant_travel_threshold=instant_threshold,
            travel_tick_ms=travel_tick_ms,
            zoom_min=zoom_min,
            zoom_max=zoom_max,
            animate_travel=animate_travel,
            history_limit=history_limit,
            image_api_url=image_api_url,
        )

    def travel_settings(self) -> TravelSettings:
        return TravelSettings(
            speed_factor=float(self.travel_speed),
            min_duration=float(self.min_travel_time),
            max_duration=float(self.max_travel_time),
            instant_threshold=self.instant_travel_threshold,
            tick_interval=self.travel_tick_ms / 1000.0,
        )

    def session_settings(self) -> SessionSettings:
        return SessionSettings(
            discovery_radius=self.discovery_radius,
            fog_enabled=self.fog_of_war,
            zoom_min=self.zoom_min,
            zoom_max=self.zoom_max,
            animate_travel=self.animate_travel,
            travel=self.travel_settings(),
        )


__all__ = ["MapConfig", "env"]
