"""Client for the background-art service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import aiohttp

from .models.map import Waypoint

log = logging.getLogger(__name__)

PROMPT_LOCATION_LIMIT = 15

DEFAULT_PROMPT_TEMPLATE = (
    "fantasy world map, {locations}, discovered regions detailed, undiscovered "
    "areas fade to parchment edges, hand-drawn cartography style, aged paper "
    "texture, compass rose, magical atmosphere"
)
DEFAULT_NEGATIVE_PROMPT = "blurry, low quality, modern elements, text, watermark, UI, buttons"


@dataclass(frozen=True, slots=True)
class GenerationParams:
    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT
    width: int = 1024
    height: int = 1024
    steps: int = 25
    scale: float = 7.0
    model: str = "sd"


def build_prompt(waypoints: Sequence[Waypoint], params: GenerationParams | None = None) -> str:
    """Fill the prompt template with the first discovered locations."""

    params = params or GenerationParams()
    described = ", ".join(
        f"{waypoint.name}({waypoint.category.value})"
        for waypoint in waypoints[:PROMPT_LOCATION_LIMIT]
    )
    return params.prompt_template.replace("{locations}", described)


class MapImageGenerator:
    """Requests a background image; every failure degrades to ``None``."""

    def __init__(
        self,
        url: str,
        *,
        params: GenerationParams | None = None,
        timeout: float = 120.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.url = url
        self.params = params or GenerationParams()
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def payload(self, waypoints: Sequence[Waypoint]) -> Dict[str, Any]:
        return {
            "prompt": build_prompt(waypoints, self.params),
            "negative_prompt": self.params.negative_prompt,
            "width": self.params.width,
            "height": self.params.height,
            "steps": self.params.steps,
            "scale": self.params.scale,
            "model": self.params.model,
        }

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def generate(self, waypoints: Sequence[Waypoint]) -> Optional[str]:
        if not waypoints:
            return None
        session = await self._ensure_session()
        try:
            async with session.post(
                self.url,
                json=self.payload(waypoints),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            log.warning("Map image generation failed: %s", exc)
            return None
        image = data.get("image") if isinstance(data, dict) else None
        if not image:
            log.warning("Map image service returned no image")
            return None
        log.info("Generated map background for %d location(s)", len(waypoints))
        return str(image)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["GenerationParams", "MapImageGenerator", "build_prompt"]
