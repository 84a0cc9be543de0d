"""Per-chat map session wiring the extractor, store, fog of war and travel."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple

from .constants import LORE_SENTINEL, MAP_SURFACE_SIZE, WAYPOINT_HIT_RADIUS
from .extraction import LocationExtractor
from .host import HostEvents, LoreSource, MessageLog, Subscription
from .models import ModelValidationError
from .models.discovery import DiscoveryEngine, DiscoveryState
from .models.map import MapPoint, OriginKind, Waypoint
from .models.viewport import DEFAULT_ZOOM_MAX, DEFAULT_ZOOM_MIN, ViewportTransform
from .travel import ProgressCallback, TravelController, TravelOutcome, TravelSettings
from .travel.events import TravelEvent, TravelEventQueue, discovery_event
from .waypoints import WaypointStore

log = logging.getLogger(__name__)

PersistCallback = Callable[[Mapping[str, Any]], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class SessionSettings:
    discovery_radius: int = 5
    fog_enabled: bool = True
    zoom_min: float = DEFAULT_ZOOM_MIN
    zoom_max: float = DEFAULT_ZOOM_MAX
    animate_travel: bool = True
    surface_size: Tuple[int, int] = MAP_SURFACE_SIZE
    quick_travel_limit: int = 6
    travel: TravelSettings = field(default_factory=TravelSettings)


@dataclass(frozen=True, slots=True)
class VisibleWaypoint:
    """Renderer-facing view of a waypoint."""

    waypoint: Waypoint
    discovered: bool
    is_current: bool


class MapSession:
    """Everything the map knows about one chat."""

    def __init__(
        self,
        chat: MessageLog,
        *,
        settings: SessionSettings | None = None,
        lore: LoreSource | None = None,
        store: WaypointStore | None = None,
        extractor: LocationExtractor | None = None,
        persist: PersistCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.chat = chat
        self.settings = settings or SessionSettings()
        self.lore = lore
        self.store = store if store is not None else WaypointStore()
        self.extractor = extractor or LocationExtractor()
        self.state = DiscoveryState(
            fog_enabled=self.settings.fog_enabled,
            discovery_radius=self.settings.discovery_radius,
        )
        self.viewport = ViewportTransform(
            zoom_min=self.settings.zoom_min, zoom_max=self.settings.zoom_max
        )
        self.engine = DiscoveryEngine()
        self.events = TravelEventQueue()
        self.map_image: str | None = None
        # Opaque host marker for where the current chat begins.
        self.chat_anchor: str | None = None
        self.travel = TravelController(
            self.store,
            self.state,
            engine=self.engine,
            settings=self.settings.travel,
            events=self.events,
            resolver=self._resolves,
            clock=clock,
            sleep=sleep,
        )
        self._persist = persist
        self._subscriptions: list[Subscription] = []
        self._pending_saves: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Host wiring
    # ------------------------------------------------------------------

    def attach(self, events: HostEvents) -> None:
        if self._subscriptions:
            return
        self._subscriptions = [
            events.on_message_appended(self.handle_message_appended),
            events.on_chat_reset(self.handle_chat_reset),
        ]

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.detach()
        self._subscriptions = []

    def handle_message_appended(self, index: int) -> List[Waypoint]:
        """Ingest message ``index``; returns the waypoints it created."""

        message = self.chat.message_at(index)
        if message is None or not message.narrative or not message.text:
            return []
        self.state.current_position_index = index
        created: List[Waypoint] = []
        for name in sorted(self.extractor.extract(message.text)):
            size = len(self.store)
            waypoint = self.store.upsert(name, index)
            if len(self.store) > size:
                created.append(waypoint)
        self._announce(self.engine.sweep(self.store, self.state))
        if created:
            log.info(
                "Message %d mentioned %d new location(s): %s",
                index,
                len(created),
                ", ".join(wp.name for wp in created),
            )
        self.request_save()
        return created

    def handle_chat_reset(self) -> None:
        self.travel.cancel()
        self._reset_progress()
        self.map_image = None
        self.scan_lore()
        self.request_save()

    def clear(self) -> None:
        """Forget narrative progress while keeping lore locations."""

        self._reset_progress()
        self.request_save()

    def _reset_progress(self) -> None:
        removed = self.store.reset(lambda wp: wp.origin is OriginKind.LORE)
        self.state.discovered_ids.clear()
        self.state.current_position_index = 0
        log.info("Map reset, dropped %d waypoint(s)", len(removed))

    # ------------------------------------------------------------------
    # Lore and manual waypoints
    # ------------------------------------------------------------------

    def scan_lore(self) -> List[Waypoint]:
        if self.lore is None:
            return []
        entries = self.lore.list_entries()
        if not entries:
            log.info("No lore entries found")
            return []
        known = {wp.name.casefold() for wp in self.store if wp.origin is OriginKind.LORE}
        added: List[Waypoint] = []
        for entry in entries:
            if not entry.text.strip():
                continue
            for name in sorted(self.extractor.extract(entry.searchable_text)):
                folded = name.casefold()
                if folded in known:
                    continue
                waypoint = self.store.upsert(name, LORE_SENTINEL, OriginKind.LORE)
                if waypoint.origin is not OriginKind.LORE:
                    continue
                known.add(folded)
                added.append(waypoint)
        if added:
            log.info("Found %d location(s) in lore", len(added))
            self.request_save()
        return added

    def add_manual_waypoint(self, name: str, screen_x: float, screen_y: float) -> Waypoint:
        x, y = self.viewport.screen_to_world(screen_x, screen_y)
        waypoint = self.store.manual_insert(
            name,
            MapPoint(x, y),
            position_index=self.state.current_position_index,
        )
        self.request_save()
        return waypoint

    # ------------------------------------------------------------------
    # Fog of war
    # ------------------------------------------------------------------

    def set_fog(self, enabled: bool) -> List[Waypoint]:
        """Toggle fog; switching it on records what is in range right now."""

        self.state.fog_enabled = bool(enabled)
        revealed: List[Waypoint] = []
        if self.state.fog_enabled:
            revealed = self.engine.sweep(self.store, self.state)
            self._announce(revealed)
        self.request_save()
        return revealed

    def set_radius(self, radius: int) -> List[Waypoint]:
        if radius < 0:
            raise ValueError("Discovery radius cannot be negative")
        self.state.discovery_radius = int(radius)
        revealed = self.engine.sweep(self.store, self.state)
        self._announce(revealed)
        self.request_save()
        return revealed

    def reveal_all(self) -> List[Waypoint]:
        revealed = self.engine.reveal_all(self.store, self.state)
        self._announce(revealed)
        self.request_save()
        return revealed

    def is_discovered(self, waypoint: Waypoint) -> bool:
        return self.engine.is_discovered(waypoint, self.state)

    def visible_waypoints(self) -> List[VisibleWaypoint]:
        current = self.state.current_position_index
        return [
            VisibleWaypoint(
                waypoint=waypoint,
                discovered=self.is_discovered(waypoint),
                is_current=waypoint.is_anchored and waypoint.position_index == current,
            )
            for waypoint in self.store
        ]

    def discovered_count(self) -> int:
        return sum(1 for waypoint in self.store if self.is_discovered(waypoint))

    def nearby_count(self) -> int:
        return self.engine.pending_nearby(self.store, self.state)

    def drain_events(self) -> List[TravelEvent]:
        return self.events.drain()

    def _announce(self, revealed: Sequence[Waypoint]) -> None:
        for waypoint in revealed:
            self.events.push(discovery_event(waypoint))
            log.info("Discovered %s", waypoint.name)

    # ------------------------------------------------------------------
    # Travel
    # ------------------------------------------------------------------

    def resolve_waypoint(self, target: Waypoint | str) -> Optional[Waypoint]:
        if isinstance(target, Waypoint):
            return target
        waypoint = self.store.get(target)
        if waypoint is not None:
            return waypoint
        matches = self.store.find_by_name(target)
        if not matches:
            return None
        matches.sort(key=lambda wp: (self.is_discovered(wp), wp.position_index))
        return matches[-1]

    def quick_travel_options(self, limit: int | None = None) -> List[Waypoint]:
        limit = self.settings.quick_travel_limit if limit is None else limit
        discovered = [wp for wp in self.store if self.is_discovered(wp)]
        discovered.sort(key=lambda wp: wp.position_index, reverse=True)
        return discovered[: max(0, limit)]

    async def travel_to(
        self,
        target: Waypoint | str,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> TravelOutcome:
        waypoint = self.resolve_waypoint(target)
        if waypoint is None:
            raise ValueError(f"Unknown location: {target}")
        start = (self.viewport.pan_x, self.viewport.pan_y)
        width, height = self.settings.surface_size
        goal = self.viewport.center_on(waypoint.coordinates, width, height)

        async def _progress(progress: float) -> None:
            if self.settings.animate_travel:
                self.viewport.glide(start, goal, progress)
            if on_progress is not None:
                result = on_progress(progress)
                if inspect.isawaitable(result):
                    await result

        outcome = await self.travel.request_travel(waypoint, on_progress=_progress)
        self.request_save()
        return outcome

    async def click(
        self,
        screen_x: float,
        screen_y: float,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> Optional[TravelOutcome]:
        x, y = self.viewport.screen_to_world(screen_x, screen_y)
        target = self.store.find_near(MapPoint(x, y), WAYPOINT_HIT_RADIUS, self.viewport)
        if target is None:
            return None
        return await self.travel_to(target, on_progress=on_progress)

    def cancel_travel(self) -> bool:
        return self.travel.cancel()

    def _resolves(self, index: int) -> bool:
        return self.chat.message_at(index) is not None

    # ------------------------------------------------------------------
    # Background art
    # ------------------------------------------------------------------

    async def generate_background(self, generator: Any) -> Optional[str]:
        discovered = [entry.waypoint for entry in self.visible_waypoints() if entry.discovered]
        if not discovered:
            return None
        image = await generator.generate(discovered)
        if image:
            self.map_image = image
            self.request_save()
        return image

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_mapping(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "waypoints": [waypoint.to_mapping() for waypoint in self.store],
            "discovered_ids": sorted(self.state.discovered_ids),
            "current_position_index": self.state.current_position_index,
            "fog_enabled": self.state.fog_enabled,
            "discovery_radius": self.state.discovery_radius,
            "viewport": self.viewport.to_mapping(),
        }
        if self.map_image:
            payload["map_image"] = self.map_image
        if self.chat_anchor:
            payload["chat_anchor"] = self.chat_anchor
        message_ids = self.chat.message_ids()
        if all(message_id is not None for message_id in message_ids):
            payload["message_ids"] = list(message_ids)
        return payload

    def load(self, data: Mapping[str, Any] | None) -> None:
        """Populate an empty session from a persisted payload."""

        data = data or {}
        for raw in data.get("waypoints") or ():
            try:
                waypoint = Waypoint.from_mapping(raw)
            except ModelValidationError as exc:
                log.warning("Skipping stored waypoint: %s", exc)
                continue
            if waypoint.id in self.store:
                log.warning("Skipping duplicate stored waypoint %s", waypoint.id)
                continue
            self.store.restore(waypoint)
        self.state.discovered_ids = {str(key) for key in data.get("discovered_ids") or ()}
        stale = self.engine.prune(self.store, self.state)
        if stale:
            log.warning("Dropped %d discovered id(s) with no waypoint", stale)
        self.state.current_position_index = int(data.get("current_position_index", 0) or 0)
        self.state.fog_enabled = bool(data.get("fog_enabled", self.settings.fog_enabled))
        radius = int(data.get("discovery_radius", self.settings.discovery_radius))
        self.state.discovery_radius = max(0, radius)
        self.viewport = ViewportTransform.from_mapping(
            data.get("viewport"),
            zoom_min=self.settings.zoom_min,
            zoom_max=self.settings.zoom_max,
        )
        image = data.get("map_image")
        self.map_image = str(image) if image else None
        anchor = data.get("chat_anchor")
        self.chat_anchor = str(anchor) if anchor else None

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any] | None, chat: MessageLog, **kwargs: Any
    ) -> "MapSession":
        session = cls(chat, **kwargs)
        session.load(data)
        return session

    def bind_persistence(self, persist: PersistCallback | None) -> None:
        self._persist = persist

    def request_save(self) -> None:
        """Schedule a background save; never blocks the caller."""

        if self._persist is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._save(self.to_mapping()))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save(self, payload: Mapping[str, Any]) -> None:
        assert self._persist is not None
        try:
            await self._persist(payload)
        except Exception:
            log.exception("Failed to persist map state")

    async def flush(self) -> None:
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves))


__all__ = ["MapSession", "SessionSettings", "VisibleWaypoint"]
