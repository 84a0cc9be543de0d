"""Fast travel between waypoints.

This module turns a click on a discovered waypoint into a journey: nearby
targets are reached at once, distant ones run as a timed asyncio coroutine
that reports eased progress, honours cancellation at tick boundaries and
finally moves the session cursor and lights up everything around the
destination.  Only one journey may be in flight per controller.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

from ..models.discovery import DiscoveryEngine, DiscoveryState
from ..models.map import Waypoint
from ..waypoints import WaypointStore
from .events import (
    TravelEventQueue,
    arrival_event,
    cancelled_event,
    discovery_event,
    unresolved_event,
)

log = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Optional[Awaitable[Any]]]
Resolver = Callable[[int], bool]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TravelError(RuntimeError):
    """Base class for rejected or interrupted journeys."""


class TravelBusy(TravelError):
    def __init__(self, destination: Waypoint) -> None:
        self.destination = destination
        super().__init__(f"Already traveling to {destination.name}")


class TravelUnreachable(TravelError):
    def __init__(self, waypoint: Waypoint) -> None:
        self.waypoint = waypoint
        super().__init__(f"Cannot travel to undiscovered location {waypoint.name}")


class TravelCancelled(TravelError):
    def __init__(self, waypoint: Waypoint, progress: float) -> None:
        self.waypoint = waypoint
        self.progress = progress
        super().__init__(f"Journey to {waypoint.name} aborted at {progress:.0%}")


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------


class TravelState(str, Enum):
    IDLE = "idle"
    TRAVELING = "traveling"


@dataclass(frozen=True, slots=True)
class TravelSettings:
    """Timing rules; durations are milliseconds, ``tick_interval`` is seconds."""

    speed_factor: float = 100.0
    min_duration: float = 500.0
    max_duration: float = 8000.0
    instant_threshold: int = 3
    tick_interval: float = 0.05

    def __post_init__(self) -> None:
        if self.speed_factor < 0:
            raise ValueError("speed_factor cannot be negative")
        if self.min_duration < 0 or self.min_duration > self.max_duration:
            raise ValueError("min_duration must be between 0 and max_duration")
        if self.instant_threshold < 0:
            raise ValueError("instant_threshold cannot be negative")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")

    def is_instant(self, distance: int) -> bool:
        return distance <= self.instant_threshold

    def duration_for(self, distance: int) -> float:
        raw = distance * self.speed_factor
        return max(self.min_duration, min(self.max_duration, raw))


@dataclass(slots=True)
class Journey:
    """Book-keeping for the journey currently in flight."""

    destination: Waypoint
    origin_index: int
    duration_ms: float
    started_at: float
    progress: float = 0.0
    cancel_requested: bool = False

    def elapsed_ms(self, now: float) -> float:
        return max(0.0, (now - self.started_at) * 1000.0)

    def advance(self, now: float) -> float:
        elapsed = self.elapsed_ms(now)
        if elapsed >= self.duration_ms:
            value = 1.0
        else:
            value = elapsed / self.duration_ms
        self.progress = max(self.progress, value)
        return self.progress

    def remaining_seconds(self, now: float) -> float:
        return max(0.0, self.duration_ms - self.elapsed_ms(now)) / 1000.0


@dataclass(frozen=True, slots=True)
class TravelOutcome:
    destination: Waypoint
    origin_index: int
    position_index: int
    duration_ms: float
    instant: bool
    revealed: Tuple[Waypoint, ...] = ()
    destination_resolved: bool = True


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class TravelController:
    """Runs at most one fast-travel journey at a time."""

    def __init__(
        self,
        store: WaypointStore,
        state: DiscoveryState,
        *,
        engine: DiscoveryEngine | None = None,
        settings: TravelSettings | None = None,
        events: TravelEventQueue | None = None,
        resolver: Resolver | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.state = state
        self.engine = engine or DiscoveryEngine()
        self.settings = settings or TravelSettings()
        self.events = events if events is not None else TravelEventQueue()
        self._resolver = resolver
        self._clock = clock
        self._sleep = sleep
        self._journey: Journey | None = None

    @property
    def status(self) -> TravelState:
        return TravelState.TRAVELING if self._journey is not None else TravelState.IDLE

    @property
    def is_traveling(self) -> bool:
        return self._journey is not None

    @property
    def journey(self) -> Journey | None:
        return self._journey

    def distance_to(self, target: Waypoint) -> int:
        if not target.is_anchored:
            return 0
        return abs(target.position_index - self.state.current_position_index)

    async def request_travel(
        self,
        target: Waypoint,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> TravelOutcome:
        """Travel to ``target``.

        Raises :class:`TravelBusy` or :class:`TravelUnreachable` without
        touching any state, and :class:`TravelCancelled` when :meth:`cancel`
        interrupts the journey before arrival.
        """

        if self._journey is not None:
            raise TravelBusy(self._journey.destination)
        if not self.engine.is_discovered(target, self.state):
            raise TravelUnreachable(target)

        origin_index = self.state.current_position_index
        distance = self.distance_to(target)
        if self.settings.is_instant(distance):
            return self._arrive(target, origin_index, 0.0, instant=True)

        duration = self.settings.duration_for(distance)
        journey = Journey(
            destination=target,
            origin_index=origin_index,
            duration_ms=duration,
            started_at=self._clock(),
        )
        self._journey = journey
        log.info(
            "Travelling to %s (%d messages, %.0f ms)", target.name, distance, duration
        )
        try:
            await self._run(journey, on_progress)
        except TravelCancelled:
            self.events.push(cancelled_event(target))
            log.info("Journey to %s cancelled at %.0f%%", target.name, journey.progress * 100)
            raise
        finally:
            self._journey = None
        return self._arrive(target, origin_index, duration, instant=False)

    def cancel(self) -> bool:
        """Ask the running journey to stop at its next tick."""

        if self._journey is None:
            return False
        self._journey.cancel_requested = True
        return True

    async def _run(self, journey: Journey, on_progress: ProgressCallback | None) -> None:
        tick = self.settings.tick_interval
        while True:
            if journey.cancel_requested:
                raise TravelCancelled(journey.destination, journey.progress)
            progress = journey.advance(self._clock())
            if on_progress is not None:
                result = on_progress(progress)
                if inspect.isawaitable(result):
                    await result
            if progress >= 1.0:
                break
            await self._sleep(min(tick, journey.remaining_seconds(self._clock())))
        if journey.cancel_requested:
            raise TravelCancelled(journey.destination, journey.progress)

    def _arrive(
        self,
        target: Waypoint,
        origin_index: int,
        duration_ms: float,
        *,
        instant: bool,
    ) -> TravelOutcome:
        revealed: list[Waypoint] = []
        if target.is_anchored:
            self.state.current_position_index = target.position_index
            revealed = self.engine.sweep(self.store, self.state)
            resolved = self._resolver(target.position_index) if self._resolver else True
        else:
            resolved = False
        for waypoint in revealed:
            self.events.push(discovery_event(waypoint))
        self.events.push(arrival_event(target, instant=instant))
        if not resolved:
            self.events.push(unresolved_event(target))
            log.warning(
                "Arrived at %s but message %d is not in the chat log",
                target.name,
                target.position_index,
            )
        log.info("Arrived at %s, revealed %d waypoint(s)", target.name, len(revealed))
        return TravelOutcome(
            destination=target,
            origin_index=origin_index,
            position_index=self.state.current_position_index,
            duration_ms=duration_ms,
            instant=instant,
            revealed=tuple(revealed),
            destination_resolved=resolved,
        )


__all__ = [
    "Journey",
    "ProgressCallback",
    "TravelBusy",
    "TravelCancelled",
    "TravelController",
    "TravelError",
    "TravelOutcome",
    "TravelSettings",
    "TravelState",
    "TravelUnreachable",
]
