"""Presentation-side notices produced while exploring and travelling."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List

from ..models.map import Waypoint

DEPARTING_THRESHOLD = 0.3
ARRIVING_THRESHOLD = 0.7


@dataclass(slots=True)
class TravelEvent:
    """A notice for the presentation layer (discovery, arrival, warning)."""

    key: str
    description: str
    title: str = ""
    warning: bool = False
    data: Dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class TravelEventQueue:
    """FIFO queue storing pending notices until the presenter drains them."""

    events: deque[TravelEvent] = field(default_factory=deque)

    def push(self, event: TravelEvent) -> None:
        self.events.append(event)

    def drain(self) -> List[TravelEvent]:
        drained = list(self.events)
        self.events.clear()
        return drained

    def __len__(self) -> int:  # pragma: no cover - simple pass-through
        return len(self.events)


def discovery_event(waypoint: Waypoint) -> TravelEvent:
    return TravelEvent(
        key=f"discovery:{waypoint.id}",
        title="New Location",
        description=f"Discovered: {waypoint.name}!",
        data={"waypoint_id": waypoint.id, "category": waypoint.category.value},
    )


def arrival_event(waypoint: Waypoint, *, instant: bool) -> TravelEvent:
    return TravelEvent(
        key=f"travel:arrived:{waypoint.id}",
        title="Destination Reached",
        description=f"Arrived at {waypoint.name}",
        data={"waypoint_id": waypoint.id, "instant": instant},
    )


def cancelled_event(waypoint: Waypoint) -> TravelEvent:
    return TravelEvent(
        key=f"travel:cancelled:{waypoint.id}",
        title="Travel Cancelled",
        description="Journey aborted",
        data={"waypoint_id": waypoint.id},
    )


def unresolved_event(waypoint: Waypoint) -> TravelEvent:
    return TravelEvent(
        key="travel:unresolved",
        title="Destination Unresolvable",
        description=f"{waypoint.name} could not be found in the chat history",
        warning=True,
        data={"waypoint_id": waypoint.id, "position_index": waypoint.position_index},
    )


def describe_progress(waypoint: Waypoint, progress: float) -> str:
    """Status line for a journey ``progress`` fraction of the way there."""

    if progress < DEPARTING_THRESHOLD:
        return "Departing..."
    if progress < ARRIVING_THRESHOLD:
        return f"Traversing {waypoint.category.value}..."
    return f"Arriving at {waypoint.name}..."


__all__ = [
    "TravelEvent",
    "TravelEventQueue",
    "arrival_event",
    "cancelled_event",
    "describe_progress",
    "discovery_event",
    "unresolved_event",
]
