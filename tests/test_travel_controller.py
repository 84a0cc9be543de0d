"""Tests covering journey timing, cancellation and mutual exclusion."""

from __future__ import annotations

import asyncio

import pytest

from fastmap.constants import LORE_SENTINEL
from fastmap.models import DiscoveryEngine, DiscoveryState, OriginKind, Waypoint
from fastmap.travel import (
    TravelBusy,
    TravelCancelled,
    TravelController,
    TravelSettings,
    TravelState,
    TravelUnreachable,
)
from fastmap.travel.events import TravelEventQueue, describe_progress
from fastmap.waypoints import WaypointStore


class _FakeClock:
    """Monotonic clock that only moves when the journey sleeps."""

    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now = round(self.now + seconds, 6)
        await asyncio.sleep(0)


def _make_controller(
    positions: tuple[int, ...] = (0, 2, 5, 10, 15, 16, 100),
    *,
    resolver=None,
) -> tuple[TravelController, WaypointStore, DiscoveryState, _FakeClock]:
    store = WaypointStore()
    for index in positions:
        store.upsert(f"Stop {index}", index)
    state = DiscoveryState(current_position_index=0, discovery_radius=5)
    clock = _FakeClock()
    controller = TravelController(
        store,
        state,
        engine=DiscoveryEngine(),
        settings=TravelSettings(),
        events=TravelEventQueue(),
        resolver=resolver or (lambda index: True),
        clock=clock,
        sleep=clock.sleep,
    )
    DiscoveryEngine().sweep(store, state)
    return controller, store, state, clock


def _stop(store: WaypointStore, index: int) -> Waypoint:
    waypoint = store.lookup(f"Stop {index}", index)
    assert waypoint is not None
    return waypoint


def _reveal(controller: TravelController, waypoint: Waypoint) -> None:
    controller.engine.reveal(waypoint, controller.state)


@pytest.mark.parametrize(
    ("distance", "expected"),
    [(0, 500.0), (2, 500.0), (10, 1000.0), (45, 4500.0), (100, 8000.0)],
)
def test_duration_is_clamped(distance: int, expected: float) -> None:
    assert TravelSettings().duration_for(distance) == expected


@pytest.mark.asyncio
async def test_short_hop_completes_instantly() -> None:
    controller, store, state, clock = _make_controller()
    target = _stop(store, 2)

    outcome = await controller.request_travel(target)

    assert outcome.instant is True
    assert outcome.duration_ms == 0.0
    assert state.current_position_index == 2
    assert clock.sleeps == []
    assert controller.status is TravelState.IDLE


@pytest.mark.asyncio
async def test_journey_reveals_everything_around_the_destination() -> None:
    controller, store, state, clock = _make_controller()
    target = _stop(store, 10)
    _reveal(controller, target)
    progress: list[float] = []

    outcome = await controller.request_travel(target, on_progress=progress.append)

    assert outcome.duration_ms == 1000.0
    assert outcome.instant is False
    assert state.current_position_index == 10
    assert clock.now - 100.0 == pytest.approx(1.0)
    assert {wp.position_index for wp in outcome.revealed} == {15}
    assert _stop(store, 15).id in state.discovered_ids
    assert _stop(store, 16).id not in state.discovered_ids
    assert progress == sorted(progress)
    assert progress[-1] == 1.0
    assert all(value < 1.0 for value in progress[:-1])
    assert all(0.0 <= value <= 1.0 for value in progress)
    keys = [event.key for event in controller.events.drain()]
    assert keys == [f"discovery:{_stop(store, 15).id}", f"travel:arrived:{target.id}"]


@pytest.mark.asyncio
async def test_long_journey_is_capped() -> None:
    controller, store, state, clock = _make_controller()
    target = _stop(store, 100)
    _reveal(controller, target)

    outcome = await controller.request_travel(target)

    assert outcome.duration_ms == 8000.0
    assert clock.now - 100.0 == pytest.approx(8.0)
    assert state.current_position_index == 100


@pytest.mark.asyncio
async def test_cancel_midway_keeps_position_and_reveals_nothing() -> None:
    controller, store, state, clock = _make_controller()
    target = _stop(store, 10)
    _reveal(controller, target)
    discovered_before = set(state.discovered_ids)

    def _on_progress(value: float) -> None:
        if value >= 0.5:
            controller.cancel()

    with pytest.raises(TravelCancelled) as excinfo:
        await controller.request_travel(target, on_progress=_on_progress)

    assert excinfo.value.progress == pytest.approx(0.5)
    assert state.current_position_index == 0
    assert state.discovered_ids == discovered_before
    assert controller.status is TravelState.IDLE
    assert [event.description for event in controller.events.drain()] == ["Journey aborted"]
    assert controller.cancel() is False


@pytest.mark.asyncio
async def test_second_request_while_traveling_is_busy() -> None:
    controller, store, state, clock = _make_controller()
    first = _stop(store, 10)
    second = _stop(store, 2)
    _reveal(controller, first)
    positions: list[int] = []

    journey = asyncio.create_task(controller.request_travel(first))
    await asyncio.sleep(0)
    assert controller.is_traveling

    with pytest.raises(TravelBusy):
        await controller.request_travel(second)
    positions.append(state.current_position_index)

    outcome = await journey
    positions.append(state.current_position_index)

    assert outcome.destination is first
    assert positions == [0, 10]


@pytest.mark.asyncio
async def test_undiscovered_target_is_unreachable() -> None:
    controller, store, state, clock = _make_controller()
    target = _stop(store, 16)

    with pytest.raises(TravelUnreachable):
        await controller.request_travel(target)

    assert state.current_position_index == 0
    assert controller.status is TravelState.IDLE


@pytest.mark.asyncio
async def test_lore_targets_are_instant_and_unresolved() -> None:
    controller, store, state, clock = _make_controller()
    state.current_position_index = 40
    lore = store.upsert("Old Citadel", LORE_SENTINEL, OriginKind.LORE)

    outcome = await controller.request_travel(lore)

    assert outcome.instant is True
    assert outcome.destination_resolved is False
    assert state.current_position_index == 40
    events = controller.events.drain()
    assert events[-1].key == "travel:unresolved"
    assert events[-1].warning is True


@pytest.mark.asyncio
async def test_missing_message_is_reported_but_arrival_stands() -> None:
    controller, store, state, clock = _make_controller(resolver=lambda index: index < 5)
    target = _stop(store, 10)
    _reveal(controller, target)

    outcome = await controller.request_travel(target)

    assert outcome.destination_resolved is False
    assert state.current_position_index == 10
    assert _stop(store, 15).id in state.discovered_ids
    assert controller.events.drain()[-1].key == "travel:unresolved"


@pytest.mark.asyncio
async def test_task_cancellation_releases_the_controller() -> None:
    controller, store, state, clock = _make_controller()
    target = _stop(store, 100)
    _reveal(controller, target)

    journey = asyncio.create_task(controller.request_travel(target))
    await asyncio.sleep(0)
    journey.cancel()
    with pytest.raises(asyncio.CancelledError):
        await journey

    assert controller.status is TravelState.IDLE
    assert state.current_position_index == 0


@pytest.mark.asyncio
async def test_async_progress_callbacks_are_awaited() -> None:
    controller, store, state, clock = _make_controller()
    target = _stop(store, 10)
    _reveal(controller, target)
    seen: list[float] = []

    async def _on_progress(value: float) -> None:
        await asyncio.sleep(0)
        seen.append(value)

    await controller.request_travel(target, on_progress=_on_progress)

    assert seen[-1] == 1.0


def test_progress_descriptions() -> None:
    store = WaypointStore()
    waypoint = store.upsert("Crystal Lake", 3)

    assert describe_progress(waypoint, 0.1) == "Departing..."
    assert describe_progress(waypoint, 0.5) == "Traversing water..."
    assert describe_progress(waypoint, 0.9) == "Arriving at Crystal Lake..."


def test_invalid_settings_are_rejected() -> None:
    with pytest.raises(ValueError):
        TravelSettings(min_duration=9000)
    with pytest.raises(ValueError):
        TravelSettings(tick_interval=0)
