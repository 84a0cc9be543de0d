from __future__ import annotations

import pytest

from fastmap.constants import LORE_SENTINEL
from fastmap.models import DiscoveryEngine, DiscoveryState, MapPoint, OriginKind
from fastmap.waypoints import WaypointStore


def _make_world() -> tuple[WaypointStore, DiscoveryState, DiscoveryEngine]:
    store = WaypointStore()
    for index in (0, 4, 5, 6, 12):
        store.upsert(f"Stop {index}", index)
    return store, DiscoveryState(current_position_index=0, discovery_radius=5), DiscoveryEngine()


def test_sweep_reveals_only_waypoints_in_radius() -> None:
    store, state, engine = _make_world()

    revealed = engine.sweep(store, state)

    assert sorted(wp.position_index for wp in revealed) == [0, 4, 5]
    assert engine.sweep(store, state) == []


def test_discovery_is_monotonic_when_position_moves_away() -> None:
    store, state, engine = _make_world()
    engine.sweep(store, state)
    seen = {wp.id for wp in store if engine.is_discovered(wp, state)}

    for position in (20, 300, 0, 7):
        state.current_position_index = position
        engine.sweep(store, state)
        now = {wp.id for wp in store if engine.is_discovered(wp, state)}
        assert seen <= now
        seen = now


def test_lore_and_manual_waypoints_are_always_discovered() -> None:
    store = WaypointStore()
    lore = store.upsert("Old Citadel", LORE_SENTINEL, OriginKind.LORE)
    pin = store.manual_insert("Camp", MapPoint(0.0, 0.0), position_index=3)
    state = DiscoveryState(current_position_index=900, discovery_radius=0, fog_enabled=True)
    engine = DiscoveryEngine()

    assert engine.is_discovered(lore, state)
    assert engine.is_discovered(pin, state)
    assert engine.reveal(lore, state) is False
    assert state.discovered_ids == set()


def test_sentinel_waypoints_are_never_within_radius() -> None:
    store = WaypointStore()
    lore = store.upsert("Old Citadel", LORE_SENTINEL, OriginKind.LORE)
    state = DiscoveryState(current_position_index=0, discovery_radius=5)

    assert DiscoveryEngine.within_radius(lore, state) is False


def test_fog_off_reveals_everything_without_recording() -> None:
    store, state, engine = _make_world()
    state.fog_enabled = False

    assert all(engine.is_discovered(wp, state) for wp in store)
    assert engine.reveal_all(store, state) == []
    assert state.discovered_ids == set()


def test_reveal_all_records_every_dynamic_waypoint() -> None:
    store, state, engine = _make_world()

    revealed = engine.reveal_all(store, state)

    assert len(revealed) == len(store)
    assert state.discovered_ids == store.ids()


def test_prune_drops_unknown_ids() -> None:
    store, state, engine = _make_world()
    engine.sweep(store, state)
    state.discovered_ids.add("wp_gone")

    assert engine.prune(store, state) == 1
    assert "wp_gone" not in state.discovered_ids


def test_pending_nearby_counts_undiscovered_just_outside_radius() -> None:
    store, state, engine = _make_world()
    engine.sweep(store, state)

    # radius 5 plus a margin of 2 reaches the waypoint at index 6
    assert engine.pending_nearby(store, state) == 1


def test_negative_radius_is_rejected() -> None:
    with pytest.raises(ValueError):
        DiscoveryState(discovery_radius=-1)
