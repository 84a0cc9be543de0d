"""Tests for the per-chat map session and its host wiring."""

from __future__ import annotations

import asyncio
import logging

import pytest

from fastmap.constants import LORE_SENTINEL, MAP_SURFACE_SIZE
from fastmap.host import ChatLog, ChatMessage, HostEvents, LoreBook
from fastmap.models import OriginKind
from fastmap.session import MapSession, SessionSettings


class _FakeClock:
    def __init__(self) -> None:
        self.now = 50.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now = round(self.now + seconds, 6)
        await asyncio.sleep(0)


def _make_session(*messages: str, **kwargs) -> tuple[MapSession, ChatLog, HostEvents]:
    chat = ChatLog()
    clock = _FakeClock()
    kwargs.setdefault("clock", clock)
    kwargs.setdefault("sleep", clock.sleep)
    session = MapSession(chat, **kwargs)
    events = HostEvents()
    session.attach(events)
    for text in messages:
        index = chat.append(text)
        events.emit_message_appended(index)
    return session, chat, events


def _named(session: MapSession, name: str):
    matches = session.store.find_by_name(name)
    assert matches, name
    return matches[0]


def test_appended_messages_create_and_discover_waypoints() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")

    oakwood = _named(session, "Oakwood")
    assert oakwood.position_index == 0
    assert session.is_discovered(oakwood)
    assert [event.key for event in session.drain_events()] == [f"discovery:{oakwood.id}"]

    chat.append("Nothing happens for a while.")
    events.emit_message_appended(1)
    chat.append("At dusk the caravan reached Ironford.")
    events.emit_message_appended(2)

    assert len(session.store) == 2
    assert session.state.current_position_index == 2
    assert session.discovered_count() == 2


def test_repeated_mentions_at_the_same_message_are_deduplicated() -> None:
    session, chat, events = _make_session("We rest in Oakwood, deep inside Oakwood.")

    events.emit_message_appended(0)

    assert [wp.name for wp in session.store] == ["Oakwood"]


def test_missing_message_is_ignored() -> None:
    session, chat, events = _make_session()

    assert session.handle_message_appended(7) == []
    assert len(session.store) == 0


def test_attach_is_idempotent_and_detach_stops_updates() -> None:
    session, chat, events = _make_session()
    session.attach(events)

    chat.append("We entered Mistwood.")
    events.emit_message_appended(0)
    assert len(session.store) == 1
    assert len(session.drain_events()) == 1

    session.detach()
    chat.append("Later we reached Stormhaven.")
    events.emit_message_appended(1)
    assert len(session.store) == 1


def test_lore_scan_skips_empty_entries_and_duplicates() -> None:
    lore = LoreBook()
    lore.add(["Silverdale"], "A quiet valley town.")
    lore.add([], "Silverdale is famous for its wool.")
    lore.add(["Ghostmoor"], "   ")
    session, chat, events = _make_session(lore=lore)

    added = session.scan_lore()

    assert [wp.name for wp in added] == ["Silverdale"]
    assert added[0].origin is OriginKind.LORE
    assert added[0].position_index == LORE_SENTINEL
    assert session.is_discovered(added[0])
    assert session.scan_lore() == []


def test_chat_reset_keeps_only_lore() -> None:
    lore = LoreBook()
    lore.add(["Silverdale"], "A quiet valley town.")
    session, chat, events = _make_session(
        "We make camp in Oakwood.", "Then we travelled on to Ironford.", lore=lore
    )
    session.scan_lore()
    session.map_image = "data:image/png;base64,AAAA"

    chat.clear()
    events.emit_chat_reset()

    assert [wp.name for wp in session.store] == ["Silverdale"]
    assert session.state.discovered_ids == set()
    assert session.state.current_position_index == 0
    assert session.map_image is None


def test_clear_forgets_narrative_waypoints() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")

    session.clear()

    assert len(session.store) == 0
    assert session.state.current_position_index == 0


def test_manual_pin_is_anchored_at_current_position() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.", "Quiet night.")
    session.viewport.pan_by(10, -10)

    pin = session.add_manual_waypoint("Hidden Camp", 180, 190)

    assert pin.origin is OriginKind.MANUAL
    assert pin.position_index == 1
    assert (pin.coordinates.x, pin.coordinates.y) == (170.0, 200.0)
    assert session.is_discovered(pin)


def test_radius_changes_sweep_and_reject_negative_values() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")
    for _ in range(9):
        chat.append("Time passes.")
        events.emit_message_appended(len(chat) - 1)
    session.state.discovered_ids.clear()

    revealed = session.set_radius(12)

    assert [wp.name for wp in revealed] == ["Oakwood"]
    with pytest.raises(ValueError):
        session.set_radius(-1)


def test_fog_toggle_and_reveal_all() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")
    for _ in range(20):
        chat.append("Time passes.")
        events.emit_message_appended(len(chat) - 1)
    chat.append("We spotted the walls of Ravenport.")
    events.emit_message_appended(len(chat) - 1)
    session.state.discovered_ids.clear()
    session.state.current_position_index = 100
    oakwood = _named(session, "Oakwood")

    assert not session.is_discovered(oakwood)
    session.set_fog(False)
    assert session.is_discovered(oakwood)
    assert session.reveal_all() == []

    session.set_fog(True)
    assert {wp.name for wp in session.reveal_all()} == {"Oakwood", "Ravenport"}
    assert session.is_discovered(oakwood)


def test_resolve_prefers_discovered_then_latest() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")
    for _ in range(20):
        chat.append("Time passes.")
        events.emit_message_appended(len(chat) - 1)
    chat.append("Back in Oakwood again.")
    events.emit_message_appended(len(chat) - 1)

    resolved = session.resolve_waypoint("oakwood")

    assert resolved is not None
    assert resolved.position_index == 21
    assert session.resolve_waypoint(resolved.id) is resolved
    assert session.resolve_waypoint("Atlantis") is None


def test_quick_travel_lists_latest_discoveries_first() -> None:
    session, chat, events = _make_session(
        "We make camp in Oakwood.", "We reached Ironford.", "We entered Mistwood."
    )

    names = [wp.name for wp in session.quick_travel_options(limit=2)]

    assert names == ["Mistwood", "Ironford"]


@pytest.mark.asyncio
async def test_travel_glides_viewport_onto_destination() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")
    for _ in range(10):
        chat.append("Time passes.")
        events.emit_message_appended(len(chat) - 1)
    oakwood = _named(session, "Oakwood")
    progress: list[float] = []

    outcome = await session.travel_to("Oakwood", on_progress=progress.append)

    width, height = MAP_SURFACE_SIZE
    assert outcome.duration_ms == 1000.0
    assert session.state.current_position_index == 0
    assert progress[-1] == 1.0
    assert session.viewport.world_to_screen(
        oakwood.coordinates.x, oakwood.coordinates.y
    ) == pytest.approx((width / 2, height / 2))


@pytest.mark.asyncio
async def test_travel_without_animation_leaves_viewport_alone() -> None:
    settings = SessionSettings(animate_travel=False)
    session, chat, events = _make_session("We make camp in Oakwood.", settings=settings)
    for _ in range(9):
        chat.append("Time passes.")
        events.emit_message_appended(len(chat) - 1)

    await session.travel_to("Oakwood")

    assert (session.viewport.pan_x, session.viewport.pan_y) == (0.0, 0.0)


@pytest.mark.asyncio
async def test_unknown_destination_is_rejected() -> None:
    session, chat, events = _make_session()

    with pytest.raises(ValueError, match="Unknown location"):
        await session.travel_to("Atlantis")


@pytest.mark.asyncio
async def test_click_hits_waypoint_under_pointer() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.", "We reached Ironford.")
    oakwood = _named(session, "Oakwood")
    sx, sy = session.viewport.world_to_screen(oakwood.coordinates.x, oakwood.coordinates.y)

    outcome = await session.click(sx + 3, sy - 3)

    assert outcome is not None
    assert outcome.destination is oakwood
    assert outcome.instant is True
    assert session.state.current_position_index == 0
    assert await session.click(-500, -500) is None


@pytest.mark.asyncio
async def test_background_generation_uses_discovered_waypoints() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")

    class _Generator:
        def __init__(self) -> None:
            self.requested: list[str] = []

        async def generate(self, waypoints):
            self.requested = [wp.name for wp in waypoints]
            return "data:image/png;base64,AAAA"

    generator = _Generator()
    image = await session.generate_background(generator)

    assert image == "data:image/png;base64,AAAA"
    assert generator.requested == ["Oakwood"]
    assert session.map_image == image


@pytest.mark.asyncio
async def test_changes_are_saved_in_the_background() -> None:
    saved: list[dict] = []

    async def _persist(payload) -> None:
        saved.append(dict(payload))

    session, chat, events = _make_session()
    session.bind_persistence(_persist)

    chat.append("We make camp in Oakwood.")
    events.emit_message_appended(0)
    await session.flush()

    assert saved
    assert [wp["name"] for wp in saved[-1]["waypoints"]] == ["Oakwood"]
    assert saved[-1]["current_position_index"] == 0


@pytest.mark.asyncio
async def test_failed_saves_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    async def _persist(payload) -> None:
        raise OSError("disk full")

    session, chat, events = _make_session(persist=_persist)

    with caplog.at_level(logging.ERROR, logger="fastmap.session"):
        session.set_fog(False)
        await session.flush()

    assert "Failed to persist map state" in caplog.text


def test_state_round_trips_through_mapping() -> None:
    session, chat, events = _make_session(
        "We make camp in Oakwood.", "We reached Ironford.", "We entered Mistwood."
    )
    session.viewport.pan_by(12, -4)
    session.map_image = "data:image/png;base64,AAAA"
    session.chat_anchor = "1234"

    restored = MapSession.from_mapping(session.to_mapping(), chat)

    assert [wp.id for wp in restored.store] == [wp.id for wp in session.store]
    assert restored.state.discovered_ids == session.state.discovered_ids
    assert restored.state.current_position_index == 2
    assert restored.viewport == session.viewport
    assert restored.map_image == session.map_image
    assert restored.chat_anchor == "1234"


def test_load_skips_invalid_records(caplog: pytest.LogCaptureFixture) -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")
    payload = session.to_mapping()
    good = payload["waypoints"][0]
    payload["waypoints"] = [good, dict(good), {"name": "Broken"}]
    payload["discovered_ids"] = [good["id"], "wp_missing"]
    payload["discovery_radius"] = -3

    with caplog.at_level(logging.WARNING, logger="fastmap.session"):
        restored = MapSession.from_mapping(payload, chat)

    assert len(restored.store) == 1
    assert restored.state.discovered_ids == {good["id"]}
    assert restored.state.discovery_radius == 0
    assert "Skipping" in caplog.text
    assert "Dropped 1 discovered id" in caplog.text


def test_enabling_fog_records_what_is_in_range() -> None:
    settings = SessionSettings(fog_enabled=False)
    session, chat, events = _make_session("We arrive at Rivermoor.", settings=settings)
    rivermoor = _named(session, "Rivermoor")
    assert session.state.discovered_ids == set()

    revealed = session.set_fog(True)

    assert revealed == [rivermoor]
    for _ in range(20):
        chat.append("Time passes.")
        events.emit_message_appended(len(chat) - 1)
    assert session.state.current_position_index == 20
    assert session.is_discovered(rivermoor)


def test_bot_notices_take_an_index_but_are_not_scanned() -> None:
    session, chat, events = _make_session("We make camp in Oakwood.")
    session.drain_events()

    index = chat.append(ChatMessage(text="Discovered: Stonehaven!", narrative=False))
    events.emit_message_appended(index)

    assert index == 1
    assert [wp.name for wp in session.store] == ["Oakwood"]
    assert session.state.current_position_index == 0
    assert session.drain_events() == []


def test_message_ids_are_persisted_only_when_known() -> None:
    chat = ChatLog([ChatMessage(text="We make camp in Oakwood.", message_id=11)])
    session = MapSession(chat)
    session.handle_message_appended(0)

    assert session.to_mapping()["message_ids"] == [11]
    chat.append("A message the host never numbered.")
    assert "message_ids" not in session.to_mapping()
