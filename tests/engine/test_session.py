"""Tests for station.engine.session — gameplay flows against a real SaveStore."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from station.config import Settings
from station.engine.loader import load_content_dir
from station.engine.registry import WorldRegistry
from station.engine.session import GameSession
from station.engine.state import WorldState
from station.errors import ConcurrencyConflict, GeneratorUnavailable
from station.gm.live import LLMGenerator
from station.gm.stub import StubGenerator
from station.models import Npc, PlayerDiff, SaveDiff

CONTENT_DIR = Path(__file__).resolve().parents[2] / "content"


def _state() -> WorldState:
    registry = WorldRegistry()
    load_content_dir(CONTENT_DIR, registry)
    return WorldState(registry)


@pytest.fixture
def session(store) -> GameSession:
    return GameSession(_state(), store, "slot_9", generator=StubGenerator(delay=(0, 0)))


class FailingGenerator:
    source = "live"

    async def prefetch_room(self, room_id, from_room_id):
        raise GeneratorUnavailable("down")

    async def generate_dialog_options(self, npc_id, snapshot, history):
        raise GeneratorUnavailable("down")

    async def generate_station_response(self, snapshot, player_message):
        raise GeneratorUnavailable("down")


# ── Boot ─────────────────────────────────────────────────


async def test_boot_fresh_slot(session):
    save = await session.boot()
    assert save.slot_id == "slot_9"
    assert save.seq == 0
    assert save.log == []
    assert session.state.current_room_id == "arrival_bay"


async def test_boot_restores_player_and_overlays(store):
    await store.patch("slot_9", SaveDiff(
        player=PlayerDiff(current_room_id="airlock", flags={"panel_open": True}),
        rooms={"arrival_bay": {"descriptionOverride": "The lights are off now."}},
    ))
    session = GameSession(_state(), store, "slot_9")
    await session.boot()
    assert session.seq == 1
    assert session.state.current_room_id == "airlock"
    assert session.state.has_flag("panel_open")
    assert session.state.registry.get("arrival_bay").description == "The lights are off now."


# ── Gameplay writes ──────────────────────────────────────


async def test_use_interactable_persists_flag_and_log(session, store):
    await session.boot()
    item = session.use_interactable("panel")
    assert item.sets == "panel_open"
    await session.tasks.drain()

    save = await store.load("slot_9")
    assert save.seq == 1
    assert save.player.flags["panel_open"] is True
    assert [e.type for e in save.log] == ["interactable_used", "flag_set"]


async def test_use_unknown_interactable(session):
    await session.boot()
    assert session.use_interactable("nothing") is None


async def test_move_persists_position(session, store):
    await session.boot()
    session.use_interactable("panel")
    result = session.move("hatch")
    assert result.outcome == "moved"
    await session.tasks.drain()

    save = await store.load("slot_9")
    assert save.player.current_room_id == "airlock"
    assert save.seq == session.seq
    assert [e.type for e in await store.get_log("slot_9", ["room:airlock"])] == ["room_entered"]


async def test_blocked_move_writes_nothing(session, store):
    await session.boot()
    assert session.move("hatch").outcome == "blocked"
    await session.tasks.drain()
    assert (await store.load("slot_9")).seq == 0


async def test_prefetched_room_is_committed(session, store):
    await session.boot()
    session.navigator.schedule_prefetch("arrival_bay")
    await session.tasks.drain()

    assert "corridor_a" in session.state.registry
    save = await store.load("slot_9")
    assert save.rooms["corridor_a"].gm_room.gm_source == "stub"
    generated = await store.get_log("slot_9", ["gm_action", "room:corridor_a"])
    assert generated[0].type == "gm_room_generated"
    assert generated[0].data["fromRoomId"] == "arrival_bay"


async def test_stale_best_effort_patch_is_dropped(session, store):
    await session.boot()
    # another writer gets there first
    await store.patch("slot_9", SaveDiff(player=PlayerDiff(act=1)), expected_seq=0)

    session.use_interactable("panel")
    await session.tasks.drain()

    save = await store.load("slot_9")
    assert save.seq == 1
    assert "panel_open" not in save.player.flags
    assert len(session.state.diagnostics.of_kind("ConcurrencyConflict")) == 1
    # local state still moved on
    assert session.state.has_flag("panel_open")


async def test_commit_retries_after_conflict(session, store):
    await session.boot()
    await store.patch("slot_9", SaveDiff(player=PlayerDiff(act=1)), expected_seq=0)

    result = await session.change_act(2)
    assert result.seq == 2
    save = await store.load("slot_9")
    assert save.player.act == 2
    assert save.log[-1].type == "act_changed"


async def test_commit_gives_up_after_max_retries(store):
    class AlwaysStale:
        async def load(self, slot_id):
            return await store.load(slot_id)

        async def replace(self, slot_id, save):
            return await store.replace(slot_id, save)

        async def patch(self, slot_id, diff, expected_seq=None):
            raise ConcurrencyConflict(slot_id, expected_seq, expected_seq + 1)

        async def get_log(self, slot_id, tags=None):
            return await store.get_log(slot_id, tags)

    session = GameSession(_state(), AlwaysStale(), "slot_9", max_retries=2)
    with pytest.raises(ConcurrencyConflict):
        await session.change_act(2)


# ── Dialog ───────────────────────────────────────────────


async def test_dialog_flow(session, store):
    await session.boot()
    node = session.start_dialog("archivist")
    assert node.id == "arch_hello"
    ledger = session.choose("archivist", node.id, node.options[0])
    assert ledger.id == "arch_ledger"
    page = ledger.options[1]
    assert session.choose("archivist", ledger.id, page) is None
    assert session.state.inventory == ["ledger_page"]
    assert session.state.active_dialog is None
    await session.tasks.drain()

    types = [e.type for e in (await store.load("slot_9")).log]
    assert types == [
        "dialog_started", "dialog_chosen", "dialog_chosen", "item_taken", "dialog_ended",
    ]


async def test_start_dialog_unknown_npc(session):
    await session.boot()
    assert session.start_dialog("ghost") is None


async def test_inject_options(session, store):
    await session.boot()
    options = await session.inject_options("archivist")
    assert len(options) == 2
    assert all(o.source == "gm" for o in options)

    entry = session.state.registry.get("arrival_bay").dialog["arch_hello"]
    assert [o.source for o in entry.options] == ["authored", "gm", "gm", "authored"]
    assert entry.options[-1].text == "Walk away."

    save = await store.load("slot_9")
    assert len(save.rooms["arrival_bay"].injected_dialog["archivist"]) == 2
    assert save.log[-1].type == "gm_options_injected"


async def test_inject_options_generator_down(store):
    session = GameSession(_state(), store, "slot_9", generator=FailingGenerator())
    await session.boot()
    assert await session.inject_options("archivist") == []
    assert len(session.state.diagnostics.of_kind("GeneratorUnavailable")) == 1
    assert (await store.load("slot_9")).seq == 0


async def test_station_response(session):
    await session.boot()
    node = await session.station_response("Is anyone there?")
    assert node.speaker == "station"
    assert node.source == "station"
    assert all(o.source == "station" for o in node.options)
    assert session.state.active_dialog is node
    await session.tasks.drain()


async def test_station_response_unavailable(store):
    session = GameSession(_state(), store, "slot_9", generator=FailingGenerator())
    await session.boot()
    assert await session.station_response("hello?") is None


async def test_invalid_generator_replies_do_not_break_flow(store):
    llm = AsyncMock(side_effect=[
        '[{"text": "Ask", "source": "npc"}]',
        '{"text": "I am here", "speaker": 7}',
    ])
    session = GameSession(_state(), store, "slot_9", generator=LLMGenerator(llm))
    await session.boot()
    assert await session.inject_options("archivist") == []
    assert await session.station_response("hello") is None
    assert len(session.state.diagnostics.of_kind("GeneratorUnavailable")) == 2
    assert (await store.load("slot_9")).seq == 0


async def test_set_description_and_add_npc(session, store):
    await session.boot()
    await session.set_description("arrival_bay", "Emergency lighting only.")
    await session.add_npc("arrival_bay", Npc(id="ghost", name="A Ghost"))

    room = session.state.registry.get("arrival_bay")
    assert room.description == "Emergency lighting only."
    assert [n.id for n in room.npcs] == ["archivist", "ghost"]
    save = await store.load("slot_9")
    assert save.seq == 2
    assert save.rooms["arrival_bay"].description_override == "Emergency lighting only."


async def test_new_game_resets(session, store):
    await session.boot()
    session.use_interactable("panel")
    await session.tasks.drain()

    save = await session.new_game()
    assert save.seq == 0
    assert save.log == []
    assert session.state.flags == {}
    assert session.state.current_room_id == "arrival_bay"


async def test_gm_options_survive_reboot(session, store):
    await session.boot()
    await session.inject_options("archivist")

    fresh = GameSession(_state(), store, "slot_9")
    await fresh.boot()
    entry = fresh.state.registry.get("arrival_bay").dialog["arch_hello"]
    assert [o.source for o in entry.options].count("gm") == 2



async def test_from_settings(store):
    settings = Settings(content_dir=CONTENT_DIR, replacement_policy="allow", stub_delay=(0, 0))
    session = GameSession.from_settings(settings, store, "slot_9")
    assert session.state.registry.replacement_policy == "allow"
    assert "arrival_bay" in session.state.registry
    assert session.gm_source == "stub"
    await session.boot()
    assert session.current_room().name == "Arrival Bay"
