"""Tests for station.engine.navigation — move outcomes and prefetch."""

import asyncio
from pathlib import Path

import pytest

from station.engine.loader import load_content_dir
from station.engine.navigation import LOCKED, NOTHING_THERE, UNFORMED, Navigator
from station.engine.registry import WorldRegistry
from station.engine.state import WorldState
from station.errors import GeneratorUnavailable
from station.models import Room

CONTENT_DIR = Path(__file__).resolve().parents[2] / "content"


class FakeGenerator:
    """Counts prefetch calls; optionally blocks until released."""

    source = "fake"

    def __init__(self, result="room", gate: asyncio.Event | None = None):
        self.calls: list[tuple[str, str]] = []
        self._result = result
        self._gate = gate

    async def prefetch_room(self, room_id, from_room_id):
        self.calls.append((room_id, from_room_id))
        if self._gate is not None:
            await self._gate.wait()
        if self._result == "error":
            raise GeneratorUnavailable("backend down")
        if self._result is None:
            return None
        return {"id": room_id, "name": f"Gen {room_id}", "gmGenerated": True,
                "exits": {"back": from_room_id}}

    async def generate_dialog_options(self, npc_id, snapshot, history):
        return []

    async def generate_station_response(self, snapshot, player_message):
        raise GeneratorUnavailable("not here")


@pytest.fixture
def state() -> WorldState:
    registry = WorldRegistry()
    load_content_dir(CONTENT_DIR, registry)
    return WorldState(registry)


# ── attempt_move ─────────────────────────────────────────


def test_move_from_unknown_room_is_invalid(state):
    result = Navigator(state).attempt_move("void", "forward")
    assert result.outcome == "invalid"
    assert result.reason == 'You are unmoored. Room "void" does not exist.'


def test_move_unknown_direction_is_invalid(state):
    result = Navigator(state).attempt_move("arrival_bay", "up")
    assert result.outcome == "invalid"
    assert result.reason == NOTHING_THERE
    assert state.current_room_id == "arrival_bay"


def test_move_through_gated_exit_is_blocked(state):
    result = Navigator(state).attempt_move("arrival_bay", "hatch")
    assert result.outcome == "blocked"
    assert result.reason.startswith("The hatch is sealed.")
    assert state.current_room_id == "arrival_bay"


def test_blocked_without_message_uses_default(state):
    state.registry.register(Room(
        id="closet", name="Closet",
        exits={"door": {"roomId": "arrival_bay", "requires": "key_turned"}},
    ))
    result = Navigator(state).attempt_move("closet", "door")
    assert result.reason == LOCKED


def test_move_to_unregistered_room_is_unformed(state):
    result = Navigator(state).attempt_move("arrival_bay", "forward")
    assert result.outcome == "unformed"
    assert result.reason == UNFORMED
    assert result.room_id == "corridor_a"
    assert state.current_room_id == "arrival_bay"


async def test_move_after_flag_set(state):
    state.set_flag("panel_open")
    result = Navigator(state).attempt_move("arrival_bay", "hatch")
    assert result.outcome == "moved"
    assert result.room_id == "airlock"
    assert state.current_room_id == "airlock"
    assert state.has_flag("visited_airlock")


def test_available_exits(state):
    exits = {e["direction"]: e for e in Navigator(state).available_exits("arrival_bay")}
    assert exits["forward"]["formed"] is False
    assert exits["hatch"]["locked"] is True
    assert exits["hatch"]["formed"] is True
    assert Navigator(state).available_exits("void") == []


# ── Prefetch ─────────────────────────────────────────────


async def test_prefetch_registers_neighbour(state):
    generator = FakeGenerator()
    nav = Navigator(state, generator)
    assert nav.schedule_prefetch("arrival_bay") == ["corridor_a"]
    assert "corridor_a" in state.pending
    await nav.tasks.drain()
    assert generator.calls == [("corridor_a", "arrival_bay")]
    assert "corridor_a" in state.registry
    assert state.registry.get("corridor_a").gm_generated is True
    assert "corridor_a" not in state.pending
    assert nav.attempt_move("arrival_bay", "forward").outcome == "moved"


async def test_prefetch_deduplicated_while_pending(state):
    gate = asyncio.Event()
    generator = FakeGenerator(gate=gate)
    nav = Navigator(state, generator)
    nav.schedule_prefetch("arrival_bay")
    assert nav.schedule_prefetch("arrival_bay") == []
    gate.set()
    await nav.tasks.drain()
    assert len(generator.calls) == 1


async def test_move_schedules_prefetch_of_new_neighbours(state):
    state.set_flag("panel_open")
    state.registry.register(Room(
        id="airlock", name="Airlock",
        exits={"back": {"roomId": "arrival_bay"}, "out": {"roomId": "vacuum"}},
    ))
    generator = FakeGenerator()
    nav = Navigator(state, generator)
    nav.attempt_move("arrival_bay", "hatch")
    await nav.tasks.drain()
    assert generator.calls == [("vacuum", "airlock")]


async def test_failed_prefetch_keeps_marker_and_records(state):
    generator = FakeGenerator(result="error")
    nav = Navigator(state, generator)
    nav.schedule_prefetch("arrival_bay")
    await nav.tasks.drain()
    assert "corridor_a" not in state.registry
    assert "corridor_a" in state.pending
    assert len(state.diagnostics.of_kind("GeneratorUnavailable")) == 1
    # still pending: no second request
    assert nav.schedule_prefetch("arrival_bay") == []


async def test_null_prefetch_leaves_room_unformed(state):
    nav = Navigator(state, FakeGenerator(result=None))
    nav.schedule_prefetch("arrival_bay")
    await nav.tasks.drain()
    assert nav.attempt_move("arrival_bay", "forward").outcome == "unformed"


async def test_no_generator_no_prefetch(state):
    nav = Navigator(state)
    assert nav.schedule_prefetch("arrival_bay") == []
    assert state.pending == set()


async def test_custom_room_handler(state):
    seen = []

    async def on_room(room, from_room_id):
        seen.append((room.id, from_room_id))

    nav = Navigator(state, FakeGenerator(), on_room=on_room)
    nav.schedule_prefetch("arrival_bay")
    await nav.tasks.drain()
    assert seen == [("corridor_a", "arrival_bay")]
    assert "corridor_a" not in state.registry

