"""Tests for station.engine.state — flags, inventory, save boundary, snapshot."""

from station.engine.registry import WorldRegistry
from station.engine.state import WorldState, visited_flag
from station.models import Exit, Overlay, PlayerState, Room


def _state() -> WorldState:
    registry = WorldRegistry()
    registry.register(Room(id="arrival_bay", name="Arrival Bay",
                           exits={"forward": Exit(room_id="corridor_a")}))
    return WorldState(registry)


def test_defaults():
    state = _state()
    assert state.current_room_id == "arrival_bay"
    assert state.act == 1
    assert state.flags == {}
    assert state.inventory == []
    assert state.active_dialog is None


def test_flags_are_monotone():
    state = _state()
    assert state.set_flag("panel_open") is True
    assert state.set_flag("panel_open") is False
    assert state.set_flag("panel_open", False) is False
    assert state.has_flag("panel_open")


def test_inventory_has_no_duplicates():
    state = _state()
    assert state.add_to_inventory("ledger_page") is True
    assert state.add_to_inventory("ledger_page") is False
    assert state.inventory == ["ledger_page"]


def test_mark_visited():
    state = _state()
    state.mark_visited("arrival_bay")
    assert state.has_flag(visited_flag("arrival_bay"))
    assert visited_flag("arrival_bay") == "visited_arrival_bay"


def test_apply_player_and_diff():
    state = _state()
    state.apply_player(PlayerState(
        current_room_id="airlock", act=2, flags={"a": True}, inventory=["key"],
    ))
    diff = state.player_diff()
    assert diff.current_room_id == "airlock"
    assert diff.act == 2
    assert diff.flags == {"a": True}
    assert diff.inventory == ["key"]


def test_pending_cleared_on_register():
    state = _state()
    state.pending.add("corridor_a")
    state.registry.apply_overlay("corridor_a", Overlay(gm_room=Room(id="corridor_a", name="C")))
    assert "corridor_a" not in state.pending


def test_snapshot():
    state = _state()
    state.mark_visited("arrival_bay")
    state.add_to_inventory("key")
    snap = state.snapshot()
    assert snap.current_room_name == "Arrival Bay"
    assert snap.inventory == ["key"]
    known = snap.known_rooms["arrival_bay"]
    assert known.visited is True
    assert known.exits == ["forward"]
    assert known.gm_generated is False


def test_snapshot_is_detached():
    state = _state()
    snap = state.snapshot()
    state.set_flag("later")
    state.add_to_inventory("x")
    assert "later" not in snap.flags
    assert snap.inventory == []
