"""Tests for station.engine.loader — normalization, loading and dialog resolution."""

import json

import pytest

from station.engine.diagnostics import Diagnostics
from station.engine.loader import (
    load_content_dir,
    load_rooms,
    normalize_room,
    resolve_dialog,
    resolve_npc_dialog,
)
from station.engine.registry import WorldRegistry
from station.errors import MalformedContent
from station.models import DialogNode, DialogOption, Room

RAW_BAY = {
    "id": "arrival_bay",
    "name": "Arrival Bay",
    "description": "  Cold light.  ",
    "exits": {
        "forward": "corridor_a",
        "hatch": {"roomId": "airlock", "requires": "panel_open",
                  "lockedMessage": "The hatch is sealed."},
    },
    "npcs": [{"id": "archivist", "name": "Archivist", "dialog": {"entry": "arch_hello"}}],
    "interactables": [{"id": "panel", "name": "Panel", "sets": "panel_open"}],
    "dialog": {
        "arch_hello": {
            "speaker": "archivist",
            "text": "Welcome.",
            "options": [
                {"text": "The ledger?", "next": "arch_ledger"},
                {"text": "Bye", "next": None},
            ],
        },
        "arch_ledger": {
            "speaker": "archivist",
            "text": "Sign here.",
            "options": [
                {"text": "Sign it.", "next": "arch_hello", "setFlag": "signed_ledger"},
                {"text": "Take a page.", "giveItem": "ledger_page"},
            ],
        },
    },
}


# ── normalize_room ───────────────────────────────────────


def test_normalize_fills_defaults():
    room = normalize_room({"id": "empty"})
    assert room.name == "empty"
    assert room.act == 1
    assert room.description == ""
    assert room.exits == {}
    assert room.npcs == []
    assert room.interactables == []
    assert room.dialog == {}
    assert room.gm_generated is False


def test_normalize_exit_shorthand_and_object():
    room = normalize_room(RAW_BAY)
    assert room.exits["forward"].room_id == "corridor_a"
    assert room.exits["forward"].requires is None
    assert room.exits["hatch"].requires == "panel_open"
    assert room.exits["hatch"].locked_message == "The hatch is sealed."


def test_normalize_npc_dialog_entry():
    room = normalize_room(RAW_BAY)
    assert room.npcs[0].dialog_entry == "arch_hello"


def test_normalize_strips_description():
    assert normalize_room(RAW_BAY).description == "Cold light."


def test_normalize_accepts_snake_case():
    room = normalize_room({"id": "x", "gm_generated": True, "gm_source": "stub"})
    assert room.gm_generated is True
    assert room.gm_source == "stub"


def test_normalize_is_idempotent():
    once = normalize_room(RAW_BAY)
    assert normalize_room(once) == once
    assert normalize_room(once.dump()) == once


def test_normalize_inline_next_node():
    room = normalize_room({
        "id": "x",
        "dialog": {"n1": {"speaker": "a", "text": "hi", "options": [
            {"text": "go", "next": {"id": "inline", "speaker": "a", "text": "there"}},
        ]}},
    })
    nxt = room.dialog["n1"].options[0].next
    assert isinstance(nxt, DialogNode)
    assert nxt.id == "inline"


def test_normalize_without_id_raises():
    with pytest.raises(MalformedContent):
        normalize_room({"name": "Nameless"})


def test_normalize_drops_node_without_text():
    diagnostics = Diagnostics()
    room = normalize_room({"id": "x", "dialog": {"broken": {"speaker": "a"}}}, diagnostics)
    assert room.dialog == {}
    assert len(diagnostics.of_kind("MalformedContent")) == 1


def test_normalize_drops_npc_without_id():
    diagnostics = Diagnostics()
    room = normalize_room({"id": "x", "npcs": [{"name": "Nobody"}]}, diagnostics)
    assert room.npcs == []
    assert len(diagnostics) == 1


# ── load_rooms / load_content_dir ────────────────────────


def test_load_rooms_skips_malformed():
    registry = WorldRegistry()
    diagnostics = Diagnostics()
    loaded = load_rooms([RAW_BAY, {"name": "no id"}, {"id": "airlock"}], registry, diagnostics)
    assert [r.id for r in loaded] == ["arrival_bay", "airlock"]
    assert "arrival_bay" in registry
    assert "airlock" in registry
    assert len(diagnostics.of_kind("MalformedContent")) == 1


def test_load_content_dir_keeps_walkthrough_out_of_registry(tmp_path):
    (tmp_path / "walkthrough").mkdir()
    (tmp_path / "bay.json").write_text(json.dumps(RAW_BAY))
    (tmp_path / "broken.json").write_text("{not json")
    (tmp_path / "walkthrough" / "act1.json").write_text(json.dumps({"act": 1, "beats": []}))

    registry = WorldRegistry()
    diagnostics = Diagnostics()
    content = load_content_dir(tmp_path, registry, diagnostics)

    assert [r.id for r in content.rooms] == ["arrival_bay"]
    assert len(content.walkthrough) == 1
    assert content.walkthrough[0]["beats"] == []
    assert registry.ids() == ["arrival_bay"]
    assert len(diagnostics.of_kind("MalformedContent")) == 1


# ── resolve_dialog ───────────────────────────────────────


def test_resolve_inlines_next():
    room = normalize_room(RAW_BAY)
    node = resolve_dialog(room.dialog, "arch_hello")
    assert node.id == "arch_hello"
    ledger = node.options[0].next
    assert ledger.id == "arch_ledger"
    assert ledger.options[1].give_item == "ledger_page"
    assert node.options[1].next is None


def test_resolve_cycle_becomes_terminal():
    room = normalize_room(RAW_BAY)
    diagnostics = Diagnostics()
    node = resolve_dialog(room.dialog, "arch_hello", diagnostics)
    sign = node.options[0].next.options[0]
    assert sign.text == "Sign it."
    assert sign.set_flag == "signed_ledger"
    assert sign.next is None
    cycles = diagnostics.of_kind("GraphCycle")
    assert len(cycles) == 1
    assert cycles[0].error.path == ("arch_hello", "arch_ledger", "arch_hello")


def test_resolve_self_loop():
    dialog = {"a": DialogNode(id="a", speaker="s", text="again?",
                              options=[DialogOption(text="yes", next="a")])}
    diagnostics = Diagnostics()
    node = resolve_dialog(dialog, "a", diagnostics)
    assert node.options[0].next is None
    assert len(diagnostics.of_kind("GraphCycle")) == 1


def test_resolve_shared_node_on_separate_paths_is_not_a_cycle():
    dialog = {
        "a": DialogNode(id="a", speaker="s", text="a", options=[
            DialogOption(text="to b", next="b"), DialogOption(text="to c", next="c"),
        ]),
        "b": DialogNode(id="b", speaker="s", text="b", options=[DialogOption(text="c", next="c")]),
        "c": DialogNode(id="c", speaker="s", text="c"),
    }
    diagnostics = Diagnostics()
    node = resolve_dialog(dialog, "a", diagnostics)
    assert node.options[0].next.options[0].next.id == "c"
    assert node.options[1].next.id == "c"
    assert len(diagnostics) == 0


def test_resolve_unknown_next_is_terminal():
    dialog = {"a": DialogNode(id="a", speaker="s", text="a",
                              options=[DialogOption(text="?", next="missing")])}
    diagnostics = Diagnostics()
    node = resolve_dialog(dialog, "a", diagnostics)
    assert node.options[0].next is None
    assert len(diagnostics.of_kind("NotFound")) == 1


def test_resolve_unknown_entry_returns_none():
    assert resolve_dialog({}, "anything") is None
    assert resolve_dialog(normalize_room(RAW_BAY).dialog, "nope") is None


def test_resolve_npc_dialog():
    room = normalize_room(RAW_BAY)
    assert resolve_npc_dialog(room, "archivist").id == "arch_hello"
    assert resolve_npc_dialog(room, "ghost") is None


def test_resolve_npc_without_entry():
    room = Room(id="x", name="X", npcs=[{"id": "mute", "name": "Mute"}])
    assert resolve_npc_dialog(room, "mute") is None
