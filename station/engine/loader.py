"""Content resolver — authored/generated room documents into registry rooms.

Rooms are plain JSON documents on disk; the generator returns the same shape.
Everything goes through ``normalize_room`` so downstream code never has to
branch on a missing field, and everything is registered through the
``WorldRegistry``.

Raw document shape (camelCase or snake_case keys both accepted):

    {
      "id": "arrival_bay",
      "name": "Arrival Bay",
      "act": 1,
      "description": "...",
      "exits": {"forward": "corridor_a",
                "hatch": {"roomId": "airlock", "requires": "panel_open",
                          "lockedMessage": "The hatch is sealed."}},
      "npcs": [{"id": "archivist", "dialog": {"entry": "arch_hello"}}],
      "interactables": [{"id": "panel", "name": "Panel", "sets": "panel_open"}],
      "dialog": {"arch_hello": {"speaker": "archivist", "text": "...",
                                "options": [{"text": "Bye", "next": null}]}}
    }

Dialog resolution inlines every ``next`` reference into a tree. Cycles are
broken per path: revisiting a node already on the current path turns that
option into a terminal and records a ``GraphCycle`` diagnostic.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from station.errors import GraphCycle, MalformedContent, NotFound
from station.models import (
    DialogNode,
    DialogOption,
    Exit,
    Interactable,
    Npc,
    ResolvedNode,
    ResolvedOption,
    Room,
)

from .diagnostics import Diagnostics
from .registry import WorldRegistry

logger = logging.getLogger(__name__)


def _pick(doc: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Read ``key`` from a raw document in either camelCase or snake_case."""
    camel = to_camel(key)
    if camel in doc and doc[camel] is not None:
        return doc[camel]
    value = doc.get(key)
    return default if value is None else value


def _sink(diagnostics: Diagnostics | None) -> Diagnostics:
    return diagnostics if diagnostics is not None else Diagnostics()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_room(
    raw: Mapping[str, Any] | Room, diagnostics: Diagnostics | None = None
) -> Room:
    """Normalize a raw room document, filling every default.

    Idempotent: normalizing an already-normalized room returns an equal room.
    Raises ``MalformedContent`` when the document has no id.
    """
    if isinstance(raw, Room):
        raw = raw.dump()
    if not isinstance(raw, Mapping):
        raise MalformedContent(f"room document must be a mapping, got {type(raw).__name__}")
    room_id = raw.get("id")
    if not room_id or not isinstance(room_id, str):
        raise MalformedContent("room document has no id")

    diagnostics = _sink(diagnostics)
    try:
        return Room(
            id=room_id,
            name=_pick(raw, "name", room_id),
            act=_pick(raw, "act", 1),
            description=str(_pick(raw, "description", "")).strip(),
            exits=_normalize_exits(room_id, _pick(raw, "exits", {}), diagnostics),
            npcs=[
                npc for npc in (
                    _normalize_npc(room_id, doc, diagnostics) for doc in _pick(raw, "npcs", [])
                ) if npc is not None
            ],
            interactables=[
                item for item in (
                    _normalize_interactable(room_id, doc, diagnostics)
                    for doc in _pick(raw, "interactables", [])
                ) if item is not None
            ],
            dialog=_normalize_dialog(room_id, _pick(raw, "dialog", {}), diagnostics),
            gm_generated=bool(_pick(raw, "gm_generated", False)),
            gm_source=_pick(raw, "gm_source"),
            gm_hint=_pick(raw, "gm_hint"),
        )
    except (ValidationError, TypeError, AttributeError) as e:
        raise MalformedContent(f"room {room_id!r}: {e}") from e


def _normalize_exits(
    room_id: str, exits: Mapping[str, Any], diagnostics: Diagnostics
) -> dict[str, Exit]:
    result: dict[str, Exit] = {}
    for direction, exit_doc in exits.items():
        if isinstance(exit_doc, str):
            result[direction] = Exit(room_id=exit_doc)
            continue
        try:
            result[direction] = Exit.model_validate(exit_doc)
        except ValidationError as e:
            diagnostics.record(
                MalformedContent(f"exit {direction!r} in {room_id!r}: {e.errors()[0]['msg']}"),
                room_id=room_id,
            )
    return result


def _normalize_npc(room_id: str, doc: Any, diagnostics: Diagnostics) -> Npc | None:
    if not isinstance(doc, Mapping) or not doc.get("id"):
        diagnostics.record(MalformedContent(f"npc without id in {room_id!r}"), room_id=room_id)
        return None
    entry = _pick(doc, "dialog_entry")
    if entry is None and isinstance(doc.get("dialog"), Mapping):
        entry = doc["dialog"].get("entry")
    return Npc(
        id=doc["id"],
        name=_pick(doc, "name", doc["id"]),
        description=_pick(doc, "description", ""),
        dialog_entry=entry,
    )


def _normalize_interactable(
    room_id: str, doc: Any, diagnostics: Diagnostics
) -> Interactable | None:
    if not isinstance(doc, Mapping) or not doc.get("id"):
        diagnostics.record(
            MalformedContent(f"interactable without id in {room_id!r}"), room_id=room_id
        )
        return None
    return Interactable(
        id=doc["id"],
        name=_pick(doc, "name", doc["id"]),
        description=_pick(doc, "description", ""),
        sets=_pick(doc, "sets"),
        gives=_pick(doc, "gives"),
    )


def _normalize_dialog(
    room_id: str, dialog: Mapping[str, Any], diagnostics: Diagnostics
) -> dict[str, DialogNode]:
    nodes: dict[str, DialogNode] = {}
    for node_id, doc in dialog.items():
        node = normalize_node(doc, node_id, diagnostics, room_id=room_id)
        if node is not None:
            nodes[node_id] = node
    return nodes


def normalize_node(
    doc: Any,
    node_id: str | None,
    diagnostics: Diagnostics | None = None,
    room_id: str | None = None,
) -> DialogNode | None:
    """Normalize one dialog node. Malformed nodes are dropped with a diagnostic.

    ``node_id`` is authoritative when given (the key in the room's node map);
    inline nodes carry their own id.
    """
    diagnostics = _sink(diagnostics)
    if isinstance(doc, DialogNode):
        doc = doc.dump()
    node_id = node_id or (doc.get("id") if isinstance(doc, Mapping) else None)
    if not isinstance(doc, Mapping) or not node_id or not isinstance(doc.get("text"), str):
        diagnostics.record(
            MalformedContent(f"dialog node {node_id!r} is missing id or text"),
            room_id=room_id,
        )
        return None
    raw_options = _pick(doc, "options", [])
    options = []
    for opt in raw_options if isinstance(raw_options, list) else []:
        option = normalize_option(opt, diagnostics, room_id=room_id, node_id=node_id)
        if option is not None:
            options.append(option)
    try:
        return DialogNode(
            id=node_id,
            speaker=_pick(doc, "speaker", ""),
            text=doc["text"],
            source=_pick(doc, "source", "authored"),
            options=options,
        )
    except ValidationError as e:
        diagnostics.record(
            MalformedContent(f"dialog node {node_id!r}: {e.errors()[0]['msg']}"),
            room_id=room_id,
        )
        return None


def normalize_option(
    doc: Any,
    diagnostics: Diagnostics | None = None,
    room_id: str | None = None,
    node_id: str | None = None,
) -> DialogOption | None:
    diagnostics = _sink(diagnostics)
    if isinstance(doc, DialogOption):
        doc = doc.dump()
    if not isinstance(doc, Mapping) or not isinstance(doc.get("text"), str):
        diagnostics.record(
            MalformedContent(f"dialog option without text under node {node_id!r}"),
            room_id=room_id,
        )
        return None
    next_ref = doc.get("next")
    if isinstance(next_ref, Mapping):
        next_ref = normalize_node(next_ref, None, diagnostics, room_id=room_id)
    elif next_ref is not None and not isinstance(next_ref, str):
        next_ref = None
    try:
        return DialogOption(
            text=doc["text"],
            source=_pick(doc, "source", "authored"),
            next=next_ref or None,
            set_flag=_pick(doc, "set_flag"),
            give_item=_pick(doc, "give_item"),
        )
    except ValidationError as e:
        diagnostics.record(
            MalformedContent(f"dialog option under node {node_id!r}: {e.errors()[0]['msg']}"),
            room_id=room_id,
        )
        return None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

@dataclass
class LoadedContent:
    rooms: list[Room] = field(default_factory=list)
    walkthrough: list[dict[str, Any]] = field(default_factory=list)


def load_rooms(
    docs: Iterable[Any],
    registry: WorldRegistry,
    diagnostics: Diagnostics | None = None,
) -> list[Room]:
    """Normalize and register each document; malformed ones are skipped."""
    diagnostics = _sink(diagnostics)
    loaded: list[Room] = []
    for doc in docs:
        try:
            room = normalize_room(doc, diagnostics)
        except MalformedContent as e:
            diagnostics.record(e)
            continue
        registry.register(room)
        loaded.append(room)
    return loaded


def load_content_dir(
    path: Path,
    registry: WorldRegistry,
    diagnostics: Diagnostics | None = None,
) -> LoadedContent:
    """Load every ``*.json`` room under ``path``.

    Files under a ``walkthrough/`` directory are generator context only and are
    returned without being registered.
    """
    diagnostics = _sink(diagnostics)
    content = LoadedContent()
    docs: list[Any] = []
    for file in sorted(path.rglob("*.json")):
        try:
            doc = json.loads(file.read_text())
        except (OSError, json.JSONDecodeError) as e:
            diagnostics.record(MalformedContent(f"cannot parse {file}: {e}"), path=str(file))
            continue
        if "walkthrough" in file.relative_to(path).parts[:-1]:
            content.walkthrough.append({"path": str(file), **doc})
        else:
            docs.append(doc)
    content.rooms = load_rooms(docs, registry, diagnostics)
    logger.info(
        "Loaded %d room(s), %d walkthrough doc(s) from %s",
        len(content.rooms), len(content.walkthrough), path,
    )
    return content


# ---------------------------------------------------------------------------
# Dialog resolution
# ---------------------------------------------------------------------------

def _shell(node: DialogNode) -> ResolvedNode:
    return ResolvedNode(
        id=node.id,
        speaker=node.speaker,
        text=node.text,
        source=node.source,
        options=[
            ResolvedOption(
                text=opt.text,
                source=opt.source,
                set_flag=opt.set_flag,
                give_item=opt.give_item,
            )
            for opt in node.options
        ],
    )


def resolve_dialog(
    dialog: Mapping[str, DialogNode],
    entry_id: str | None,
    diagnostics: Diagnostics | None = None,
) -> ResolvedNode | None:
    """Resolve ``entry_id`` into a fully inlined dialog tree.

    Walks the graph with an explicit stack of (raw node, resolved node, path)
    frames. A ``next`` that points to a node already on the frame's path, or
    to an unknown node, becomes a terminal and is recorded as a diagnostic.
    Returns None for an unknown entry id or an empty mapping.
    """
    if not entry_id or entry_id not in dialog:
        return None
    diagnostics = _sink(diagnostics)

    root_raw = dialog[entry_id]
    root = _shell(root_raw)
    stack: list[tuple[DialogNode, ResolvedNode, tuple[str, ...]]] = [
        (root_raw, root, (root_raw.id,))
    ]
    while stack:
        raw, resolved, path = stack.pop()
        for raw_opt, opt in zip(raw.options, resolved.options):
            ref = raw_opt.next
            if ref is None:
                continue
            target = ref if isinstance(ref, DialogNode) else dialog.get(ref)
            if target is None:
                diagnostics.record(
                    NotFound(f"dialog node {ref!r} referenced from {raw.id!r} does not exist"),
                    node_id=raw.id,
                )
                continue
            if target.id in path:
                diagnostics.record(GraphCycle(target.id, path + (target.id,)), node_id=raw.id)
                continue
            child = _shell(target)
            opt.next = child
            stack.append((target, child, path + (target.id,)))
    return root


def resolve_npc_dialog(
    room: Room, npc_id: str, diagnostics: Diagnostics | None = None
) -> ResolvedNode | None:
    """Resolve the entry dialog of an NPC standing in ``room``."""
    npc = next((n for n in room.npcs if n.id == npc_id), None)
    if npc is None or not npc.dialog_entry:
        return None
    return resolve_dialog(room.dialog, npc.dialog_entry, diagnostics)
