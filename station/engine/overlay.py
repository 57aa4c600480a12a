"""Overlay merge engine.

Pure, synchronous functions. ``merge_overlay`` folds a new generator overlay
into the one already stored for a room; ``apply_overlay`` derives the room the
player sees from a base room plus its merged overlay.

Merge rules:
  gm_room                 — full replacement; the merge result is exactly it
  description_override    — incoming wins when present
  added_npcs /
  added_interactables     — union by id, existing order kept, new ids appended
  injected_dialog         — per NPC, incoming options appended after existing
                            ones, every batch kept even when options repeat
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from station.errors import NotFound
from station.models import DialogNode, DialogOption, Interactable, Npc, Overlay, Room

from .diagnostics import Diagnostics

T = TypeVar("T", Npc, Interactable)


def _union_by_id(existing: Iterable[T], incoming: Iterable[T]) -> list[T]:
    merged = list(existing)
    seen = {item.id for item in merged}
    for item in incoming:
        if item.id not in seen:
            seen.add(item.id)
            merged.append(item)
    return merged


def _append_options(
    existing: list[DialogOption], incoming: list[DialogOption]
) -> list[DialogOption]:
    return [*existing, *incoming]


def merge_overlay(existing: Overlay | None, incoming: Overlay) -> Overlay:
    """Fold ``incoming`` into ``existing`` and return a new overlay."""
    if incoming.gm_room is not None:
        return Overlay(gm_room=incoming.gm_room.model_copy(deep=True))

    merged = existing.model_copy(deep=True) if existing else Overlay()

    if incoming.description_override is not None:
        merged.description_override = incoming.description_override

    if incoming.added_npcs is not None:
        merged.added_npcs = _union_by_id(merged.added_npcs or [], incoming.added_npcs)

    if incoming.added_interactables is not None:
        merged.added_interactables = _union_by_id(
            merged.added_interactables or [], incoming.added_interactables
        )

    if incoming.injected_dialog is not None:
        injected = dict(merged.injected_dialog or {})
        for npc_id, options in incoming.injected_dialog.items():
            injected[npc_id] = _append_options(injected.get(npc_id, []), options)
        merged.injected_dialog = injected

    return merged


def splice_options(
    existing: list[DialogOption], generated: list[DialogOption]
) -> list[DialogOption]:
    """Insert generated options just before the last existing option.

    The last option is usually the conversation-ending one, so generated
    choices land mid-list instead of displacing it.
    """
    at = len(existing) - 1 if len(existing) > 1 else len(existing)
    return [*existing[:at], *generated, *existing[at:]]


def dialog_entry(room: Room, npc_id: str) -> DialogNode | None:
    """The entry node of ``npc_id``'s dialog in ``room``, if it has one."""
    npc = next((n for n in room.npcs if n.id == npc_id), None)
    if npc is None or not npc.dialog_entry:
        return None
    return room.dialog.get(npc.dialog_entry)


def apply_overlay(
    base: Room, overlay: Overlay | None, diagnostics: Diagnostics | None = None
) -> Room:
    """Derive the player-visible room from ``base`` and a merged overlay.

    When the overlay carries a replacement room, partial fields apply on top
    of the replacement instead of the base. Options injected for an NPC whose
    dialog the room lacks are skipped (and recorded when ``diagnostics`` is
    given).
    """
    if overlay is None:
        return base.model_copy(deep=True)

    room = (overlay.gm_room or base).model_copy(deep=True)

    if overlay.description_override is not None:
        room.description = overlay.description_override
    if overlay.added_npcs:
        room.npcs = _union_by_id(room.npcs, overlay.added_npcs)
    if overlay.added_interactables:
        room.interactables = _union_by_id(room.interactables, overlay.added_interactables)

    for npc_id, options in (overlay.injected_dialog or {}).items():
        entry = dialog_entry(room, npc_id)
        if entry is None:
            if diagnostics is not None:
                diagnostics.record(missing_dialog(room.id, npc_id), room_id=room.id, npc_id=npc_id)
            continue
        entry.options = splice_options(entry.options, options)

    return room


def missing_dialog(room_id: str, npc_id: str) -> NotFound:
    return NotFound(f'npc "{npc_id}" dialog not found in "{room_id}"')
