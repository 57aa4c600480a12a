"""Event log entry builders.

Every significant event (player action, generator action, navigation, dialog
choice) becomes a ``LogEntry``. Builders only produce entries; persisting them
is the save store's job (``append_log`` / patch ``append_log``).

Tag conventions (open vocabulary):
  room:<id>  npc:<id>  source:<authored|gm|station>  act:<n>
  gm_action  player_choice  station_spoke  flag_set

Entry types are a closed set, enforced by ``LogEntry``.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any

from station.models import LogEntry, LogEntryType


def _dedupe(tags: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(tags))


def make_entry(
    type: LogEntryType,
    tags: Iterable[str],
    data: dict[str, Any] | None = None,
    act: int = 1,
) -> LogEntry:
    return LogEntry(
        t=int(time.time() * 1000),
        type=type,
        act=act,
        tags=_dedupe([f"act:{act}", *tags]),
        data=data or {},
    )


def entry_room_entered(room_id: str, gm_generated: bool = False, act: int = 1) -> LogEntry:
    tags = [f"room:{room_id}"] + (["gm_action"] if gm_generated else [])
    return make_entry("room_entered", tags, {"roomId": room_id, "gmGenerated": gm_generated}, act)


def entry_dialog_started(room_id: str, npc_id: str, act: int = 1) -> LogEntry:
    return make_entry(
        "dialog_started", [f"room:{room_id}", f"npc:{npc_id}"],
        {"roomId": room_id, "npcId": npc_id}, act,
    )


def entry_dialog_chosen(
    room_id: str, npc_id: str, node_id: str, option_text: str, source: str, act: int = 1
) -> LogEntry:
    tags = [f"room:{room_id}", f"npc:{npc_id}", f"source:{source}", "player_choice"]
    if source == "station":
        tags.append("station_spoke")
    return make_entry(
        "dialog_chosen", tags,
        {"roomId": room_id, "npcId": npc_id, "nodeId": node_id,
         "optionText": option_text, "source": source},
        act,
    )


def entry_dialog_ended(room_id: str, npc_id: str, act: int = 1) -> LogEntry:
    return make_entry(
        "dialog_ended", [f"room:{room_id}", f"npc:{npc_id}"],
        {"roomId": room_id, "npcId": npc_id}, act,
    )


def entry_interactable_used(room_id: str, item_id: str, item_name: str, act: int = 1) -> LogEntry:
    return make_entry(
        "interactable_used", [f"room:{room_id}"],
        {"roomId": room_id, "itemId": item_id, "itemName": item_name}, act,
    )


def entry_flag_set(key: str, value: bool = True, room_id: str | None = None, act: int = 1) -> LogEntry:
    tags = ["flag_set"] + ([f"room:{room_id}"] if room_id else [])
    return make_entry("flag_set", tags, {"key": key, "value": value, "roomId": room_id}, act)


def entry_item_taken(item_id: str, room_id: str, act: int = 1) -> LogEntry:
    return make_entry("item_taken", [f"room:{room_id}"], {"itemId": item_id, "roomId": room_id}, act)


def entry_gm_room_generated(room_id: str, from_room_id: str, gm_source: str | None, act: int = 1) -> LogEntry:
    return make_entry(
        "gm_room_generated", [f"room:{room_id}", "gm_action"],
        {"roomId": room_id, "fromRoomId": from_room_id, "gmSource": gm_source}, act,
    )


def entry_gm_options_injected(
    room_id: str, npc_id: str, count: int, gm_source: str | None, act: int = 1
) -> LogEntry:
    return make_entry(
        "gm_options_injected", [f"room:{room_id}", f"npc:{npc_id}", "gm_action"],
        {"roomId": room_id, "npcId": npc_id, "count": count, "gmSource": gm_source}, act,
    )


def entry_gm_description_set(room_id: str, gm_source: str | None, act: int = 1) -> LogEntry:
    return make_entry(
        "gm_description_set", [f"room:{room_id}", "gm_action"],
        {"roomId": room_id, "gmSource": gm_source}, act,
    )


def entry_gm_npc_added(room_id: str, npc_id: str, gm_source: str | None, act: int = 1) -> LogEntry:
    return make_entry(
        "gm_npc_added", [f"room:{room_id}", f"npc:{npc_id}", "gm_action"],
        {"roomId": room_id, "npcId": npc_id, "gmSource": gm_source}, act,
    )


def entry_act_changed(from_act: int, to_act: int) -> LogEntry:
    return make_entry("act_changed", [], {"from": from_act, "to": to_act}, to_act)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def filter_log(log: Iterable[LogEntry], tags: Iterable[str]) -> list[LogEntry]:
    """Entries carrying every one of ``tags`` (AND match)."""
    required = [t for t in tags if t]
    return [entry for entry in log if all(tag in entry.tags for tag in required)]


def recent_log(log: Iterable[LogEntry], tags: Iterable[str], n: int = 20) -> list[LogEntry]:
    return filter_log(log, tags)[-n:]
