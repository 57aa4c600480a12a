"""Core domain models.

Every component (registry, resolvers, save store, generator boundary) operates
on these types. Pydantic validates at every data boundary: authored content,
generator output, HTTP bodies and the save files on disk.

Wire and disk JSON use camelCase keys (``currentRoomId``, ``addedNpcs``);
Python code uses the snake_case attribute names. Both spellings are accepted
on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

START_ROOM_ID = "arrival_bay"
STATION_SPEAKER = "station"

Provenance = Literal["authored", "gm", "station"]

LogEntryType = Literal[
    "room_entered",
    "dialog_started",
    "dialog_chosen",
    "dialog_ended",
    "interactable_used",
    "flag_set",
    "item_taken",
    "gm_room_generated",
    "gm_options_injected",
    "gm_description_set",
    "gm_npc_added",
    "act_changed",
]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

class Exit(WireModel):
    room_id: str
    requires: str | None = None  # gating flag
    locked_message: str | None = None


class Npc(WireModel):
    id: str
    name: str
    description: str = ""
    dialog_entry: str | None = None


class Interactable(WireModel):
    id: str
    name: str
    description: str = ""
    sets: str | None = None   # flag set on use
    gives: str | None = None  # item granted on use


class DialogOption(WireModel):
    text: str
    source: Provenance = "authored"
    next: str | DialogNode | None = None  # node id, inline node, or terminal
    set_flag: str | None = None
    give_item: str | None = None


class DialogNode(WireModel):
    id: str
    speaker: str
    text: str
    source: Provenance = "authored"
    options: list[DialogOption] = Field(default_factory=list)


class Room(WireModel):
    """A navigable location. Produced by the content resolver, never by hand."""

    id: str
    name: str
    act: int = 1
    description: str = ""
    exits: dict[str, Exit] = Field(default_factory=dict)
    npcs: list[Npc] = Field(default_factory=list)
    interactables: list[Interactable] = Field(default_factory=list)
    dialog: dict[str, DialogNode] = Field(default_factory=dict)
    gm_generated: bool = False
    gm_source: str | None = None  # "stub" | "live" | None
    gm_hint: str | None = None    # generator's private notes, never player-facing


class ResolvedOption(WireModel):
    text: str
    source: Provenance = "authored"
    next: ResolvedNode | None = None
    set_flag: str | None = None
    give_item: str | None = None


class ResolvedNode(WireModel):
    """A dialog node with every ``next`` reference inlined."""

    id: str
    speaker: str
    text: str
    source: Provenance = "authored"
    options: list[ResolvedOption] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Overlays and saves
# ---------------------------------------------------------------------------

class Overlay(WireModel):
    """Sparse generator-authored patch for one room."""

    description_override: str | None = None
    added_npcs: list[Npc] | None = None
    added_interactables: list[Interactable] | None = None
    injected_dialog: dict[str, list[DialogOption]] | None = None
    gm_room: Room | None = None  # full replacement; wins outright


class PlayerState(WireModel):
    current_room_id: str = START_ROOM_ID
    act: int = 1
    flags: dict[str, bool] = Field(default_factory=dict)
    inventory: list[str] = Field(default_factory=list)


class PlayerDiff(WireModel):
    """Partial player state carried by a patch."""

    current_room_id: str | None = None
    act: int | None = None
    flags: dict[str, bool] | None = None
    inventory: list[str] | None = None


class LogEntry(WireModel):
    t: int  # epoch milliseconds
    type: LogEntryType
    act: int
    tags: list[str] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class Save(WireModel):
    version: int = 1
    slot_id: str
    seq: int = 0
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
    player: PlayerState = Field(default_factory=PlayerState)
    rooms: dict[str, Overlay] = Field(default_factory=dict)
    log: list[LogEntry] = Field(default_factory=list)


class SaveDiff(WireModel):
    """Body of a patch: every field optional."""

    player: PlayerDiff | None = None
    rooms: dict[str, Overlay] | None = None
    append_log: list[LogEntry] | None = None
    seq: int | None = None  # expected sequence number


class SlotSummary(WireModel):
    slot_id: str
    updated_at: str
    act: int
    current_room_id: str


class PatchResult(WireModel):
    ok: bool = True
    seq: int


# ---------------------------------------------------------------------------
# Engine results and generator input
# ---------------------------------------------------------------------------

MoveOutcome = Literal["moved", "blocked", "invalid", "unformed"]


class MoveResult(WireModel):
    outcome: MoveOutcome
    reason: str | None = None
    room_id: str | None = None


class KnownRoom(WireModel):
    name: str
    visited: bool
    exits: list[str]
    gm_generated: bool


class StateSnapshot(WireModel):
    """Compressed, serializable world view handed to the generator."""

    current_room_id: str
    current_room_name: str
    act: int
    flags: dict[str, bool]
    inventory: list[str]
    known_rooms: dict[str, KnownRoom]


DialogOption.model_rebuild()
ResolvedOption.model_rebuild()
