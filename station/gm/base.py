"""Generator boundary contract.

The generator ("the GM") is an external asynchronous service. The core only
relies on this protocol; every result is shaped like authored content and
flows through the content resolver before it touches the registry.
"""

from __future__ import annotations

from typing import Protocol

from station.models import (
    STATION_SPEAKER,
    DialogNode,
    DialogOption,
    Provenance,
    Room,
    StateSnapshot,
)

DialogHistory = list[dict[str, str]]  # [{"speaker": ..., "text": ...}]


class Generator(Protocol):
    source: str  # "stub" | "live", recorded as gm_source

    async def prefetch_room(self, room_id: str, from_room_id: str) -> Room | None: ...

    async def generate_dialog_options(
        self, npc_id: str, snapshot: StateSnapshot, history: DialogHistory
    ) -> list[DialogOption]: ...

    async def generate_station_response(
        self, snapshot: StateSnapshot, player_message: str
    ) -> DialogNode: ...


def tag_options(options: list[DialogOption], source: Provenance) -> list[DialogOption]:
    """Force a provenance tag on options and any inline follow-up nodes."""
    tagged = []
    for option in options:
        next_ref = option.next
        if isinstance(next_ref, DialogNode):
            next_ref = tag_node(next_ref, source)
        tagged.append(option.model_copy(update={"source": source, "next": next_ref}))
    return tagged


def tag_node(node: DialogNode, source: Provenance) -> DialogNode:
    return node.model_copy(
        update={"source": source, "options": tag_options(node.options, source)}
    )


def as_station_node(node: DialogNode) -> DialogNode:
    """Station responses always carry the reserved speaker and provenance."""
    return tag_node(node, "station").model_copy(update={"speaker": STATION_SPEAKER})
