"""GM STUB — THIS IS NOT THE REAL GM.

Returns fake, clearly labelled data so the engine runs end to end without a
language model. Every call logs a warning. Do not ship with GM_MODE=stub.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time

from station.engine.loader import normalize_room
from station.models import DialogNode, DialogOption, Room, StateSnapshot

from .base import DialogHistory, as_station_node, tag_options

logger = logging.getLogger(__name__)


class StubGenerator:
    source = "stub"

    def __init__(self, delay: tuple[float, float] = (0.15, 0.4)) -> None:
        self._delay = delay
        logger.warning("[GM STUB] StubGenerator initialized. All GM responses are FAKE.")

    async def _sleep(self) -> None:
        low, high = self._delay
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))

    async def prefetch_room(self, room_id: str, from_room_id: str) -> Room | None:
        logger.warning("[GM STUB] prefetch_room room_id=%s from=%s", room_id, from_room_id)
        await self._sleep()
        label = room_id.replace("_", " ")
        return normalize_room({
            "id": room_id,
            "name": f"[STUB] {label}",
            "description": (
                f"[STUB GM GENERATED] You stand in {label}. This room was invented "
                "by the stub. The walls hum with the absence of a real language model."
            ),
            "gmGenerated": True,
            "gmSource": self.source,
            "exits": {"back": from_room_id},
            "interactables": [{
                "id": "stub_sign",
                "name": "[STUB] Placard",
                "description": '[STUB GM] A placard reads: "This room was produced by the stub."',
            }],
        })

    async def generate_dialog_options(
        self, npc_id: str, snapshot: StateSnapshot, history: DialogHistory
    ) -> list[DialogOption]:
        logger.warning("[GM STUB] generate_dialog_options npc_id=%s", npc_id)
        await self._sleep()
        return tag_options([
            DialogOption(
                text="[STUB] Ask about the station (fake option)",
                next=DialogNode(
                    id=f"stub_response_{int(time.time() * 1000)}",
                    speaker=npc_id,
                    text=f"[STUB GM] {npc_id} says something the real GM would make coherent.",
                ),
            ),
            DialogOption(text="[STUB] Walk away (fake option)"),
        ], "gm")

    async def generate_station_response(
        self, snapshot: StateSnapshot, player_message: str
    ) -> DialogNode:
        logger.warning("[GM STUB] generate_station_response message=%r", player_message)
        await self._sleep()
        return as_station_node(DialogNode(
            id=f"stub_station_{int(time.time() * 1000)}",
            speaker="station",
            text=(
                "[STUB GM — STATION] The station acknowledges your message "
                f'("{player_message}") and returns this placeholder.'
            ),
            options=[DialogOption(text="[STUB] Respond to the station (fake)")],
        ))
