"""Explicit session state container.

One ``WorldState`` per play session, passed by reference to the navigator, the
session and the presentation boundary. Flat and serializable: the generator
only ever sees ``snapshot()``, never the live object.
"""

from __future__ import annotations

import logging

from station.models import (
    START_ROOM_ID,
    KnownRoom,
    PlayerDiff,
    PlayerState,
    ResolvedNode,
    StateSnapshot,
)

from .diagnostics import Diagnostics
from .registry import WorldRegistry

logger = logging.getLogger(__name__)


def visited_flag(room_id: str) -> str:
    return f"visited_{room_id}"


class WorldState:
    def __init__(
        self,
        registry: WorldRegistry | None = None,
        start_room_id: str = START_ROOM_ID,
    ) -> None:
        self.registry = registry if registry is not None else WorldRegistry()
        self.current_room_id = start_room_id
        self.act = 1
        self.flags: dict[str, bool] = {}
        self.inventory: list[str] = []
        self.active_dialog: ResolvedNode | None = None
        # Rooms requested from the generator and not yet registered.
        self.pending: set[str] = set()
        self.registry.on_register(self.pending.discard)

    @property
    def diagnostics(self) -> Diagnostics:
        return self.registry.diagnostics

    # ------------------------------------------------------------------
    # Flags and inventory
    # ------------------------------------------------------------------

    def set_flag(self, key: str, value: bool = True) -> bool:
        """Set a flag. Flags are monotone: a true flag is never reverted.

        Returns True when the stored value changed.
        """
        if self.flags.get(key) and not value:
            logger.warning("ignoring attempt to unset flag %r", key)
            return False
        changed = self.flags.get(key) != value
        self.flags[key] = value
        return changed

    def has_flag(self, key: str) -> bool:
        return bool(self.flags.get(key))

    def add_to_inventory(self, item_id: str) -> bool:
        if item_id in self.inventory:
            return False
        self.inventory.append(item_id)
        return True

    def mark_visited(self, room_id: str) -> None:
        self.set_flag(visited_flag(room_id))

    # ------------------------------------------------------------------
    # Save boundary
    # ------------------------------------------------------------------

    def apply_player(self, player: PlayerState) -> None:
        """Restore player position, act, flags and inventory from a save."""
        self.current_room_id = player.current_room_id
        self.act = player.act
        for key, value in player.flags.items():
            self.set_flag(key, value)
        for item_id in player.inventory:
            self.add_to_inventory(item_id)

    def player_diff(self) -> PlayerDiff:
        return PlayerDiff(
            current_room_id=self.current_room_id,
            act=self.act,
            flags=dict(self.flags),
            inventory=list(self.inventory),
        )

    # ------------------------------------------------------------------
    # Generator input
    # ------------------------------------------------------------------

    def snapshot(self) -> StateSnapshot:
        room = self.registry.get(self.current_room_id)
        return StateSnapshot(
            current_room_id=self.current_room_id,
            current_room_name=room.name if room else self.current_room_id,
            act=self.act,
            flags=dict(self.flags),
            inventory=list(self.inventory),
            known_rooms={
                r.id: KnownRoom(
                    name=r.name,
                    visited=self.has_flag(visited_flag(r.id)),
                    exits=list(r.exits),
                    gm_generated=r.gm_generated,
                )
                for r in self.registry
            },
        )
