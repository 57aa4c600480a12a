"""World registry — room id → room, the working copy the presentation reads.

Base rooms (authored content, generator rooms) and the merged overlay for each
room are stored separately. The room served to callers is always
``apply_overlay(base, overlay)``, so re-deriving a room (a new base, a later
overlay) never applies the stored overlay twice.

Only the content resolver (``register``) and the overlay engine
(``apply_overlay``) write here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Literal

from station.errors import StationError
from station.models import Overlay, Room

from . import overlay as overlay_engine
from .diagnostics import Diagnostics

logger = logging.getLogger(__name__)

ReplacementPolicy = Literal["reject", "allow"]


class ReplacementRejected(StationError):
    """A full-replacement overlay targeted an authored room."""


class WorldRegistry:
    """In-memory room registry.

    Args:
        diagnostics:        sink for degraded content.
        replacement_policy: what to do when a full-replacement overlay targets
                            an authored room. "reject" keeps the authored base
                            (partial overlay fields still apply); "allow" lets
                            the generated room win.
    """

    def __init__(
        self,
        diagnostics: Diagnostics | None = None,
        replacement_policy: ReplacementPolicy = "reject",
    ) -> None:
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.replacement_policy = replacement_policy
        self._base: dict[str, Room] = {}
        self._overlays: dict[str, Overlay] = {}
        self._rooms: dict[str, Room] = {}
        self._on_register: list[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)

    def ids(self) -> list[str]:
        return list(self._rooms)

    def overlay_for(self, room_id: str) -> Overlay | None:
        return self._overlays.get(room_id)

    def is_authored(self, room_id: str) -> bool:
        base = self._base.get(room_id)
        return base is not None and not base.gm_generated

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def on_register(self, callback: Callable[[str], None]) -> None:
        """Call ``callback(room_id)`` whenever a room becomes available."""
        self._on_register.append(callback)

    def register(self, room: Room) -> Room:
        """Register (or re-register) a base room and return the derived room."""
        self._base[room.id] = room
        stored = self._overlays.get(room.id)
        if stored is not None and stored.gm_room is not None and self._rejects(room.id):
            # Replacement stored before the authored room arrived.
            self._reject(room.id)
            self._overlays[room.id] = stored.model_copy(update={"gm_room": None})
        return self._refresh(room.id)

    def apply_overlay(self, room_id: str, incoming: Overlay) -> Room | None:
        """Merge ``incoming`` into the room's stored overlay and re-derive it.

        A replacement room for an id with no base registers it. A rejected
        replacement is dropped before the merge, so the fields already stored
        for the room survive. Returns the derived room, or None when the room
        is still unknown (the overlay is kept and applies once the base room
        is registered).
        """
        if incoming.gm_room is not None:
            if self._rejects(room_id):
                self._reject(room_id)
                incoming = incoming.model_copy(update={"gm_room": None})
            elif incoming.gm_room.id != room_id:
                incoming = incoming.model_copy(
                    update={"gm_room": incoming.gm_room.model_copy(update={"id": room_id})}
                )
        self._overlays[room_id] = overlay_engine.merge_overlay(
            self._overlays.get(room_id), incoming
        )
        if room_id not in self._base and self._overlays[room_id].gm_room is None:
            logger.warning("overlay for %r stored, room not in registry yet", room_id)
            return None
        room = self._refresh(room_id)
        for npc_id in incoming.injected_dialog or {}:
            if overlay_engine.dialog_entry(room, npc_id) is None:
                self.diagnostics.record(
                    overlay_engine.missing_dialog(room_id, npc_id), room_id=room_id, npc_id=npc_id
                )
        return room

    def _rejects(self, room_id: str) -> bool:
        return self.replacement_policy == "reject" and self.is_authored(room_id)

    def _reject(self, room_id: str) -> None:
        self.diagnostics.record(
            ReplacementRejected(f"generated replacement for authored room {room_id!r} ignored"),
            room_id=room_id,
        )

    def _refresh(self, room_id: str) -> Room:
        overlay = self._overlays.get(room_id)
        base = self._base.get(room_id)
        if base is None:
            # Overlay-only room: the replacement is the base.
            assert overlay is not None and overlay.gm_room is not None
            base = overlay.gm_room
        was_known = room_id in self._rooms
        room = overlay_engine.apply_overlay(base, overlay)
        self._rooms[room_id] = room
        if not was_known:
            for callback in self._on_register:
                callback(room_id)
        return room
