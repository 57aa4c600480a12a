"""Navigation resolver.

Computes the outcome of a move and, after a successful one, asks the generator
to prefetch every neighbouring room that does not exist yet.

Outcomes:
  invalid   — current room unknown, or no exit in that direction
  blocked   — exit gated by a flag the player does not have
  unformed  — exit exists but its target has not been generated yet
  moved     — position updated, target marked visited, prefetch scheduled

Prefetch is fire-and-forget through the ``TaskQueue``. ``state.pending``
holds at most one outstanding request per room id; a marker is cleared only
when that room is registered.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from station.errors import GeneratorUnavailable
from station.gm.base import Generator
from station.models import MoveResult, Overlay, Room

from .loader import normalize_room
from .state import WorldState
from .tasks import TaskQueue

logger = logging.getLogger(__name__)

NOTHING_THERE = "There is nothing in that direction."
LOCKED = "Something prevents you from going that way."
UNFORMED = "The way is there, but the space beyond hasn't formed yet."

RoomHandler = Callable[[Room, str], Awaitable[None]]


class Navigator:
    """Moves the player through exits and drives room prefetch.

    Args:
        state:      the session state container.
        generator:  generator boundary used for prefetch.
        tasks:      queue that runs prefetch in the background.
        on_room:    async handler for a prefetched room; defaults to
                    registering it as a full-replacement overlay.
    """

    def __init__(
        self,
        state: WorldState,
        generator: Generator | None = None,
        tasks: TaskQueue | None = None,
        on_room: RoomHandler | None = None,
    ) -> None:
        self.state = state
        self.generator = generator
        self.tasks = tasks if tasks is not None else TaskQueue(state.diagnostics)
        self.on_room = on_room or self._register_room

    def attempt_move(self, current_room_id: str, direction: str) -> MoveResult:
        registry = self.state.registry
        room = registry.get(current_room_id)
        if room is None:
            return MoveResult(
                outcome="invalid",
                reason=f'You are unmoored. Room "{current_room_id}" does not exist.',
            )

        exit = room.exits.get(direction)
        if exit is None:
            return MoveResult(outcome="invalid", reason=NOTHING_THERE)

        if exit.requires and not self.state.has_flag(exit.requires):
            return MoveResult(
                outcome="blocked", reason=exit.locked_message or LOCKED, room_id=exit.room_id
            )

        if exit.room_id not in registry:
            return MoveResult(outcome="unformed", reason=UNFORMED, room_id=exit.room_id)

        self.state.current_room_id = exit.room_id
        self.state.mark_visited(exit.room_id)
        self.schedule_prefetch(exit.room_id)
        return MoveResult(outcome="moved", room_id=exit.room_id)

    def available_exits(self, room_id: str) -> list[dict[str, Any]]:
        """Exits of ``room_id`` with lock and formation state resolved."""
        room = self.state.registry.get(room_id)
        if room is None:
            return []
        return [
            {
                "direction": direction,
                "target_id": exit.room_id,
                "locked": bool(exit.requires) and not self.state.has_flag(exit.requires),
                "locked_message": exit.locked_message,
                "formed": exit.room_id in self.state.registry,
            }
            for direction, exit in room.exits.items()
        ]

    # ------------------------------------------------------------------
    # Prefetch
    # ------------------------------------------------------------------

    def schedule_prefetch(self, room_id: str) -> list[str]:
        """Request every unformed, not-yet-pending neighbour of ``room_id``."""
        room = self.state.registry.get(room_id)
        if room is None or self.generator is None:
            return []
        requested = []
        for exit in room.exits.values():
            target = exit.room_id
            if target in self.state.registry or target in self.state.pending:
                continue
            self.state.pending.add(target)
            requested.append(target)
            self.tasks.submit(
                f"prefetch:{target}",
                lambda target=target: self._prefetch(target, room_id),
            )
        return requested

    async def _prefetch(self, room_id: str, from_room_id: str) -> None:
        logger.debug("prefetch %s (from %s)", room_id, from_room_id)
        try:
            room = await self.generator.prefetch_room(room_id, from_room_id)
        except GeneratorUnavailable as e:
            self.state.diagnostics.record(e, room_id=room_id)
            return
        if room is None:
            logger.info("generator has no room %r yet; it stays unformed", room_id)
            return
        room = normalize_room(room, self.state.diagnostics)
        if room.id != room_id:
            room = room.model_copy(update={"id": room_id})
        await self.on_room(room, from_room_id)

    async def _register_room(self, room: Room, from_room_id: str) -> None:
        self.state.registry.apply_overlay(room.id, Overlay(gm_room=room))
