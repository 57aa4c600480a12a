"""Save store — one JSON document per slot with optimistic concurrency.

Slot lifecycle: absent → initialized (seq 0) → seq 1 → seq 2 → …; delete
returns the slot to absent, and the next load re-initializes it.

Every read-modify-write of a slot runs under that slot's ``asyncio.Lock``, so
two patches carrying the same expected seq can never both succeed. Different
slots never share a lock.

Patch merge rules:
  player.current_room_id / act — overwritten when present
  player.flags                 — merged key by key; a true flag stays true
  player.inventory             — set union, first-insertion order
  rooms                        — per room via ``merge_overlay``
  append_log                   — appended verbatim
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

from pydantic import ValidationError

from station.engine.log import filter_log
from station.engine.overlay import merge_overlay
from station.errors import ConcurrencyConflict, NotFound
from station.models import (
    START_ROOM_ID,
    LogEntry,
    PatchResult,
    PlayerState,
    Save,
    SaveDiff,
    SlotSummary,
    now_iso,
)

from .core import read_json, sanitize_slot_id, slot_path, write_json

logger = logging.getLogger(__name__)


def make_empty_save(slot_id: str, start_room_id: str = START_ROOM_ID) -> Save:
    return Save(slot_id=slot_id, player=PlayerState(current_room_id=start_room_id))


def apply_patch(save: Save, diff: SaveDiff) -> Save:
    """Merge ``diff`` into a copy of ``save``. Does not touch ``seq``."""
    merged = save.model_copy(deep=True)

    if diff.player is not None:
        player = merged.player
        if diff.player.current_room_id is not None:
            player.current_room_id = diff.player.current_room_id
        if diff.player.act is not None:
            player.act = diff.player.act
        if diff.player.flags:
            for key, value in diff.player.flags.items():
                player.flags[key] = bool(player.flags.get(key)) or value
        if diff.player.inventory:
            player.inventory = list(dict.fromkeys([*player.inventory, *diff.player.inventory]))

    for room_id, overlay in (diff.rooms or {}).items():
        merged.rooms[room_id] = merge_overlay(merged.rooms.get(room_id), overlay)

    if diff.append_log:
        merged.log.extend(entry.model_copy(deep=True) for entry in diff.append_log)

    return merged


class SaveStore:
    def __init__(self, saves_dir: Path, start_room_id: str = START_ROOM_ID) -> None:
        self._dir = saves_dir
        self._dir.mkdir(parents=True, exist_ok=True)
        self._start_room_id = start_room_id
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @property
    def saves_dir(self) -> Path:
        return self._dir

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _lock(self, slot_id: str) -> AsyncIterator[None]:
        """Hold the slot's lock. The entry is dropped once no task holds or awaits it."""
        key = sanitize_slot_id(slot_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def _read(self, slot_id: str) -> Save | None:
        path = slot_path(self._dir, slot_id)
        if not path.is_file():
            return None
        return Save.model_validate(read_json(path))

    def _write(self, slot_id: str, save: Save) -> None:
        write_json(slot_path(self._dir, slot_id), save.dump())

    def _read_or_init(self, slot_id: str) -> Save:
        save = self._read(slot_id)
        if save is None:
            save = make_empty_save(slot_id, self._start_room_id)
            self._write(slot_id, save)
            logger.info("initialized save slot %s", slot_id)
        return save

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self, slot_id: str) -> Save:
        """Return the slot, creating and persisting a fresh save if absent."""
        async with self._lock(slot_id):
            return self._read_or_init(slot_id)

    async def replace(self, slot_id: str, save: Save) -> Save:
        """Unconditional overwrite, outside the seq check.

        For slot-wide operations only (new game, act transition).
        """
        async with self._lock(slot_id):
            stored = save.model_copy(update={"slot_id": slot_id, "updated_at": now_iso()})
            self._write(slot_id, stored)
            return stored

    async def patch(
        self, slot_id: str, diff: SaveDiff, expected_seq: int | None = None
    ) -> PatchResult:
        """Merge ``diff`` into the slot and bump ``seq`` by one.

        ``expected_seq`` (or ``diff.seq``) must match the stored seq when
        given; otherwise nothing is merged and ``ConcurrencyConflict`` is
        raised.
        """
        if expected_seq is None:
            expected_seq = diff.seq
        async with self._lock(slot_id):
            save = self._read_or_init(slot_id)
            if expected_seq is not None and expected_seq != save.seq:
                logger.warning(
                    "seq mismatch on %s: client has %d, server has %d. Rejecting.",
                    slot_id, expected_seq, save.seq,
                )
                raise ConcurrencyConflict(slot_id, expected_seq, save.seq)
            merged = apply_patch(save, diff)
            merged.seq = save.seq + 1
            merged.updated_at = now_iso()
            self._write(slot_id, merged)
            return PatchResult(ok=True, seq=merged.seq)

    async def append_log(
        self, slot_id: str, entries: list[LogEntry], expected_seq: int | None = None
    ) -> PatchResult:
        return await self.patch(slot_id, SaveDiff(append_log=entries), expected_seq)

    async def get_log(
        self, slot_id: str, tags: Iterable[str] | None = None
    ) -> list[LogEntry]:
        """Full log, or only entries carrying every tag in ``tags``."""
        async with self._lock(slot_id):
            save = self._read(slot_id)
        if save is None:
            raise NotFound(f"save {slot_id!r} not found")
        tags = [t for t in (tags or []) if t]
        return filter_log(save.log, tags) if tags else list(save.log)

    async def list_slots(self) -> list[SlotSummary]:
        slots = []
        for path in sorted(self._dir.glob("*.json")):
            try:
                save = Save.model_validate(read_json(path))
            except (OSError, ValueError, ValidationError) as e:
                logger.warning("skipping unreadable save %s: %s", path.name, e)
                continue
            slots.append(SlotSummary(
                slot_id=save.slot_id,
                updated_at=save.updated_at,
                act=save.player.act,
                current_room_id=save.player.current_room_id,
            ))
        return slots

    async def delete(self, slot_id: str) -> None:
        async with self._lock(slot_id):
            path = slot_path(self._dir, slot_id)
            if not path.is_file():
                raise NotFound(f"save {slot_id!r} not found")
            path.unlink()
            logger.info("deleted save slot %s", slot_id)
