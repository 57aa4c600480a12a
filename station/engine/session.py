"""Game session — wires the state container, a save backend and the generator.

Write policy:
  - Gameplay writes (moves, dialog, interactables) are fire-and-forget. A
    patch rejected with ``ConcurrencyConflict`` is dropped and logged at
    ERROR; play continues.
  - Writes that must not be lost (generator output, act changes) are awaited
    and, on conflict, retried after reloading the current seq.

The session's own writes go through one lock so they reach the store in order
and never conflict with each other; conflicts then only come from another
writer on the same slot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Protocol

from station.config import Settings
from station.errors import ConcurrencyConflict, GeneratorUnavailable
from station.gm import get_generator
from station.gm.base import DialogHistory, Generator, as_station_node, tag_options
from station.models import (
    START_ROOM_ID,
    DialogOption,
    Interactable,
    LogEntry,
    MoveResult,
    Npc,
    Overlay,
    PatchResult,
    PlayerDiff,
    PlayerState,
    ResolvedNode,
    ResolvedOption,
    Room,
    Save,
    SaveDiff,
)

from . import log
from .loader import load_content_dir, resolve_dialog, resolve_npc_dialog
from .navigation import Navigator
from .registry import WorldRegistry
from .state import WorldState
from .tasks import TaskQueue

logger = logging.getLogger(__name__)


class SaveBackend(Protocol):
    """What the session needs from ``SaveStore`` or ``SaveClient``."""

    async def load(self, slot_id: str) -> Save: ...

    async def replace(self, slot_id: str, save: Save) -> Save: ...

    async def patch(
        self, slot_id: str, diff: SaveDiff, expected_seq: int | None = None
    ) -> PatchResult: ...

    async def get_log(self, slot_id: str, tags: Iterable[str] | None = None) -> list[LogEntry]: ...


class GameSession:
    def __init__(
        self,
        state: WorldState,
        store: SaveBackend,
        slot_id: str,
        generator: Generator | None = None,
        tasks: TaskQueue | None = None,
        max_retries: int = 3,
        start_room_id: str = START_ROOM_ID,
    ) -> None:
        self.state = state
        self.start_room_id = start_room_id
        self.store = store
        self.slot_id = slot_id
        self.generator = generator
        self.tasks = tasks if tasks is not None else TaskQueue(state.diagnostics)
        self.max_retries = max_retries
        self.seq = 0
        self.navigator = Navigator(state, generator, self.tasks, on_room=self._on_prefetched)
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, store: SaveBackend, slot_id: str
    ) -> GameSession:
        """Session over the authored content, generator and policy in ``settings``."""
        registry = WorldRegistry(replacement_policy=settings.replacement_policy)
        load_content_dir(settings.content_dir, registry, registry.diagnostics)
        return cls(
            WorldState(registry, start_room_id=settings.start_room),
            store,
            slot_id,
            generator=get_generator(settings),
            start_room_id=settings.start_room,
        )

    @property
    def gm_source(self) -> str | None:
        return getattr(self.generator, "source", None)

    def current_room(self) -> Room | None:
        return self.state.registry.get(self.state.current_room_id)

    # ------------------------------------------------------------------
    # Boot
    # ------------------------------------------------------------------

    async def boot(self) -> Save:
        """Load the slot, restore player state and replay stored overlays."""
        save = await self.store.load(self.slot_id)
        self.seq = save.seq
        self.state.apply_player(save.player)
        for room_id, overlay in save.rooms.items():
            self.state.registry.apply_overlay(room_id, overlay)
        logger.info(
            "booted slot %s at seq %d in %s", self.slot_id, save.seq, save.player.current_room_id
        )
        return save

    async def new_game(self) -> Save:
        """Reset the slot to a fresh save (unconditional replace)."""
        save = Save(slot_id=self.slot_id, player=PlayerState(current_room_id=self.start_room_id))
        stored = await self.store.replace(self.slot_id, save)
        self.seq = stored.seq
        self.state.flags.clear()
        self.state.inventory.clear()
        self.state.act = 1
        self.state.active_dialog = None
        self.state.current_room_id = stored.player.current_room_id
        return stored

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit(self, diff: SaveDiff) -> None:
        """Fire-and-forget patch; a conflict drops it loudly."""
        self.tasks.submit(None, lambda: self._patch_best_effort(diff))

    async def _patch_best_effort(self, diff: SaveDiff) -> PatchResult | None:
        async with self._write_lock:
            try:
                result = await self.store.patch(self.slot_id, diff, expected_seq=self.seq)
            except ConcurrencyConflict as e:
                logger.error(
                    "STATE DRIFT: seq mismatch on %s (client %d, server %d). "
                    "This patch was dropped. Reload the save to resync.",
                    self.slot_id, e.client_seq, e.server_seq,
                )
                self.state.diagnostics.record(e, slot_id=self.slot_id)
                return None
            self.seq = result.seq
            return result

    async def commit(self, diff: SaveDiff) -> PatchResult:
        """Awaited patch; on conflict reload the seq and retry."""
        conflict: ConcurrencyConflict | None = None
        for attempt in range(self.max_retries + 1):
            async with self._write_lock:
                try:
                    result = await self.store.patch(self.slot_id, diff, expected_seq=self.seq)
                except ConcurrencyConflict as e:
                    conflict = e
                    logger.warning(
                        "conflict on %s (attempt %d): reloading seq %d → %d",
                        self.slot_id, attempt + 1, e.client_seq, e.server_seq,
                    )
                    self.seq = (await self.store.load(self.slot_id)).seq
                    continue
                self.seq = result.seq
                return result
        assert conflict is not None
        raise conflict

    def _player_patch(self, *entries: LogEntry) -> None:
        self.submit(SaveDiff(player=self.state.player_diff(), append_log=list(entries)))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def move(self, direction: str) -> MoveResult:
        result = self.navigator.attempt_move(self.state.current_room_id, direction)
        if result.outcome == "moved":
            room = self.state.registry.get(result.room_id)
            self._player_patch(
                log.entry_room_entered(room.id, room.gm_generated, act=self.state.act)
            )
        return result

    async def _on_prefetched(self, room: Room, from_room_id: str) -> None:
        overlay = Overlay(gm_room=room)
        self.state.registry.apply_overlay(room.id, overlay)
        await self.commit(SaveDiff(
            rooms={room.id: overlay},
            append_log=[log.entry_gm_room_generated(
                room.id, from_room_id, room.gm_source or self.gm_source, act=self.state.act
            )],
        ))

    # ------------------------------------------------------------------
    # Dialog and interactables
    # ------------------------------------------------------------------

    def start_dialog(self, npc_id: str) -> ResolvedNode | None:
        room = self.current_room()
        if room is None:
            return None
        node = resolve_npc_dialog(room, npc_id, self.state.diagnostics)
        if node is None:
            return None
        self.state.active_dialog = node
        self.submit(SaveDiff(append_log=[
            log.entry_dialog_started(room.id, npc_id, act=self.state.act)
        ]))
        return node

    def choose(self, npc_id: str, node_id: str, option: ResolvedOption) -> ResolvedNode | None:
        """Apply a chosen option's side effects and advance the dialog."""
        room_id = self.state.current_room_id
        act = self.state.act
        entries = [
            log.entry_dialog_chosen(room_id, npc_id, node_id, option.text, option.source, act=act)
        ]
        if option.set_flag and self.state.set_flag(option.set_flag):
            entries.append(log.entry_flag_set(option.set_flag, True, room_id, act=act))
        if option.give_item and self.state.add_to_inventory(option.give_item):
            entries.append(log.entry_item_taken(option.give_item, room_id, act=act))
        self.state.active_dialog = option.next
        if option.next is None:
            entries.append(log.entry_dialog_ended(room_id, npc_id, act=act))
        self._player_patch(*entries)
        return option.next

    def end_dialog(self, npc_id: str) -> None:
        self.state.active_dialog = None
        self.submit(SaveDiff(append_log=[
            log.entry_dialog_ended(self.state.current_room_id, npc_id, act=self.state.act)
        ]))

    def use_interactable(self, item_id: str) -> Interactable | None:
        room = self.current_room()
        item = next((i for i in room.interactables if i.id == item_id), None) if room else None
        if item is None:
            return None
        act = self.state.act
        entries = [log.entry_interactable_used(room.id, item.id, item.name, act=act)]
        if item.sets and self.state.set_flag(item.sets):
            entries.append(log.entry_flag_set(item.sets, True, room.id, act=act))
        if item.gives and self.state.add_to_inventory(item.gives):
            entries.append(log.entry_item_taken(item.gives, room.id, act=act))
        self._player_patch(*entries)
        return item

    # ------------------------------------------------------------------
    # Generator-driven writes (awaited)
    # ------------------------------------------------------------------

    async def inject_options(
        self, npc_id: str, history: DialogHistory | None = None
    ) -> list[DialogOption]:
        """Ask the generator for extra options and splice them into the NPC's dialog."""
        room = self.current_room()
        if room is None or self.generator is None:
            return []
        try:
            options = await self.generator.generate_dialog_options(
                npc_id, self.state.snapshot(), history or []
            )
        except GeneratorUnavailable as e:
            self.state.diagnostics.record(e, npc_id=npc_id)
            return []
        if not options:
            return []
        options = tag_options(options, "gm")
        overlay = Overlay(injected_dialog={npc_id: options})
        self.state.registry.apply_overlay(room.id, overlay)
        await self.commit(SaveDiff(
            rooms={room.id: overlay},
            append_log=[log.entry_gm_options_injected(
                room.id, npc_id, len(options), self.gm_source, act=self.state.act
            )],
        ))
        return options

    async def set_description(self, room_id: str, description: str) -> None:
        overlay = Overlay(description_override=description)
        self.state.registry.apply_overlay(room_id, overlay)
        await self.commit(SaveDiff(
            rooms={room_id: overlay},
            append_log=[log.entry_gm_description_set(room_id, self.gm_source, act=self.state.act)],
        ))

    async def add_npc(self, room_id: str, npc: Npc) -> None:
        overlay = Overlay(added_npcs=[npc])
        self.state.registry.apply_overlay(room_id, overlay)
        await self.commit(SaveDiff(
            rooms={room_id: overlay},
            append_log=[log.entry_gm_npc_added(room_id, npc.id, self.gm_source, act=self.state.act)],
        ))

    async def station_response(self, message: str) -> ResolvedNode | None:
        """Ask the station to answer; None when the generator is unavailable."""
        if self.generator is None:
            return None
        try:
            node = await self.generator.generate_station_response(self.state.snapshot(), message)
        except GeneratorUnavailable as e:
            self.state.diagnostics.record(e)
            return None
        node = as_station_node(node)
        resolved = resolve_dialog({node.id: node}, node.id, self.state.diagnostics)
        self.state.active_dialog = resolved
        self.submit(SaveDiff(append_log=[
            log.entry_dialog_started(self.state.current_room_id, node.speaker, act=self.state.act)
        ]))
        return resolved

    async def change_act(self, act: int) -> PatchResult:
        previous = self.state.act
        self.state.act = act
        return await self.commit(SaveDiff(
            player=PlayerDiff(act=act),
            append_log=[log.entry_act_changed(previous, act)],
        ))
