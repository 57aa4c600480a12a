"""LLM-backed generator.

Each operation renders a Handlebars prompt from the state snapshot, calls the
injected LLM and parses its JSON reply into content models. Transport errors,
template errors and unusable replies all surface as ``GeneratorUnavailable``
so callers can carry on without the generated content.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import ValidationError

from station.engine.loader import normalize_node, normalize_option, normalize_room
from station.errors import GeneratorUnavailable, MalformedContent
from station.llm import LLM, LLMError
from station.models import DialogNode, DialogOption, Room, StateSnapshot
from station.prompts import DEFAULT_PROMPTS, PromptError, build_context, render_prompt

from .base import DialogHistory, as_station_node, tag_options

logger = logging.getLogger(__name__)


def parse_json_output(text: str) -> Any:
    """Parse JSON from LLM output, stripping markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GeneratorUnavailable(f"GM output is not valid JSON: {e}") from e


class LLMGenerator:
    source = "live"

    def __init__(self, llm: LLM, prompts: dict[str, str] | None = None) -> None:
        self._llm = llm
        self._prompts = {**DEFAULT_PROMPTS, **(prompts or {})}

    async def _ask(self, stage: str, context: dict[str, Any]) -> Any:
        try:
            prompt = render_prompt(self._prompts[stage], context)
            text = await self._llm(stage, prompt)
        except (PromptError, LLMError) as e:
            raise GeneratorUnavailable(f"{stage}: {e}") from e
        return parse_json_output(text)

    async def prefetch_room(self, room_id: str, from_room_id: str) -> Room | None:
        # Prefetch has no snapshot in its contract; the known-room list is empty.
        snapshot = StateSnapshot(
            current_room_id=from_room_id, current_room_name=from_room_id,
            act=1, flags={}, inventory=[], known_rooms={},
        )
        data = await self._ask(
            "prefetch_room",
            build_context(snapshot, room_id=room_id, from_room_id=from_room_id),
        )
        if data is None:
            return None
        if not isinstance(data, dict):
            raise GeneratorUnavailable("prefetch_room: expected a JSON object")
        data.setdefault("exits", {"back": from_room_id})
        try:
            return normalize_room({
                **data,
                "id": room_id,
                "gmGenerated": True,
                "gmSource": self.source,
            })
        except (MalformedContent, ValidationError, TypeError) as e:
            raise GeneratorUnavailable(f"prefetch_room: {e}") from e

    async def generate_dialog_options(
        self, npc_id: str, snapshot: StateSnapshot, history: DialogHistory
    ) -> list[DialogOption]:
        data = await self._ask(
            "dialog_options", build_context(snapshot, npc_id=npc_id, history=history)
        )
        if isinstance(data, dict):
            data = data.get("options", [])
        if not isinstance(data, list):
            raise GeneratorUnavailable("dialog_options: expected a JSON array")
        try:
            options = [o for o in (normalize_option(d) for d in data) if o is not None]
            tagged = tag_options(options, "gm")
        except (ValidationError, TypeError) as e:
            raise GeneratorUnavailable(f"dialog_options: {e}") from e
        if data and not tagged:
            raise GeneratorUnavailable("dialog_options: no usable option in reply")
        return tagged

    async def generate_station_response(
        self, snapshot: StateSnapshot, player_message: str
    ) -> DialogNode:
        data = await self._ask(
            "station_response", build_context(snapshot, message=player_message)
        )
        if not isinstance(data, dict):
            raise GeneratorUnavailable("station_response: expected a JSON object")
        data.setdefault("id", f"station_{int(time.time() * 1000)}")
        try:
            node = normalize_node(data, None)
            if node is None:
                raise GeneratorUnavailable("station_response: reply is not a usable node")
            return as_station_node(node)
        except (ValidationError, TypeError) as e:
            raise GeneratorUnavailable(f"station_response: {e}") from e
