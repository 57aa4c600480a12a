"""Handlebars prompt templates for the live generator."""

from collections.abc import Callable
from typing import Any

import pybars

from station.models import StateSnapshot

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def _helper_join(this, items, separator=", "):
    """{{join list ", "}} — join a list of strings."""
    return separator.join(str(i) for i in items or [])


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
}


PREFETCH_ROOM_PROMPT = """\
You are the Game Master of a quiet, uncanny space station.
Act {{act}}. The player is in {{current_room_name}} ({{current_room_id}}).
Known rooms:
{{#each rooms}}- {{id}}: {{name}}{{#if visited}} (visited){{/if}} exits: {{join exits ", "}}
{{/each}}
Invent the room "{{room_id}}", reached from "{{from_room_id}}".
Reply with a single JSON object:
{"name": str, "description": str, "exits": {direction: room_id},
 "npcs": [{"id", "name", "description"}],
 "interactables": [{"id", "name", "description"}], "gm_hint": str}
Include an exit leading back to "{{from_room_id}}".
"""

DIALOG_OPTIONS_PROMPT = """\
You are the Game Master. Act {{act}}, room {{current_room_name}}.
Flags: {{join flag_names ", "}}. Inventory: {{join inventory ", "}}.
The player is talking to {{npc_id}}. Conversation so far:
{{#each history}}{{speaker}}: {{text}}
{{/each}}
Suggest two or three things the player could say next. Reply with a JSON array:
[{"text": str, "next": {"id": str, "speaker": "{{npc_id}}", "text": str, "options": []} | null}]
"""

STATION_RESPONSE_PROMPT = """\
You are the Station: ambiguously an AI, a ghost, or the space itself.
Act {{act}}. The player stands in {{current_room_name}}.
The player says: "{{{message}}}"
Reply with a single JSON object:
{"text": str, "options": [{"text": str}]}
"""

DEFAULT_PROMPTS: dict[str, str] = {
    "prefetch_room": PREFETCH_ROOM_PROMPT,
    "dialog_options": DIALOG_OPTIONS_PROMPT,
    "station_response": STATION_RESPONSE_PROMPT,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_context(snapshot: StateSnapshot, **extra: Any) -> dict[str, Any]:
    """Assemble template variables from a state snapshot.

    ``rooms`` is the known-room index flattened into a list so templates can
    iterate it; ``flag_names`` lists only the flags that are set.
    """
    ctx: dict[str, Any] = {
        "act": snapshot.act,
        "current_room_id": snapshot.current_room_id,
        "current_room_name": snapshot.current_room_name,
        "flags": snapshot.flags,
        "flag_names": [k for k, v in snapshot.flags.items() if v],
        "inventory": snapshot.inventory,
        "rooms": [
            {
                "id": room_id,
                "name": room.name,
                "visited": room.visited,
                "exits": room.exits,
                "gm_generated": room.gm_generated,
            }
            for room_id, room in snapshot.known_rooms.items()
        ],
    }
    ctx.update(extra)
    return ctx
