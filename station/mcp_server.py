"""FastMCP server exposing the save log to an external GM agent.

Tools:
  - list_saves()              — slot summaries
  - lookup_log(slot_id, tags) — log entries carrying every tag (AND match)
  - recent_log(slot_id, tags, n) — the last n matching entries

The store is replaced via set_store() for tests, or built from settings when
run as __main__.

Usage:
    python -m station.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from station.engine.log import recent_log as _recent
from station.storage import SaveStore

mcp = FastMCP("station-log")

_store: SaveStore | None = None


def set_store(store: SaveStore) -> None:
    """Replace the active save store (used in tests)."""
    global _store
    _store = store


def get_store() -> SaveStore:
    assert _store is not None, "Call set_store() before serving"
    return _store


@mcp.tool()
async def list_saves() -> dict:
    """List every save slot with its act and current room."""
    return {"slots": [s.dump() for s in await get_store().list_slots()]}


@mcp.tool()
async def lookup_log(slot_id: str, tags: list[str] | None = None) -> dict:
    """Return the slot's log entries that carry every one of the given tags."""
    entries = await get_store().get_log(slot_id, tags or [])
    return {"entries": [e.dump() for e in entries]}


@mcp.tool()
async def recent_log(slot_id: str, tags: list[str] | None = None, n: int = 20) -> dict:
    """Return the last n log entries matching the tags."""
    entries = await get_store().get_log(slot_id)
    return {"entries": [e.dump() for e in _recent(entries, tags or [], n)]}


if __name__ == "__main__":
    from station.config import Settings

    settings = Settings.from_env()
    set_store(SaveStore(settings.saves_dir, start_room_id=settings.start_room))
    mcp.run()
