"""Save slot endpoints: list, load, replace, patch, delete, log."""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from station.errors import ConcurrencyConflict, NotFound
from station.models import SaveDiff
from station.storage import SaveStore

from .models import ConflictResponse, OkResponse, ReplaceSave

logger = logging.getLogger(__name__)

router = APIRouter()


def _store(request: Request) -> SaveStore:
    return request.app.state.store


@router.get("/saves")
async def list_saves(request: Request):
    """List all slots (id, updatedAt, act, currentRoomId)."""
    return [s.dump() for s in await _store(request).list_slots()]


@router.get("/saves/{slot_id}")
async def load_save(slot_id: str, request: Request):
    """Load a full save, creating it on first access."""
    return (await _store(request).load(slot_id)).dump()


@router.put("/saves/{slot_id}")
async def replace_save(slot_id: str, body: ReplaceSave, request: Request):
    """Replace the full save. No seq check."""
    await _store(request).replace(slot_id, body)
    return OkResponse().dump()


@router.patch("/saves/{slot_id}")
async def patch_save(slot_id: str, body: SaveDiff, request: Request):
    """Partial update: merge player state and room overlays, append log entries."""
    try:
        result = await _store(request).patch(slot_id, body)
    except ConcurrencyConflict as e:
        return JSONResponse(
            status_code=409,
            content=ConflictResponse(client_seq=e.client_seq, server_seq=e.server_seq).dump(),
        )
    return result.dump()


@router.delete("/saves/{slot_id}")
async def delete_save(slot_id: str, request: Request):
    """Delete a slot."""
    try:
        await _store(request).delete(slot_id)
    except NotFound:
        raise HTTPException(404, "Save not found")
    return OkResponse().dump()


@router.get("/saves/{slot_id}/log")
async def get_log(slot_id: str, request: Request, tags: str = ""):
    """Full log, or filtered by comma-separated tags (AND match)."""
    required = [t.strip() for t in tags.split(",") if t.strip()]
    try:
        entries = await _store(request).get_log(slot_id, required)
    except NotFound:
        raise HTTPException(404, "Save not found")
    return [e.dump() for e in entries]
