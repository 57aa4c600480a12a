"""FastAPI endpoints for the save server.

  GET    /saves                   list slots (slotId, updatedAt, act, currentRoomId)
  GET    /saves/{slot_id}         load a full save (auto-created on first access)
  PUT    /saves/{slot_id}         replace the full save
  PATCH  /saves/{slot_id}         partial update {player?, rooms?, appendLog?, seq?}
  DELETE /saves/{slot_id}         delete a slot
  GET    /saves/{slot_id}/log     full log, or ?tags=a,b (AND match)

A PATCH whose seq does not match the stored one gets 409
{error: "concurrency_conflict", clientSeq, serverSeq}.
"""

from fastapi import APIRouter

from .saves import router as saves_router

router = APIRouter()
router.include_router(saves_router)
