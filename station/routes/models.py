"""Pydantic request/response models for API endpoints."""

from typing import Literal

from station.models import Save, WireModel


class ReplaceSave(Save):
    """PUT body: a full save; the slot id comes from the URL."""

    slot_id: str = ""


class OkResponse(WireModel):
    ok: bool = True


class ConflictResponse(WireModel):
    error: Literal["concurrency_conflict"] = "concurrency_conflict"
    client_seq: int
    server_seq: int
    message: str = "Client state is stale. Reload save before patching."
