"""HTTP client for the save server.

Mirrors the ``SaveStore`` API so a ``GameSession`` can run against either the
in-process store or a remote save server. A 409 on PATCH comes back as
``ConcurrencyConflict``; a 404 as ``NotFound``; other error statuses raise
``httpx.HTTPStatusError``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import httpx

from station.errors import ConcurrencyConflict, NotFound
from station.models import LogEntry, PatchResult, Save, SaveDiff, SlotSummary

logger = logging.getLogger(__name__)


class SaveClient:
    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _request(
        self, method: str, path: str, json: dict | None = None, params: dict | None = None
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.request(method, path, json=json, params=params)
        if resp.status_code == 404:
            raise NotFound(f"{method} {path} → 404")
        return resp

    async def load(self, slot_id: str) -> Save:
        resp = await self._request("GET", f"/saves/{slot_id}")
        resp.raise_for_status()
        return Save.model_validate(resp.json())

    async def replace(self, slot_id: str, save: Save) -> Save:
        resp = await self._request("PUT", f"/saves/{slot_id}", json=save.dump())
        resp.raise_for_status()
        return save

    async def patch(
        self, slot_id: str, diff: SaveDiff, expected_seq: int | None = None
    ) -> PatchResult:
        if expected_seq is not None:
            diff = diff.model_copy(update={"seq": expected_seq})
        body = diff.model_dump(mode="json", by_alias=True, exclude_none=True)
        resp = await self._request("PATCH", f"/saves/{slot_id}", json=body)
        if resp.status_code == 409:
            detail = resp.json()
            raise ConcurrencyConflict(slot_id, detail["clientSeq"], detail["serverSeq"])
        resp.raise_for_status()
        return PatchResult.model_validate(resp.json())

    async def append_log(
        self, slot_id: str, entries: list[LogEntry], expected_seq: int | None = None
    ) -> PatchResult:
        return await self.patch(slot_id, SaveDiff(append_log=entries), expected_seq)

    async def get_log(self, slot_id: str, tags: Iterable[str] | None = None) -> list[LogEntry]:
        tags = [t for t in (tags or []) if t]
        params = {"tags": ",".join(tags)} if tags else None
        resp = await self._request("GET", f"/saves/{slot_id}/log", params=params)
        resp.raise_for_status()
        return [LogEntry.model_validate(e) for e in resp.json()]

    async def list_slots(self) -> list[SlotSummary]:
        resp = await self._request("GET", "/saves")
        resp.raise_for_status()
        return [SlotSummary.model_validate(s) for s in resp.json()]

    async def delete(self, slot_id: str) -> None:
        resp = await self._request("DELETE", f"/saves/{slot_id}")
        resp.raise_for_status()
