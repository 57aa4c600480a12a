"""Fire-and-forget work queue.

Prefetch calls and best-effort log patches are dispatched without the caller
awaiting them. ``submit`` runs at most one task per key at a time; a second
submission for a key that is still in flight is dropped. Failures never reach
the caller: they are recorded in the diagnostic sink.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .diagnostics import Diagnostics

logger = logging.getLogger(__name__)


class TaskQueue:
    def __init__(self, diagnostics: Diagnostics | None = None) -> None:
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._in_flight: dict[str, asyncio.Task] = {}
        self._anonymous: set[asyncio.Task] = set()
        self._counter = 0

    def submit(
        self, key: str | None, factory: Callable[[], Awaitable[Any]]
    ) -> asyncio.Task | None:
        """Schedule ``factory()`` on the running loop.

        Returns the task, or None when a task with the same key is in flight.
        """
        if key is not None and key in self._in_flight:
            logger.debug("task %r already in flight, dropped", key)
            return None
        self._counter += 1
        name = key or f"task-{self._counter}"
        task = asyncio.get_running_loop().create_task(self._run(name, factory), name=name)
        if key is not None:
            self._in_flight[key] = task
        else:
            self._anonymous.add(task)
        task.add_done_callback(lambda t: self._forget(key, t))
        return task

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight) + len(self._anonymous)

    async def drain(self) -> None:
        """Wait until every submitted task, including ones they submit, is done."""
        while self._in_flight or self._anonymous:
            await asyncio.gather(
                *self._in_flight.values(), *self._anonymous, return_exceptions=True
            )

    async def _run(self, name: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.diagnostics.record(e, task=name)
            return None

    def _forget(self, key: str | None, task: asyncio.Task) -> None:
        if key is not None and self._in_flight.get(key) is task:
            del self._in_flight[key]
        self._anonymous.discard(task)
