"""Error taxonomy.

Content and resolution errors (``MalformedContent``, ``GraphCycle``) are
normally recorded in a diagnostic sink and the offending piece is skipped.
``ConcurrencyConflict`` reaches the caller, who decides between reload-and-retry
and dropping the write. ``GeneratorUnavailable`` means the flow continues
without generated content.
"""

from __future__ import annotations


class StationError(Exception):
    """Base class for every error this package raises on purpose."""


class NotFound(StationError):
    """Unknown room, slot or dialog node."""


class ConcurrencyConflict(StationError):
    """A patch carried a stale sequence number and was rejected whole."""

    def __init__(self, slot_id: str, client_seq: int, server_seq: int) -> None:
        super().__init__(
            f"seq mismatch on {slot_id}: client has {client_seq}, server has {server_seq}"
        )
        self.slot_id = slot_id
        self.client_seq = client_seq
        self.server_seq = server_seq


class MalformedContent(StationError):
    """A room or dialog document is missing required fields."""


class GraphCycle(StationError):
    """A dialog branch leads back to a node already on its path."""

    def __init__(self, node_id: str, path: tuple[str, ...]) -> None:
        super().__init__(f"dialog cycle at node {node_id!r} via {' -> '.join(path)}")
        self.node_id = node_id
        self.path = path


class GeneratorUnavailable(StationError):
    """The generator call failed, timed out, or returned unusable data."""
