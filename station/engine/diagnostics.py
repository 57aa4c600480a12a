"""Diagnostic sink for errors that degrade content instead of propagating.

Resolvers and background tasks record problems here (and to the log) so a
broken generator reply or a dialog cycle never takes the session down, while
tests and tooling can still inspect exactly what went wrong.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class Diagnostic:
    kind: str  # exception class name, e.g. "GraphCycle"
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None


class Diagnostics:
    def __init__(self) -> None:
        self.records: list[Diagnostic] = []

    def record(self, error: BaseException, **context: Any) -> Diagnostic:
        diag = Diagnostic(
            kind=type(error).__name__,
            message=str(error),
            context=context,
            error=error,
        )
        self.records.append(diag)
        logger.warning("[%s] %s %s", diag.kind, diag.message, context or "")
        return diag

    def of_kind(self, kind: str) -> list[Diagnostic]:
        return [d for d in self.records if d.kind == kind]

    def clear(self) -> None:
        self.records.clear()

    def __len__(self) -> int:
        return len(self.records)
