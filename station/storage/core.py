"""Save file paths, slot id sanitizing and JSON file helpers."""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any


def sanitize_slot_id(slot_id: str) -> str:
    """Slot ids are simple strings only: anything outside [A-Za-z0-9_-] becomes "_".

    "slot 9/../x" → "slot_9____x"
    """
    return re.sub(r"[^A-Za-z0-9_-]", "_", slot_id) or "_"


def slot_path(saves_dir: Path, slot_id: str) -> Path:
    return saves_dir / f"{sanitize_slot_id(slot_id)}.json"


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json(path: Path, data: Any) -> None:
    """Write JSON atomically: a reader sees the old file or the new one, never half."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as tmp:
        tmp.write(json.dumps(data, indent=2))
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    os.replace(tmp_path, path)
