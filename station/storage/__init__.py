"""File-based JSON save storage.

Data layout:
  saves/
    <slot>.json      One full Save per slot (seq, player, rooms, log)

Slot ids are sanitized before touching the filesystem: any character outside
[A-Za-z0-9_-] becomes "_". Files are written atomically (temp file + replace).

The store is the only writer of these files. Concurrency: per-slot lock
around check-seq → merge → bump seq → write; see ``saves.py``.
"""

# Re-export public symbols so `from station import storage` keeps working.

from .core import (  # noqa: F401
    read_json,
    sanitize_slot_id,
    slot_path,
    write_json,
)

from .saves import (  # noqa: F401
    SaveStore,
    apply_patch,
    make_empty_save,
)
