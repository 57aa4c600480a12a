"""Station — dev launcher. Starts the save server, or validates authored content."""

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

from station.config import Settings


def validate_content(content_dir: Path) -> int:
    """Load every room under content_dir and report problems. Returns exit code."""
    from station.engine.diagnostics import Diagnostics
    from station.engine.loader import load_content_dir, resolve_npc_dialog
    from station.engine.registry import WorldRegistry

    diagnostics = Diagnostics()
    registry = WorldRegistry(diagnostics)
    content = load_content_dir(content_dir, registry, diagnostics)
    for room in content.rooms:
        for npc in room.npcs:
            resolve_npc_dialog(room, npc.id, diagnostics)
        for direction, exit in room.exits.items():
            if exit.room_id not in registry:
                print(f"  {room.id} --{direction}--> {exit.room_id} (unformed, left to the GM)")
    # Dialog loops are legitimate authoring; they are reported, not counted.
    problems = [d for d in diagnostics.records if d.kind != "GraphCycle"]
    print(f"{len(content.rooms)} room(s), {len(content.walkthrough)} walkthrough doc(s), "
          f"{len(problems)} problem(s)")
    for diag in diagnostics.records:
        print(f"  [{diag.kind}] {diag.message}")
    return 1 if problems else 0


def main():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Station dev launcher")
    parser.add_argument("--saves-dir", type=Path, default=None,
                        help="Save files directory (default: ./saves)")
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--validate-content", action="store_true",
                        help="Load rooms from CONTENT_DIR, report problems and exit")
    args = parser.parse_args()

    if args.validate_content:
        sys.exit(validate_content(settings.content_dir))

    # The app reads SAVES_DIR when uvicorn imports it.
    if args.saves_dir:
        os.environ["SAVES_DIR"] = str(args.saves_dir.resolve())

    print(f"Starting save server on http://localhost:{args.port} ...")
    uvicorn.run("station.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
