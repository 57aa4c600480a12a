from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from station.config import Settings
from station.routes import router
from station.storage import SaveStore


def create_app(saves_dir: Path | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    resolved = saves_dir or settings.saves_dir

    app = FastAPI(title="Station Save Server")
    app.state.settings = settings
    app.state.store = SaveStore(resolved, start_room_id=settings.start_room)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)
    return app


# Default app instance for uvicorn (uses SAVES_DIR env var or default)
app = create_app()
