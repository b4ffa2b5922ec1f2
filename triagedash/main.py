"""Triage dashboard FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from triagedash import config
from triagedash.observability import (
    initialize as initialize_observability,
    is_enabled as observability_enabled,
    shutdown as shutdown_observability,
)
from triagedash.routers.sessions import sessions_router
from triagedash.routers.settings import settings_router
from triagedash.services.sessions import SessionService
from triagedash.services.store_locator import resolve_projects_path
from triagedash.settings_manager import settings_manager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("triagedash")


def build_session_service() -> SessionService:
    """Resolve the transcript store once and wrap it in a SessionService."""
    sessions_dir = resolve_projects_path(settings_manager.configured_projects_path())
    if sessions_dir is None or not sessions_dir.is_dir():
        logger.warning("Transcript store unavailable (%s); session views will be empty", sessions_dir)
    else:
        logger.info("Reading agent transcripts from %s", sessions_dir)
    return SessionService(
        sessions_dir,
        active_window_seconds=config.ACTIVE_WINDOW_SECONDS,
        poll_interval=config.STREAM_POLL_INTERVAL_MS / 1000,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Triage dashboard starting up")
    initialize_observability(app)

    app.state.session_service = build_session_service()

    yield

    logger.info("Triage dashboard shutting down")
    shutdown_observability(app)


app = FastAPI(
    title="Triage Dashboard API",
    description="Backend API for reviewing triaged bugs and live agent transcripts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:5200",
        "http://127.0.0.1:5200",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sessions_router)
app.include_router(settings_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    service = getattr(app.state, "session_service", None)
    sessions_dir = service.sessions_dir if service else None
    return {
        "status": "ok",
        "sessionsPath": str(sessions_dir) if sessions_dir else "",
        "sessionsPathExists": bool(service and service.store_exists()),
        "observability": "enabled" if observability_enabled() else "disabled",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("triagedash.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
