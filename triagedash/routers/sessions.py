"""API router for agent transcripts: catalog, full reads and live tails."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import AsyncIterator

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from triagedash import config
from triagedash.models import ActiveSession, SessionMessage, SessionSummary
from triagedash.services.sessions import SessionService, is_valid_session_id

logger = logging.getLogger("triagedash.sessions")

_DISCONNECT_CHECK_SECONDS = 0.5
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _get_session_service(request: Request) -> SessionService:
    service = getattr(request.app.state, "session_service", None)
    if not service:
        raise HTTPException(status_code=503, detail="Session service not initialized")
    return service


def _require_valid_id(session_id: str) -> None:
    if not is_valid_session_id(session_id):
        raise HTTPException(status_code=400, detail=f"Invalid session id: {session_id!r}")


def format_sse_event(message: SessionMessage) -> str:
    return f"data: {message.model_dump_json(exclude_none=True)}\n\n"


async def _cancel_on_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            cancel_event.set()
            return
        await asyncio.sleep(_DISCONNECT_CHECK_SECONDS)


# ── Sessions router ─────────────────────────────────────────────────

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@sessions_router.get("", response_model=list[SessionSummary])
def list_sessions(
    request: Request,
    max_count: int = Query(config.SESSION_LIST_DEFAULT, alias="max", ge=0, le=500),
    triage_only: bool = Query(False, alias="triageOnly"),
):
    """List recent transcripts, newest first."""
    service = _get_session_service(request)
    return service.list_sessions(max_count=max_count, triage_only=triage_only)


@sessions_router.get("/active", response_model=ActiveSession, response_model_exclude_none=True)
def get_active_session(request: Request):
    """Report the transcript currently being written, if any."""
    service = _get_session_service(request)
    session_id = service.active_session_id()
    if session_id is None:
        return ActiveSession(active=False)
    return ActiveSession(active=True, id=session_id)


@sessions_router.get("/{session_id}", response_model=list[SessionMessage], response_model_exclude_none=True)
def get_session(session_id: str, request: Request):
    """Return every message of a transcript and its subagent transcripts."""
    _require_valid_id(session_id)
    service = _get_session_service(request)
    return service.get_session(session_id)


@sessions_router.get("/{session_id}/stream")
async def stream_session(session_id: str, request: Request):
    """Tail a transcript as server-sent events until the client disconnects."""
    _require_valid_id(session_id)
    service = _get_session_service(request)
    cancel_event = asyncio.Event()

    async def _generate() -> AsyncIterator[str]:
        watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel_event))
        try:
            async for message in service.stream_session(session_id, cancel_event):
                yield format_sse_event(message)
        finally:
            cancel_event.set()
            watcher.cancel()
            with suppress(asyncio.CancelledError):
                await watcher
            logger.info("Closed live stream for session %s", session_id)

    return StreamingResponse(
        _generate(),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )
