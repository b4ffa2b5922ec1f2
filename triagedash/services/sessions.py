"""Session catalog, liveness detection and transcript reading."""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import AsyncIterator, Callable

from triagedash import config
from triagedash.date_utils import epoch_to_datetime
from triagedash.models import SessionMessage, SessionSummary
from triagedash.observability import record_parser_failure, record_transcript_read, start_span
from triagedash.parsers.transcripts import decode_line, extract_user_preview, line_type, parse_decoded
from triagedash.services.tailer import stream_transcript

logger = logging.getLogger("triagedash.sessions")

_INVALID_ID_TOKENS = ("/", "\\", "..", "\x00")


def is_valid_session_id(session_id: str) -> bool:
    """Session ids are bare filename stems; reject anything that could escape the store."""
    cleaned = (session_id or "").strip()
    if not cleaned or cleaned != session_id:
        return False
    return not any(token in cleaned for token in _INVALID_ID_TOKENS)


def _read_messages(path: Path, source: str) -> list[SessionMessage]:
    """Parse every message line of one transcript. Raises OSError on read failure."""
    started = time.perf_counter()
    messages: list[SessionMessage] = []
    malformed = 0
    try:
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            for line in handle:
                if not line.strip():
                    continue
                entry = decode_line(line)
                if entry is None:
                    malformed += 1
                    continue
                messages.extend(parse_decoded(entry))
    except OSError:
        record_transcript_read(source, "error", (time.perf_counter() - started) * 1000)
        raise

    if malformed:
        logger.debug("Skipped %d malformed lines in %s", malformed, path.name)
        record_parser_failure("transcript_line", count=malformed)
    record_transcript_read(source, "ok", (time.perf_counter() - started) * 1000)
    return messages


class SessionService:
    """Read-side access to the transcript store.

    The store directory is resolved once at startup and injected here; a
    missing or unset directory behaves as an empty store.
    """

    def __init__(
        self,
        sessions_dir: Path | None,
        *,
        active_window_seconds: float | None = None,
        poll_interval: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._sessions_dir = sessions_dir
        self._active_window_seconds = (
            active_window_seconds if active_window_seconds is not None else config.ACTIVE_WINDOW_SECONDS
        )
        self._poll_interval = poll_interval
        self._clock = clock

    @property
    def sessions_dir(self) -> Path | None:
        return self._sessions_dir

    def store_exists(self) -> bool:
        return self._sessions_dir is not None and self._sessions_dir.is_dir()

    def _transcripts_by_recency(self) -> list[tuple[Path, float]]:
        """All transcripts in the store with their mtimes, newest first."""
        sessions_dir = self._sessions_dir
        if sessions_dir is None or not sessions_dir.is_dir():
            return []

        entries: list[tuple[Path, float]] = []
        try:
            candidates = list(sessions_dir.glob(config.TRANSCRIPT_GLOB))
        except OSError as exc:
            logger.warning("Failed to list transcripts in %s: %s", sessions_dir, exc)
            return []

        for path in candidates:
            try:
                if not path.is_file():
                    continue
                entries.append((path, path.stat().st_mtime))
            except OSError:
                continue
        entries.sort(key=lambda item: item[1], reverse=True)
        return entries

    def _transcript_path(self, session_id: str) -> Path | None:
        if self._sessions_dir is None or not is_valid_session_id(session_id):
            return None
        return self._sessions_dir / f"{session_id}.jsonl"

    # ── Catalog ─────────────────────────────────────────────────────

    @staticmethod
    def scan_session_file(path: Path) -> tuple[bool, str]:
        """Return (is_triage_session, preview) for one transcript.

        Stops reading once a preview has been found and the triage marker
        has been seen.
        """
        preview = ""
        found_triage = False
        marker = config.TRIAGE_MARKER.lower()

        with path.open("r", encoding="utf-8", errors="replace") as handle:
            for line in handle:
                if not line.strip():
                    continue

                if not found_triage and marker in line.lower():
                    found_triage = True

                if not preview:
                    entry = decode_line(line)
                    if entry is not None and line_type(entry) == "user":
                        preview = extract_user_preview(entry)

                if found_triage and preview:
                    break

        return found_triage, preview

    def list_sessions(self, max_count: int | None = None, triage_only: bool = False) -> list[SessionSummary]:
        """Most recently modified sessions first, optionally only triage runs."""
        limit = config.SESSION_LIST_DEFAULT if max_count is None else max(0, int(max_count))
        if not self.store_exists():
            logger.warning("Transcript directory not found: %s", self._sessions_dir)
            return []

        results: list[SessionSummary] = []
        if limit == 0:
            return results

        with start_span("sessions.list", {"max_count": limit, "triage_only": triage_only}):
            for path, mtime in self._transcripts_by_recency()[: limit * 3]:
                try:
                    is_triage, preview = self.scan_session_file(path)
                except OSError as exc:
                    logger.warning("Failed to scan session file %s: %s", path, exc)
                    continue

                if triage_only and not is_triage:
                    continue

                results.append(
                    SessionSummary(
                        id=path.stem,
                        lastModifiedTime=epoch_to_datetime(mtime),
                        preview=preview,
                    )
                )
                if len(results) >= limit:
                    break

        return results

    # ── Liveness ────────────────────────────────────────────────────

    def active_session_id(self) -> str | None:
        """Id of the newest transcript if it was written within the liveness window."""
        transcripts = self._transcripts_by_recency()
        if not transcripts:
            return None

        path, mtime = transcripts[0]
        if self._clock() - mtime > self._active_window_seconds:
            return None
        return path.stem

    # ── Full read ───────────────────────────────────────────────────

    def get_session(self, session_id: str) -> list[SessionMessage]:
        """All messages of a session and its sub-transcripts, ordered by timestamp."""
        path = self._transcript_path(session_id)
        if path is None or not path.is_file():
            return []

        messages: list[SessionMessage] = []
        with start_span("sessions.get", {"session_id": session_id}):
            try:
                messages.extend(_read_messages(path, "primary"))
            except OSError as exc:
                logger.warning("Failed to read session file %s: %s", path, exc)

            subagents_dir = path.parent / session_id / config.SUBAGENTS_DIRNAME
            if subagents_dir.is_dir():
                for sub_path in sorted(subagents_dir.glob(config.TRANSCRIPT_GLOB), key=lambda p: p.name):
                    try:
                        messages.extend(_read_messages(sub_path, "subagent"))
                    except OSError as exc:
                        logger.warning("Failed to parse subagent file %s: %s", sub_path, exc)

        messages.sort(key=lambda message: message.timestamp)
        return messages

    # ── Streaming ───────────────────────────────────────────────────

    async def stream_session(
        self,
        session_id: str,
        cancel_event: asyncio.Event,
    ) -> AsyncIterator[SessionMessage]:
        """Tail a session's transcript; ends immediately if it does not exist."""
        path = self._transcript_path(session_id)
        if path is None:
            return
        async for message in stream_transcript(path, cancel_event, poll_interval=self._poll_interval):
            yield message
