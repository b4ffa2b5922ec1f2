"""Live tailing of a transcript that another process is still appending to.

Each stream owns a ``TranscriptTailer``: a byte offset into the file and the
set of line digests it has already delivered. Every poll re-opens the file
read-only, seeks to the offset and consumes only newline-terminated lines, so
a half-written trailing line is picked up on a later poll once it completes.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import AsyncIterator

from triagedash import config
from triagedash.models import SessionMessage
from triagedash.observability import record_parser_failure, record_stream_poll
from triagedash.parsers.transcripts import decode_line, parse_decoded

logger = logging.getLogger("triagedash.tailer")


class TranscriptTailer:
    """Incremental reader for one transcript file."""

    def __init__(self, path: Path):
        self.path = path
        self.offset = 0
        self._seen: set[bytes] = set()

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def _read_complete_lines(self) -> tuple[list[bytes], int]:
        lines: list[bytes] = []
        consumed = 0
        with self.path.open("rb") as handle:
            handle.seek(self.offset)
            for raw in handle:
                if not raw.endswith(b"\n"):
                    break
                lines.append(raw)
                consumed += len(raw)
        return lines, consumed

    def poll(self) -> list[SessionMessage]:
        """Read lines appended since the last poll and parse the unseen ones.

        Raises OSError if the file cannot be read; the offset is then left
        where it was.
        """
        lines, consumed = self._read_complete_lines()

        messages: list[SessionMessage] = []
        for raw in lines:
            line = raw.rstrip(b"\r\n")
            if not line.strip():
                continue
            digest = hashlib.sha1(line).digest()
            if digest in self._seen:
                continue
            self._seen.add(digest)

            entry = decode_line(line)
            if entry is None:
                logger.debug("Skipping malformed transcript line in %s", self.path.name)
                record_parser_failure("transcript_line")
                continue
            messages.extend(parse_decoded(entry))

        self.offset += consumed
        return messages


async def _sleep_or_cancel(cancel_event: asyncio.Event, interval: float) -> bool:
    """Sleep for interval seconds; True if cancel_event fired first."""
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        return False
    return True


async def stream_transcript(
    path: Path,
    cancel_event: asyncio.Event,
    *,
    poll_interval: float | None = None,
) -> AsyncIterator[SessionMessage]:
    """Yield messages from path as they are appended, until cancel_event is set."""
    if not path.is_file():
        return

    interval = poll_interval if poll_interval is not None else config.STREAM_POLL_INTERVAL_MS / 1000
    tailer = TranscriptTailer(path)
    logger.info("Streaming transcript %s", path.name)

    while not cancel_event.is_set():
        try:
            messages = await asyncio.to_thread(tailer.poll)
        except OSError as exc:
            logger.warning("IO error reading %s for streaming: %s", path.name, exc)
            record_stream_poll("error", 0)
            messages = []
        else:
            record_stream_poll("ok", len(messages))

        for message in messages:
            yield message

        if await _sleep_or_cancel(cancel_event, interval):
            break

    logger.info("Stopped streaming transcript %s after %d lines", path.name, tailer.seen_count)
