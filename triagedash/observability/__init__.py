"""Observability helpers."""

from triagedash.observability.otel import (
    initialize,
    shutdown,
    is_enabled,
    start_span,
    record_transcript_read,
    record_parser_failure,
    record_stream_poll,
)

__all__ = [
    "initialize",
    "shutdown",
    "is_enabled",
    "start_span",
    "record_transcript_read",
    "record_parser_failure",
    "record_stream_poll",
]
