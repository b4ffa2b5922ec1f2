"""Shared timestamp parsing and formatting helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(value: datetime) -> datetime:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are read as UTC. Returns None for anything that is not a
    non-empty, parseable string.
    """
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return _ensure_utc(datetime.fromisoformat(cleaned))
    except (ValueError, OverflowError):
        return None


def timestamp_or_now(value: Any) -> datetime:
    parsed = parse_iso_timestamp(value)
    if parsed is None:
        return utc_now()
    return parsed


def epoch_to_datetime(epoch: float) -> datetime:
    return datetime.fromtimestamp(float(epoch), tz=timezone.utc)
