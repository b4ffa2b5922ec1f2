"""Parse JSONL transcript lines into SessionMessage events."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from triagedash import config
from triagedash.date_utils import timestamp_or_now
from triagedash.models import SessionMessage

MESSAGE_LINE_TYPES = frozenset({"user", "assistant"})


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + config.TRUNCATION_MARKER


def _render_json(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(value)


def _string_prop(block: dict[str, Any], name: str) -> str:
    value = block.get(name)
    return value if isinstance(value, str) else ""


def decode_line(raw_line: str | bytes) -> dict[str, Any] | None:
    """Decode one raw transcript line, or None if it is not a JSON object."""
    if isinstance(raw_line, bytes):
        try:
            raw_line = raw_line.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not raw_line.strip():
        return None
    try:
        entry = json.loads(raw_line)
    except (ValueError, RecursionError):
        return None
    return entry if isinstance(entry, dict) else None


def line_type(entry: dict[str, Any]) -> str:
    return _string_prop(entry, "type")


def _message_content(entry: dict[str, Any]) -> Any:
    message = entry.get("message")
    if not isinstance(message, dict):
        return None
    return message.get("content")


def _tool_input_text(block: dict[str, Any]) -> str:
    if "input" not in block:
        return ""
    return truncate(_render_json(block["input"]), config.TOOL_INPUT_MAX_CHARS)


def _tool_result_text(block: dict[str, Any]) -> str:
    if "content" not in block:
        return ""
    content = block["content"]
    text = content if isinstance(content, str) else _render_json(content)
    return truncate(text, config.TOOL_RESULT_MAX_CHARS)


def parse_entry(entry: dict[str, Any], outer_type: str, timestamp: datetime) -> list[SessionMessage]:
    """Expand one decoded user/assistant line into zero or more messages.

    A plain string body becomes a single message. Block lists emit one
    message per thinking, text, tool_use or tool_result block; empty
    thinking/text blocks and unknown block types are dropped.
    """
    content = _message_content(entry)
    text_kind = "user" if outer_type == "user" else "text"

    if isinstance(content, str):
        return [SessionMessage(kind=text_kind, timestamp=timestamp, text=content)]

    if not isinstance(content, list):
        return []

    messages: list[SessionMessage] = []
    for block in content:
        if not isinstance(block, dict):
            continue

        block_type = _string_prop(block, "type")
        if block_type == "thinking":
            thinking = _string_prop(block, "thinking")
            if thinking:
                messages.append(SessionMessage(kind="thinking", timestamp=timestamp, text=thinking))
        elif block_type == "text":
            text = _string_prop(block, "text")
            if text:
                messages.append(SessionMessage(kind=text_kind, timestamp=timestamp, text=text))
        elif block_type == "tool_use":
            messages.append(
                SessionMessage(
                    kind="tool_call",
                    timestamp=timestamp,
                    toolName=_string_prop(block, "name"),
                    toolInput=_tool_input_text(block),
                )
            )
        elif block_type == "tool_result":
            messages.append(
                SessionMessage(kind="tool_result", timestamp=timestamp, text=_tool_result_text(block))
            )

    return messages


def parse_decoded(entry: dict[str, Any]) -> list[SessionMessage]:
    outer_type = line_type(entry)
    if outer_type not in MESSAGE_LINE_TYPES:
        return []
    return parse_entry(entry, outer_type, timestamp_or_now(entry.get("timestamp")))


def parse_line(raw_line: str | bytes) -> list[SessionMessage]:
    """Parse a raw JSONL line. Malformed or non-message lines yield nothing."""
    entry = decode_line(raw_line)
    if entry is None:
        return []
    return parse_decoded(entry)


def extract_user_preview(entry: dict[str, Any]) -> str:
    """Preview text of a user line: the string body or its first text block."""
    content = _message_content(entry)
    if isinstance(content, str):
        return truncate(content, config.PREVIEW_MAX_CHARS)
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and _string_prop(block, "type") == "text":
                return truncate(_string_prop(block, "text"), config.PREVIEW_MAX_CHARS)
    return ""
