"""Triage dashboard configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

# Project root (one level up from triagedash/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Settings persisted by the dashboard UI
SETTINGS_PATH = Path(os.getenv("TRIAGEDASH_SETTINGS_PATH", str(PROJECT_ROOT / "settings.local.json")))

# Transcript store
CLAUDE_PROJECTS_ROOT = Path.home() / ".claude" / "projects"
CLAUDE_PROJECTS_PATH = os.getenv("TRIAGEDASH_CLAUDE_PROJECTS_PATH", "")
TRANSCRIPT_GLOB = "*.jsonl"
SUBAGENTS_DIRNAME = "subagents"
VCS_MARKER_DIRNAME = ".git"

# Sessions
STREAM_POLL_INTERVAL_MS = _env_int("TRIAGEDASH_STREAM_POLL_INTERVAL_MS", 500)
ACTIVE_WINDOW_SECONDS = _env_int("TRIAGEDASH_ACTIVE_WINDOW_SECONDS", 5 * 60)
SESSION_LIST_DEFAULT = _env_int("TRIAGEDASH_SESSION_LIST_DEFAULT", 20)
TRIAGE_MARKER = "triage-bug"

# Truncation limits for emitted text
TOOL_INPUT_MAX_CHARS = 1000
TOOL_RESULT_MAX_CHARS = 2000
PREVIEW_MAX_CHARS = 120
TRUNCATION_MARKER = "..."

# Observability
OTEL_ENABLED = _env_bool("TRIAGEDASH_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("TRIAGEDASH_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("TRIAGEDASH_OTEL_SERVICE_NAME", "triagedash")
PROM_PORT = _env_int("TRIAGEDASH_PROM_PORT", 9464)

# Server settings
HOST = os.getenv("TRIAGEDASH_HOST", "127.0.0.1")
PORT = _env_int("TRIAGEDASH_PORT", 5200)

# CORS
FRONTEND_ORIGIN = os.getenv("TRIAGEDASH_FRONTEND_ORIGIN", "http://localhost:5200")
