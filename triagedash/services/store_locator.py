"""Resolve the directory that holds the agent's JSONL transcripts."""
from __future__ import annotations

import logging
import os
from pathlib import Path

from triagedash import config

logger = logging.getLogger("triagedash.locator")

_PATH_FILLER = "-"


def find_repo_root(start_dir: Path) -> Path | None:
    """Walk upward from start_dir to the first directory holding a VCS marker."""
    current = start_dir.resolve()
    while True:
        if (current / config.VCS_MARKER_DIRNAME).is_dir():
            return current
        if current.parent == current:
            return None
        current = current.parent


def project_dir_name(root: Path | str) -> str:
    """Flatten an absolute path into the transcript store's directory name."""
    raw = str(root)
    for separator in (":", "\\", "/"):
        raw = raw.replace(separator, _PATH_FILLER)
    return raw


def _latest_transcript_mtime(directory: Path) -> float | None:
    latest: float | None = None
    try:
        for path in directory.glob(config.TRANSCRIPT_GLOB):
            try:
                mtime = path.stat().st_mtime
            except OSError:
                continue
            if latest is None or mtime > latest:
                latest = mtime
    except OSError:
        return None
    return latest


def most_recently_active_dir(projects_root: Path) -> Path | None:
    if not projects_root.is_dir():
        return None

    best: tuple[float, Path] | None = None
    try:
        candidates = [p for p in projects_root.iterdir() if p.is_dir()]
    except OSError as exc:
        logger.warning("Failed to list transcript root %s: %s", projects_root, exc)
        return None

    for candidate in candidates:
        latest = _latest_transcript_mtime(candidate)
        if latest is None:
            continue
        if best is None or latest > best[0]:
            best = (latest, candidate)

    return best[1] if best else None


def resolve_projects_path(
    configured_path: str,
    *,
    start_dir: Path | None = None,
    projects_root: Path | None = None,
) -> Path | None:
    """Pick the transcript directory.

    Order: an existing configured directory, then the store directory derived
    from the enclosing repository root, then the store subdirectory with the
    newest transcript. Falls back to the configured value even if it does not
    exist, or None when nothing was configured; callers treat a missing
    directory as "no sessions".
    """
    configured = (configured_path or "").strip()
    if configured and Path(configured).is_dir():
        return Path(configured)

    root = projects_root or config.CLAUDE_PROJECTS_ROOT

    repo_root = find_repo_root(start_dir or Path(os.getcwd()))
    if repo_root is not None:
        derived = root / project_dir_name(repo_root)
        if derived.is_dir():
            logger.info("Auto-detected transcript path from repo root: %s", derived)
            return derived

    recent = most_recently_active_dir(root)
    if recent is not None:
        logger.info("Auto-detected transcript path from most recent activity: %s", recent)
        return recent

    logger.warning("Could not auto-detect transcript path, using configured value %r", configured_path)
    return Path(configured) if configured else None
