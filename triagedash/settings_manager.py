"""Persistence for the dashboard settings edited from the UI."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from triagedash import config
from triagedash.models import DashboardSettings

logger = logging.getLogger("triagedash.settings")

_SETTINGS_SECTION = "Dashboard"


class SettingsManager:
    """Loads and saves DashboardSettings to a local JSON file.

    The file keeps settings under a ``Dashboard`` section so other top-level
    keys written by hand survive a save.
    """

    def __init__(self, storage_path: Path):
        self.storage_path = storage_path
        self._settings = DashboardSettings()
        self._load()

    def _read_document(self) -> dict[str, Any]:
        if not self.storage_path.exists():
            return {}
        try:
            content = self.storage_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to read settings file: {e}")
            return {}
        if not content.strip():
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse settings file {self.storage_path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _load(self) -> None:
        section = self._read_document().get(_SETTINGS_SECTION)
        if not isinstance(section, dict):
            return
        try:
            self._settings = DashboardSettings(**section)
        except ValidationError as e:
            logger.error(f"Failed to load dashboard settings: {e}")

    def _save(self, settings: DashboardSettings) -> None:
        document = self._read_document()
        document[_SETTINGS_SECTION] = settings.model_dump()
        self.storage_path.write_text(json.dumps(document, indent=2), encoding="utf-8")

    def get_settings(self) -> DashboardSettings:
        return self._settings

    def update_settings(self, values: dict[str, Any]) -> list[str]:
        """Merge known fields into the stored settings and persist them.

        Unknown keys are ignored. Returns the names of the fields applied.
        Raises ValueError if a value has the wrong type.
        """
        known = set(DashboardSettings.model_fields)
        applied = {key: value for key, value in values.items() if key in known}
        merged = {**self._settings.model_dump(), **applied}
        try:
            updated = DashboardSettings(**merged)
        except ValidationError as e:
            raise ValueError(str(e)) from e
        self._save(updated)
        self._settings = updated
        logger.info(f"Saved dashboard settings: {sorted(applied)}")
        return sorted(applied)

    def configured_projects_path(self) -> str:
        """Transcript store path from settings, falling back to the environment."""
        return self._settings.claudeProjectsPath.strip() or config.CLAUDE_PROJECTS_PATH


settings_manager = SettingsManager(config.SETTINGS_PATH)
