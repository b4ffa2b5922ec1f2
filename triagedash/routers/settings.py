"""API router for dashboard settings."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, HTTPException

from triagedash.models import DashboardConfigResponse, SaveSettingsResponse
from triagedash.settings_manager import settings_manager

settings_router = APIRouter(prefix="/api/config", tags=["config"])


@settings_router.get("", response_model=DashboardConfigResponse)
def get_config():
    """Return the stored dashboard settings."""
    settings = settings_manager.get_settings()
    return DashboardConfigResponse(**settings.model_dump(), isConfigured=settings.is_configured)


@settings_router.post("", response_model=SaveSettingsResponse)
def save_config(values: dict[str, Any] = Body(...)):
    """Persist dashboard settings. The transcript path applies after a restart."""
    try:
        updated = settings_manager.update_settings(values)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save settings: {e}")
    return SaveSettingsResponse(
        success=True,
        message="Settings saved. Restart the app to apply changes.",
        updatedFields=updated,
    )
