"""Pydantic models matching the dashboard frontend types."""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

# ── Session-related models ──────────────────────────────────────────

MessageKind = Literal["user", "thinking", "text", "tool_call", "tool_result"]


class SessionMessage(BaseModel):
    kind: MessageKind
    timestamp: datetime
    text: str = ""
    toolName: Optional[str] = None
    toolInput: Optional[str] = None


class SessionSummary(BaseModel):
    id: str
    lastModifiedTime: datetime
    preview: str = ""


class ActiveSession(BaseModel):
    active: bool = False
    id: Optional[str] = None


# ── Settings models ────────────────────────────────────────────────

class DashboardSettings(BaseModel):
    adoOrg: str = ""
    adoProject: str = ""
    areaPath: str = ""
    iterationPath: Optional[str] = None
    copilotUserId: str = ""
    repoProjectGuid: str = ""
    repoGuid: str = ""
    branchRef: str = "GBmain"
    triagePipelineName: str = ""
    maxBugsDefault: int = 100
    claudeProjectsPath: str = ""

    @property
    def is_configured(self) -> bool:
        """True when org, project and area path are all set."""
        return bool(self.adoOrg.strip() and self.adoProject.strip() and self.areaPath.strip())


class DashboardConfigResponse(DashboardSettings):
    isConfigured: bool = False


class SaveSettingsResponse(BaseModel):
    success: bool = True
    message: str = ""
    updatedFields: list[str] = Field(default_factory=list)
