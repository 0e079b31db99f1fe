"""API request / response schemas for the HTTP layer.

- **Create** schemas validate user input and provide defaults.
- **Update** schemas allow partial updates via ``exclude_unset``.
- **Response** schemas serialize registry records.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from agentrelay.runtime.models.enums import SessionStatus

# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SessionCreate(BaseModel):
    """Input for creating a new session."""

    name: str | None = None
    cwd: str = Field(default="", description="Working directory for the agent; required.")
    model: str | None = Field(default=None, description="Model selector; server default if omitted.")


class SessionUpdate(BaseModel):
    """Partial update -- only fields explicitly set by the caller are applied."""

    name: str | None = None
    cwd: str | None = None
    model: str | None = None


class SessionResponse(BaseModel):
    """Serialized session metadata returned to clients (no history)."""

    id: str
    name: str
    cwd: str
    model: str
    resume_token: str | None = None
    status: SessionStatus
    total_cost: float
    total_input_tokens: int
    total_output_tokens: int
    created_at: datetime
    last_active_at: datetime


class DeleteResponse(BaseModel):
    ok: bool = True


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    session_id: str = ""
    prompt: str = ""


class ChatAccepted(BaseModel):
    ok: bool = True
    session_id: str


class StopResponse(BaseModel):
    ok: bool = True
    interrupted: bool
