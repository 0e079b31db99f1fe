"""Session and message data models.

The ``Session`` record is owned by the session registry.  Only metadata is
persisted; ``messages`` live in memory for the lifetime of the process.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from agentrelay.runtime.models.enums import MessageRole, SessionStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


# -- Messages ----------------------------------------------------------------


class TextBlock(BaseModel):
    type: str = "text"
    text: str


class ToolCall(BaseModel):
    id: str
    tool: str
    input: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """One entry of a session's message history."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: MessageRole
    content: list[TextBlock] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content)


# -- Run result --------------------------------------------------------------


class UsageSummary(BaseModel):
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_create: int = 0


class SessionTotals(BaseModel):
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0


class RunResult(BaseModel):
    """Consolidated figures broadcast at the end of a run."""

    subtype: str = "success"
    cost: float = 0.0
    duration_ms: int = 0
    num_turns: int = 0
    usage: UsageSummary = Field(default_factory=UsageSummary)
    is_error: bool = False
    session_totals: SessionTotals = Field(default_factory=SessionTotals)


# -- Session -----------------------------------------------------------------


class SessionSummary(BaseModel):
    """Session metadata without message bodies (list view)."""

    id: str
    name: str
    cwd: str
    model: str
    status: SessionStatus
    total_cost: float
    total_input_tokens: int
    total_output_tokens: int
    message_count: int
    created_at: datetime
    last_active_at: datetime


class Session(BaseModel):
    """Authoritative record for one conversation."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = "New Session"
    cwd: str
    model: str
    resume_token: str | None = Field(default=None, description="Upstream conversation id, set by the first run")
    status: SessionStatus = SessionStatus.IDLE
    total_cost: float = Field(default=0.0, ge=0)
    total_input_tokens: int = Field(default=0, ge=0)
    total_output_tokens: int = Field(default=0, ge=0)
    messages: list[ChatMessage] = Field(default_factory=list, description="In-memory only, never persisted")
    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)

    def summary(self) -> SessionSummary:
        return SessionSummary(
            **self.model_dump(exclude={"messages", "resume_token"}),
            message_count=len(self.messages),
        )

    def totals(self) -> SessionTotals:
        return SessionTotals(
            cost=self.total_cost,
            input_tokens=self.total_input_tokens,
            output_tokens=self.total_output_tokens,
        )
