"""Data models for the relay runtime."""

from agentrelay.runtime.models.api import (
    ChatAccepted,
    ChatRequest,
    DeleteResponse,
    SessionCreate,
    SessionResponse,
    SessionUpdate,
    StopResponse,
)
from agentrelay.runtime.models.enums import EventType, MessageRole, SessionStatus, StreamStatus
from agentrelay.runtime.models.events import RelayEvent
from agentrelay.runtime.models.session import (
    ChatMessage,
    RunResult,
    Session,
    SessionSummary,
    SessionTotals,
    TextBlock,
    ToolCall,
    UsageSummary,
)
from agentrelay.runtime.models.upstream import (
    AssistantTurn,
    InitEvent,
    RunResultEvent,
    TextDelta,
    ToolInputDelta,
    ToolResult,
    ToolUseStart,
    UpstreamEvent,
)

__all__ = [
    # Upstream
    "AssistantTurn",
    # API schemas
    "ChatAccepted",
    # Session
    "ChatMessage",
    "ChatRequest",
    "DeleteResponse",
    # Enums
    "EventType",
    "InitEvent",
    "MessageRole",
    # Events
    "RelayEvent",
    "RunResult",
    "RunResultEvent",
    "Session",
    "SessionCreate",
    "SessionResponse",
    "SessionStatus",
    "SessionSummary",
    "SessionTotals",
    "SessionUpdate",
    "StopResponse",
    "StreamStatus",
    "TextBlock",
    "TextDelta",
    "ToolCall",
    "ToolInputDelta",
    "ToolResult",
    "ToolUseStart",
    "UpstreamEvent",
    "UsageSummary",
]
