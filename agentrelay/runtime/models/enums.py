"""Shared enumerations used across the relay runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Session -----------------------------------------------------------------


class SessionStatus(StrEnum):
    """Durable session status persisted in the metadata snapshot."""

    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"


class StreamStatus(StrEnum):
    """Values carried by the ``status`` event.

    A superset of ``SessionStatus``: ``interrupted`` is announced to
    subscribers but never stored on the session.
    """

    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"
    INTERRUPTED = "interrupted"


# -- Messages ----------------------------------------------------------------


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


# -- Events ------------------------------------------------------------------


class EventType(StrEnum):
    """Named events delivered to subscribers."""

    # Connection
    CONNECTED = "connected"

    # Lifecycle
    STATUS = "status"
    SYSTEM_INIT = "system_init"
    RESULT = "result"
    ERROR = "error"

    # Content
    USER_MESSAGE = "user_message"
    TEXT_DELTA = "text_delta"
    ASSISTANT_MESSAGE = "assistant_message"

    # Tool
    TOOL_START = "tool_start"
    TOOL_INPUT_DELTA = "tool_input_delta"
    TOOL_COMPLETE = "tool_complete"
