"""Public event envelope.

Events are serialized once per broadcast and handed to every sink of the
session as an SSE frame: the event type becomes the SSE ``event`` name and
the payload its JSON ``data``.  The session is implied by the stream.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from pydantic_core import to_json
from sse_starlette import ServerSentEvent

from agentrelay.runtime.models.enums import EventType


class RelayEvent(BaseModel):
    """One named event pushed to the subscribers of a session."""

    event_type: EventType
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> ServerSentEvent:
        return ServerSentEvent(data=to_json(self.payload).decode(), event=self.event_type.value)
