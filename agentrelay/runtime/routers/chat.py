"""Chat endpoints: prompt submission, interruption and the SSE event stream.

A submitted prompt is accepted immediately (202); its output arrives on the
session's event stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, status
from sse_starlette import EventSourceResponse, ServerSentEvent

from agentrelay.runtime.deps import Relay, Settings
from agentrelay.runtime.errors import ConflictError, NotFoundError, ValidationError
from agentrelay.runtime.hub import QueueSink
from agentrelay.runtime.models.api import ChatAccepted, ChatRequest, StopResponse
from agentrelay.runtime.registry import ShuttingDownError

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/send", response_model=ChatAccepted, status_code=status.HTTP_202_ACCEPTED)
async def send_prompt(body: ChatRequest, relay: Relay) -> ChatAccepted:
    """Start a run for ``session_id`` with ``prompt``."""
    if not body.session_id or not body.prompt:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="session_id and prompt are required.")

    try:
        relay.submit_prompt(body.session_id, body.prompt)
    except ValidationError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
    except NotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Session '{body.session_id}' not found.") from None
    except ConflictError:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Session is already running.") from None
    except ShuttingDownError:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Server is shutting down.") from None

    return ChatAccepted(session_id=body.session_id)


@router.post("/{session_id}/stop", response_model=StopResponse)
async def stop_run(session_id: str, relay: Relay) -> StopResponse:
    """Interrupt the active run, if any."""
    return StopResponse(interrupted=relay.stop_run(session_id))


@router.get("/{session_id}/events")
async def stream_events(session_id: str, relay: Relay, settings: Settings) -> EventSourceResponse:
    """Subscribe to a session's events over SSE.

    The first event is ``connected``; keep-alive comments follow every
    ``keepalive_interval`` seconds while the stream is idle.
    """
    sink = QueueSink(maxsize=settings.sink_queue_size)
    try:
        relay.subscribe(session_id, sink)
    except NotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.") from None

    async def event_stream() -> AsyncIterator[ServerSentEvent]:
        try:
            async for event in sink:
                yield event
        finally:
            # Client went away (or the sink was closed): leave the hub.
            sink.close()

    return EventSourceResponse(
        event_stream(),
        ping=settings.keepalive_interval,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
