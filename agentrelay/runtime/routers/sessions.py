"""Session CRUD endpoints (RPC-style).

All write operations use POST; reads use GET.  Thin HTTP adapter --
delegates to the relay service and translates domain errors.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from agentrelay.runtime.deps import Relay
from agentrelay.runtime.errors import NotFoundError, ValidationError
from agentrelay.runtime.models.api import DeleteResponse, SessionCreate, SessionResponse, SessionUpdate
from agentrelay.runtime.models.session import ChatMessage, Session, SessionSummary

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _not_found(session_id: str) -> HTTPException:
    return HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")


@router.post("/create", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(body: SessionCreate, relay: Relay) -> Session:
    """Create a new session.  ``cwd`` is required."""
    try:
        return relay.create_session(body.name, body.cwd, body.model)
    except ValidationError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None


@router.get("/list", response_model=list[SessionSummary])
async def list_sessions(relay: Relay) -> list[SessionSummary]:
    """List all sessions (metadata only), most recently active first."""
    return relay.list_sessions()


@router.get("/{session_id}/get", response_model=SessionResponse)
async def get_session(session_id: str, relay: Relay) -> Session:
    try:
        return relay.get_session(session_id)
    except NotFoundError:
        raise _not_found(session_id) from None


@router.post("/{session_id}/update", response_model=SessionResponse)
async def update_session(session_id: str, body: SessionUpdate, relay: Relay) -> Session:
    """Partially update a session (name, cwd, model)."""
    try:
        return relay.update_session(session_id, **body.model_dump(exclude_unset=True))
    except NotFoundError:
        raise _not_found(session_id) from None
    except ValidationError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None


@router.post("/{session_id}/delete", response_model=DeleteResponse)
async def delete_session(session_id: str, relay: Relay) -> DeleteResponse:
    """Delete a session, interrupting its run if one is active."""
    try:
        await relay.delete_session(session_id)
    except NotFoundError:
        raise _not_found(session_id) from None
    return DeleteResponse()


@router.get("/{session_id}/history", response_model=list[ChatMessage])
async def get_history(session_id: str, relay: Relay) -> list[ChatMessage]:
    """Message history of the current process lifetime."""
    try:
        return relay.get_history(session_id)
    except NotFoundError:
        raise _not_found(session_id) from None
