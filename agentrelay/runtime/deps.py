"""FastAPI dependency injection for the relay service and settings.

Usage in route handlers::

    @router.get("/sessions/list")
    async def list_sessions(relay: Relay) -> list[SessionSummary]:
        ...

The service dependency raises HTTP 503 if the lifespan has not initialised
it (or has already torn it down).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from agentrelay.runtime.service import RelayService
from agentrelay.runtime.settings import RelaySettings, get_settings


def get_relay(request: Request) -> RelayService:
    """Return the process-wide relay service from app state."""
    relay: RelayService | None = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay service not initialised.",
        )
    return relay


# -- Annotated type aliases for concise route signatures ---------------------

Relay = Annotated[RelayService, Depends(get_relay)]
"""Annotated dependency: the shared relay service."""

Settings = Annotated[RelaySettings, Depends(get_settings)]
"""Annotated dependency: cached service settings."""
