"""Relay service -- the core interface consumed by the HTTP layer.

Composes the session registry, the subscriber hub and the run coordinator.
Instantiated once during app lifespan; tests build isolated instances with a
fake agent service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger

from agentrelay.runtime.errors import NotFoundError, ValidationError
from agentrelay.runtime.execution.coordinator import RunCoordinator
from agentrelay.runtime.hub import SubscriberHub
from agentrelay.runtime.managers.sessions import SessionRegistry
from agentrelay.runtime.models.enums import EventType

if TYPE_CHECKING:
    from agentrelay.runtime.execution.upstream import AgentService
    from agentrelay.runtime.hub import Sink
    from agentrelay.runtime.models.session import ChatMessage, Session, SessionSummary
    from agentrelay.runtime.settings import RelaySettings


class RelayService:
    """Session CRUD, prompt submission and subscription in one place."""

    def __init__(
        self,
        agent: AgentService,
        *,
        sessions: SessionRegistry | None = None,
        hub: SubscriberHub | None = None,
        default_model: str = "claude-sonnet-4-5-20250929",
        tool_output_limit: int = 4000,
        cancel_grace_period: float = 10.0,
    ) -> None:
        self.sessions = sessions if sessions is not None else SessionRegistry()
        self.hub = hub if hub is not None else SubscriberHub()
        self.coordinator = RunCoordinator(
            self.sessions,
            self.hub,
            agent,
            tool_output_limit=tool_output_limit,
            cancel_grace_period=cancel_grace_period,
        )
        self._default_model = default_model

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        agent: AgentService,
        sessions: SessionRegistry | None = None,
    ) -> RelayService:
        return cls(
            agent,
            sessions=sessions,
            default_model=settings.default_model,
            tool_output_limit=settings.tool_output_limit,
            cancel_grace_period=settings.cancel_grace_period,
        )

    # -- Sessions --------------------------------------------------------------

    def create_session(self, name: str | None, cwd: str, model: str | None = None) -> Session:
        return self.sessions.create(name, cwd, model or self._default_model)

    def list_sessions(self) -> list[SessionSummary]:
        """Session summaries, most recently active first."""
        return sorted(self.sessions.list(), key=lambda s: s.last_active_at, reverse=True)

    def get_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(session_id)
        return session

    def update_session(self, session_id: str, **changes: Any) -> Session:
        """Apply user-editable changes (name, cwd, model)."""
        self.get_session(session_id)
        if "cwd" in changes and not (changes["cwd"] or "").strip():
            msg = "cwd must not be empty"
            raise ValidationError(msg)
        changes = {k: v for k, v in changes.items() if v is not None}
        session = self.sessions.update(session_id, **changes)
        if session is None:
            raise NotFoundError(session_id)
        return session

    async def delete_session(self, session_id: str) -> None:
        """Delete a session, force-cancelling its run first."""
        self.get_session(session_id)
        with self.coordinator.refusing_runs(session_id):
            if self.coordinator.is_running(session_id):
                await self.coordinator.cancel_and_wait(session_id)
            self.sessions.delete(session_id)
        self.hub.close_all(session_id)

    def get_history(self, session_id: str) -> list[ChatMessage]:
        self.get_session(session_id)
        return self.sessions.history(session_id)

    # -- Runs ------------------------------------------------------------------

    def submit_prompt(self, session_id: str, prompt: str) -> None:
        """Start a run; output arrives through subscriptions."""
        self.coordinator.start(session_id, prompt)

    def stop_run(self, session_id: str) -> bool:
        """Returns whether a run was interrupted."""
        return self.coordinator.cancel(session_id)

    # -- Subscriptions ---------------------------------------------------------

    def subscribe(self, session_id: str, sink: Sink) -> None:
        """Attach *sink* to a session and greet it with a ``connected`` event."""
        self.get_session(session_id)
        self.hub.subscribe(session_id, sink)
        self.hub.send_to(sink, session_id, EventType.CONNECTED, {"session_id": session_id})
        logger.info("Subscriber attached to session {} (total={})", session_id, self.hub.subscriber_count(session_id))

    # -- Lifecycle -------------------------------------------------------------

    async def shutdown(self, timeout: float | None = None) -> None:
        await self.coordinator.shutdown(timeout)
        await self.sessions.flush()
