"""Session registry -- authoritative in-memory record of every session.

The SessionRegistry is a process-level component initialised in the app
lifespan.  It holds two kinds of data with different durability:

- **Metadata** (identity, cwd, model, resume token, status, counters,
  timestamps): written to the snapshot store after every mutation, coalesced
  into one write per ``persist_delay`` window.
- **Message history**: in memory only.  It is never part of a snapshot and is
  lost on restart.

The registry knows nothing about streaming; run state is written here by the
run coordinator.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

from agentrelay.runtime.errors import ValidationError
from agentrelay.runtime.models.enums import SessionStatus
from agentrelay.runtime.models.session import ChatMessage, Session, SessionSummary, utcnow

if TYPE_CHECKING:
    from agentrelay.runtime.store.base import SnapshotStore


class SessionRegistry:
    """Owns every ``Session`` record of the process.

    Instantiated once during app lifespan (tests build isolated instances).
    With ``store=None`` nothing is persisted.
    """

    def __init__(self, store: SnapshotStore | None = None, *, persist_delay: float = 5.0) -> None:
        self._store = store
        self._persist_delay = persist_delay
        self._sessions: dict[str, Session] = {}
        self._save_task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._dirty = False

    # -- Create ----------------------------------------------------------------

    def create(self, name: str | None, cwd: str, model: str) -> Session:
        """Create a new idle session.  Raises ``ValidationError`` if *cwd* is empty."""
        if not cwd or not cwd.strip():
            msg = "cwd is required"
            raise ValidationError(msg)

        session = Session(name=name or "New Session", cwd=cwd, model=model)
        self._sessions[session.id] = session
        self._schedule_save()

        logger.info("Session created: {} (name={!r}, cwd={}, model={})", session.id, session.name, cwd, model)
        return session

    # -- Read ------------------------------------------------------------------

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list(self) -> list[SessionSummary]:
        """Return metadata summaries in creation order.  Callers sort by recency."""
        return [s.summary() for s in self._sessions.values()]

    def history(self, session_id: str) -> list[ChatMessage]:
        session = self._sessions.get(session_id)
        return list(session.messages) if session else []

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # -- Mutation --------------------------------------------------------------

    def update(self, session_id: str, **fields: Any) -> Session | None:
        """Apply *fields* to a session and refresh ``last_active_at``.

        Returns ``None`` if the session is unknown -- callers must check.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return None
        for key, value in fields.items():
            setattr(session, key, value)
        session.last_active_at = utcnow()
        self._schedule_save()
        return session

    def add_usage(self, session_id: str, *, cost: float, input_tokens: int, output_tokens: int) -> Session | None:
        """Add one run's usage to the cumulative counters (never overwrite)."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return self.update(
            session_id,
            total_cost=session.total_cost + max(cost, 0.0),
            total_input_tokens=session.total_input_tokens + max(input_tokens, 0),
            total_output_tokens=session.total_output_tokens + max(output_tokens, 0),
        )

    def append_message(self, session_id: str, message: ChatMessage) -> None:
        """Append to the in-memory history.  No-op if the session is unknown."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.messages.append(message)
        session.last_active_at = utcnow()

    def delete(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            self._schedule_save()
            logger.info("Session deleted: {}", session_id)
        return removed

    # -- Persistence -----------------------------------------------------------

    def snapshot(self) -> list[dict[str, Any]]:
        """Serializable metadata of every session, without message bodies."""
        return [s.model_dump(mode="json", exclude={"messages"}) for s in self._sessions.values()]

    @property
    def save_pending(self) -> bool:
        return self._save_task is not None or self._dirty

    def _schedule_save(self) -> None:
        """Schedule one snapshot write ``persist_delay`` seconds from now.

        First-write-wins: while a write is pending, later mutations ride along
        with it and the delay is not reset.
        """
        if self._store is None or self._save_task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet (sync caller); ``flush`` picks it up.
            self._dirty = True
            return
        self._save_task = loop.create_task(self._save_later())

    async def _save_later(self) -> None:
        await asyncio.sleep(self._persist_delay)
        self._save_task = None
        await self._save()

    async def _save(self) -> None:
        if self._store is None:
            return
        # One write at a time; the snapshot is taken inside the lock so the
        # last write to land always carries the newest state.
        async with self._write_lock:
            self._dirty = False
            records = self.snapshot()
            try:
                await self._store.write_snapshot(records)
            except Exception:
                logger.exception("Registry: snapshot write failed ({} sessions)", len(records))
            else:
                logger.debug("Registry: snapshot written ({} sessions)", len(records))

    async def flush(self) -> None:
        """Write the snapshot now, superseding any pending scheduled write.

        A write already in progress finishes first.
        """
        task, self._save_task = self._save_task, None
        if task is not None:
            task.cancel()
        await self._save()

    async def load(self) -> int:
        """Load session metadata from the snapshot store.

        Missing or corrupt snapshots never fail startup: the registry starts
        empty instead.  Sessions persisted as ``running`` cannot have a live
        run after a restart and are restored as ``error``.

        Returns the number of sessions loaded.
        """
        if self._store is None:
            return 0

        try:
            records = await self._store.read_snapshot()
            sessions = [Session.model_validate(record) for record in records]
        except FileNotFoundError:
            logger.info("Registry: no snapshot found, starting empty")
            return 0
        except (OSError, ValueError, TypeError):
            logger.opt(exception=True).warning("Registry: snapshot unreadable, starting empty")
            return 0

        orphaned = 0
        for session in sessions:
            session.messages = []
            if session.status == SessionStatus.RUNNING:
                session.status = SessionStatus.ERROR
                orphaned += 1
        self._sessions = {s.id: s for s in sessions}

        if orphaned > 0:
            logger.warning("Startup recovery: marked {} orphaned running sessions as error", orphaned)
            self._schedule_save()
        logger.info("Registry: loaded {} sessions", len(sessions))
        return len(sessions)
