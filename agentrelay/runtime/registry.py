"""In-process run registry.

Tracks active runs with live handles for direct control (cancel, shutdown).
Ephemeral -- empty on process restart.  Session records live in the
SessionRegistry.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from agentrelay.runtime.context import RunHandle


class ShuttingDownError(RuntimeError):
    """Raised when attempting to register a run during shutdown."""


class RunRegistry:
    """Registry of currently executing runs, at most one per session.

    The registry also provides a drain mechanism for graceful shutdown:
    ``wait_until_drained`` blocks until all runs have been unregistered.
    """

    def __init__(self) -> None:
        self._runs: dict[str, RunHandle] = {}
        self._drain_event = asyncio.Event()
        self._drain_event.set()  # Starts "drained" (no runs).
        self._shutting_down = False

    # -- Mutation --------------------------------------------------------------

    def register(self, handle: RunHandle) -> None:
        """Register a run.  Raises ``ShuttingDownError`` if shutting down."""
        if self._shutting_down:
            raise ShuttingDownError
        logger.debug("Registry: register run for session {}", handle.session_id)
        self._runs[handle.session_id] = handle
        self._drain_event.clear()

    def unregister(self, session_id: str, handle: RunHandle | None = None) -> RunHandle | None:
        """Remove the run of *session_id*.

        When *handle* is given, only that exact handle is removed.
        """
        current = self._runs.get(session_id)
        if current is None or (handle is not None and current is not handle):
            return None
        del self._runs[session_id]
        logger.debug("Registry: unregister run for session {}", session_id)
        if not self._runs:
            self._drain_event.set()
        return current

    # -- Query -----------------------------------------------------------------

    def get(self, session_id: str) -> RunHandle | None:
        return self._runs.get(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._runs

    def all_runs(self) -> list[RunHandle]:
        """Return a snapshot of all active runs."""
        return list(self._runs.values())

    @property
    def active_count(self) -> int:
        return len(self._runs)

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New registrations are refused."""
        self._shutting_down = True
        logger.info("Registry: shutdown initiated, refusing new runs")
        if not self._runs:
            self._drain_event.set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # -- Control ---------------------------------------------------------------

    def interrupt_all(self) -> int:
        """Signal cancellation to every active run.

        Returns the number of runs signalled.
        """
        count = 0
        for handle in self._runs.values():
            if not handle.cancelled:
                handle.cancel()
                count += 1
                logger.info("Registry: interrupted run for session {}", handle.session_id)
        return count

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until all runs have been unregistered (drained).

        Returns ``True`` if the registry is empty, ``False`` if *timeout*
        expired with runs still active.
        """
        if not self._runs:
            return True
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Registry: drain timed out after {}s with {} runs still active",
                timeout,
                len(self._runs),
            )
            return False
        else:
            return True
