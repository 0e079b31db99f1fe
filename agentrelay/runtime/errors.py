"""Domain exceptions raised by the relay core.

Components raise these, never HTTP exceptions -- translating them into
status codes is the router's responsibility.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay domain errors."""


class ValidationError(RelayError, ValueError):
    """Bad input to a create / submit operation (missing required field)."""


class NotFoundError(RelayError, LookupError):
    """Unknown session id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id


class ConflictError(RelayError):
    """A run was requested on a session that is already running."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' is already running")
        self.session_id = session_id


class UpstreamError(RelayError):
    """The agent service failed mid-run."""


class RunCancelledError(RelayError):
    """Cooperative cancellation was observed while consuming a run."""
