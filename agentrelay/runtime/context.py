"""Run handle -- in-flight state for a single run.

Created by the run coordinator when a run starts, registered in the
RunRegistry for cancellation and shutdown, discarded when the run's event
sequence is exhausted, fails, or is cancelled.  Never persisted.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field


@dataclass
class RunHandle:
    """Cancellation signal plus per-run stream bookkeeping."""

    session_id: str
    cancel_signal: asyncio.Event = field(default_factory=asyncio.Event)
    started_at: float = field(default_factory=time.monotonic)

    # -- Stream state ----------------------------------------------------------
    msg_id: str | None = None
    """Accumulator id of the assistant message currently being streamed."""

    text_buffer: list[str] = field(default_factory=list)
    """Streamed text not yet finalized by a full assistant turn."""

    tool_call_id: str | None = None
    tool_name: str | None = None

    completed: bool = False
    """Set once the terminal result has been relayed."""

    # -- Live references -------------------------------------------------------
    task: asyncio.Task[None] | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_signal.is_set()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def cancel(self) -> None:
        self.cancel_signal.set()

    def current_msg_id(self) -> str:
        """Return the current accumulator id, opening a new one if needed."""
        if self.msg_id is None:
            self.msg_id = uuid.uuid4().hex
        return self.msg_id

    def reset_turn(self) -> None:
        """Forget the finalized turn's accumulator."""
        self.msg_id = None
        self.text_buffer.clear()
        self.tool_call_id = None
        self.tool_name = None
