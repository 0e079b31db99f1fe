"""Interface to the upstream agent service.

The service is a black box: given a prompt and options it produces a lazy
sequence of typed events (see ``models.upstream``) that ends on completion
or raises on cancellation / failure.  Each run gets a fresh sequence.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from agentrelay.runtime.models.upstream import UpstreamEvent


@dataclass(frozen=True)
class RunOptions:
    model: str
    cwd: str
    resume_token: str | None = None
    cancel_signal: asyncio.Event = field(default_factory=asyncio.Event)


@runtime_checkable
class AgentService(Protocol):
    def begin_run(self, prompt: str, options: RunOptions) -> AsyncGenerator[UpstreamEvent, None]:
        """Start a run and return its event sequence.

        Implementations must watch ``options.cancel_signal`` and stop
        promptly (raising ``RunCancelledError``) once it is set.
        """
        ...
