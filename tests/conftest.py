"""Shared test fixtures and fakes.

The relay core is exercised with in-memory collaborators only: a scripted
agent service standing in for the upstream CLI and recording sinks standing
in for SSE connections.  No subprocess or network access is needed except in
the agent CLI tests, which run a tiny fake CLI script.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import AsyncGenerator, Callable, Iterator
from typing import Any

import pytest
from sse_starlette import ServerSentEvent

from agentrelay.runtime.errors import RunCancelledError
from agentrelay.runtime.execution.upstream import RunOptions
from agentrelay.runtime.hub import SinkClosedError
from agentrelay.runtime.models.upstream import UpstreamEvent
from agentrelay.runtime.settings import _get_settings_cached


def _set_env(key: str, value: str) -> None:
    """Set an env var and invalidate the settings cache."""
    os.environ[key] = value
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ScriptedAgent:
    """AgentService that replays one scripted event list per run.

    Script items are upstream events, exceptions (raised in place),
    ``asyncio.Event`` gates (awaited) or ``WAIT_FOR_CANCEL``, which blocks
    until the run's cancel signal fires and then raises.
    """

    WAIT_FOR_CANCEL = object()

    def __init__(self, *scripts: list[Any]) -> None:
        self._scripts = list(scripts)
        self.calls: list[tuple[str, RunOptions]] = []

    def add_script(self, script: list[Any]) -> None:
        self._scripts.append(script)

    async def begin_run(self, prompt: str, options: RunOptions) -> AsyncGenerator[UpstreamEvent, None]:
        self.calls.append((prompt, options))
        script = self._scripts.pop(0) if self._scripts else []
        for item in script:
            await asyncio.sleep(0)
            if item is self.WAIT_FOR_CANCEL:
                await options.cancel_signal.wait()
                raise RunCancelledError
            if isinstance(item, asyncio.Event):
                await item.wait()
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item


class RecordingSink:
    """Sink that records delivered events as ``(name, payload)`` pairs."""

    def __init__(self, *, fail: bool = False) -> None:
        self.events: list[tuple[str, dict]] = []
        self.fail = fail
        self.closed = False
        self._callbacks: list[Callable[[], None]] = []

    def send(self, event: ServerSentEvent) -> None:
        if self.fail or self.closed:
            raise SinkClosedError
        self.events.append((event.event, json.loads(event.data)))

    def on_close(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for callback in self._callbacks:
            callback()

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> list[dict]:
        return [payload for event_name, payload in self.events if event_name == name]

    def statuses(self) -> list[str]:
        return [payload["status"] for payload in self.payloads("status")]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def agent() -> ScriptedAgent:
    return ScriptedAgent()


@pytest.fixture
def make_sink() -> type[RecordingSink]:
    return RecordingSink


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def relay_env(tmp_path) -> Iterator[None]:
    """Point settings at a temporary data root."""
    _set_env("RELAY_DATA_ROOT", str(tmp_path))
    yield
    os.environ.pop("RELAY_DATA_ROOT", None)
    _get_settings_cached.cache_clear()
