"""Shared fixtures for relay-runtime tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from agentrelay.runtime.app import app
from agentrelay.runtime.managers.sessions import SessionRegistry
from agentrelay.runtime.service import RelayService
from agentrelay.runtime.store.local import LocalSnapshotStore


@pytest.fixture
def registry(tmp_path) -> SessionRegistry:
    return SessionRegistry(LocalSnapshotStore(tmp_path), persist_delay=0.05)


@pytest.fixture
def relay(agent, registry: SessionRegistry) -> RelayService:
    return RelayService(agent, sessions=registry, default_model="test-model", cancel_grace_period=0.5)


@pytest.fixture
async def client(relay: RelayService) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with an isolated relay service.

    The app lifespan does NOT run under ``ASGITransport``, so the relay is
    pre-set on app state.
    """
    app.state.relay = relay

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await relay.coordinator.shutdown(timeout=0)
    app.state.relay = None
