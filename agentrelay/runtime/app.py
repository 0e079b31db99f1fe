import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.routing import APIRouter
from loguru import logger
from sse_starlette.sse import AppStatus

from agentrelay.runtime.execution.agent_cli import AgentCliService
from agentrelay.runtime.log import setup_logging
from agentrelay.runtime.managers.sessions import SessionRegistry
from agentrelay.runtime.service import RelayService
from agentrelay.runtime.settings import get_settings
from agentrelay.runtime.store.local import LocalSnapshotStore

_STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, json=settings.log_json)

    logger.info("Agent Relay starting (host={}, port={})", settings.host, settings.port)

    # -- Session registry ------------------------------------------------------
    store = LocalSnapshotStore(settings.data_root, prefix=settings.data_prefix)
    sessions = SessionRegistry(store, persist_delay=settings.persist_delay)
    loaded = await sessions.load()
    logger.info("Sessions: {} loaded from {}", loaded, store.path)

    # -- Upstream agent --------------------------------------------------------
    agent = AgentCliService(settings.agent_command, permission_mode=settings.permission_mode)
    logger.info("Agent: {} (default model={})", settings.agent_command, settings.default_model)

    _app.state.relay = RelayService.from_settings(settings, agent, sessions=sessions)

    yield

    # -- Shutdown --------------------------------------------------------------
    relay: RelayService = _app.state.relay
    logger.info("Agent Relay shutting down (active_runs={})", relay.coordinator.runs.active_count)

    # 1. Refuse new runs, drain active ones, interrupt leftovers; flush metadata.
    await relay.shutdown(timeout=settings.graceful_shutdown_timeout)
    logger.info("Sessions: snapshot flushed")

    # 2. Signal SSE streams to close.  Must happen AFTER the drain so that
    #    subscribers receive the final status events.
    AppStatus.should_exit = True
    _app.state.relay = None


app = FastAPI(title="Agent Relay", lifespan=lifespan)

# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health(request: Request) -> dict[str, object]:
    relay: RelayService | None = getattr(request.app.state, "relay", None)
    return {
        "status": "ok",
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "active_runs": relay.coordinator.runs.active_count if relay is not None else 0,
    }


from agentrelay.runtime.routers.chat import router as chat_router  # noqa: E402
from agentrelay.runtime.routers.sessions import router as sessions_router  # noqa: E402

api.include_router(sessions_router)
api.include_router(chat_router)

app.include_router(api)
