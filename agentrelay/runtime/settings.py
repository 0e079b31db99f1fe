"""Service configuration loaded from RELAY_* environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class RelaySettings(BaseSettings):
    """Agent relay settings.

    All fields are read from environment variables with the ``RELAY_`` prefix.
    For example, ``RELAY_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Provider credentials used by the agent CLI itself are **not** managed
    here -- the CLI reads them from its own environment and config files.
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit one JSON object per log line instead of colored text."""

    # -- Data storage ----------------------------------------------------------
    data_root: str = "./data"
    """Directory holding the session metadata snapshot (``sessions.json``)."""

    data_prefix: str | None = None
    """Optional namespace directory inserted under ``data_root``."""

    persist_delay: float = 5.0
    """Seconds between the first unsaved mutation and the snapshot write."""

    # -- Agent -----------------------------------------------------------------
    default_model: str = "claude-sonnet-4-5-20250929"
    agent_command: str = "claude"
    """Executable of the agent CLI that produces ``stream-json`` output."""

    permission_mode: str = "bypassPermissions"

    # -- Streaming -------------------------------------------------------------
    tool_output_limit: int = 4000
    """Maximum characters of tool output forwarded in ``tool_complete``."""

    keepalive_interval: int = 30
    """Seconds between SSE keep-alive comments."""

    sink_queue_size: int = 1000
    """Buffered events per subscriber before it is considered stalled."""

    # -- Server ----------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 3456
    cancel_grace_period: float = 10.0
    """Seconds a cancelled run gets to unwind before its task is cancelled."""

    graceful_shutdown_timeout: int = 600
    """Seconds to wait for active runs to finish during shutdown.

    After this timeout, remaining runs are interrupted.  uvicorn's
    ``--timeout-graceful-shutdown`` must be >= this value for the wait to be
    effective.
    """


def get_settings() -> RelaySettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> RelaySettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return RelaySettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
