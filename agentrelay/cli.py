import click


@click.group()
def main() -> None:
    """Agent Relay - stream agent runs to the browser."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from RELAY_HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: from RELAY_PORT or 3456).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the relay server."""
    import uvicorn

    from agentrelay.runtime.settings import RelaySettings

    settings = RelaySettings()

    uvicorn.run(
        "agentrelay.runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Leave room for the run drain plus the final snapshot flush.
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 30,
    )


@main.command()
def sessions() -> None:
    """Print the persisted session metadata snapshot."""
    import asyncio

    from agentrelay.runtime.managers.sessions import SessionRegistry
    from agentrelay.runtime.settings import RelaySettings
    from agentrelay.runtime.store.local import LocalSnapshotStore

    settings = RelaySettings()
    registry = SessionRegistry(LocalSnapshotStore(settings.data_root, prefix=settings.data_prefix))
    asyncio.run(registry.load())

    summaries = sorted(registry.list(), key=lambda s: s.last_active_at, reverse=True)
    if not summaries:
        click.echo("No sessions.")
        return
    for s in summaries:
        click.echo(f"{s.id}  {s.status:<7}  ${s.total_cost:.4f}  {s.name}  ({s.cwd})")


if __name__ == "__main__":
    main()
