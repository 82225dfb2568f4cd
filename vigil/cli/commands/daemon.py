"""CLI — Run the watcher supervisor in the foreground."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vigil.config import Settings
from vigil.exceptions import PersistenceError
from vigil.logging import configure_logging, get_logger
from vigil.watchers.sinks import EventSink, LogEventSink, NullEventSink
from vigil.watchers.store import SqliteWatcherStore
from vigil.watchers.supervisor import WatcherSupervisor

app = typer.Typer(help="Run the watcher supervisor.")
console = Console()
log = get_logger(__name__)


@app.command("run")
def run(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Override the configured log level.")
    ] = None,
) -> None:
    """Start the supervisor and run until interrupted (Ctrl+C / SIGTERM)."""
    settings = Settings.load(config_file=config)
    configure_logging(
        level=log_level or settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )

    console.print(
        f"[bold green]Starting Vigil[/bold green] (store: {settings.store.db_path.expanduser()})"
    )
    try:
        asyncio.run(serve(settings))
    except PersistenceError as exc:
        console.print(f"[red]Cannot start: {exc.message}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass
    console.print("[dim]Vigil stopped.[/dim]")


def build_sink(settings: Settings) -> EventSink:
    if settings.sink.events_file is None:
        return NullEventSink()
    return LogEventSink(settings.sink.events_file)


async def serve(settings: Settings, stop: asyncio.Event | None = None) -> None:
    """Run a supervisor over the configured store until *stop* is set."""
    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass  # Windows / non-main thread

    async with SqliteWatcherStore(settings.store.db_path) as store:
        supervisor = WatcherSupervisor(store, sink=build_sink(settings), config=settings.supervisor)
        async with supervisor:
            log.info("vigil_running", scheduled=len(supervisor.scheduled_ids()))
            await stop.wait()
