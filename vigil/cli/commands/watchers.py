"""CLI — Watcher management commands.

These commands edit the store directly and do not need a running
supervisor.  A running ``vigil run`` picks up the changes on its next
reload (see ``supervisor.reload_interval_seconds``).
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from vigil.config import Settings
from vigil.exceptions import ConfigError, PersistenceError
from vigil.watchers.models import Watcher, parse_kind
from vigil.watchers.store import SqliteWatcherStore, WatcherStore

app = typer.Typer(help="Add, inspect, pause, resume, and remove watchers.")
console = Console()

_T = TypeVar("_T")

_DB_OPTION = typer.Option(None, "--db", help="Watcher database (defaults to the configured path).")
_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config.yaml.")


def _run(db: Path | None, config: Path | None, fn: Callable[[WatcherStore], Awaitable[_T]]) -> _T:
    """Open the store, run *fn* against it, and close it again."""
    db_path = db or Settings.load(config_file=config).store.db_path

    async def _main() -> _T:
        async with SqliteWatcherStore(db_path) as store:
            return await fn(store)

    try:
        return asyncio.run(_main())
    except PersistenceError as exc:
        console.print(f"[red]Store error: {exc.message}[/red]")
        raise typer.Exit(1)


@app.command("list")
def list_watchers(
    active_only: bool = typer.Option(False, "--active", help="Only show active watchers."),
    db: Path | None = _DB_OPTION,
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """List watchers, oldest first."""
    watchers = _run(db, config, lambda store: store.list_all())
    if active_only:
        watchers = [w for w in watchers if w.active]

    table = Table(title="Watchers")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Description")
    table.add_column("Action")
    table.add_column("Reply channel")
    table.add_column("Active")

    for w in watchers:
        table.add_row(
            w.id,
            w.kind.type,
            w.description(),
            w.action,
            w.reply_channel,
            "[green]yes[/green]" if w.active else "[dim]no[/dim]",
        )
    console.print(table)


@app.command("add")
def add_watcher(
    kind: str = typer.Argument(help='Kind as JSON, e.g. \'{"type": "interval", "interval_secs": 60}\'.'),
    action: str = typer.Option(..., "--action", "-a", help="What to do when the watcher fires."),
    reply_channel: str = typer.Option(..., "--reply-channel", "-r", help="Where to send results."),
    db: Path | None = _DB_OPTION,
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Validate and persist a new active watcher."""
    try:
        kind_data: Any = json.loads(kind)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid kind JSON: {exc}[/red]")
        raise typer.Exit(1)
    if not isinstance(kind_data, dict):
        console.print("[red]Kind must be a JSON object with a 'type' field.[/red]")
        raise typer.Exit(1)

    try:
        parsed = parse_kind(kind_data)
    except ConfigError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1)

    watcher = Watcher(kind=parsed, action=action, reply_channel=reply_channel)
    _run(db, config, lambda store: store.save(watcher))
    console.print(f"[green]Watcher added:[/green] {watcher.id}")
    console.print(watcher.description())


@app.command("show")
def show_watcher(
    watcher_id: str = typer.Argument(),
    json_output: bool = typer.Option(False, "--json"),
    db: Path | None = _DB_OPTION,
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Show one watcher's full definition."""
    watcher = _run(db, config, lambda store: store.get_by_id(watcher_id))
    if watcher is None:
        console.print(f"[red]Watcher not found: {watcher_id}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print(Syntax(json.dumps(watcher.to_dict(), indent=2), "json"))
        return

    console.print(f"[bold]Watcher:[/bold] {watcher.id}")
    console.print(f"[bold]Description:[/bold] {watcher.description()}")
    console.print(f"[bold]Action:[/bold] {watcher.action}")
    console.print(f"[bold]Reply channel:[/bold] {watcher.reply_channel}")
    console.print(f"[bold]Active:[/bold] {watcher.active}")

    table = Table(title="Kind")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in watcher.kind.to_dict().items():
        table.add_row(key, "***" if key == "github_token" and value else str(value))
    console.print(table)


@app.command("pause")
def pause_watcher(
    watcher_id: str = typer.Argument(),
    db: Path | None = _DB_OPTION,
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Mark a watcher inactive."""

    async def _pause(store: WatcherStore) -> bool:
        if await store.get_by_id(watcher_id) is None:
            return False
        await store.deactivate(watcher_id)
        return True

    if not _run(db, config, _pause):
        console.print(f"[red]Watcher not found: {watcher_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Watcher {watcher_id} paused.[/green]")


@app.command("resume")
def resume_watcher(
    watcher_id: str = typer.Argument(),
    db: Path | None = _DB_OPTION,
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Mark a paused watcher active again."""

    async def _resume(store: WatcherStore) -> bool:
        watcher = await store.get_by_id(watcher_id)
        if watcher is None:
            return False
        if not watcher.active:
            watcher.active = True
            await store.save(watcher)
        return True

    if not _run(db, config, _resume):
        console.print(f"[red]Watcher not found: {watcher_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Watcher {watcher_id} resumed.[/green]")


@app.command("remove")
def remove_watcher(
    watcher_id: str = typer.Argument(),
    db: Path | None = _DB_OPTION,
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Permanently delete a watcher.  Removing an unknown ID is not an error."""
    deleted = _run(db, config, lambda store: store.delete(watcher_id))
    if deleted:
        console.print(f"[green]Watcher {watcher_id} removed.[/green]")
    else:
        console.print(f"[yellow]No watcher {watcher_id}; nothing to remove.[/yellow]")
