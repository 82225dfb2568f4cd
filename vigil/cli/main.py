"""Vigil CLI — Entry point.

Usage:
    vigil run
    vigil watchers list
    vigil watchers add '{"type": "interval", "interval_secs": 60}' --action ping --reply-channel c1
    vigil watchers show <watcher_id>
    vigil watchers pause <watcher_id>
    vigil watchers resume <watcher_id>
    vigil watchers remove <watcher_id>
"""

from __future__ import annotations

import typer
from rich.console import Console

from vigil.cli.commands import daemon, watchers

app = typer.Typer(
    name="vigil",
    help="Vigil — persistent watchers that fire events when their conditions are met.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.command("run")(daemon.run)
app.add_typer(watchers.app, name="watchers")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
