"""
feedsync config - Show the resolved settings.
"""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax

from feedsync.config import load_settings
from feedsync.exceptions import ConfigurationError

app = typer.Typer(name="config", help="Show resolved feedsync settings", invoke_without_command=True)

console = Console()


@app.callback()
def config(
    ctx: typer.Context,
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Directory containing feedsync.yaml"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Explicit settings file"),
    plain: bool = typer.Option(False, "--plain", help="Print JSON without highlighting"),
) -> None:
    """
    Print the settings after file and environment resolution, secrets masked.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        settings = load_settings(project_dir, config_file=config_file)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        raise typer.Exit(1) from e

    text = json.dumps(settings.redacted(), indent=2)
    if plain:
        typer.echo(text)
    else:
        console.print(Syntax(text, "json", theme="monokai"))
