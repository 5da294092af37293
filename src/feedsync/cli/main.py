"""
Main CLI entry point.
"""

import typer

from feedsync import __version__
from feedsync.cli import config, run, serve


def version_callback(value: bool):
    if value:
        typer.echo(f"feedsync version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="feedsync",
    help="feedsync - vendor product feed to catalog synchronisation",
    add_completion=False,
)

app.add_typer(run.app, name="run")
app.add_typer(serve.app, name="serve")
app.add_typer(config.app, name="config")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    feedsync - vendor product feed to catalog synchronisation.

    Run 'feedsync <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
