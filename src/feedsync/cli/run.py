"""
feedsync run - Run one sync pass now.
"""

import asyncio
from pathlib import Path

import typer

from feedsync.cli.common import bootstrap
from feedsync.exceptions import FeedSyncError
from feedsync.job import FeedSyncJob
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.cli.run")

app = typer.Typer(name="run", help="Run one feed sync pass now", invoke_without_command=True)


@app.callback()
def run(
    ctx: typer.Context,
    dry_run: bool | None = typer.Option(None, "--dry-run/--no-dry-run", help="Log intended changes without writing"),
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Items per dispatch batch"),
    no_updates: bool = typer.Option(False, "--no-updates", help="Only create new products; skip existing ones"),
    skip_download: bool = typer.Option(
        False, "--skip-download", help="Use the newest feed file already in the download directory"
    ),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Directory containing feedsync.yaml"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Explicit settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """
    Transfer the latest feed, reconcile it with the catalog and push the changes.

    Exits with code 1 when the pass fails before producing a result.
    """
    if ctx.invoked_subcommand is not None:
        return

    settings = bootstrap(project_dir, config_file, verbose)
    try:
        job = FeedSyncJob(settings)
    except FeedSyncError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1) from e

    report = asyncio.run(
        job.run_once(
            dry_run=dry_run,
            batch_size=batch_size,
            enable_updates=False if no_updates else None,
            skip_download=skip_download,
        )
    )
    if report is None:
        raise typer.Exit(1)

    result = report.result
    typer.echo(
        f"{report.source_file}: {result.created} created, {result.updated} updated, "
        f"{result.skipped} unchanged, {result.error_count} errors"
        f"{' (dry run)' if result.dry_run else ''}"
    )
