"""
feedsync serve - Run on the cron schedule until stopped.
"""

import asyncio
from pathlib import Path

import typer

from feedsync.cli.common import bootstrap
from feedsync.exceptions import FeedSyncError
from feedsync.job import FeedSyncJob
from feedsync.service.scheduler import Scheduler
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.cli.serve")

app = typer.Typer(name="serve", help="Run feed sync on its cron schedule", invoke_without_command=True)


@app.callback()
def serve(
    ctx: typer.Context,
    run_now: bool = typer.Option(False, "--run-now", help="Also run one pass immediately on startup"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Directory containing feedsync.yaml"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Explicit settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """
    Validate CRON_SCHEDULE, then trigger a pass at every fire time.

    Stops cleanly on SIGINT/SIGTERM once any active pass has finished.
    """
    if ctx.invoked_subcommand is not None:
        return

    settings = bootstrap(project_dir, config_file, verbose)
    try:
        job = FeedSyncJob(settings)
        scheduler = Scheduler(job, settings.schedule)
    except FeedSyncError as e:
        logger.error(e.message)
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1) from e

    async def _serve() -> None:
        if run_now:
            await job.run_once()
        await scheduler.serve()

    asyncio.run(_serve())
