"""
Shared CLI bootstrap: load settings and configure logging.
"""

from pathlib import Path

import typer

from feedsync.config import Settings, load_settings
from feedsync.exceptions import ConfigurationError
from feedsync.utils.logging import get_logger, setup_logging

logger = get_logger("feedsync.cli")


def bootstrap(project_dir: Path, config_file: Path | None, verbose: bool = False) -> Settings:
    """Load settings and install log handlers; exits with code 1 on bad configuration."""
    try:
        settings = load_settings(project_dir, config_file=config_file)
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Configuration error: {e.message}")
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1) from e

    setup_logging(level="DEBUG" if verbose else settings.logging.level, log_file=settings.logging.file)
    return settings
