"""Command-line interface for the catalog sync application.

This is the main entry point that delegates to command modules.
"""

from pathlib import Path
from typing import Optional

import click

from ..utils.logging_config import setup_logging
from .commands import cache, prefs, status, sync_command


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    envvar="CATALOG_SYNC_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level",
)
@click.option("--log-file", type=click.Path(), help="Log to file")
def cli(log_level: str, log_file: Optional[str]) -> None:
    """Media catalog sync tool.

    Keeps the local catalog of tracks, books and authors in step with the
    media index.
    """
    setup_logging(log_level=log_level, log_file=Path(log_file) if log_file else None)


cli.add_command(sync_command)
cli.add_command(status)
cli.add_command(cache)
cli.add_command(prefs)


if __name__ == "__main__":
    cli()
