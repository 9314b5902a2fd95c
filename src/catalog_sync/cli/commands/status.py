"""Status command: catalog counts and artwork cache size."""

import click

from ...config import Config
from ..display import display_status
from .init import (
    InitializationError,
    init_artwork_cache,
    init_db,
    init_preferences,
)


@click.command("status")
def status() -> None:
    """Show catalog statistics and cache status."""
    config = Config()
    try:
        db_service = init_db(config)
    except InitializationError as e:
        raise click.ClickException(str(e))

    try:
        stats = db_service.get_statistics()
    finally:
        db_service.close()

    cache = init_artwork_cache(config)
    display_status(
        stats,
        cache.size_formatted(),
        cache.file_count(),
        init_preferences(config).load(),
    )
