"""Artwork cache commands."""

import click
from rich.console import Console

from ...config import Config
from .init import InitializationError, init_artwork_cache, init_db

console = Console()


@click.group("cache")
def cache() -> None:
    """Manage the artwork cache."""
    pass


@cache.command(name="size")
def cache_size() -> None:
    """Show the artwork cache size."""
    manager = init_artwork_cache(Config())
    console.print(
        f"Artwork cache: [green]{manager.size_formatted()}[/green] "
        f"in {manager.file_count()} files "
        f"(limit {manager.max_size_bytes // (1024 * 1024)} MB)"
    )


@cache.command(name="clean")
def cache_clean() -> None:
    """Remove artwork for deleted tracks and evict files over the size limit."""
    config = Config()
    manager = init_artwork_cache(config)
    try:
        db_service = init_db(config)
    except InitializationError as e:
        raise click.ClickException(str(e))

    try:
        orphans = manager.clean_orphans(db_service.get_all_track_ids())
    finally:
        db_service.close()
    evicted = manager.clean_if_over_cap(force=True)

    console.print(
        f"[green]✓ Removed {orphans} orphaned and {evicted} evicted files[/green]"
    )
    console.print(f"  Cache size: {manager.size_formatted()}")


@cache.command(name="clear")
@click.confirmation_option(prompt="Delete all cached artwork?")
def cache_clear() -> None:
    """Delete all cached artwork."""
    deleted = init_artwork_cache(Config()).clear_all()
    console.print(f"[green]✓ Deleted {deleted} cached files[/green]")
