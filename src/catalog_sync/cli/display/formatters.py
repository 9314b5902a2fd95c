"""Display formatters and UI helpers for CLI."""

import logging
from datetime import datetime
from typing import Any, Dict, List

from rich.console import Console
from rich.table import Table

from ...preferences import SyncPreferences

console = Console()
logger = logging.getLogger(__name__)

MAX_DISPLAYED_ERRORS = 10


def display_errors(errors: List[str]) -> None:
    """Display the first errors of an operation.

    Args:
        errors: Error messages
    """
    if not errors:
        return
    console.print(f"\n[red]⚠️  {len(errors)} error(s) occurred:[/red]")
    for error in errors[:MAX_DISPLAYED_ERRORS]:
        console.print(f"  • {error}")
    if len(errors) > MAX_DISPLAYED_ERRORS:
        console.print(f"  ... and {len(errors) - MAX_DISPLAYED_ERRORS} more")


def display_sync_result(summary: Dict[str, Any]) -> None:
    """Display sync pass results.

    Args:
        summary: Summary dictionary from SyncResult.get_summary()
    """
    if summary["success"]:
        console.print("\n[bold green]✓ Sync operation completed[/bold green]\n")
    else:
        console.print("\n[bold red]✗ Sync operation failed[/bold red]\n")

    table = Table(show_header=True, header_style="bold magenta", title="Sync Pass")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Mode", summary["mode"].title())
    if summary.get("deep_scan"):
        table.add_row("Deep Scan", "yes")
    table.add_row("Tracks Deleted", str(summary["deleted"]))
    table.add_row("Tracks Fetched", str(summary["fetched"]))
    table.add_row("Tracks Persisted", str(summary["persisted"]))
    table.add_row("Tracks in Catalog", str(summary["total_tracks"]))
    if summary.get("cleared"):
        table.add_row("Catalog", "[yellow]cleared[/yellow]")
    table.add_row("Duration", f"{summary['duration_seconds']:.1f}s")

    console.print(table)
    console.print()

    entities = summary.get("entities")
    if entities:
        table = Table(show_header=True, header_style="bold magenta", title="Entities")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", style="green", justify="right")

        table.add_row("Merged with Local Edits", str(entities["merged"]))
        table.add_row("Books", str(entities["books"]))
        table.add_row("Authors", str(entities["authors"]))

        console.print(table)
        console.print()

    if summary.get("annotations_assigned"):
        console.print(
            f"[green]✓ Assigned lyrics to {summary['annotations_assigned']} "
            f"tracks[/green]"
        )
    if summary.get("artwork_orphans_removed"):
        console.print(
            f"[dim]Removed {summary['artwork_orphans_removed']} orphaned artwork "
            f"files[/dim]"
        )


def display_status(
    stats: Dict[str, Any],
    cache_size: str,
    cache_files: int,
    preferences: SyncPreferences,
) -> None:
    """Display catalog and cache status.

    Args:
        stats: Row counts from DatabaseService.get_statistics()
        cache_size: Formatted artwork cache size
        cache_files: Number of cached artwork images
        preferences: Current sync preferences
    """
    table = Table(show_header=True, header_style="bold magenta", title="Catalog")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Tracks", str(stats["tracks"]))
    table.add_row("Books", str(stats["books"]))
    table.add_row("Authors", str(stats["authors"]))
    table.add_row("Author Links", str(stats["cross_refs"]))
    table.add_row("Artwork Cache", f"{cache_size} ({cache_files} files)")
    table.add_row("Last Sync", _format_timestamp(preferences.last_sync_timestamp))
    if preferences.rescan_required:
        table.add_row("Rescan", "[yellow]required[/yellow]")

    console.print(table)


def display_preferences(preferences: SyncPreferences) -> None:
    """Display sync preferences.

    Args:
        preferences: Current sync preferences
    """
    table = Table(show_header=False, title="Sync Preferences")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row(
        "Author Delimiters",
        " ".join(repr(d) for d in preferences.author_delimiters) or "(none)",
    )
    table.add_row("Group by Book Author", str(preferences.group_by_book_author))
    table.add_row(
        "Allowed Directories",
        "\n".join(sorted(preferences.allowed_directories)) or "(none)",
    )
    table.add_row(
        "Blocked Directories",
        "\n".join(sorted(preferences.blocked_directories)) or "(none)",
    )
    table.add_row("Auto-scan Lyrics", str(preferences.auto_scan_annotations))
    table.add_row("Rescan Required", str(preferences.rescan_required))
    table.add_row("Last Sync", _format_timestamp(preferences.last_sync_timestamp))

    console.print(table)


def _format_timestamp(timestamp_ms: int) -> str:
    if timestamp_ms <= 0:
        return "never"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")
