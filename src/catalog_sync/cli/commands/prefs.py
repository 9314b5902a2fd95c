"""Preference commands: delimiters, directory rules, grouping."""

import os
from typing import Tuple

import click
from rich.console import Console

from ...config import Config
from ...preferences import SyncPreferences
from ..display import display_preferences
from .init import init_preferences

console = Console()


def _rescan_hint(preferences: SyncPreferences) -> None:
    if preferences.rescan_required:
        console.print(
            "[yellow]→ Run 'catalog-sync sync --mode full' to apply the change[/yellow]"
        )


@click.group("prefs")
def prefs() -> None:
    """View and change sync preferences."""
    pass


@prefs.command(name="show")
def prefs_show() -> None:
    """Show current sync preferences."""
    display_preferences(init_preferences(Config()).load())


@prefs.command(name="delimiters")
@click.argument("delimiters", nargs=-1, required=True)
def prefs_delimiters(delimiters: Tuple[str, ...]) -> None:
    """Set the strings that separate several authors.

    Examples:
        catalog-sync prefs delimiters / ";" "&"
    """
    try:
        preferences = init_preferences(Config()).set_author_delimiters(
            list(delimiters)
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    console.print(
        "[green]✓ Author delimiters: "
        f"{' '.join(repr(d) for d in preferences.author_delimiters)}[/green]"
    )
    _rescan_hint(preferences)


def _update_directory_rule(directory: str, blocked: bool, remove: bool) -> None:
    path = os.path.abspath(os.path.expanduser(directory))

    def _apply(preferences: SyncPreferences) -> None:
        target = (
            preferences.blocked_directories
            if blocked
            else preferences.allowed_directories
        )
        other = (
            preferences.allowed_directories
            if blocked
            else preferences.blocked_directories
        )
        if remove:
            target.discard(path)
        else:
            target.add(path)
            other.discard(path)

    init_preferences(Config()).update(_apply)
    kind = "blocked" if blocked else "allowed"
    action = "Removed from" if remove else "Added to"
    console.print(f"[green]✓ {action} {kind} directories: {path}[/green]")


@prefs.command(name="allow")
@click.argument("directory", type=click.Path())
@click.option("--remove", is_flag=True, help="Remove the directory from the list")
def prefs_allow(directory: str, remove: bool) -> None:
    """Always sync DIRECTORY, even inside a blocked directory."""
    _update_directory_rule(directory, blocked=False, remove=remove)


@prefs.command(name="block")
@click.argument("directory", type=click.Path())
@click.option("--remove", is_flag=True, help="Remove the directory from the list")
def prefs_block(directory: str, remove: bool) -> None:
    """Exclude DIRECTORY and everything below it from sync."""
    _update_directory_rule(directory, blocked=True, remove=remove)


@prefs.command(name="group-by-book-author")
@click.argument("enabled", type=click.BOOL)
def prefs_group_by_book_author(enabled: bool) -> None:
    """Group books by their book-level author (true/false)."""
    preferences = init_preferences(Config()).set_group_by_book_author(enabled)
    console.print(
        f"[green]✓ Group by book author: {preferences.group_by_book_author}[/green]"
    )
    _rescan_hint(preferences)


@prefs.command(name="auto-scan-lyrics")
@click.argument("enabled", type=click.BOOL)
def prefs_auto_scan_lyrics(enabled: bool) -> None:
    """Look for .lrc files after each sync (true/false)."""
    init_preferences(Config()).update(
        lambda p: setattr(p, "auto_scan_annotations", enabled)
    )
    console.print(f"[green]✓ Auto-scan lyrics: {enabled}[/green]")
