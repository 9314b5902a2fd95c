"""Sync command: reconcile the catalog with the media index."""

import logging
import threading
from typing import Dict, Optional, Union

import click
from rich.console import Console

from ...config import Config
from ...core.sync import SyncMode, SyncOrchestrator, SyncResult
from ...database import ConsoleProgressReporter, RichProgressReporter
from ..display import display_errors, display_sync_result
from .init import InitializationError, init_orchestrator

console = Console()
logger = logging.getLogger(__name__)

JOIN_POLL_SECONDS = 0.2


def run_cancellable(
    orchestrator: SyncOrchestrator, mode: SyncMode, deep_scan: bool
) -> SyncResult:
    """Run a pass on a worker thread so Ctrl-C can cancel it.

    On KeyboardInterrupt the cancel signal is set and the pass is awaited.
    In-flight enrichment finishes; a pass cancelled before persisting
    writes nothing and reports failure.
    """
    cancel_event = threading.Event()
    outcome: Dict[str, SyncResult] = {}

    def _target() -> None:
        outcome["result"] = orchestrator.sync(
            mode, deep_scan=deep_scan, cancel_event=cancel_event
        )

    worker = threading.Thread(target=_target, name="sync-pass", daemon=True)
    try:
        worker.start()
        while worker.is_alive():
            worker.join(JOIN_POLL_SECONDS)
    except KeyboardInterrupt:
        console.print("[yellow]Cancelling sync, waiting for running work...[/yellow]")
        cancel_event.set()
        worker.join()

    return outcome["result"]


@click.command("sync")
@click.option(
    "--mode",
    "-m",
    type=click.Choice([m.value for m in SyncMode]),
    default=SyncMode.INCREMENTAL.value,
    show_default=True,
    help="incremental: changes since last sync; full: everything, merged; "
    "rebuild: everything, replacing the catalog",
)
@click.option(
    "--deep-scan",
    is_flag=True,
    help="Read tags and artwork from every file instead of trusting the index",
)
@click.option(
    "--progress/--no-progress",
    default=True,
    help="Show progress bars",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed progress information",
)
def sync_command(mode: str, deep_scan: bool, progress: bool, verbose: bool) -> None:
    """Synchronize the catalog with the media index.

    Examples:
        # Pick up changes since the last sync
        catalog-sync sync

        # Re-read every file after changing author delimiters
        catalog-sync sync --mode full --deep-scan

        # Start over from the index
        catalog-sync sync --mode rebuild
    """
    config = Config()

    reporter: Optional[Union[RichProgressReporter, ConsoleProgressReporter]] = None
    if progress:
        reporter = RichProgressReporter(console=console)
    elif verbose:
        reporter = ConsoleProgressReporter(verbose=True, console=console)

    try:
        orchestrator = init_orchestrator(config, progress_callback=reporter)
    except InitializationError as e:
        raise click.ClickException(str(e))

    console.print(f"\n[bold cyan]🔄 Starting {mode} sync...[/bold cyan]")
    try:
        result = run_cancellable(orchestrator, SyncMode(mode), deep_scan)
    finally:
        if isinstance(reporter, RichProgressReporter):
            reporter.close()
        orchestrator.db_service.close()

    display_sync_result(result.get_summary())
    display_errors(result.errors)

    if not result.success:
        raise click.ClickException("Sync failed")
