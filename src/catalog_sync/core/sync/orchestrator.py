"""Sync orchestrator reconciling the local catalog with the media index.

One pass runs these steps, in order:

1. Rescan trigger: ask the index to pick up unindexed files (not in Rebuild)
2. Deletion detection: local ids missing from the index are removed
   (not in Rebuild, which replaces everything)
3. Fetch: records changed since the last sync, or everything
4. Merge: keep user edits from the local snapshot (not in Rebuild)
5. Split: authors, cross-refs and books
6. Persist: one transaction, merged (Incremental/Full) or replaced (Rebuild)
7. Finish: clear the rescan flag, advance the last-sync timestamp, scan for
   lyrics and drop orphaned artwork

Each sync mode has its own handler composed from the shared steps on
SyncPass. Any failure aborts the pass without advancing the timestamp.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ...database.progress_tracker import ProgressCallback, ProgressPhase, ProgressTracker
from ...database.service import DatabaseService
from ...exceptions import SyncCancelledError, SyncFailedError
from ...models.models import TrackRecord
from ...preferences import PreferencesStore, SyncPreferences
from ..annotations.lrc_scanner import LrcScanner
from ..artwork.cache_manager import ArtworkCacheManager
from ..filesystem.directory_rules import DirectoryRuleResolver
from ..media_index.category_cache import CategoryCache
from ..media_index.provider import MediaIndexProvider
from ..media_index.reader import DEFAULT_SCAN_TIMEOUT_SECONDS, ExternalCatalogReader
from ..metadata.augmenter import MetadataAugmenter
from .author_splitter import AuthorSplitter, SplitResult
from .conflict_resolver import FieldMerger

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """How a pass treats existing catalog data."""

    INCREMENTAL = "incremental"  # only records changed since the last sync
    FULL = "full"  # everything, merged onto existing data
    REBUILD = "rebuild"  # everything, replacing existing data


@dataclass
class SyncResult:
    """Result of one sync pass."""

    mode: SyncMode
    deep_scan: bool = False
    success: bool = False
    rescan_submitted: int = 0
    deleted: int = 0
    fetch_since: int = 0
    fetched: int = 0
    merged: int = 0
    persisted: int = 0
    books: int = 0
    authors: int = 0
    cleared: bool = False
    total_tracks: int = 0
    annotations_assigned: int = 0
    artwork_orphans_removed: int = 0
    errors: List[str] = dataclass_field(default_factory=list)
    duration: float = 0.0

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        logger.error(error)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of the pass."""
        summary: Dict[str, Any] = {
            "mode": self.mode.value,
            "success": self.success,
            "errors": len(self.errors),
            "deleted": self.deleted,
            "fetched": self.fetched,
            "persisted": self.persisted,
            "total_tracks": self.total_tracks,
            "duration_seconds": round(self.duration, 3),
        }
        if self.deep_scan:
            summary["deep_scan"] = True
        if self.cleared:
            summary["cleared"] = True
        if self.persisted:
            summary["entities"] = {
                "merged": self.merged,
                "books": self.books,
                "authors": self.authors,
            }
        if self.annotations_assigned:
            summary["annotations_assigned"] = self.annotations_assigned
        if self.artwork_orphans_removed:
            summary["artwork_orphans_removed"] = self.artwork_orphans_removed
        return summary


class SyncPass:
    """State and shared steps of one sync pass."""

    def __init__(
        self,
        orchestrator: "SyncOrchestrator",
        mode: SyncMode,
        deep_scan: bool,
        cancel_event: threading.Event,
    ) -> None:
        """Snapshot preferences and wire the reader for this pass."""
        self.orchestrator = orchestrator
        self.db_service = orchestrator.db_service
        self.mode = mode
        self.deep_scan = deep_scan
        self.cancel_event = cancel_event
        self.tracker = ProgressTracker(orchestrator.progress_callback)
        self.result = SyncResult(mode=mode, deep_scan=deep_scan)

        self.preferences: SyncPreferences = orchestrator.preferences_store.load()
        self.resolver = DirectoryRuleResolver(
            self.preferences.allowed_directories,
            self.preferences.blocked_directories,
        )
        self.reader = ExternalCatalogReader(
            orchestrator.provider,
            self.resolver,
            category_cache=orchestrator.category_cache,
            augmenter=orchestrator.augmenter,
            category_concurrency=orchestrator.category_concurrency,
        )
        self.is_fresh_install = False

        logger.debug(
            "Author delimiters: %s, group_by_book_author: %s, rescan_required: %s",
            self.preferences.author_delimiters,
            self.preferences.group_by_book_author,
            self.preferences.rescan_required,
        )

    def check_cancelled(self) -> None:
        """Abort the pass if cancellation was requested."""
        if self.cancel_event.is_set():
            raise SyncCancelledError(f"{self.mode.value} sync cancelled")

    def check_fresh_install(self) -> bool:
        """Remember whether the catalog is empty at this point of the pass."""
        self.is_fresh_install = self.db_service.get_track_count() == 0
        return self.is_fresh_install

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def trigger_rescan(self) -> None:
        """Best-effort scan of files the index does not know yet."""
        self.tracker.start(ProgressPhase.TRIGGERING_SCAN, 0)
        self.result.rescan_submitted = self.reader.trigger_rescan(
            self.orchestrator.scan_roots,
            self.preferences.allowed_directories,
            timeout=self.orchestrator.scan_timeout,
        )

    def detect_deletions(self) -> int:
        """Remove local tracks the index no longer reports."""
        self.tracker.start(ProgressPhase.DETECTING_DELETIONS, 0)
        local_ids = self.db_service.get_all_track_ids()
        remote_ids = self.reader.list_known_ids()
        deleted_ids = local_ids - remote_ids

        if not deleted_ids:
            logger.debug("No deleted tracks found")
            return 0

        logger.info("Found %d deleted tracks, removing from catalog", len(deleted_ids))
        self.result.deleted = self.db_service.delete_tracks(deleted_ids)
        return self.result.deleted

    def fetch(self, since_seconds: int) -> List[TrackRecord]:
        """Fetch and enrich records from the index."""
        self.result.fetch_since = since_seconds
        logger.info("Fetching media index records (since: %d seconds)", since_seconds)

        def _on_progress(current: int, total: int) -> None:
            if current == 0:
                self.tracker.start(ProgressPhase.FETCHING_INDEX, total)
            else:
                self.tracker.update(current)

        records = self.reader.fetch_changed_since(
            since_seconds,
            force_full_metadata=self.deep_scan,
            on_progress=_on_progress,
            cancel_event=self.cancel_event,
        )
        self.result.fetched = len(records)
        logger.info("Fetched %d new/modified tracks from media index", len(records))
        return records

    def merge(self, fetched: Sequence[TrackRecord]) -> List[TrackRecord]:
        """Preserve user edits from the local snapshot."""
        local_by_id = {t.id: t for t in self.db_service.get_all_tracks()}
        merged, stats = self.orchestrator.merger.merge_all(
            fetched,
            local_by_id,
            self.preferences.author_delimiters,
            self.preferences.rescan_required,
        )
        self.result.merged = stats.merged
        return merged

    def split(self, tracks: Sequence[TrackRecord], use_prior_state: bool) -> SplitResult:
        """Split authors and derive books, seeding ids from the catalog."""
        if use_prior_state:
            prior_authors = self.db_service.get_all_authors()
            prior_books = self.db_service.get_all_books()
            max_prior_id = self.db_service.get_max_author_id()
        else:
            prior_authors, prior_books, max_prior_id = [], [], 0

        return self.orchestrator.splitter.process(
            tracks,
            delimiters=self.preferences.author_delimiters,
            group_by_book_author=self.preferences.group_by_book_author,
            prior_name_to_id={a.name: a.id for a in prior_authors},
            max_prior_id=max_prior_id,
            prior_image_urls={a.id: a.image_url for a in prior_authors if a.image_url},
            prior_book_keys={(b.title.strip(), b.author_name): b.id for b in prior_books},
        )

    def persist(self, split: SplitResult, replace: bool) -> None:
        """Write one split result in a single transaction."""
        self.check_cancelled()
        self.tracker.start(ProgressPhase.PERSISTING, len(split.tracks))

        if replace:
            logger.info("Rebuild mode: replacing all catalog data")
            self.db_service.replace_catalog(
                split.tracks, split.books, split.authors, split.cross_refs
            )
        else:
            self.db_service.merge_catalog(
                split.tracks, split.books, split.authors, split.cross_refs
            )

        self.tracker.complete()
        self.result.persisted = len(split.tracks)
        self.result.books = len(split.books)
        self.result.authors = len(split.authors)

    def handle_empty_fetch(self) -> None:
        """Clear the catalog when a rebuild or first sync finds nothing."""
        if self.mode is SyncMode.REBUILD or self.is_fresh_install:
            self.db_service.clear_all_catalog_data()
            self.result.cleared = True
            logger.warning("Media index fetch resulted in empty list, catalog cleared")
        else:
            logger.info("No new or modified tracks found")

    def finish(self, processed: bool) -> None:
        """Record success and run post-sync maintenance."""
        store = self.orchestrator.preferences_store
        if processed:
            store.clear_rescan_required()
        store.set_last_sync_timestamp(self.orchestrator.now_ms())

        if processed and self.preferences.auto_scan_annotations:
            self.scan_annotations()

        if self.orchestrator.artwork_cache is not None:
            valid_ids = self.db_service.get_all_track_ids()
            self.result.artwork_orphans_removed = (
                self.orchestrator.artwork_cache.clean_orphans(valid_ids)
            )

        self.result.total_tracks = self.db_service.get_track_count()

    def scan_annotations(self) -> None:
        """Assign sidecar lyrics to tracks without an annotation."""
        scanner = self.orchestrator.annotation_scanner
        if scanner is None:
            return

        def _on_progress(current: int, total: int) -> None:
            if self.tracker.current_phase is not ProgressPhase.SCANNING_ANNOTATIONS:
                self.tracker.start(ProgressPhase.SCANNING_ANNOTATIONS, total)
            self.tracker.update(current)

        try:
            self.result.annotations_assigned = scanner.scan(
                self.db_service.get_all_tracks(), on_progress=_on_progress
            )
        except Exception as e:
            logger.warning("Lyrics scan failed: %s", e)


class SyncModeHandler(ABC):
    """Runs one sync mode from the shared SyncPass steps."""

    mode: SyncMode

    @abstractmethod
    def run(self, sync_pass: SyncPass) -> None:
        """Execute the pass."""


class _UpsertHandler(SyncModeHandler):
    """Incremental and Full passes: deletions, fetch, merge, upsert."""

    @abstractmethod
    def fetch_since(self, sync_pass: SyncPass) -> int:
        """Epoch seconds to fetch from."""

    def run(self, sync_pass: SyncPass) -> None:
        sync_pass.trigger_rescan()
        sync_pass.check_cancelled()
        sync_pass.detect_deletions()
        sync_pass.check_cancelled()

        sync_pass.check_fresh_install()
        fetched = sync_pass.fetch(self.fetch_since(sync_pass))
        if not fetched:
            sync_pass.handle_empty_fetch()
            sync_pass.finish(processed=False)
            return

        merged = sync_pass.merge(fetched)
        split = sync_pass.split(merged, use_prior_state=True)
        sync_pass.persist(split, replace=False)
        sync_pass.finish(processed=True)


class IncrementalHandler(_UpsertHandler):
    """Fetches only what changed since the last successful pass."""

    mode = SyncMode.INCREMENTAL

    def fetch_since(self, sync_pass: SyncPass) -> int:
        if sync_pass.preferences.rescan_required or sync_pass.is_fresh_install:
            return 0
        return sync_pass.preferences.last_sync_timestamp // 1000


class FullHandler(_UpsertHandler):
    """Fetches everything and merges it onto existing data."""

    mode = SyncMode.FULL

    def fetch_since(self, sync_pass: SyncPass) -> int:
        return 0


class RebuildHandler(SyncModeHandler):
    """Fetches everything and replaces all catalog data."""

    mode = SyncMode.REBUILD

    def run(self, sync_pass: SyncPass) -> None:
        sync_pass.check_fresh_install()
        fetched = sync_pass.fetch(0)
        if not fetched:
            sync_pass.handle_empty_fetch()
            sync_pass.finish(processed=False)
            return

        split = sync_pass.split(fetched, use_prior_state=False)
        sync_pass.persist(split, replace=True)
        sync_pass.finish(processed=True)


HANDLERS: Dict[SyncMode, SyncModeHandler] = {
    SyncMode.INCREMENTAL: IncrementalHandler(),
    SyncMode.FULL: FullHandler(),
    SyncMode.REBUILD: RebuildHandler(),
}


class SyncOrchestrator:
    """Orchestrates sync passes between the media index and the catalog.

    The orchestrator owns the write path to tracks, books, authors and their
    links. Passes are serialized; a second caller waits for the running pass.
    """

    def __init__(
        self,
        db_service: DatabaseService,
        provider: MediaIndexProvider,
        preferences_store: PreferencesStore,
        artwork_cache: Optional[ArtworkCacheManager] = None,
        category_cache: Optional[CategoryCache] = None,
        augmenter: Optional[MetadataAugmenter] = None,
        annotation_scanner: Optional[LrcScanner] = None,
        scan_roots: Sequence[Path] = (),
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT_SECONDS,
        category_concurrency: int = 4,
        progress_callback: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize sync orchestrator.

        Args:
            db_service: Database service instance
            provider: External media index
            preferences_store: Store for sync preferences
            artwork_cache: Artwork cache cleaned after each pass
            category_cache: Shared category cache
            augmenter: Metadata augmenter (one using ``artwork_cache`` if None)
            annotation_scanner: Lyrics scanner (one using ``db_service`` if None)
            scan_roots: Directories walked by the rescan trigger
            scan_timeout: Seconds to wait for the index to acknowledge a scan
            category_concurrency: Parallel category member queries
            progress_callback: Receives progress updates
            clock: Wall-clock time source in seconds
        """
        self.db_service = db_service
        self.provider = provider
        self.preferences_store = preferences_store
        self.artwork_cache = artwork_cache
        self.category_cache = category_cache or CategoryCache()
        self.augmenter = augmenter or MetadataAugmenter(artwork_cache)
        self.annotation_scanner = annotation_scanner or LrcScanner(db_service)
        self.scan_roots = list(scan_roots)
        self.scan_timeout = scan_timeout
        self.category_concurrency = category_concurrency
        self.progress_callback = progress_callback
        self._clock = clock

        self.splitter = AuthorSplitter()
        self.merger = FieldMerger()

        self._pass_lock = threading.Lock()
        self._cancel_event = threading.Event()

    def now_ms(self) -> int:
        """Current wall-clock time in epoch milliseconds."""
        return int(self._clock() * 1000)

    def cancel(self) -> None:
        """Request cancellation of the running pass."""
        self._cancel_event.set()

    def invalidate_category_cache(self) -> None:
        """Force the next pass to reload the category map."""
        self.category_cache.invalidate()

    def sync(
        self,
        mode: SyncMode = SyncMode.INCREMENTAL,
        deep_scan: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Run one sync pass.

        Never raises; failures are reported through ``SyncResult.success``
        and ``SyncResult.errors``.

        Args:
            mode: Sync mode
            deep_scan: Read tags and artwork from every file
            cancel_event: External cancellation signal

        Returns:
            SyncResult with details of the pass
        """
        mode = SyncMode(mode)
        with self._pass_lock:
            self._cancel_event = cancel_event or threading.Event()
            started = time.monotonic()
            logger.info(
                "Starting media index synchronization (mode: %s, deep scan: %s)",
                mode.value,
                deep_scan,
            )

            sync_pass: Optional[SyncPass] = None
            result = SyncResult(mode=mode, deep_scan=deep_scan)
            try:
                sync_pass = SyncPass(self, mode, deep_scan, self._cancel_event)
                result = sync_pass.result
                HANDLERS[mode].run(sync_pass)
                result.success = True
                sync_pass.tracker.start(ProgressPhase.COMPLETE, 0)
            except SyncCancelledError as e:
                result.add_error(str(e))
                logger.warning("Sync cancelled: %s", e)
            except Exception as e:
                error_msg = f"Sync operation failed: {e}"
                result.add_error(error_msg)
                logger.exception(error_msg)
                if sync_pass is not None:
                    sync_pass.tracker.error(error_msg)

            result.duration = time.monotonic() - started
            logger.info("Sync complete: %s", result.get_summary())
            return result

    def run(
        self,
        mode: SyncMode = SyncMode.INCREMENTAL,
        deep_scan: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Run one sync pass, raising on failure.

        Raises:
            SyncFailedError: If the pass did not complete
        """
        result = self.sync(mode, deep_scan=deep_scan, cancel_event=cancel_event)
        if not result.success:
            raise SyncFailedError("; ".join(result.errors) or "Sync failed")
        return result
