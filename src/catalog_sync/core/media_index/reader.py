"""Reads track records from the external media index.

The reader applies directory rules to everything the index reports, turns raw
rows into TrackRecords (cover art, category, timestamps, optional deep-scan
augmentation) and can ask the index to pick up files it does not know yet.

Provider failures during the primary queries are raised as ProviderError;
the rescan trigger is best-effort and never raises.
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Collection, Dict, List, Mapping, Optional, Set

from ...exceptions import ProviderError, SyncCancelledError
from ...models.models import RawRecord, TrackRecord
from ...utils.text import normalize_metadata_text
from ..filesystem.directory_rules import DirectoryRuleResolver
from ..metadata.augmenter import MetadataAugmenter
from .category_cache import CategoryCache
from .provider import MediaIndexProvider, ProviderRow

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_BOOK = "Unknown Book"

PROGRESS_BATCH_SIZE = 50
DEFAULT_CATEGORY_CONCURRENCY = 4
DEFAULT_SCAN_TIMEOUT_SECONDS = 15.0

SCANNABLE_AUDIO_EXTENSIONS = frozenset(
    {"mp3", "flac", "m4a", "wav", "ogg", "opus", "aac", "wma", "aiff"}
)
SYSTEM_FOLDER_NAMES = frozenset({"Android", "data", "obb"})

ProgressFn = Callable[[int, int], None]


class ExternalCatalogReader:
    """Query side of a sync pass against a MediaIndexProvider."""

    def __init__(
        self,
        provider: MediaIndexProvider,
        resolver: DirectoryRuleResolver,
        category_cache: Optional[CategoryCache] = None,
        augmenter: Optional[MetadataAugmenter] = None,
        category_concurrency: int = DEFAULT_CATEGORY_CONCURRENCY,
    ) -> None:
        """Initialize reader.

        Args:
            provider: External media index
            resolver: Directory allow/block rules
            category_cache: Shared category cache (a private one if None)
            augmenter: Metadata augmenter and enrichment pool
            category_concurrency: Parallel category member queries
        """
        self.provider = provider
        self.resolver = resolver
        self.category_cache = category_cache or CategoryCache()
        self.augmenter = augmenter or MetadataAugmenter()
        self.category_concurrency = max(1, category_concurrency)

    def _is_blocked_file(self, file_path: str) -> bool:
        parent = os.path.dirname(file_path)
        if not parent:
            return False
        return self.resolver.is_blocked(os.path.abspath(parent))

    def list_known_ids(self) -> Set[int]:
        """Ids the index reports outside blocked directories.

        Raises:
            ProviderError: If the index cannot be queried
        """
        try:
            return {
                media_id
                for media_id, path in self.provider.query_id_paths()
                if not self._is_blocked_file(path)
            }
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Failed to list media ids: {e}") from e

    # =========================================================================
    # Categories
    # =========================================================================

    def load_categories(self, force: bool = False) -> Mapping[int, str]:
        """Media id -> category name, served from the shared cache."""
        return self.category_cache.get_or_refresh(self._build_category_map, force=force)

    def _build_category_map(self) -> Dict[int, str]:
        try:
            categories = [
                (category_id, name.strip())
                for category_id, name in self.provider.query_categories()
                if name and name.strip() and name.strip().lower() != "unknown"
            ]
            if not categories:
                return {}

            with ThreadPoolExecutor(
                max_workers=self.category_concurrency, thread_name_prefix="categories"
            ) as executor:
                member_lists = list(
                    executor.map(
                        lambda item: list(self.provider.query_category_members(item[0])),
                        categories,
                    )
                )
        except Exception as e:
            logger.error("Error fetching category map: %s", e)
            return {}

        category_map: Dict[int, str] = {}
        # A track in several categories keeps the last one processed
        for (_, name), members in zip(categories, member_lists):
            for media_id in members:
                category_map[media_id] = name
        return category_map

    # =========================================================================
    # Records
    # =========================================================================

    def _to_raw_record(self, row: ProviderRow) -> RawRecord:
        return RawRecord(
            id=row.id,
            book_id=row.book_id,
            author_id=row.author_id,
            file_path=row.file_path or "",
            title=normalize_metadata_text(row.title) or UNKNOWN_TITLE,
            author=normalize_metadata_text(row.author) or UNKNOWN_AUTHOR,
            book=normalize_metadata_text(row.book) or UNKNOWN_BOOK,
            book_author=normalize_metadata_text(row.book_author),
            duration=row.duration or 0,
            track_number=row.track_number or 0,
            year=row.year or 0,
            date_modified=row.date_modified or 0,
        )

    def fetch_raw_records(self, since_seconds: int = 0) -> List[RawRecord]:
        """Collect rows changed after ``since_seconds`` outside blocked dirs.

        Raises:
            ProviderError: If the index cannot be queried
        """
        records: List[RawRecord] = []
        try:
            for row in self.provider.query_records(since_seconds):
                if self._is_blocked_file(row.file_path or ""):
                    continue
                records.append(self._to_raw_record(row))
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Failed to query media records: {e}") from e
        return records

    def build_track(
        self,
        raw: RawRecord,
        book_art: Mapping[int, str],
        categories: Mapping[int, str],
        deep_scan: bool = False,
    ) -> TrackRecord:
        """Turn a raw row into a TrackRecord, augmenting it when needed."""
        date_added = (
            raw.date_modified * 1000 if raw.date_modified > 0 else int(time.time() * 1000)
        )
        track = TrackRecord(
            id=raw.id,
            title=raw.title,
            author_name=raw.author,
            author_id=raw.author_id,
            book_author=raw.book_author,
            book_name=raw.book,
            book_id=raw.book_id,
            content_uri=self.provider.content_uri(raw.id),
            cover_uri=book_art.get(raw.book_id),
            duration=raw.duration,
            category=categories.get(raw.id),
            file_path=raw.file_path,
            parent_directory_path=raw.parent_directory,
            track_number=raw.track_number,
            year=raw.year,
            date_added=date_added,
        )
        return self.augmenter.augment(track, deep_scan)

    def fetch_changed_since(
        self,
        since_seconds: int = 0,
        force_full_metadata: bool = False,
        on_progress: Optional[ProgressFn] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TrackRecord]:
        """Fetch and enrich records changed after ``since_seconds``.

        Args:
            since_seconds: Epoch seconds; 0 fetches everything
            force_full_metadata: Deep scan every file
            on_progress: Called with ``(current, total)`` every 50 records
                and on completion
            cancel_event: Stops starting new enrichment work when set

        Returns:
            TrackRecords in index order

        Raises:
            ProviderError: If the index cannot be queried
            SyncCancelledError: If cancelled during enrichment
        """
        deep_scan = force_full_metadata
        try:
            # In a deep scan artwork comes from the files themselves
            book_art = {} if deep_scan else self.provider.query_book_art()
        except Exception as e:
            raise ProviderError(f"Failed to query book art: {e}") from e
        categories = self.load_categories()

        raw_records = self.fetch_raw_records(since_seconds)
        total = len(raw_records)
        logger.info("Fetched %d records changed since %d", total, since_seconds)
        if total == 0:
            return []

        if on_progress is not None:
            on_progress(0, total)

        def _report(done: int, count: int) -> None:
            if on_progress is not None and (done % PROGRESS_BATCH_SIZE == 0 or done == count):
                on_progress(done, count)

        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelledError("Fetch cancelled")

        return self.augmenter.map_bounded(
            raw_records,
            lambda raw: self.build_track(raw, book_art, categories, deep_scan),
            cancel_event=cancel_event,
            on_item_done=_report,
        )

    # =========================================================================
    # Rescan trigger
    # =========================================================================

    @staticmethod
    def _enters_system_folder(directory: Path, root: Path, allowed: Collection[str]) -> bool:
        name = directory.name
        if name not in SYSTEM_FOLDER_NAMES:
            return True
        path = str(directory)
        if any(a == path or a.startswith(path + "/") for a in allowed):
            return True
        if name == "Android" and directory.parent == root:
            return False
        if directory.parent.name == "Android" and name in ("data", "obb"):
            return False
        return True

    def find_unindexed_files(
        self,
        scan_roots: Collection[Path],
        allowed_dirs: Collection[str],
        known_paths: Set[str],
    ) -> List[str]:
        """Walk scan roots for audio files the index does not know.

        Hidden directories are skipped, and so are the usual system folders
        unless an allowed directory is at or beneath them.
        """
        allowed = {os.path.abspath(a) for a in allowed_dirs if a and a.strip()}
        found: List[str] = []
        for root in scan_roots:
            root = Path(root).absolute()
            if not root.is_dir():
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                current = Path(dirpath)
                dirnames[:] = sorted(
                    d
                    for d in dirnames
                    if not d.startswith(".")
                    and self._enters_system_folder(current / d, root, allowed)
                )
                for filename in sorted(filenames):
                    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
                    if extension not in SCANNABLE_AUDIO_EXTENSIONS:
                        continue
                    path = str(current / filename)
                    if path not in known_paths:
                        found.append(path)
        return found

    def trigger_rescan(
        self,
        scan_roots: Collection[Path],
        allowed_dirs: Collection[str] = (),
        timeout: float = DEFAULT_SCAN_TIMEOUT_SECONDS,
    ) -> int:
        """Ask the index to scan files it does not know yet.

        Waits at most ``timeout`` seconds for acknowledgements. Any failure is
        logged and ignored.

        Returns:
            Number of files submitted for scanning
        """
        try:
            known_paths = self.provider.query_known_paths()
            logger.debug("Media index has %d known files", len(known_paths))
            new_files = self.find_unindexed_files(scan_roots, allowed_dirs, known_paths)
        except Exception as e:
            logger.warning("Skipping media rescan, index unavailable: %s", e)
            return 0

        if not new_files:
            logger.debug("No new audio files found, media index is up to date")
            return 0

        logger.info("Found %d new audio files to scan", len(new_files))

        done = threading.Event()
        lock = threading.Lock()
        scanned = 0

        def _on_scanned(_path: str, _media_id: Optional[int]) -> None:
            nonlocal scanned
            with lock:
                scanned += 1
                if scanned >= len(new_files):
                    done.set()

        try:
            self.provider.scan_files(new_files, _on_scanned)
        except Exception as e:
            logger.warning("Media scan request failed: %s", e)
            return 0

        if done.wait(timeout):
            logger.info("Media scan completed for %d new files", len(new_files))
        else:
            logger.warning(
                "Media scan timeout after scanning %d/%d files", scanned, len(new_files)
            )
        return len(new_files)
