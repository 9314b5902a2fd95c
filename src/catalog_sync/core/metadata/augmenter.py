"""Deep-scan metadata augmentation.

Provider metadata is fast but sometimes wrong or missing (notably for wav,
opus, ogg and aiff files). The augmenter opens such files directly, overrides
display fields with non-blank tag values and stores embedded artwork in the
artwork cache. Work runs on a bounded pool so file descriptors stay well below
system limits.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TypeVar

from ...exceptions import SyncCancelledError
from ...models.models import TrackRecord
from ..artwork.cache_manager import ArtworkCacheManager
from .tag_reader import AudioTags, read_tags

logger = logging.getLogger(__name__)

# Formats whose indexed metadata is historically unreliable
UNRELIABLE_EXTENSIONS = (".wav", ".opus", ".ogg", ".oga", ".aiff")
DEFAULT_MAX_WORKERS = 8

T = TypeVar("T")
R = TypeVar("R")


class MetadataAugmenter:
    """Augments track records with tags read directly from their files."""

    def __init__(
        self,
        artwork_cache: Optional[ArtworkCacheManager] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        tag_reader: Callable[..., Optional[AudioTags]] = read_tags,
    ) -> None:
        """Initialize augmenter.

        Args:
            artwork_cache: Cache for extracted artwork (artwork is skipped if None)
            max_workers: Maximum number of files processed concurrently
            tag_reader: Function reading tags from a path
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.artwork_cache = artwork_cache
        self.max_workers = max_workers
        self._read_tags = tag_reader

    @staticmethod
    def needs_augmentation(path: str, deep_scan: bool) -> bool:
        """Whether the file must be opened to get reliable metadata."""
        return deep_scan or path.lower().endswith(UNRELIABLE_EXTENSIONS)

    def augment(self, record: TrackRecord, deep_scan: bool = False) -> TrackRecord:
        """Return a copy of ``record`` corrected from the file's own tags.

        Never raises: a file that cannot be read leaves the record unchanged.

        Args:
            record: Track built from provider metadata
            deep_scan: Whether this is a forced deep scan

        Returns:
            Updated TrackRecord (or the original on failure)
        """
        try:
            return self._augment(record, deep_scan)
        except Exception as e:
            logger.warning("Failed to augment metadata for %s: %s", record.file_path, e)
            return record

    def _augment(self, record: TrackRecord, deep_scan: bool) -> TrackRecord:
        updates: dict = {}

        cached_art: Optional[Path] = None
        skip_art = False
        if self.artwork_cache is not None and deep_scan:
            cached_art = self.artwork_cache.get_cached(record.id)
            if cached_art is not None:
                updates["cover_uri"] = self.artwork_cache.uri_for(cached_art)
            skip_art = cached_art is not None or self.artwork_cache.has_no_artwork_marker(
                record.id
            )

        if not self.needs_augmentation(record.file_path, deep_scan):
            return record.model_copy(update=updates) if updates else record

        if not Path(record.file_path).is_file():
            logger.debug("File not found for augmentation: %s", record.file_path)
            return record.model_copy(update=updates) if updates else record

        want_art = self.artwork_cache is not None and not skip_art
        tags = self._read_tags(record.file_path, include_artwork=want_art)
        if tags is None:
            return record.model_copy(update=updates) if updates else record

        if tags.title:
            updates["title"] = tags.title
        if tags.author:
            updates["author_name"] = tags.author
        if tags.book:
            updates["book_name"] = tags.book
        if tags.category:
            updates["category"] = tags.category
        if tags.track_number is not None:
            updates["track_number"] = tags.track_number
        if tags.year is not None:
            updates["year"] = tags.year

        if want_art and self.artwork_cache is not None:
            if tags.artwork is not None and tags.artwork.data:
                path = self.artwork_cache.save_artwork(record.id, tags.artwork.data)
                updates["cover_uri"] = self.artwork_cache.uri_for(path)
            elif deep_scan:
                self.artwork_cache.mark_no_artwork(record.id)

        if deep_scan:
            updates["mime_type"] = tags.mime_type
            updates["bitrate"] = tags.bitrate
            updates["sample_rate"] = tags.sample_rate

        return record.model_copy(update=updates)

    def map_bounded(
        self,
        items: Sequence[T],
        fn: Callable[[T], R],
        cancel_event: Optional[threading.Event] = None,
        on_item_done: Optional[Callable[[int, int], None]] = None,
    ) -> List[R]:
        """Apply ``fn`` to every item on a semaphore-gated thread pool.

        A permit is taken before each task is submitted and released when the
        task finishes, so at most ``max_workers`` items are in flight. Results
        are joined in input order.

        Args:
            items: Work items
            fn: Function applied to each item
            cancel_event: When set, no further tasks are started
            on_item_done: Called with ``(completed, total)`` after each item

        Returns:
            Results in input order

        Raises:
            SyncCancelledError: If cancelled before every item was started
        """
        total = len(items)
        if total == 0:
            return []

        permits = threading.Semaphore(self.max_workers)
        counter_lock = threading.Lock()
        completed = 0
        futures: List[Future] = []
        cancelled = False

        def _release(_future: Future) -> None:
            nonlocal completed
            permits.release()
            with counter_lock:
                completed += 1
                if on_item_done is not None:
                    on_item_done(completed, total)

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="augment"
        ) as executor:
            for item in items:
                permits.acquire()
                if cancel_event is not None and cancel_event.is_set():
                    permits.release()
                    cancelled = True
                    break
                future = executor.submit(fn, item)
                future.add_done_callback(_release)
                futures.append(future)

            # Wait for in-flight work before reporting cancellation
            results = [future.result() for future in futures]

        if cancelled:
            logger.info("Cancelled after starting %d of %d items", len(futures), total)
            raise SyncCancelledError("Enrichment cancelled")
        return results
