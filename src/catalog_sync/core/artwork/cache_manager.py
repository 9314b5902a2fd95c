"""On-disk cache of cover art extracted from audio files.

Files are keyed by track id:

* ``track_art_<id>.jpg`` holds the cached image
* ``track_art_<id>_no.jpg`` marks a track whose file has no embedded artwork,
  so extraction is not retried on every pass

When the images exceed the size cap, the least recently used 25% are evicted.
Reusing an image refreshes its mtime.
"""

import logging
import math
import os
import threading
import time
from pathlib import Path
from dataclasses import dataclass, field
from typing import Callable, Collection, Dict, List, Optional

from ...config import DEFAULT_ARTWORK_CACHE_SIZE_BYTES

logger = logging.getLogger(__name__)

CACHE_PREFIX = "track_art_"
IMAGE_SUFFIX = ".jpg"
NO_ART_SUFFIX = "_no.jpg"
CLEANUP_FRACTION = 0.25
MIN_CLEANUP_INTERVAL_SECONDS = 5 * 60


@dataclass
class _CleanupState:
    """Mutex and last eviction time shared by every manager of one directory."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    last_cleanup: Optional[float] = None


_cleanup_states: Dict[str, _CleanupState] = {}
_cleanup_states_lock = threading.Lock()


def _cleanup_state_for(cache_dir: Path) -> _CleanupState:
    key = os.path.realpath(cache_dir)
    with _cleanup_states_lock:
        return _cleanup_states.setdefault(key, _CleanupState())


def artwork_filename(track_id: int) -> str:
    """Cache filename for a track's image."""
    return f"{CACHE_PREFIX}{track_id}{IMAGE_SUFFIX}"


def no_artwork_filename(track_id: int) -> str:
    """Cache filename for a track's "no artwork" marker."""
    return f"{CACHE_PREFIX}{track_id}{NO_ART_SUFFIX}"


def track_id_from_filename(filename: str) -> Optional[int]:
    """Extract the track id from a cache filename.

    Handles both ``track_art_123.jpg`` and ``track_art_123_no.jpg``.

    Returns:
        Track id, or None if the name does not follow the convention
    """
    if not filename.startswith(CACHE_PREFIX):
        return None
    id_part = filename[len(CACHE_PREFIX) :].split("_", 1)[0].split(".", 1)[0]
    try:
        return int(id_part)
    except ValueError:
        return None


class ArtworkCacheManager:
    """Manages the artwork cache directory with LRU eviction."""

    def __init__(
        self,
        cache_dir: Path,
        max_size_bytes: int = DEFAULT_ARTWORK_CACHE_SIZE_BYTES,
        min_cleanup_interval: float = MIN_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize artwork cache manager.

        Args:
            cache_dir: Directory holding cached files
            max_size_bytes: Size cap for cached images
            min_cleanup_interval: Minimum seconds between two evictions
            clock: Monotonic time source
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_size_bytes = max_size_bytes
        self.min_cleanup_interval = min_cleanup_interval
        self._clock = clock
        self._state = _cleanup_state_for(self.cache_dir)

    # ------------------------------------------------------------------
    # File listing
    # ------------------------------------------------------------------

    def _image_files(self) -> List[Path]:
        """Cached images, excluding "no artwork" markers."""
        return [
            path
            for path in self._all_files()
            if not path.name.endswith(NO_ART_SUFFIX)
        ]

    def _all_files(self) -> List[Path]:
        if not self.cache_dir.is_dir():
            return []
        return [
            path
            for path in self.cache_dir.iterdir()
            if path.name.startswith(CACHE_PREFIX) and path.is_file()
        ]

    @staticmethod
    def _size_of(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0

    @staticmethod
    def _mtime_of(path: Path) -> float:
        try:
            return path.stat().st_mtime
        except FileNotFoundError:
            return 0.0

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _throttled(self) -> bool:
        last_cleanup = self._state.last_cleanup
        if last_cleanup is None:
            return False
        return self._clock() - last_cleanup < self.min_cleanup_interval

    def clean_if_over_cap(self, force: bool = False) -> int:
        """Evict the oldest images if the cache exceeds its cap.

        Runs at most once per ``min_cleanup_interval`` across every manager of
        the same directory in this process; concurrent callers are serialized
        and re-check the throttle under the shared lock.

        Args:
            force: Ignore the throttle interval

        Returns:
            Number of files deleted, or 0 if no cleanup was needed
        """
        if not force and self._throttled():
            return 0

        with self._state.lock:
            if not force and self._throttled():
                return 0

            files = self._image_files()
            if not files:
                return 0

            current_size = sum(self._size_of(f) for f in files)
            if current_size <= self.max_size_bytes:
                return 0

            logger.debug(
                "Artwork cache size %dMB exceeds limit, cleaning...",
                current_size // (1024 * 1024),
            )

            evict_count = max(1, math.ceil(len(files) * CLEANUP_FRACTION))
            to_delete = sorted(files, key=self._mtime_of)[:evict_count]

            deleted = 0
            freed = 0
            for path in to_delete:
                size = self._size_of(path)
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.warning("Failed to evict %s: %s", path, e)
                    continue
                deleted += 1
                freed += size

            self._state.last_cleanup = self._clock()
            logger.debug("Cleaned %d files, freed %dKB", deleted, freed // 1024)
            return deleted

    def clean_orphans(self, valid_track_ids: Collection[int]) -> int:
        """Delete cached images and markers for tracks no longer present.

        Args:
            valid_track_ids: Ids of tracks that still exist in the catalog

        Returns:
            Number of orphaned files deleted
        """
        valid = set(valid_track_ids)
        with self._state.lock:
            deleted = 0
            for path in self._all_files():
                track_id = track_id_from_filename(path.name)
                if track_id is None or track_id in valid:
                    continue
                try:
                    path.unlink()
                    deleted += 1
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.warning("Failed to delete orphaned %s: %s", path, e)

            if deleted:
                logger.debug("Cleaned %d orphaned artwork files", deleted)
            return deleted

    def clear_all(self) -> int:
        """Delete every cached image and marker.

        Returns:
            Number of files deleted
        """
        with self._state.lock:
            deleted = 0
            for path in self._all_files():
                try:
                    path.unlink()
                    deleted += 1
                except FileNotFoundError:
                    continue
            logger.debug("Cleared artwork cache: %d files", deleted)
            return deleted

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def size_bytes(self) -> int:
        """Total size of cached images in bytes."""
        return sum(self._size_of(f) for f in self._image_files())

    def size_formatted(self) -> str:
        """Cache size as an "X.X MB" string."""
        return f"{self.size_bytes() / (1024 * 1024):.1f} MB"

    def file_count(self) -> int:
        """Number of cached images."""
        return len(self._image_files())

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    def artwork_path(self, track_id: int) -> Path:
        """Path of the cached image for ``track_id`` (may not exist)."""
        return self.cache_dir / artwork_filename(track_id)

    def no_artwork_marker_path(self, track_id: int) -> Path:
        """Path of the "no artwork" marker for ``track_id`` (may not exist)."""
        return self.cache_dir / no_artwork_filename(track_id)

    def save_artwork(self, track_id: int, data: bytes) -> Path:
        """Store image bytes for a track and enforce the cap.

        Args:
            track_id: Track the image belongs to
            data: Encoded image

        Returns:
            Path of the cached image
        """
        path = self.artwork_path(track_id)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
        self.remove_no_artwork_marker(track_id)
        self.clean_if_over_cap()
        return path

    def get_cached(self, track_id: int) -> Optional[Path]:
        """Return the cached image for a track and mark it as recently used."""
        path = self.artwork_path(track_id)
        try:
            os.utime(path)
        except FileNotFoundError:
            return None
        return path

    def mark_no_artwork(self, track_id: int) -> None:
        """Remember that the track's file has no embedded artwork."""
        self.no_artwork_marker_path(track_id).touch()

    def has_no_artwork_marker(self, track_id: int) -> bool:
        """Check for a "no artwork" marker."""
        return self.no_artwork_marker_path(track_id).exists()

    def remove_no_artwork_marker(self, track_id: int) -> None:
        """Drop the "no artwork" marker, e.g. after the file was retagged."""
        self.no_artwork_marker_path(track_id).unlink(missing_ok=True)

    @staticmethod
    def uri_for(path: Path) -> str:
        """File URI for a cached image."""
        return Path(path).resolve().as_uri()
