"""Process-wide cache of the media id -> category name map.

Building the map takes one query per category, which is expensive compared to
the primary record query, so the result is kept for an hour. The cache object
is owned by whoever wires the sync engine and passed to every reader; several
passes may read it concurrently, but only one refreshes it at a time.
"""

import logging
import threading
import time
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_TTL_SECONDS = 60 * 60

CategoryLoader = Callable[[], Dict[int, str]]


class CategoryCache:
    """TTL cache for the category map with explicit invalidation."""

    def __init__(
        self,
        ttl: float = DEFAULT_CATEGORY_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize category cache.

        Args:
            ttl: Seconds a loaded map stays valid
            clock: Monotonic time source
        """
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[int, str] = {}
        self._loaded_at: Optional[float] = None

    def _is_fresh(self) -> bool:
        return (
            self._loaded_at is not None
            and bool(self._entries)
            and self._clock() - self._loaded_at < self.ttl
        )

    def get_or_refresh(self, loader: CategoryLoader, force: bool = False) -> Mapping[int, str]:
        """Return the cached map, reloading it when stale.

        An empty load result is returned but not cached, so the next call
        tries again.

        Args:
            loader: Builds a fresh map
            force: Reload even if the cached map is still valid

        Returns:
            Read-only view of media id -> category name
        """
        with self._lock:
            if not force and self._is_fresh():
                logger.debug(
                    "Using cached category map (%d entries, age: %.0fs)",
                    len(self._entries),
                    self._clock() - (self._loaded_at or 0.0),
                )
                return dict(self._entries)

            loaded = loader()
            if loaded:
                self._entries = dict(loaded)
                self._loaded_at = self._clock()
                logger.debug("Category map cache updated with %d entries", len(loaded))
            return dict(loaded)

    def invalidate(self) -> None:
        """Drop the cached map so the next read reloads it."""
        with self._lock:
            self._entries = {}
            self._loaded_at = None
        logger.debug("Category map cache invalidated")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
