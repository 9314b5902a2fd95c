"""Artwork cache module."""

from .cache_manager import (
    ArtworkCacheManager,
    artwork_filename,
    no_artwork_filename,
    track_id_from_filename,
)

__all__ = [
    "ArtworkCacheManager",
    "artwork_filename",
    "no_artwork_filename",
    "track_id_from_filename",
]
