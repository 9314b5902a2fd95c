"""Metadata module.

Handles tag reading and deep-scan augmentation of track records.
"""

from .augmenter import UNRELIABLE_EXTENSIONS, MetadataAugmenter
from .tag_reader import AudioTags, EmbeddedArtwork, read_tags

__all__ = [
    "AudioTags",
    "EmbeddedArtwork",
    "MetadataAugmenter",
    "UNRELIABLE_EXTENSIONS",
    "read_tags",
]
