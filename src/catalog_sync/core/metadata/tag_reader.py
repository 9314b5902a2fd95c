"""Read tags, technical info and embedded artwork from audio files."""

import base64
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import mutagen
from mutagen import MutagenError
from mutagen.flac import Picture

from ...utils.text import normalize_metadata_text

# Alias for mutagen.File - mutagen doesn't have type stubs
MutagenFile = mutagen.File

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*(\d+)")


@dataclass
class EmbeddedArtwork:
    """Picture bytes found inside an audio file."""

    data: bytes
    mime_type: Optional[str] = None


@dataclass
class AudioTags:
    """Metadata extracted directly from an audio file."""

    title: Optional[str] = None
    author: Optional[str] = None
    book: Optional[str] = None
    book_author: Optional[str] = None
    category: Optional[str] = None
    track_number: Optional[int] = None
    year: Optional[int] = None
    duration_ms: Optional[int] = None
    mime_type: Optional[str] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    artwork: Optional[EmbeddedArtwork] = None


def _first_tag(audio: Any, key: str) -> Optional[str]:
    if not (hasattr(audio, "tags") and audio.tags and key in audio.tags):
        return None
    value = audio.tags[key]
    if isinstance(value, list):
        value = value[0] if value else None
    return normalize_metadata_text(str(value)) if value is not None else None


def _leading_int(value: Optional[str]) -> Optional[int]:
    """Parse "3/12" as 3 and "2001-05-04" as 2001."""
    if not value:
        return None
    match = _LEADING_NUMBER.match(value)
    return int(match.group(1)) if match else None


def _extract_artwork(audio: Any) -> Optional[EmbeddedArtwork]:
    """Find the first embedded picture in whatever tag format the file uses."""
    pictures = getattr(audio, "pictures", None)
    if pictures:
        return EmbeddedArtwork(pictures[0].data, pictures[0].mime or None)

    tags = getattr(audio, "tags", None)
    if not tags:
        return None

    # ID3 (mp3, aiff, wav)
    if hasattr(tags, "getall"):
        frames = tags.getall("APIC")
        if frames:
            return EmbeddedArtwork(frames[0].data, frames[0].mime or None)

    # MP4 (m4a)
    covers = tags.get("covr") if hasattr(tags, "get") else None
    if covers:
        return EmbeddedArtwork(bytes(covers[0]))

    # Vorbis comments (ogg, opus)
    blocks = tags.get("metadata_block_picture") if hasattr(tags, "get") else None
    if blocks:
        try:
            picture = Picture(base64.b64decode(blocks[0]))
            return EmbeddedArtwork(picture.data, picture.mime or None)
        except (ValueError, MutagenError) as e:
            logger.debug("Unreadable picture block: %s", e)

    return None


def read_tags(path: Union[str, Path], include_artwork: bool = True) -> Optional[AudioTags]:
    """Read tags from an audio file.

    Args:
        path: Path to the audio file
        include_artwork: Whether to extract embedded artwork bytes

    Returns:
        AudioTags, or None if the file cannot be parsed as audio
    """
    try:
        easy = MutagenFile(path, easy=True)
        if easy is None:
            return None

        tags = AudioTags(
            title=_first_tag(easy, "title"),
            author=_first_tag(easy, "artist"),
            book=_first_tag(easy, "album"),
            book_author=_first_tag(easy, "albumartist"),
            category=_first_tag(easy, "genre"),
            track_number=_leading_int(_first_tag(easy, "tracknumber")),
            year=_leading_int(_first_tag(easy, "date")),
        )

        info = getattr(easy, "info", None)
        if info is not None:
            length = getattr(info, "length", None)
            bitrate = getattr(info, "bitrate", None)
            sample_rate = getattr(info, "sample_rate", None)
            tags.duration_ms = int(length * 1000) if length else None
            tags.bitrate = int(bitrate) if bitrate else None
            tags.sample_rate = int(sample_rate) if sample_rate else None

        mimes = getattr(easy, "mime", None)
        tags.mime_type = mimes[0] if mimes else None

        if include_artwork:
            # Easy wrappers hide picture frames, so reopen with full tag access
            full = MutagenFile(path)
            if full is not None:
                tags.artwork = _extract_artwork(full)

        return tags

    except (MutagenError, OSError) as e:
        logger.warning("Cannot read tags from %s: %s", path, e)
        return None
