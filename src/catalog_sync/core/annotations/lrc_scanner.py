"""Assign lyrics from ``.lrc`` files next to audio files.

Runs after a successful sync when enabled in the preferences. Only tracks
without an annotation are looked at; for each one the scanner tries
``<file stem>.lrc`` and then ``<Author>_<Title>.lrc`` in the same directory.
"""

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ...database.service import DatabaseService
from ...models.models import TrackRecord
from ...utils.text import is_blank, sanitize_for_filename

logger = logging.getLogger(__name__)

DEFAULT_SCAN_CONCURRENCY = 8
PROGRESS_BATCH_SIZE = 20

# [mm:ss], [mm:ss.xx] or [mm:ss:xx], possibly repeated at the start of a line
_TIMESTAMP = re.compile(r"\[(\d{1,3}):(\d{2})(?:[.:](\d{1,3}))?\]")
# [ar:...], [ti:...], [offset:...] and other ID tags
_ID_TAG = re.compile(r"^\[[a-zA-Z]+:.*\]$")


@dataclass
class LrcDocument:
    """Parsed lyrics: timed lines plus any untimed text."""

    synced: List[tuple] = dataclass_field(default_factory=list)  # (ms, text)
    plain: List[str] = dataclass_field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Whether there is at least one line of actual text."""
        return bool(self.synced) or bool(self.plain)

    @property
    def is_synced(self) -> bool:
        """Whether the lyrics carry timestamps."""
        return bool(self.synced)


def parse_lrc(content: str) -> LrcDocument:
    """Parse LRC text into timed and plain lines."""
    document = LrcDocument()
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or _ID_TAG.match(line):
            continue

        stamps = []
        position = 0
        for match in _TIMESTAMP.finditer(line):
            if match.start() != position:
                break
            minutes, seconds, fraction = match.groups()
            ms = (int(minutes) * 60 + int(seconds)) * 1000
            if fraction:
                ms += int(fraction.ljust(3, "0")[:3])
            stamps.append(ms)
            position = match.end()

        text = line[position:].strip()
        if stamps:
            if text:
                document.synced.extend((ms, text) for ms in stamps)
        else:
            document.plain.append(text)

    document.synced.sort(key=lambda item: item[0])
    return document


def candidate_lrc_paths(track: TrackRecord) -> List[Path]:
    """Sidecar paths to try for a track, in order."""
    audio_path = Path(track.file_path)
    directory = audio_path.parent
    author = sanitize_for_filename(track.author_name)
    title = sanitize_for_filename(track.title)
    return [
        directory / f"{audio_path.stem}.lrc",
        directory / f"{author}_{title}.lrc",
    ]


class LrcScanner:
    """Finds sidecar lyrics files and stores them as track annotations."""

    def __init__(
        self,
        db_service: DatabaseService,
        max_workers: int = DEFAULT_SCAN_CONCURRENCY,
    ) -> None:
        """Initialize scanner.

        Args:
            db_service: Database service used to store annotations
            max_workers: Number of tracks examined concurrently
        """
        self.db_service = db_service
        self.max_workers = max(1, max_workers)

    def find_lyrics(self, track: TrackRecord) -> Optional[str]:
        """Return the content of the first valid sidecar file, if any."""
        for path in candidate_lrc_paths(track):
            if not path.is_file():
                continue
            content = path.read_text(encoding="utf-8", errors="replace")
            if parse_lrc(content).is_valid:
                return content
            logger.debug("Ignoring empty lyrics file: %s", path)
        return None

    def _scan_one(self, track: TrackRecord) -> bool:
        try:
            content = self.find_lyrics(track)
            if content is None:
                return False
            assigned = self.db_service.set_annotation(track.id, content)
            if assigned:
                logger.debug("Assigned lyrics to track %d", track.id)
            return assigned
        except Exception as e:
            logger.warning("Error scanning lyrics for %s: %s", track.title, e)
            return False

    def scan(
        self,
        tracks: Sequence[TrackRecord],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> int:
        """Scan tracks without annotation for sidecar lyrics.

        Args:
            tracks: Catalog tracks
            on_progress: Called with ``(current, total)``; tracks that already
                have an annotation count as processed up front

        Returns:
            Number of tracks that received an annotation
        """
        total = len(tracks)
        to_scan = [t for t in tracks if is_blank(t.annotation)]
        processed = total - len(to_scan)
        logger.info(
            "Scanning %d tracks for lyrics files (%d already annotated)",
            len(to_scan),
            processed,
        )
        if on_progress is not None:
            on_progress(processed, total)
        if not to_scan:
            return 0

        lock = threading.Lock()

        def _work(track: TrackRecord) -> bool:
            nonlocal processed
            assigned = self._scan_one(track)
            with lock:
                processed += 1
                current = processed
            if on_progress is not None and (
                current % PROGRESS_BATCH_SIZE == 0 or current == total
            ):
                on_progress(current, total)
            return assigned

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="lrc-scan"
        ) as executor:
            assigned_count = sum(executor.map(_work, to_scan))

        logger.info("Lyrics scan complete, assigned %d tracks", assigned_count)
        return assigned_count
