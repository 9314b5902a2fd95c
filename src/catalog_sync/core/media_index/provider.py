"""Contract of the external media index the catalog is reconciled against.

The index is authoritative for which media exist, but unreliable: metadata may
be stale or wrong, and files on disk may not be indexed yet. Implementations
apply the base selection themselves (music longer than ten seconds, plus a few
container formats regardless of duration).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

# Files of these formats are selected even when not flagged as music or short
ALWAYS_INCLUDED_EXTENSIONS = (".m4a", ".flac", ".wav", ".opus", ".ogg")
MIN_MUSIC_DURATION_MS = 10_000

# Called once per path with the new media id (None when the file was rejected)
ScanCallback = Callable[[str, Optional[int]], None]


@dataclass
class ProviderRow:
    """One media row exactly as the index reports it."""

    id: int
    file_path: str
    title: Optional[str] = None
    author: Optional[str] = None
    author_id: int = 0
    book: Optional[str] = None
    book_id: int = 0
    book_author: Optional[str] = None
    duration: int = 0  # milliseconds
    track_number: int = 0
    year: int = 0
    date_added: int = 0  # epoch seconds
    date_modified: int = 0  # epoch seconds


class MediaIndexProvider(ABC):
    """Read-only query contract plus a best-effort scan trigger."""

    @abstractmethod
    def query_id_paths(self) -> Iterable[Tuple[int, str]]:
        """Yield ``(id, file_path)`` for every selected media row."""

    @abstractmethod
    def query_records(self, since_seconds: int = 0) -> Iterable[ProviderRow]:
        """Yield selected rows.

        Args:
            since_seconds: When positive, only rows whose modification or
                addition time is later than this epoch second
        """

    @abstractmethod
    def query_known_paths(self) -> Set[str]:
        """File paths of every selected media row."""

    @abstractmethod
    def query_book_art(self) -> Dict[int, str]:
        """Map book id to a cover art locator."""

    @abstractmethod
    def query_categories(self) -> List[Tuple[int, str]]:
        """List ``(category_id, name)`` pairs."""

    @abstractmethod
    def query_category_members(self, category_id: int) -> Iterable[int]:
        """Yield media ids belonging to a category."""

    @abstractmethod
    def scan_files(self, paths: Sequence[str], on_scanned: ScanCallback) -> None:
        """Ask the index to pick up files it does not know yet.

        Returns immediately; ``on_scanned`` is invoked once per path as the
        index acknowledges it, possibly from another thread.
        """

    @abstractmethod
    def content_uri(self, media_id: int) -> str:
        """Content locator for a media id."""
