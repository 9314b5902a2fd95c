"""Value records flowing through a sync pass.

These are detached from the database session: the reader produces them, the
merge and splitting steps copy them with updates, and the persistence layer
converts them to ORM rows inside a single transaction.
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RawRecord(BaseModel):
    """One row as reported by the external media index, after text cleanup."""

    id: int
    book_id: int
    author_id: int
    file_path: str
    title: str
    author: str  # possibly several names joined by delimiters
    book: str
    book_author: Optional[str] = None
    duration: int = 0  # milliseconds
    track_number: int = 0
    year: int = 0
    date_modified: int = 0  # epoch seconds

    @property
    def parent_directory(self) -> str:
        """Directory containing the file ("" when the path has none)."""
        return os.path.dirname(self.file_path)


class TrackRecord(BaseModel):
    """A catalog track ready for merge, splitting and persistence."""

    id: int
    title: str
    author_name: str
    author_id: int
    book_author: Optional[str] = None
    book_name: str
    book_id: int
    content_uri: str
    cover_uri: Optional[str] = None
    duration: int = 0
    category: Optional[str] = None
    file_path: str
    parent_directory_path: str
    is_favorite: bool = False
    annotation: Optional[str] = None
    track_number: int = 0
    year: int = 0
    date_added: int = 0  # epoch milliseconds
    mime_type: Optional[str] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None


class BookRecord(BaseModel):
    """A book (album) derived from the tracks that share its identity key."""

    id: int
    title: str
    author_name: str
    author_id: int
    cover_uri: Optional[str] = None
    track_count: int = 0
    year: int = 0


class AuthorRecord(BaseModel):
    """An individual author produced by splitting multi-valued author fields."""

    id: int
    name: str
    track_count: int = 0
    image_url: Optional[str] = None


class CrossRefRecord(BaseModel):
    """Link between a track and one of its authors."""

    model_config = ConfigDict(frozen=True)

    track_id: int
    author_id: int
    is_primary: bool = False
