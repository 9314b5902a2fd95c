"""SQLAlchemy database models for the local media catalog."""

from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..models.models import AuthorRecord, BookRecord, CrossRefRecord, TrackRecord


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Track(Base):
    """A track as persisted in the local catalog.

    The id is the external media index id, so it is stable across passes.
    """

    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    # Display metadata (user-editable fields are preserved by the merge step)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author_name: Mapped[str] = mapped_column(String(500), nullable=False)
    author_id: Mapped[int] = mapped_column(Integer, nullable=False)
    book_author: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    book_name: Mapped[str] = mapped_column(String(500), nullable=False)
    book_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Locators
    content_uri: Mapped[str] = mapped_column(String(1000), nullable=False)
    cover_uri: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    file_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    parent_directory_path: Mapped[str] = mapped_column(String(1000), nullable=False)

    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # ms
    category: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    annotation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    track_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    year: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Technical audio metadata
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bitrate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # bps
    sample_rate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # Hz

    __table_args__ = (
        Index("idx_tracks_title", "title"),
        Index("idx_tracks_book_id", "book_id"),
        Index("idx_tracks_author_id", "author_id"),
        Index("idx_tracks_author_name", "author_name"),
        Index("idx_tracks_category", "category"),
        Index("idx_tracks_parent_directory", "parent_directory_path"),
    )

    def to_record(self) -> TrackRecord:
        """Convert to a detached TrackRecord."""
        return TrackRecord(
            id=self.id,
            title=self.title,
            author_name=self.author_name,
            author_id=self.author_id,
            book_author=self.book_author,
            book_name=self.book_name,
            book_id=self.book_id,
            content_uri=self.content_uri,
            cover_uri=self.cover_uri,
            duration=self.duration,
            category=self.category,
            file_path=self.file_path,
            parent_directory_path=self.parent_directory_path,
            is_favorite=self.is_favorite,
            annotation=self.annotation,
            track_number=self.track_number,
            year=self.year,
            date_added=self.date_added,
            mime_type=self.mime_type,
            bitrate=self.bitrate,
            sample_rate=self.sample_rate,
        )

    def __repr__(self) -> str:
        """String representation of Track."""
        return (
            f"<Track(id={self.id}, title='{self.title}', "
            f"author='{self.author_name}')>"
        )


class Book(Base):
    """A book (album) grouping tracks that share title and resolved author."""

    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author_name: Mapped[str] = mapped_column(String(500), nullable=False)
    author_id: Mapped[int] = mapped_column(Integer, nullable=False)
    cover_uri: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    track_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    year: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_books_title", "title"),
        Index("idx_books_author_id", "author_id"),
        Index("idx_books_author_name", "author_name"),
    )

    def to_record(self) -> BookRecord:
        """Convert to a detached BookRecord."""
        return BookRecord(
            id=self.id,
            title=self.title,
            author_name=self.author_name,
            author_id=self.author_id,
            cover_uri=self.cover_uri,
            track_count=self.track_count,
            year=self.year,
        )

    def __repr__(self) -> str:
        """String representation of Book."""
        return f"<Book(id={self.id}, title='{self.title}')>"


class Author(Base):
    """An individual author."""

    __tablename__ = "authors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    track_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Set out-of-band (image lookups), never by the sync pass itself
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    __table_args__ = (Index("idx_authors_name", "name"),)

    def to_record(self) -> AuthorRecord:
        """Convert to a detached AuthorRecord."""
        return AuthorRecord(
            id=self.id,
            name=self.name,
            track_count=self.track_count,
            image_url=self.image_url,
        )

    def __repr__(self) -> str:
        """String representation of Author."""
        return f"<Author(id={self.id}, name='{self.name}')>"


class TrackAuthorCrossRef(Base):
    """Junction row linking a track to one of its authors."""

    __tablename__ = "track_author_cross_ref"

    track_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    author_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_cross_ref_track_id", "track_id"),
        Index("idx_cross_ref_author_id", "author_id"),
        Index("idx_cross_ref_is_primary", "is_primary"),
    )

    def to_record(self) -> CrossRefRecord:
        """Convert to a detached CrossRefRecord."""
        return CrossRefRecord(
            track_id=self.track_id,
            author_id=self.author_id,
            is_primary=self.is_primary,
        )

    def __repr__(self) -> str:
        """String representation of TrackAuthorCrossRef."""
        return (
            f"<TrackAuthorCrossRef(track_id={self.track_id}, "
            f"author_id={self.author_id}, is_primary={self.is_primary})>"
        )
