"""Media index backed by a SQLite database.

This is the concrete provider used by the command-line tool. It mirrors the
shape of a device media index: a ``media`` table with one row per audio file,
``categories`` with their ``category_members``, and ``book_art`` mapping book
ids to cover images. New files are added by ``scan_files``, which reads tags
with mutagen on a background thread.
"""

import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    and_,
    create_engine,
    delete,
    func,
    insert,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import ColumnElement

from ..metadata.tag_reader import read_tags
from .provider import (
    ALWAYS_INCLUDED_EXTENSIONS,
    MIN_MUSIC_DURATION_MS,
    MediaIndexProvider,
    ProviderRow,
    ScanCallback,
)

logger = logging.getLogger(__name__)

CONTENT_URI_PREFIX = "media://external/audio/media"
BOOK_ART_URI_PREFIX = "media://external/audio/albumart"

metadata = MetaData()

media_table = Table(
    "media",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("file_path", String, nullable=False, unique=True),
    Column("title", String),
    Column("author", String),
    Column("author_id", Integer, nullable=False, default=0),
    Column("book", String),
    Column("book_id", Integer, nullable=False, default=0),
    Column("book_author", String),
    Column("duration", Integer, nullable=False, default=0),
    Column("track_number", Integer, nullable=False, default=0),
    Column("year", Integer, nullable=False, default=0),
    Column("is_music", Boolean, nullable=False, default=True),
    Column("date_added", Integer, nullable=False, default=0),
    Column("date_modified", Integer, nullable=False, default=0),
)

categories_table = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String),
)

category_members_table = Table(
    "category_members",
    metadata,
    Column("category_id", Integer, primary_key=True),
    Column("media_id", Integer, primary_key=True),
)

book_art_table = Table(
    "book_art",
    metadata,
    Column("book_id", Integer, primary_key=True),
    Column("art_path", String),
)


def base_selection() -> ColumnElement[bool]:
    """Music of at least ten seconds, or one of the always-included formats."""
    lowered = func.lower(media_table.c.file_path)
    return or_(
        and_(
            media_table.c.is_music == true(),
            media_table.c.duration >= MIN_MUSIC_DURATION_MS,
        ),
        *[lowered.like(f"%{ext}") for ext in ALWAYS_INCLUDED_EXTENSIONS],
    )


class SQLiteMediaIndex(MediaIndexProvider):
    """MediaIndexProvider over a local SQLite database."""

    def __init__(self, db_path: Path) -> None:
        """Initialize media index, creating its tables if needed.

        Args:
            db_path: Path to the index database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite:///{self.db_path}", echo=False)
        metadata.create_all(self.engine)
        self._write_lock = threading.Lock()
        logger.debug("Media index opened at: %s", self.db_path)

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        self.engine.dispose()

    # =========================================================================
    # Provider contract
    # =========================================================================

    def query_id_paths(self) -> Iterator[Tuple[int, str]]:
        stmt = select(media_table.c.id, media_table.c.file_path).where(base_selection())
        with self.engine.connect() as conn:
            for row in conn.execute(stmt):
                yield row.id, row.file_path

    def query_records(self, since_seconds: int = 0) -> Iterator[ProviderRow]:
        stmt = select(media_table).where(base_selection()).order_by(media_table.c.id)
        if since_seconds > 0:
            stmt = stmt.where(
                or_(
                    media_table.c.date_modified > since_seconds,
                    media_table.c.date_added > since_seconds,
                )
            )
        with self.engine.connect() as conn:
            for row in conn.execute(stmt):
                yield ProviderRow(
                    id=row.id,
                    file_path=row.file_path,
                    title=row.title,
                    author=row.author,
                    author_id=row.author_id,
                    book=row.book,
                    book_id=row.book_id,
                    book_author=row.book_author,
                    duration=row.duration,
                    track_number=row.track_number,
                    year=row.year,
                    date_added=row.date_added,
                    date_modified=row.date_modified,
                )

    def query_known_paths(self) -> Set[str]:
        stmt = select(media_table.c.file_path).where(base_selection())
        with self.engine.connect() as conn:
            return set(conn.scalars(stmt))

    def query_book_art(self) -> Dict[int, str]:
        art: Dict[int, str] = {}
        with self.engine.connect() as conn:
            for row in conn.execute(select(book_art_table)):
                if row.art_path and row.art_path.strip():
                    art[row.book_id] = Path(row.art_path).absolute().as_uri()
                elif row.book_id > 0:
                    art[row.book_id] = f"{BOOK_ART_URI_PREFIX}/{row.book_id}"
        return art

    def query_categories(self) -> List[Tuple[int, str]]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(categories_table.c.id, categories_table.c.name))
            return [(row.id, row.name) for row in rows]

    def query_category_members(self, category_id: int) -> List[int]:
        stmt = select(category_members_table.c.media_id).where(
            category_members_table.c.category_id == category_id
        )
        with self.engine.connect() as conn:
            return list(conn.scalars(stmt))

    def scan_files(self, paths: Sequence[str], on_scanned: ScanCallback) -> None:
        worker = threading.Thread(
            target=self._scan_worker,
            args=(list(paths), on_scanned),
            name="media-index-scan",
            daemon=True,
        )
        worker.start()

    def content_uri(self, media_id: int) -> str:
        return f"{CONTENT_URI_PREFIX}/{media_id}"

    # =========================================================================
    # Index maintenance
    # =========================================================================

    def _scan_worker(self, paths: List[str], on_scanned: ScanCallback) -> None:
        for path in paths:
            media_id: Optional[int] = None
            try:
                media_id = self._index_file(path)
            except Exception as e:
                logger.warning("Failed to index %s: %s", path, e)
            on_scanned(path, media_id)

    def _index_file(self, path: str) -> Optional[int]:
        tags = read_tags(path, include_artwork=False)
        if tags is None:
            logger.debug("Not an audio file, skipping: %s", path)
            return None

        modified = int(os.path.getmtime(path))
        return self.add_media(
            path,
            title=tags.title or Path(path).stem,
            author=tags.author,
            book=tags.book,
            book_author=tags.book_author,
            duration=tags.duration_ms or 0,
            track_number=tags.track_number or 0,
            year=tags.year or 0,
            date_added=modified,
            date_modified=modified,
            category=tags.category,
        )

    @staticmethod
    def _resolve_group_id(conn: Connection, name_column: Any, id_column: Any, name: Optional[str]) -> int:
        if name:
            existing = conn.scalar(
                select(id_column).where(name_column == name).limit(1)
            )
            if existing:
                return existing
        return (conn.scalar(select(func.max(id_column))) or 0) + 1

    def add_media(
        self,
        file_path: str,
        title: Optional[str] = None,
        author: Optional[str] = None,
        book: Optional[str] = None,
        book_author: Optional[str] = None,
        duration: int = 0,
        track_number: int = 0,
        year: int = 0,
        is_music: bool = True,
        date_added: Optional[int] = None,
        date_modified: Optional[int] = None,
        author_id: Optional[int] = None,
        book_id: Optional[int] = None,
        category: Optional[str] = None,
    ) -> int:
        """Insert a media row, or return the id of the row with this path.

        Author and book ids are reused for names already in the index.

        Returns:
            Media id
        """
        now = int(time.time())
        with self._write_lock, self.engine.begin() as conn:
            existing = conn.scalar(
                select(media_table.c.id).where(media_table.c.file_path == file_path)
            )
            if existing is not None:
                return existing

            if author_id is None:
                author_id = self._resolve_group_id(
                    conn, media_table.c.author, media_table.c.author_id, author
                )
            if book_id is None:
                book_id = self._resolve_group_id(
                    conn, media_table.c.book, media_table.c.book_id, book
                )

            result = conn.execute(
                insert(media_table).values(
                    file_path=file_path,
                    title=title,
                    author=author,
                    author_id=author_id,
                    book=book,
                    book_id=book_id,
                    book_author=book_author,
                    duration=duration,
                    track_number=track_number,
                    year=year,
                    is_music=is_music,
                    date_added=now if date_added is None else date_added,
                    date_modified=now if date_modified is None else date_modified,
                )
            )
            media_id = result.inserted_primary_key[0]

            if category:
                category_id = conn.scalar(
                    select(categories_table.c.id).where(categories_table.c.name == category)
                )
                if category_id is None:
                    category_id = conn.execute(
                        insert(categories_table).values(name=category)
                    ).inserted_primary_key[0]
                conn.execute(
                    insert(category_members_table).values(
                        category_id=category_id, media_id=media_id
                    )
                )

        return media_id

    def update_media(self, media_id: int, **fields: Any) -> None:
        """Change columns of a media row and bump its modification time."""
        fields.setdefault("date_modified", int(time.time()))
        with self._write_lock, self.engine.begin() as conn:
            conn.execute(
                update(media_table).where(media_table.c.id == media_id).values(**fields)
            )

    def remove_media(self, media_id: int) -> None:
        """Remove a media row and its category memberships."""
        with self._write_lock, self.engine.begin() as conn:
            conn.execute(
                delete(category_members_table).where(
                    category_members_table.c.media_id == media_id
                )
            )
            conn.execute(delete(media_table).where(media_table.c.id == media_id))

    def add_category(self, name: str) -> int:
        """Create a category and return its id."""
        with self._write_lock, self.engine.begin() as conn:
            return conn.execute(
                insert(categories_table).values(name=name)
            ).inserted_primary_key[0]

    def add_category_members(self, category_id: int, media_ids: Iterable[int]) -> None:
        """Put media rows into a category."""
        rows = [{"category_id": category_id, "media_id": m} for m in media_ids]
        if not rows:
            return
        with self._write_lock, self.engine.begin() as conn:
            conn.execute(insert(category_members_table), rows)

    def set_book_art(self, book_id: int, art_path: Optional[str]) -> None:
        """Register a cover image for a book."""
        with self._write_lock, self.engine.begin() as conn:
            conn.execute(delete(book_art_table).where(book_art_table.c.book_id == book_id))
            conn.execute(insert(book_art_table).values(book_id=book_id, art_path=art_path))
