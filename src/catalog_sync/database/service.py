"""Database service for the local media catalog.

Besides plain reads, this module is the persistence port of the sync engine:
every write a sync pass makes goes through one of the transaction-scoped
procedures (``delete_tracks``, ``merge_catalog``, ``replace_catalog``,
``clear_all_catalog_data``). Each procedure runs its primitive operations in a
single session and either commits all of them or rolls everything back.

Multi-row statements are chunked so that ``rows * columns`` never exceeds the
store's bound parameter limit.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, TypeVar

from sqlalchemy import (
    Table,
    create_engine,
    delete,
    event,
    func,
    inspect,
    select,
    update,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from alembic import command  # type: ignore[attr-defined]
from alembic.config import Config as AlembicConfig  # type: ignore[import-not-found]

from ..exceptions import PersistenceError
from ..models.models import AuthorRecord, BookRecord, CrossRefRecord, TrackRecord
from .models import Author, Base, Book, Track, TrackAuthorCrossRef

logger = logging.getLogger(__name__)

# SQLite's historical default for SQLITE_MAX_VARIABLE_NUMBER
DEFAULT_MAX_VARIABLE_NUMBER = 999
CROSS_REF_COLUMNS = 3
# Widest row bound by a single statement
TRACK_COLUMNS = len(Track.__table__.columns)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _set_sqlite_pragmas(dbapi_connection: Any, _connection_record: Any) -> None:
    # WAL lets readers proceed while a long sync transaction is writing
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


class DatabaseService:
    """Service for catalog reads and transactional sync writes."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        max_variable_number: int = DEFAULT_MAX_VARIABLE_NUMBER,
    ) -> None:
        """Initialize database service.

        Args:
            db_path: Path to SQLite database file.
                    If None, uses default ~/.catalog-sync/catalog.db
            max_variable_number: Maximum bound parameters per statement
        """
        if db_path is None:
            db_path = Path.home() / ".catalog-sync" / "catalog.db"
        if max_variable_number < TRACK_COLUMNS:
            raise ValueError(
                f"max_variable_number must be at least {TRACK_COLUMNS} (one track row), "
                f"got {max_variable_number}"
            )

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_variable_number = max_variable_number

        db_exists = self.db_path.exists()

        self.engine = create_engine(f"sqlite:///{self.db_path}", echo=False)
        event.listen(self.engine, "connect", _set_sqlite_pragmas)

        self.SessionLocal = sessionmaker(
            autoflush=False, expire_on_commit=False, bind=self.engine
        )

        logger.info("Database initialized at: %s", self.db_path)

        if not db_exists:
            logger.info("New database detected, initializing schema...")
            self.init_db()

    def init_db(self) -> None:
        """Initialize database schema.

        This creates tables using SQLAlchemy and then stamps Alembic to mark the
        database as current (since all tables are created).
        """
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema created successfully")
        self._stamp_migrations()

    def _alembic_config(self) -> Optional[AlembicConfig]:
        # alembic.ini and alembic/ live in the project root, next to src/
        package_dir = Path(__file__).parent.parent.parent.parent
        alembic_ini = package_dir / "alembic.ini"
        alembic_dir = package_dir / "alembic"

        if not alembic_ini.exists() or not alembic_dir.exists():
            logger.warning("Alembic not found at %s, skipping", package_dir)
            return None

        alembic_cfg = AlembicConfig(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(alembic_dir))
        alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        return alembic_cfg

    def _stamp_migrations(self) -> None:
        """Stamp database as being at the latest migration version."""
        try:
            alembic_cfg = self._alembic_config()
            if alembic_cfg is None:
                return
            command.stamp(alembic_cfg, "head")
            logger.info("Database stamped with latest migration version")
        except Exception as e:
            logger.error("Failed to stamp migrations: %s", e)
            logger.warning("Database may need manual migration")

    def run_migrations(self) -> None:
        """Run Alembic migrations to upgrade database to latest version."""
        try:
            alembic_cfg = self._alembic_config()
            if alembic_cfg is None:
                return
            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations applied successfully")
        except Exception as e:
            logger.error("Failed to run migrations: %s", e)
            logger.warning("Continuing with base schema only")

    def get_session(self) -> Session:
        """Get a new database session.

        Returns:
            SQLAlchemy Session object

        Note:
            Caller is responsible for closing the session
        """
        return self.SessionLocal()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run a unit of work that commits on success and rolls back on error.

        Raises:
            PersistenceError: If the database rejects any statement
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Transaction rolled back: %s", e)
            raise PersistenceError(f"Catalog transaction failed: {e}") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        self.engine.dispose()

    def is_initialized(self) -> bool:
        """Check that the engine works and the catalog tables exist.

        Returns:
            True if fully initialized, False otherwise
        """
        try:
            inspector = inspect(self.engine)
            for table in ("tracks", "books", "authors", "track_author_cross_ref"):
                if not inspector.has_table(table):
                    logger.debug("Required table missing: %s", table)
                    return False

            with self.SessionLocal() as session:
                session.execute(select(1))

            return True
        except SQLAlchemyError as e:
            logger.debug("Database initialization check failed: %s", e)
            return False

    # =========================================================================
    # Batch sizing
    # =========================================================================

    def batch_size_for(self, columns_per_row: int) -> int:
        """Rows per statement so that rows * columns stays within the limit."""
        return max(1, self.max_variable_number // columns_per_row)

    @property
    def track_batch_size(self) -> int:
        """Rows per multi-row track upsert."""
        return self.batch_size_for(TRACK_COLUMNS)

    @property
    def cross_ref_batch_size(self) -> int:
        """Rows per multi-row cross-reference insert."""
        return self.batch_size_for(CROSS_REF_COLUMNS)

    @property
    def delete_batch_size(self) -> int:
        """Ids per ``IN (...)`` delete statement."""
        return self.batch_size_for(1)

    # =========================================================================
    # Read Operations
    # =========================================================================

    def get_all_track_ids(self) -> Set[int]:
        """Get ids of every persisted track."""
        with self.get_session() as session:
            return set(session.scalars(select(Track.id)).all())

    def get_all_tracks(self) -> List[TrackRecord]:
        """Get a detached snapshot of every persisted track."""
        with self.get_session() as session:
            return [row.to_record() for row in session.scalars(select(Track))]

    def get_track_by_id(self, track_id: int) -> Optional[TrackRecord]:
        """Get one track by id.

        Args:
            track_id: Track id (the media index id)

        Returns:
            TrackRecord or None if not found
        """
        with self.get_session() as session:
            row = session.get(Track, track_id)
            return row.to_record() if row else None

    def get_all_authors(self) -> List[AuthorRecord]:
        """Get a detached snapshot of every author."""
        with self.get_session() as session:
            stmt = select(Author).order_by(Author.name)
            return [row.to_record() for row in session.scalars(stmt)]

    def get_all_books(self) -> List[BookRecord]:
        """Get a detached snapshot of every book."""
        with self.get_session() as session:
            stmt = select(Book).order_by(Book.title)
            return [row.to_record() for row in session.scalars(stmt)]

    def get_max_author_id(self) -> int:
        """Highest author id ever persisted, or 0 for an empty table."""
        with self.get_session() as session:
            return session.scalar(select(func.max(Author.id))) or 0

    def get_track_count(self) -> int:
        """Number of persisted tracks."""
        with self.get_session() as session:
            return session.scalar(select(func.count()).select_from(Track)) or 0

    def get_cross_refs_for_track(self, track_id: int) -> List[CrossRefRecord]:
        """Get the author links of one track."""
        with self.get_session() as session:
            stmt = select(TrackAuthorCrossRef).where(
                TrackAuthorCrossRef.track_id == track_id
            )
            return [row.to_record() for row in session.scalars(stmt)]

    def get_all_cross_refs(self) -> List[CrossRefRecord]:
        """Get every track-author link."""
        with self.get_session() as session:
            return [
                row.to_record() for row in session.scalars(select(TrackAuthorCrossRef))
            ]

    def get_authors_for_track(self, track_id: int) -> List[AuthorRecord]:
        """Get the authors of a track, primary author first.

        Args:
            track_id: Track id

        Returns:
            List of AuthorRecord ordered by primary flag, then name
        """
        with self.get_session() as session:
            stmt = (
                select(Author)
                .join(
                    TrackAuthorCrossRef,
                    TrackAuthorCrossRef.author_id == Author.id,
                )
                .where(TrackAuthorCrossRef.track_id == track_id)
                .order_by(TrackAuthorCrossRef.is_primary.desc(), Author.name)
            )
            return [row.to_record() for row in session.scalars(stmt)]

    def get_statistics(self) -> Dict[str, Any]:
        """Get database statistics.

        Returns:
            Dictionary with row counts per table
        """
        with self.get_session() as session:

            def _count(model: Any) -> int:
                return session.scalar(select(func.count()).select_from(model)) or 0

            return {
                "tracks": _count(Track),
                "books": _count(Book),
                "authors": _count(Author),
                "cross_refs": _count(TrackAuthorCrossRef),
            }

    # =========================================================================
    # Out-of-band Updates
    # =========================================================================

    def set_annotation(self, track_id: int, annotation: Optional[str]) -> bool:
        """Store (or clear) the free-text annotation of a track.

        Returns:
            True if the track exists
        """
        with self.transaction() as session:
            result = session.execute(
                update(Track).where(Track.id == track_id).values(annotation=annotation)
            )
            return bool(result.rowcount)

    def set_favorite(self, track_id: int, is_favorite: bool) -> bool:
        """Mark or unmark a track as favorite.

        Returns:
            True if the track exists
        """
        with self.transaction() as session:
            result = session.execute(
                update(Track)
                .where(Track.id == track_id)
                .values(is_favorite=is_favorite)
            )
            return bool(result.rowcount)

    def update_track_metadata(self, track_id: int, **fields: Any) -> bool:
        """Apply a user edit to display fields of a track.

        Args:
            track_id: Track id
            **fields: Column values (title, author_name, book_name, ...)

        Returns:
            True if the track exists
        """
        unknown = set(fields) - set(Track.__table__.columns.keys())
        if unknown or "id" in fields:
            raise ValueError(f"Cannot update track fields: {sorted(unknown or {'id'})}")
        with self.transaction() as session:
            result = session.execute(
                update(Track).where(Track.id == track_id).values(**fields)
            )
            return bool(result.rowcount)

    def set_author_image_url(self, author_id: int, image_url: str) -> bool:
        """Attach an image URL to an author; sync passes preserve it."""
        with self.transaction() as session:
            result = session.execute(
                update(Author).where(Author.id == author_id).values(image_url=image_url)
            )
            return bool(result.rowcount)

    # =========================================================================
    # Primitive Write Operations (caller owns the session/transaction)
    # =========================================================================

    def _upsert(
        self,
        session: Session,
        table: Table,
        rows: List[Dict[str, Any]],
        preserve_when_null: Iterable[str] = (),
    ) -> None:
        keep = set(preserve_when_null)
        for chunk in chunked(rows, self.batch_size_for(len(table.columns))):
            stmt = sqlite_insert(table).values(list(chunk))
            set_ = {
                column.name: (
                    func.coalesce(stmt.excluded[column.name], column)
                    if column.name in keep
                    else stmt.excluded[column.name]
                )
                for column in table.columns
                if not column.primary_key
            }
            stmt = stmt.on_conflict_do_update(
                index_elements=[c for c in table.primary_key.columns],
                set_=set_,
            )
            session.execute(stmt)

    def upsert_tracks(self, session: Session, tracks: Sequence[TrackRecord]) -> None:
        """Insert or replace tracks in parameter-capped batches."""
        self._upsert(session, Track.__table__, [t.model_dump() for t in tracks])

    def upsert_books(self, session: Session, books: Sequence[BookRecord]) -> None:
        """Insert or replace books."""
        self._upsert(session, Book.__table__, [b.model_dump() for b in books])

    def upsert_authors(self, session: Session, authors: Sequence[AuthorRecord]) -> None:
        """Insert or replace authors, keeping an existing image URL."""
        self._upsert(
            session,
            Author.__table__,
            [a.model_dump() for a in authors],
            preserve_when_null=("image_url",),
        )

    def delete_tracks_by_ids(self, session: Session, track_ids: Sequence[int]) -> int:
        """Delete tracks by id in capped batches.

        Returns:
            Number of deleted rows
        """
        deleted = 0
        for chunk in chunked(list(track_ids), self.delete_batch_size):
            result = session.execute(delete(Track).where(Track.id.in_(chunk)))
            deleted += result.rowcount or 0
        return deleted

    def delete_cross_refs_by_track_ids(
        self, session: Session, track_ids: Sequence[int]
    ) -> None:
        """Delete every author link of the given tracks in capped batches."""
        for chunk in chunked(list(track_ids), self.delete_batch_size):
            session.execute(
                delete(TrackAuthorCrossRef).where(
                    TrackAuthorCrossRef.track_id.in_(chunk)
                )
            )

    def insert_cross_refs(
        self, session: Session, cross_refs: Sequence[CrossRefRecord]
    ) -> None:
        """Insert author links, ignoring rows that already exist."""
        rows = [ref.model_dump() for ref in cross_refs]
        for chunk in chunked(rows, self.cross_ref_batch_size):
            stmt = (
                sqlite_insert(TrackAuthorCrossRef.__table__)
                .values(list(chunk))
                .on_conflict_do_nothing()
            )
            session.execute(stmt)

    def delete_orphaned_books(self, session: Session) -> int:
        """Delete books no track points to."""
        result = session.execute(
            delete(Book).where(Book.id.not_in(select(Track.book_id).distinct()))
        )
        return result.rowcount or 0

    def delete_orphaned_authors(self, session: Session) -> int:
        """Delete authors neither linked to a live track nor primary on one."""
        linked = (
            select(TrackAuthorCrossRef.author_id)
            .join(Track, Track.id == TrackAuthorCrossRef.track_id)
            .distinct()
        )
        primary = select(Track.author_id).distinct()
        result = session.execute(
            delete(Author).where(Author.id.not_in(linked), Author.id.not_in(primary))
        )
        return result.rowcount or 0

    def delete_dangling_cross_refs(self, session: Session) -> int:
        """Delete links whose track or author no longer exists."""
        result = session.execute(
            delete(TrackAuthorCrossRef).where(
                TrackAuthorCrossRef.track_id.not_in(select(Track.id))
                | TrackAuthorCrossRef.author_id.not_in(select(Author.id))
            )
        )
        return result.rowcount or 0

    def refresh_aggregate_counts(self, session: Session) -> None:
        """Recompute book and author track counts from the persisted rows."""
        session.execute(
            update(Book).values(
                track_count=select(func.count(Track.id))
                .where(Track.book_id == Book.id)
                .scalar_subquery()
            )
        )
        session.execute(
            update(Author).values(
                track_count=select(func.count(TrackAuthorCrossRef.track_id))
                .where(TrackAuthorCrossRef.author_id == Author.id)
                .scalar_subquery()
            )
        )

    def clear_catalog(self, session: Session) -> None:
        """Delete every catalog row."""
        session.execute(delete(TrackAuthorCrossRef))
        session.execute(delete(Track))
        session.execute(delete(Book))
        session.execute(delete(Author))

    def _cleanup_orphans(self, session: Session) -> None:
        books = self.delete_orphaned_books(session)
        authors = self.delete_orphaned_authors(session)
        refs = self.delete_dangling_cross_refs(session)
        self.refresh_aggregate_counts(session)
        if books or authors or refs:
            logger.debug(
                "Orphan cleanup removed %d books, %d authors, %d links",
                books,
                authors,
                refs,
            )

    # =========================================================================
    # Transaction-scoped Procedures
    # =========================================================================

    def delete_tracks(self, track_ids: Iterable[int]) -> int:
        """Delete tracks and their author links atomically.

        Books and authors left without tracks are removed in the same
        transaction.

        Args:
            track_ids: Ids to delete

        Returns:
            Number of deleted tracks
        """
        ids = sorted(set(track_ids))
        if not ids:
            return 0
        with self.transaction() as session:
            self.delete_cross_refs_by_track_ids(session, ids)
            deleted = self.delete_tracks_by_ids(session, ids)
            self._cleanup_orphans(session)
        logger.info("Deleted %d tracks", deleted)
        return deleted

    def merge_catalog(
        self,
        tracks: Sequence[TrackRecord],
        books: Sequence[BookRecord],
        authors: Sequence[AuthorRecord],
        cross_refs: Sequence[CrossRefRecord],
    ) -> None:
        """Upsert a sync result on top of the existing catalog.

        Order: upsert authors, upsert books, upsert tracks in batches,
        replace links of the upserted tracks, then remove orphaned
        books/authors and refresh aggregate counts. Tracks not in the result
        are left alone; removals go through delete_tracks.
        """
        with self.transaction() as session:
            self.upsert_authors(session, authors)
            self.upsert_books(session, books)
            self.upsert_tracks(session, tracks)

            self.delete_cross_refs_by_track_ids(session, [t.id for t in tracks])
            self.insert_cross_refs(session, cross_refs)

            self._cleanup_orphans(session)

        logger.info(
            "Merged %d tracks, %d books, %d authors, %d links",
            len(tracks),
            len(books),
            len(authors),
            len(cross_refs),
        )

    def replace_catalog(
        self,
        tracks: Sequence[TrackRecord],
        books: Sequence[BookRecord],
        authors: Sequence[AuthorRecord],
        cross_refs: Sequence[CrossRefRecord],
    ) -> None:
        """Clear the catalog and insert a fresh sync result atomically."""
        with self.transaction() as session:
            self.clear_catalog(session)
            self.upsert_authors(session, authors)
            self.upsert_books(session, books)
            self.upsert_tracks(session, tracks)
            self.insert_cross_refs(session, cross_refs)
            self._cleanup_orphans(session)

        logger.info(
            "Replaced catalog with %d tracks, %d books, %d authors",
            len(tracks),
            len(books),
            len(authors),
        )

    def clear_all_catalog_data(self) -> None:
        """Delete tracks, books, authors and links atomically."""
        with self.transaction() as session:
            self.clear_catalog(session)
        logger.info("Cleared all catalog data")
