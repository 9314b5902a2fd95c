"""Tests for database models and service."""

import pytest
from sqlalchemy import event, text

from catalog_sync.database import DatabaseService, Track
from catalog_sync.exceptions import PersistenceError
from catalog_sync.models import AuthorRecord, BookRecord, CrossRefRecord, TrackRecord


def make_track(track_id, author_id=1, book_id=1, **kwargs):
    """Build a TrackRecord with sensible defaults."""
    fields = dict(
        id=track_id,
        title=f"Track {track_id}",
        author_name=f"Author {author_id}",
        author_id=author_id,
        book_name=f"Book {book_id}",
        book_id=book_id,
        content_uri=f"media://external/audio/media/{track_id}",
        file_path=f"/music/{track_id}.mp3",
        parent_directory_path="/music",
    )
    fields.update(kwargs)
    return TrackRecord(**fields)


def make_book(book_id, author_id=1):
    """Build a BookRecord."""
    return BookRecord(
        id=book_id, title=f"Book {book_id}", author_name=f"Author {author_id}", author_id=author_id
    )


def make_author(author_id, **kwargs):
    """Build an AuthorRecord."""
    return AuthorRecord(id=author_id, name=f"Author {author_id}", **kwargs)


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db_service = DatabaseService(tmp_path / "test.db")
    yield db_service
    db_service.close()


@pytest.fixture
def populated_db(temp_db):
    """Database with two books, three authors and four tracks."""
    temp_db.merge_catalog(
        tracks=[
            make_track(1, author_id=1, book_id=1),
            make_track(2, author_id=1, book_id=1),
            make_track(3, author_id=2, book_id=2),
            make_track(4, author_id=3, book_id=2),
        ],
        books=[make_book(1, 1), make_book(2, 2)],
        authors=[make_author(1), make_author(2), make_author(3)],
        cross_refs=[
            CrossRefRecord(track_id=1, author_id=1, is_primary=True),
            CrossRefRecord(track_id=2, author_id=1, is_primary=True),
            CrossRefRecord(track_id=3, author_id=2, is_primary=True),
            CrossRefRecord(track_id=3, author_id=3, is_primary=False),
            CrossRefRecord(track_id=4, author_id=3, is_primary=True),
        ],
    )
    return temp_db


class TestDatabaseModels:
    """Test database models."""

    def test_track_to_record(self):
        """Test Track converts to a TrackRecord with all fields."""
        record = make_track(5, annotation="la la", is_favorite=True)
        assert Track(**record.model_dump()).to_record() == record


class TestDatabaseService:
    """Test database service setup and reads."""

    def test_init_db(self, temp_db):
        """Test a new database is created with empty tables."""
        assert temp_db.db_path.exists()
        assert temp_db.is_initialized()
        assert temp_db.get_statistics() == {
            "tracks": 0,
            "books": 0,
            "authors": 0,
            "cross_refs": 0,
        }

    @pytest.mark.parametrize("limit", [2, 3, 20])
    def test_rejects_limit_below_one_track_row(self, tmp_path, limit):
        """Test a limit that cannot bind a single track row is refused."""
        with pytest.raises(ValueError):
            DatabaseService(tmp_path / "x.db", max_variable_number=limit)

    def test_smallest_limit_binds_one_track_per_statement(self, tmp_path):
        """Test the minimum limit gives one track row per upsert."""
        columns = len(Track.__table__.columns)
        db_service = DatabaseService(tmp_path / "x.db", max_variable_number=columns)
        try:
            assert db_service.track_batch_size == 1
            assert db_service.track_batch_size * columns <= db_service.max_variable_number
        finally:
            db_service.close()

    def test_batch_sizes(self, temp_db):
        """Test default batch sizes for the 999 parameter limit."""
        assert temp_db.cross_ref_batch_size == 333
        assert temp_db.delete_batch_size == 999
        assert temp_db.track_batch_size == 999 // len(Track.__table__.columns)

    def test_reads(self, populated_db):
        """Test snapshot reads."""
        assert populated_db.get_all_track_ids() == {1, 2, 3, 4}
        assert populated_db.get_track_count() == 4
        assert populated_db.get_max_author_id() == 3
        assert populated_db.get_track_by_id(3).title == "Track 3"
        assert populated_db.get_track_by_id(99) is None
        assert [a.id for a in populated_db.get_authors_for_track(3)] == [2, 3]

    def test_aggregate_counts(self, populated_db):
        """Test counts are recomputed from persisted rows."""
        books = {b.id: b.track_count for b in populated_db.get_all_books()}
        authors = {a.id: a.track_count for a in populated_db.get_all_authors()}
        assert books == {1: 2, 2: 2}
        assert authors == {1: 2, 2: 1, 3: 2}


class TestOutOfBandUpdates:
    """Test updates made outside of sync passes."""

    def test_set_annotation(self, populated_db):
        """Test annotations are stored for existing tracks only."""
        assert populated_db.set_annotation(1, "[00:01.00]Hello")
        assert not populated_db.set_annotation(99, "x")
        assert populated_db.get_track_by_id(1).annotation == "[00:01.00]Hello"

    def test_update_track_metadata(self, populated_db):
        """Test user edits to display fields."""
        assert populated_db.update_track_metadata(1, title="Edited")
        assert populated_db.get_track_by_id(1).title == "Edited"

    def test_update_track_metadata_rejects_unknown_fields(self, populated_db):
        """Test unknown or key columns are refused."""
        with pytest.raises(ValueError):
            populated_db.update_track_metadata(1, nonsense=1)
        with pytest.raises(ValueError):
            populated_db.update_track_metadata(1, id=5)

    def test_author_image_url_survives_upsert(self, populated_db):
        """Test an image URL is kept when a sync writes the author again."""
        populated_db.set_author_image_url(1, "https://img/1.jpg")
        populated_db.merge_catalog(
            tracks=[make_track(1)],
            books=[make_book(1)],
            authors=[make_author(1)],
            cross_refs=[CrossRefRecord(track_id=1, author_id=1, is_primary=True)],
        )
        authors = {a.id: a for a in populated_db.get_all_authors()}
        assert authors[1].image_url == "https://img/1.jpg"


class TestProcedures:
    """Test transaction-scoped procedures."""

    def test_merge_is_idempotent(self, populated_db):
        """Test applying the same result twice leaves the same state."""
        before = (
            populated_db.get_all_tracks(),
            populated_db.get_all_books(),
            populated_db.get_all_authors(),
            sorted(populated_db.get_all_cross_refs(), key=lambda r: (r.track_id, r.author_id)),
        )
        populated_db.merge_catalog(
            tracks=populated_db.get_all_tracks(),
            books=populated_db.get_all_books(),
            authors=populated_db.get_all_authors(),
            cross_refs=populated_db.get_all_cross_refs(),
        )
        after = (
            populated_db.get_all_tracks(),
            populated_db.get_all_books(),
            populated_db.get_all_authors(),
            sorted(populated_db.get_all_cross_refs(), key=lambda r: (r.track_id, r.author_id)),
        )
        assert before == after

    def test_merge_replaces_links_of_upserted_tracks(self, populated_db):
        """Test a track's old links are dropped when it is written again."""
        populated_db.merge_catalog(
            tracks=[make_track(3, author_id=2, book_id=2)],
            books=[make_book(2, 2)],
            authors=[make_author(2)],
            cross_refs=[CrossRefRecord(track_id=3, author_id=2, is_primary=True)],
        )
        assert populated_db.get_cross_refs_for_track(3) == [
            CrossRefRecord(track_id=3, author_id=2, is_primary=True)
        ]

    def test_delete_tracks_removes_orphans(self, populated_db):
        """Test books and authors without tracks disappear with them."""
        deleted = populated_db.delete_tracks([3, 4])

        assert deleted == 2
        assert populated_db.get_all_track_ids() == {1, 2}
        assert [b.id for b in populated_db.get_all_books()] == [1]
        assert [a.id for a in populated_db.get_all_authors()] == [1]
        assert all(r.track_id in {1, 2} for r in populated_db.get_all_cross_refs())

    def test_delete_tracks_empty(self, populated_db):
        """Test deleting nothing is a no-op."""
        assert populated_db.delete_tracks([]) == 0
        assert populated_db.get_track_count() == 4

    def test_primary_author_without_link_is_kept(self, temp_db):
        """Test an author named primary on a track is not an orphan."""
        temp_db.merge_catalog(
            tracks=[make_track(1, author_id=7)],
            books=[make_book(1, 7)],
            authors=[make_author(7)],
            cross_refs=[],
        )
        assert [a.id for a in temp_db.get_all_authors()] == [7]

    def test_merge_drops_orphaned_book(self, populated_db):
        """Test a book left empty by a move is deleted."""
        populated_db.merge_catalog(
            tracks=[make_track(1, book_id=2), make_track(2, book_id=2)],
            books=[make_book(2, 2)],
            authors=[make_author(1)],
            cross_refs=[
                CrossRefRecord(track_id=1, author_id=1, is_primary=True),
                CrossRefRecord(track_id=2, author_id=1, is_primary=True),
            ],
        )
        assert [b.id for b in populated_db.get_all_books()] == [2]

    def test_merge_keeps_tracks_missing_from_result(self, populated_db):
        """Test a merge never deletes; removals go through delete_tracks."""
        populated_db.merge_catalog([], [], [], [])
        assert populated_db.get_all_track_ids() == {1, 2, 3, 4}

    def test_replace_catalog(self, populated_db):
        """Test replace leaves only the new result."""
        populated_db.replace_catalog(
            tracks=[make_track(9, author_id=5, book_id=8)],
            books=[make_book(8, 5)],
            authors=[make_author(5)],
            cross_refs=[CrossRefRecord(track_id=9, author_id=5, is_primary=True)],
        )
        assert populated_db.get_statistics() == {
            "tracks": 1,
            "books": 1,
            "authors": 1,
            "cross_refs": 1,
        }

    def test_clear_all_catalog_data(self, populated_db):
        """Test every catalog table is emptied."""
        populated_db.clear_all_catalog_data()
        assert populated_db.get_statistics()["tracks"] == 0
        assert populated_db.get_statistics()["authors"] == 0

    def test_failed_transaction_rolls_back(self, populated_db):
        """Test a failing statement undoes the whole unit of work."""
        with pytest.raises(PersistenceError):
            with populated_db.transaction() as session:
                populated_db.delete_tracks_by_ids(session, [1, 2, 3, 4])
                session.execute(text("SELECT * FROM no_such_table"))

        assert populated_db.get_track_count() == 4


class TestBatching:
    """Test statements stay within the bound parameter limit."""

    @pytest.fixture
    def small_db(self, tmp_path):
        """Database with a small parameter limit recording statement sizes."""
        db_service = DatabaseService(tmp_path / "small.db", max_variable_number=30)
        sizes = []

        def _record(conn, cursor, statement, parameters, context, executemany):
            if executemany:
                sizes.append(len(parameters[0]) if parameters else 0)
            else:
                sizes.append(len(parameters or ()))

        event.listen(db_service.engine, "before_cursor_execute", _record)
        db_service.parameter_counts = sizes
        yield db_service
        db_service.close()

    def test_large_merge_is_batched(self, small_db):
        """Test many rows never exceed the parameter limit per statement."""
        tracks = [make_track(i, author_id=(i % 5) + 1) for i in range(1, 121)]
        cross_refs = [
            CrossRefRecord(track_id=t.id, author_id=a, is_primary=a == t.author_id)
            for t in tracks
            for a in {t.author_id, 6}
        ]
        small_db.merge_catalog(
            tracks=tracks,
            books=[make_book(1)],
            authors=[make_author(i) for i in range(1, 7)],
            cross_refs=cross_refs,
        )

        assert small_db.get_track_count() == 120
        assert len(small_db.get_all_cross_refs()) == 240
        assert max(small_db.parameter_counts) <= 30

    def test_large_delete_is_batched(self, small_db):
        """Test id-list deletes are split into capped statements."""
        tracks = [make_track(i) for i in range(1, 101)]
        small_db.merge_catalog(tracks, [make_book(1)], [make_author(1)], [])
        small_db.parameter_counts.clear()

        assert small_db.delete_tracks(range(1, 101)) == 100
        assert max(small_db.parameter_counts) <= 30
