"""Tests for the external catalog reader against a real SQLite media index."""

import threading
from unittest.mock import Mock

import pytest

from catalog_sync.core.filesystem import DirectoryRuleResolver
from catalog_sync.core.media_index import (
    CategoryCache,
    ExternalCatalogReader,
    SQLiteMediaIndex,
)
from catalog_sync.core.media_index.reader import UNKNOWN_AUTHOR, UNKNOWN_BOOK, UNKNOWN_TITLE
from catalog_sync.exceptions import ProviderError, SyncCancelledError

MODIFIED = 1_600_000_000


@pytest.fixture
def music_dir(tmp_path):
    """Root directory for media paths."""
    return tmp_path / "music"


@pytest.fixture
def index(tmp_path):
    """Create an empty media index."""
    media_index = SQLiteMediaIndex(tmp_path / "index.db")
    yield media_index
    media_index.close()


@pytest.fixture
def reader(index, music_dir):
    """Reader allowing the music directory except its podcasts folder."""
    resolver = DirectoryRuleResolver(
        allowed=[str(music_dir)], blocked=[str(music_dir / "podcasts")]
    )
    return ExternalCatalogReader(index, resolver, category_cache=CategoryCache())


def add(index, path, **kwargs):
    """Add a music row with defaults that pass the base selection."""
    kwargs.setdefault("duration", 60_000)
    kwargs.setdefault("date_added", MODIFIED)
    kwargs.setdefault("date_modified", MODIFIED)
    return index.add_media(str(path), **kwargs)


class TestListKnownIds:
    """Test listing of index ids."""

    def test_applies_directory_rules_and_base_selection(self, index, reader, music_dir):
        """Test blocked, outside and unselected rows are excluded."""
        kept = add(index, music_dir / "rock" / "a.mp3", title="A")
        add(index, music_dir / "podcasts" / "b.mp3", title="B")
        add(index, "/elsewhere/c.mp3", title="C")
        add(index, music_dir / "rock" / "short.mp3", duration=3_000)
        flac = add(index, music_dir / "rock" / "short.flac", duration=3_000, is_music=False)

        assert reader.list_known_ids() == {kept, flac}

    def test_provider_failure_raises(self, music_dir):
        """Test query failures surface as ProviderError."""
        provider = Mock()
        provider.query_id_paths.side_effect = RuntimeError("gone")
        reader = ExternalCatalogReader(provider, DirectoryRuleResolver([str(music_dir)], []))

        with pytest.raises(ProviderError):
            reader.list_known_ids()


class TestFetchChangedSince:
    """Test fetching and building track records."""

    def test_builds_track_records(self, index, reader, music_dir):
        """Test all record fields are derived from the index."""
        path = music_dir / "Book" / "01.mp3"
        media_id = add(
            index,
            path,
            title=" Chapter 1\x00 ",
            author="Alice & Bob",
            book="Book",
            book_id=3,
            author_id=4,
            track_number=1,
            year=2001,
        )
        index.set_book_art(3, str(music_dir / "Book" / "cover.jpg"))
        category = index.add_category("Audiobooks")
        index.add_category_members(category, [media_id])

        [track] = reader.fetch_changed_since(0)

        assert track.id == media_id
        assert track.title == "Chapter 1"
        assert track.author_name == "Alice & Bob"
        assert track.book_id == 3
        assert track.author_id == 4
        assert track.content_uri == index.content_uri(media_id)
        assert track.cover_uri == (music_dir / "Book" / "cover.jpg").as_uri()
        assert track.category == "Audiobooks"
        assert track.file_path == str(path)
        assert track.parent_directory_path == str(music_dir / "Book")
        assert track.date_added == MODIFIED * 1000
        assert track.year == 2001

    def test_missing_text_gets_defaults(self, index, reader, music_dir):
        """Test blank metadata is replaced with placeholder text."""
        add(index, music_dir / "x.mp3", title="  ", author=None, book=None)

        [track] = reader.fetch_changed_since(0)

        assert track.title == UNKNOWN_TITLE
        assert track.author_name == UNKNOWN_AUTHOR
        assert track.book_name == UNKNOWN_BOOK

    def test_since_filters_unchanged_rows(self, index, reader, music_dir):
        """Test only rows added or modified after ``since`` are returned."""
        add(index, music_dir / "old.mp3", title="Old")
        add(
            index,
            music_dir / "new.mp3",
            title="New",
            date_added=MODIFIED,
            date_modified=MODIFIED + 100,
        )

        tracks = reader.fetch_changed_since(MODIFIED + 50)

        assert [t.title for t in tracks] == ["New"]

    def test_blocked_rows_skipped(self, index, reader, music_dir):
        """Test rows in blocked directories are not fetched."""
        add(index, music_dir / "podcasts" / "ep.mp3", title="Episode")
        assert reader.fetch_changed_since(0) == []

    def test_progress_reported(self, index, reader, music_dir):
        """Test progress starts at zero and ends at the total."""
        for i in range(3):
            add(index, music_dir / f"{i}.mp3", title=str(i))
        calls = []

        reader.fetch_changed_since(0, on_progress=lambda c, t: calls.append((c, t)))

        assert calls[0] == (0, 3)
        assert calls[-1] == (3, 3)

    def test_results_in_index_order(self, index, reader, music_dir):
        """Test enrichment keeps the index order."""
        ids = [add(index, music_dir / f"{i:02d}.mp3", title=str(i)) for i in range(20)]
        assert [t.id for t in reader.fetch_changed_since(0)] == ids

    def test_cancelled_before_enrichment(self, index, reader, music_dir):
        """Test a set cancel event stops the fetch."""
        add(index, music_dir / "a.mp3", title="A")
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(SyncCancelledError):
            reader.fetch_changed_since(0, cancel_event=cancel)

    def test_primary_query_failure_raises(self, music_dir):
        """Test a failing record query aborts the fetch."""
        provider = Mock()
        provider.query_book_art.return_value = {}
        provider.query_categories.return_value = []
        provider.query_records.side_effect = RuntimeError("cursor died")
        reader = ExternalCatalogReader(provider, DirectoryRuleResolver([str(music_dir)], []))

        with pytest.raises(ProviderError):
            reader.fetch_changed_since(0)


class TestCategories:
    """Test the category map."""

    def test_last_category_wins_and_unknown_skipped(self, index, reader, music_dir):
        """Test membership resolution across several categories."""
        media_id = add(index, music_dir / "a.mp3", title="A")
        first = index.add_category("Jazz")
        second = index.add_category("Blues")
        unknown = index.add_category("Unknown")
        for category in (first, second, unknown):
            index.add_category_members(category, [media_id])

        assert reader.load_categories() == {media_id: "Blues"}

    def test_failed_refresh_returns_empty(self, music_dir):
        """Test a provider failure yields an empty, uncached map."""
        provider = Mock()
        provider.query_categories.side_effect = RuntimeError("boom")
        cache = CategoryCache()
        reader = ExternalCatalogReader(
            provider, DirectoryRuleResolver([str(music_dir)], []), category_cache=cache
        )

        assert reader.load_categories() == {}
        assert len(cache) == 0


class TestRescanTrigger:
    """Test discovery and submission of unindexed files."""

    @pytest.fixture
    def storage(self, tmp_path):
        """Storage root with regular, hidden and system folders."""
        root = tmp_path / "storage"
        for relative in [
            "Music/a.mp3",
            "Music/notes.txt",
            "Music/data/b.flac",
            ".hidden/c.mp3",
            "Android/media/d.mp3",
            "Android/data/app/e.mp3",
        ]:
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"")
        return root

    def test_find_unindexed_files(self, reader, storage):
        """Test hidden and system folders are skipped."""
        found = reader.find_unindexed_files([storage], [], set())
        assert found == [
            str(storage / "Music" / "a.mp3"),
            str(storage / "Music" / "data" / "b.flac"),
        ]

    def test_allowed_dir_opens_system_folder(self, reader, storage):
        """Test an allowed directory below Android is walked."""
        found = reader.find_unindexed_files(
            [storage], [str(storage / "Android" / "media")], set()
        )
        assert str(storage / "Android" / "media" / "d.mp3") in found
        assert str(storage / "Android" / "data" / "app" / "e.mp3") not in found

    def test_known_paths_excluded(self, reader, storage):
        """Test files the index knows are not resubmitted."""
        known = {str(storage / "Music" / "a.mp3")}
        found = reader.find_unindexed_files([storage], [], known)
        assert str(storage / "Music" / "a.mp3") not in found

    def test_trigger_rescan_waits_for_acknowledgements(self, storage, music_dir):
        """Test files are submitted and acknowledged."""
        provider = Mock()
        provider.query_known_paths.return_value = set()
        provider.scan_files.side_effect = lambda paths, cb: [cb(p, 1) for p in paths]
        reader = ExternalCatalogReader(provider, DirectoryRuleResolver([str(music_dir)], []))

        assert reader.trigger_rescan([storage], timeout=1) == 2
        submitted = provider.scan_files.call_args[0][0]
        assert len(submitted) == 2

    def test_trigger_rescan_timeout_is_ignored(self, storage, music_dir):
        """Test an index that never acknowledges does not fail the call."""
        provider = Mock()
        provider.query_known_paths.return_value = set()
        reader = ExternalCatalogReader(provider, DirectoryRuleResolver([str(music_dir)], []))

        assert reader.trigger_rescan([storage], timeout=0.01) == 2

    def test_trigger_rescan_failure_is_ignored(self, storage, music_dir):
        """Test provider errors are swallowed."""
        provider = Mock()
        provider.query_known_paths.side_effect = RuntimeError("no index")
        reader = ExternalCatalogReader(provider, DirectoryRuleResolver([str(music_dir)], []))

        assert reader.trigger_rescan([storage]) == 0

    def test_trigger_rescan_with_real_index(self, index, reader, tmp_path):
        """Test files the index rejects are acknowledged without a row."""
        root = tmp_path / "scan"
        root.mkdir()
        (root / "broken.mp3").write_bytes(b"not audio")

        assert reader.trigger_rescan([root], timeout=5) == 1
        assert index.query_known_paths() == set()
