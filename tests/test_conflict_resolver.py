"""Tests for field-level merge of incoming and local tracks."""

import pytest

from catalog_sync.core.sync import FieldMerger
from catalog_sync.models import TrackRecord

DELIMITERS = ["/", ";", ",", "+", "&"]


def make_track(**kwargs):
    """Build a TrackRecord with sensible defaults."""
    fields = dict(
        id=1,
        title="Title",
        author_name="Alice",
        author_id=10,
        book_name="Book",
        book_id=5,
        content_uri="media://external/audio/media/1",
        file_path="/music/Book/01.mp3",
        parent_directory_path="/music/Book",
        track_number=1,
        date_added=1_000,
    )
    fields.update(kwargs)
    return TrackRecord(**fields)


@pytest.fixture
def merger():
    """Create a FieldMerger."""
    return FieldMerger()


class TestShouldPreserveAuthor:
    """Test the author preservation heuristic."""

    def test_edited_author_is_preserved(self):
        """Test a user-edited author survives a different incoming value."""
        assert FieldMerger.should_preserve_author("Alice", "Alicia", DELIMITERS, False)

    def test_incoming_multi_author_with_same_primary_wins(self):
        """Test the combined value replaces the local primary author."""
        assert not FieldMerger.should_preserve_author(
            "Alice", "Alice & Bob", DELIMITERS, False
        )

    def test_local_value_is_trimmed_for_comparison(self):
        """Test surrounding whitespace in the local value is ignored."""
        assert not FieldMerger.should_preserve_author(
            " Alice ", "Alice & Bob", DELIMITERS, False
        )

    def test_incoming_multi_author_with_other_primary_is_preserved(self):
        """Test the local value wins when the primary differs."""
        assert FieldMerger.should_preserve_author("Carol", "Alice & Bob", DELIMITERS, False)

    def test_rescan_required_disables_preservation(self):
        """Test a pending rescan lets incoming values through."""
        assert not FieldMerger.should_preserve_author("Alice", "Alicia", DELIMITERS, True)

    def test_blank_or_equal_local_not_preserved(self):
        """Test nothing to preserve for blank or identical values."""
        assert not FieldMerger.should_preserve_author("  ", "Alice", DELIMITERS, False)
        assert not FieldMerger.should_preserve_author("Alice", "Alice", DELIMITERS, False)

    def test_without_delimiters_local_is_preserved(self):
        """Test no splitting means a single incoming name."""
        assert FieldMerger.should_preserve_author("Alice", "Alice & Bob", [], False)


class TestMerge:
    """Test FieldMerger.merge."""

    def test_user_state_always_kept(self, merger):
        """Test date added, annotation and favorite come from local."""
        local = make_track(date_added=111, annotation="lyrics", is_favorite=True)
        incoming = make_track(date_added=999)

        merged = merger.merge(local, incoming, DELIMITERS, False)

        assert merged.date_added == 111
        assert merged.annotation == "lyrics"
        assert merged.is_favorite is True

    def test_edited_display_fields_kept(self, merger):
        """Test non-blank differing title and book name are preserved."""
        local = make_track(title="My Title", book_name="My Book")
        incoming = make_track(title="Index Title", book_name="Index Book")

        merged = merger.merge(local, incoming, DELIMITERS, False)

        assert merged.title == "My Title"
        assert merged.book_name == "My Book"

    def test_blank_local_fields_take_incoming(self, merger):
        """Test blank local values do not block incoming ones."""
        local = make_track(title=" ", book_name="")
        incoming = make_track(title="Index Title", book_name="Index Book")

        merged = merger.merge(local, incoming, DELIMITERS, False)

        assert merged.title == "Index Title"
        assert merged.book_name == "Index Book"

    def test_category_and_cover_prefer_local(self, merger):
        """Test local category and cover win when present."""
        local = make_track(category="Jazz", cover_uri="file:///local.jpg")
        incoming = make_track(category="Pop", cover_uri="file:///index.jpg")

        merged = merger.merge(local, incoming, DELIMITERS, False)

        assert merged.category == "Jazz"
        assert merged.cover_uri == "file:///local.jpg"

    def test_category_and_cover_fall_back_to_incoming(self, merger):
        """Test missing local category and cover take incoming values."""
        merged = merger.merge(
            make_track(),
            make_track(category="Pop", cover_uri="file:///index.jpg"),
            DELIMITERS,
            False,
        )
        assert merged.category == "Pop"
        assert merged.cover_uri == "file:///index.jpg"

    def test_track_number(self, merger):
        """Test a nonzero local track number is preserved."""
        assert merger.merge(
            make_track(track_number=4), make_track(track_number=9), DELIMITERS, False
        ).track_number == 4
        assert merger.merge(
            make_track(track_number=0), make_track(track_number=9), DELIMITERS, False
        ).track_number == 9

    def test_technical_fields_come_from_incoming(self, merger):
        """Test non-user fields are taken from the index."""
        local = make_track(duration=1, file_path="/old.mp3")
        incoming = make_track(duration=2, file_path="/new.mp3", mime_type="audio/mpeg")

        merged = merger.merge(local, incoming, DELIMITERS, False)

        assert merged.duration == 2
        assert merged.file_path == "/new.mp3"
        assert merged.mime_type == "audio/mpeg"


class TestMergeAll:
    """Test FieldMerger.merge_all."""

    def test_new_records_pass_through(self, merger):
        """Test records without local counterpart are unchanged."""
        incoming = [make_track(id=1, title="New"), make_track(id=2, title="Index")]
        local = {2: make_track(id=2, title="Edited")}

        merged, stats = merger.merge_all(incoming, local, DELIMITERS, False)

        assert [t.title for t in merged] == ["New", "Edited"]
        assert stats.new == 1
        assert stats.merged == 1
        assert stats.preserved_fields == {"title": 1}
