"""Tests for deep-scan metadata augmentation."""

import threading
import time
from unittest.mock import Mock

import pytest

from catalog_sync.core.artwork import ArtworkCacheManager
from catalog_sync.core.metadata import AudioTags, EmbeddedArtwork, MetadataAugmenter
from catalog_sync.exceptions import SyncCancelledError
from catalog_sync.models import TrackRecord


@pytest.fixture
def audio_file(tmp_path):
    """An existing .ogg file (contents are never parsed by the fake reader)."""
    path = tmp_path / "track.ogg"
    path.write_bytes(b"")
    return path


def make_track(path, **kwargs):
    """Build a TrackRecord for ``path``."""
    fields = dict(
        id=1,
        title="Index Title",
        author_name="Index Author",
        author_id=1,
        book_name="Index Book",
        book_id=1,
        content_uri="media://external/audio/media/1",
        file_path=str(path),
        parent_directory_path=str(path.parent),
    )
    fields.update(kwargs)
    return TrackRecord(**fields)


@pytest.fixture
def cache(tmp_path):
    """Create an artwork cache."""
    return ArtworkCacheManager(tmp_path / "cache")


class TestNeedsAugmentation:
    """Test which files are opened."""

    @pytest.mark.parametrize("path", ["a.wav", "a.OPUS", "a.ogg", "a.oga", "a.aiff"])
    def test_unreliable_formats(self, path):
        """Test unreliable formats are always augmented."""
        assert MetadataAugmenter.needs_augmentation(path, deep_scan=False)

    def test_reliable_formats_only_in_deep_scan(self):
        """Test other formats are opened only in a deep scan."""
        assert not MetadataAugmenter.needs_augmentation("a.mp3", deep_scan=False)
        assert MetadataAugmenter.needs_augmentation("a.mp3", deep_scan=True)


class TestAugment:
    """Test MetadataAugmenter.augment."""

    def test_overrides_non_blank_fields(self, audio_file):
        """Test tag values replace index values, missing tags do not."""
        reader = Mock(return_value=AudioTags(title="Tag Title", author=None, year=1999))
        augmenter = MetadataAugmenter(tag_reader=reader)

        track = augmenter.augment(make_track(audio_file))

        assert track.title == "Tag Title"
        assert track.author_name == "Index Author"
        assert track.year == 1999
        assert track.mime_type is None

    def test_reliable_format_untouched(self, tmp_path):
        """Test an mp3 outside a deep scan is returned as is."""
        reader = Mock()
        record = make_track(tmp_path / "a.mp3")

        assert MetadataAugmenter(tag_reader=reader).augment(record) is record
        reader.assert_not_called()

    def test_missing_file_untouched(self, tmp_path):
        """Test a path that does not exist is not read."""
        reader = Mock()
        record = make_track(tmp_path / "gone.ogg")

        assert MetadataAugmenter(tag_reader=reader).augment(record) == record
        reader.assert_not_called()

    def test_reader_failure_returns_record(self, audio_file):
        """Test augment never raises."""
        reader = Mock(side_effect=RuntimeError("corrupt"))
        record = make_track(audio_file)

        assert MetadataAugmenter(tag_reader=reader).augment(record) is record

    def test_deep_scan_fills_technical_fields(self, audio_file):
        """Test mime type, bitrate and sample rate in a deep scan."""
        reader = Mock(
            return_value=AudioTags(mime_type="audio/ogg", bitrate=192000, sample_rate=44100)
        )
        track = MetadataAugmenter(tag_reader=reader).augment(
            make_track(audio_file), deep_scan=True
        )

        assert (track.mime_type, track.bitrate, track.sample_rate) == (
            "audio/ogg",
            192000,
            44100,
        )

    def test_deep_scan_saves_artwork(self, audio_file, cache):
        """Test embedded artwork is cached and used as cover."""
        reader = Mock(return_value=AudioTags(artwork=EmbeddedArtwork(data=b"img")))
        track = MetadataAugmenter(cache, tag_reader=reader).augment(
            make_track(audio_file), deep_scan=True
        )

        assert cache.artwork_path(1).read_bytes() == b"img"
        assert track.cover_uri == cache.uri_for(cache.artwork_path(1))
        assert reader.call_args.kwargs["include_artwork"] is True

    def test_deep_scan_marks_missing_artwork(self, audio_file, cache):
        """Test a file without artwork gets a marker."""
        reader = Mock(return_value=AudioTags())
        MetadataAugmenter(cache, tag_reader=reader).augment(
            make_track(audio_file), deep_scan=True
        )
        assert cache.has_no_artwork_marker(1)

    def test_cached_artwork_reused(self, audio_file, cache):
        """Test cached artwork skips extraction."""
        cached = cache.save_artwork(1, b"old")
        reader = Mock(return_value=AudioTags(artwork=EmbeddedArtwork(data=b"new")))

        track = MetadataAugmenter(cache, tag_reader=reader).augment(
            make_track(audio_file), deep_scan=True
        )

        assert cached.read_bytes() == b"old"
        assert track.cover_uri == cache.uri_for(cached)
        assert reader.call_args.kwargs["include_artwork"] is False

    def test_no_artwork_marker_honoured(self, audio_file, cache):
        """Test a marked track is not searched for artwork again."""
        cache.mark_no_artwork(1)
        reader = Mock(return_value=AudioTags())

        MetadataAugmenter(cache, tag_reader=reader).augment(
            make_track(audio_file), deep_scan=True
        )

        assert reader.call_args.kwargs["include_artwork"] is False


class TestMapBounded:
    """Test the bounded worker pool."""

    def test_results_in_input_order(self):
        """Test results are joined in input order regardless of timing."""
        augmenter = MetadataAugmenter(max_workers=4)

        def _work(n):
            time.sleep(0.001 * (10 - n))
            return n * 2

        assert augmenter.map_bounded(list(range(10)), _work) == [n * 2 for n in range(10)]

    def test_concurrency_is_bounded(self):
        """Test no more than max_workers items run at once."""
        augmenter = MetadataAugmenter(max_workers=2)
        lock = threading.Lock()
        active = 0
        peak = 0

        def _work(n):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.005)
            with lock:
                active -= 1
            return n

        augmenter.map_bounded(list(range(8)), _work)
        assert peak <= 2

    def test_progress_callback(self):
        """Test every completed item is reported."""
        calls = []
        MetadataAugmenter(max_workers=3).map_bounded(
            [1, 2, 3], lambda n: n, on_item_done=lambda c, t: calls.append((c, t))
        )
        assert sorted(calls) == [(1, 3), (2, 3), (3, 3)]

    def test_cancellation_stops_new_work(self):
        """Test items after cancellation are not started."""
        cancel = threading.Event()
        started = []

        def _work(n):
            started.append(n)
            if n == 0:
                cancel.set()
            return n

        with pytest.raises(SyncCancelledError):
            MetadataAugmenter(max_workers=1).map_bounded(
                list(range(5)), _work, cancel_event=cancel
            )
        assert len(started) < 5

    def test_invalid_worker_count(self):
        """Test max_workers must be positive."""
        with pytest.raises(ValueError):
            MetadataAugmenter(max_workers=0)
