"""Tests for directory allow/block rules."""

import pytest

from catalog_sync.core.filesystem import (
    DirectoryRuleResolver,
    is_parent_or_same,
    normalize_directory,
)


class TestNormalizeDirectory:
    """Test directory normalization."""

    def test_strips_one_trailing_slash(self):
        """Test a single trailing slash is removed."""
        assert normalize_directory("/music/") == "/music"
        assert normalize_directory("/music") == "/music"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_is_none(self, value):
        """Test blank entries normalize to None."""
        assert normalize_directory(value) is None


class TestIsParentOrSame:
    """Test the ancestor check."""

    def test_same_path(self):
        """Test a root is its own ancestor."""
        assert is_parent_or_same("/a/b", "/a/b")

    def test_descendant(self):
        """Test a nested path matches."""
        assert is_parent_or_same("/a/b", "/a/b/c/d")

    def test_sibling_with_common_prefix(self):
        """Test matching happens on whole path segments only."""
        assert not is_parent_or_same("/a/b", "/a/bc")

    def test_case_insensitive(self):
        """Test comparison ignores case."""
        assert is_parent_or_same("/Music/Books", "/music/books/x")


class TestDirectoryRuleResolver:
    """Test DirectoryRuleResolver decisions."""

    def test_no_allowed_roots_blocks_everything(self):
        """Test deny-by-default with an empty allow list."""
        resolver = DirectoryRuleResolver(allowed=[], blocked=[])
        assert resolver.is_blocked("/storage/music")

    def test_outside_allowed_root_is_blocked(self):
        """Test paths outside every allow root are blocked."""
        resolver = DirectoryRuleResolver(allowed=["/storage/music"], blocked=[])
        assert resolver.is_blocked("/storage/downloads")
        assert not resolver.is_blocked("/storage/music/rock")

    def test_deeper_block_wins(self):
        """Test a block root below an allow root blocks its subtree."""
        resolver = DirectoryRuleResolver(
            allowed=["/storage/music"], blocked=["/storage/music/podcasts"]
        )
        assert resolver.is_blocked("/storage/music/podcasts")
        assert resolver.is_blocked("/storage/music/podcasts/show")
        assert not resolver.is_blocked("/storage/music/books")

    def test_deeper_allow_wins(self):
        """Test an allow root below a block root re-opens its subtree."""
        resolver = DirectoryRuleResolver(
            allowed=["/storage", "/storage/music/podcasts/keep"],
            blocked=["/storage/music/podcasts"],
        )
        assert resolver.is_blocked("/storage/music/podcasts/other")
        assert not resolver.is_blocked("/storage/music/podcasts/keep")
        assert not resolver.is_blocked("/storage/music/podcasts/keep/ep1")

    def test_same_root_allowed_and_blocked_is_allowed(self):
        """Test equal depth does not block."""
        resolver = DirectoryRuleResolver(allowed=["/music"], blocked=["/music"])
        assert not resolver.is_blocked("/music/a")

    def test_trailing_slashes_and_blank_entries(self):
        """Test rule entries are normalized and blanks ignored."""
        resolver = DirectoryRuleResolver(
            allowed=["/music/", "", "  "], blocked=["/music/private/"]
        )
        assert resolver.allowed_roots == frozenset({"/music"})
        assert not resolver.is_blocked("/music/")
        assert resolver.is_blocked("/music/private")

    def test_segment_boundary(self):
        """Test a block on /a/b does not affect /a/bc."""
        resolver = DirectoryRuleResolver(allowed=["/a"], blocked=["/a/b"])
        assert resolver.is_blocked("/a/b")
        assert not resolver.is_blocked("/a/bc")
