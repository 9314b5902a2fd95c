"""Allow/block rules for media directories.

Rules use a nearest-ancestor strategy: the most specific (longest) matching
root decides. An allow rule wins over a block rule of the same length, so a
folder can be explicitly re-allowed inside an excluded tree. With no allow
roots configured every path is blocked.
"""

from typing import Iterable, Optional


def normalize_directory(path: Optional[str]) -> Optional[str]:
    """Strip one trailing slash; return None for blank input."""
    if path is None or not path.strip():
        return None
    return path[:-1] if path.endswith("/") else path


def is_parent_or_same(root: str, path: str) -> bool:
    """Return True when ``root`` is ``path`` or one of its ancestors.

    The comparison is case-insensitive and only matches on whole path
    segments, so ``/a/b`` is not an ancestor of ``/a/bc``.
    """
    if not path.lower().startswith(root.lower()):
        return False
    if len(path) == len(root):
        return True
    return path[len(root)] == "/"


class DirectoryRuleResolver:
    """Decides whether a directory is excluded from the catalog."""

    def __init__(self, allowed: Iterable[str], blocked: Iterable[str]) -> None:
        """Initialize resolver.

        Args:
            allowed: Absolute directory paths whose trees are included
            blocked: Absolute directory paths whose trees are excluded
        """
        self.allowed_roots = frozenset(
            root for root in (normalize_directory(p) for p in allowed) if root is not None
        )
        self.blocked_roots = frozenset(
            root for root in (normalize_directory(p) for p in blocked) if root is not None
        )

    @staticmethod
    def _deepest_match(roots: Iterable[str], path: str) -> int:
        deepest = -1
        for root in roots:
            if is_parent_or_same(root, path) and len(root) > deepest:
                deepest = len(root)
        return deepest

    def is_blocked(self, path: str) -> bool:
        """Check whether ``path`` is excluded.

        Args:
            path: Absolute directory path

        Returns:
            True if the path is outside every allow root, or a deeper block
            root covers it
        """
        if not self.allowed_roots:
            return True

        path = normalize_directory(path) or ""

        deepest_allow = self._deepest_match(self.allowed_roots, path)
        if deepest_allow == -1:
            return True

        deepest_block = self._deepest_match(self.blocked_roots, path)
        return deepest_block > deepest_allow
