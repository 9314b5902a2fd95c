"""Annotations module.

Handles the post-sync scan for sidecar lyrics files.
"""

from .lrc_scanner import LrcDocument, LrcScanner, candidate_lrc_paths, parse_lrc

__all__ = [
    "LrcDocument",
    "LrcScanner",
    "candidate_lrc_paths",
    "parse_lrc",
]
