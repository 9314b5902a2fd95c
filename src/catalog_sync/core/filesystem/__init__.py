"""Filesystem rules module.

Handles allow/block decisions for media directories.
"""

from .directory_rules import DirectoryRuleResolver, is_parent_or_same, normalize_directory

__all__ = [
    "DirectoryRuleResolver",
    "is_parent_or_same",
    "normalize_directory",
]
