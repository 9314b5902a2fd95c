"""Sync module for reconciling the catalog with the media index.

Handles multi-author splitting, field-level merging and orchestration of
sync passes.
"""

from .author_splitter import AuthorSplitter, SplitResult, split_authors
from .conflict_resolver import FieldMerger, MergeStatistics
from .orchestrator import (
    FullHandler,
    IncrementalHandler,
    RebuildHandler,
    SyncMode,
    SyncOrchestrator,
    SyncPass,
    SyncResult,
)

__all__ = [
    # Author splitting
    "AuthorSplitter",
    "SplitResult",
    "split_authors",
    # Merging
    "FieldMerger",
    "MergeStatistics",
    # Orchestration
    "SyncMode",
    "SyncOrchestrator",
    "SyncPass",
    "SyncResult",
    "IncrementalHandler",
    "FullHandler",
    "RebuildHandler",
]
