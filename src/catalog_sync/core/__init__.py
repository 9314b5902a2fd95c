"""Core logic modules for the catalog sync engine.

This package contains the sync engine organized by concern:
- filesystem: directory allow/block rules
- media_index: external media index provider and reader
- metadata: tag reading and deep-scan augmentation
- artwork: derived cover-art cache
- sync: author splitting, field merge and sync orchestration
- annotations: post-sync annotation scan
"""

__all__: list[str] = []
