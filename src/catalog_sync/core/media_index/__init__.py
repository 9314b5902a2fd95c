"""Media index module.

Handles the external media index contract, its SQLite implementation, the
category cache and the reader used by sync passes.
"""

from .category_cache import CategoryCache
from .provider import MediaIndexProvider, ProviderRow
from .reader import ExternalCatalogReader
from .sqlite_index import SQLiteMediaIndex

__all__ = [
    "CategoryCache",
    "ExternalCatalogReader",
    "MediaIndexProvider",
    "ProviderRow",
    "SQLiteMediaIndex",
]
