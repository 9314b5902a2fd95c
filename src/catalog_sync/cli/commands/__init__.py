"""CLI command modules."""

from .cache import cache
from .init import (
    InitializationError,
    init_artwork_cache,
    init_db,
    init_media_index,
    init_orchestrator,
    init_preferences,
)
from .prefs import prefs
from .status import status
from .sync import sync_command

__all__ = [
    "cache",
    "prefs",
    "status",
    "sync_command",
    "InitializationError",
    "init_db",
    "init_media_index",
    "init_artwork_cache",
    "init_preferences",
    "init_orchestrator",
]
