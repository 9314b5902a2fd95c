"""Service initialization helpers shared by CLI commands.

Each helper builds its service from the application configuration:
- init_db() -> DatabaseService
- init_media_index() -> SQLiteMediaIndex
- init_artwork_cache() -> ArtworkCacheManager
- init_preferences() -> PreferencesStore
- init_orchestrator() -> SyncOrchestrator wired from all of the above
"""

import logging
from typing import Optional

from ...config import Config
from ...core.artwork import ArtworkCacheManager
from ...core.media_index import SQLiteMediaIndex
from ...core.metadata import MetadataAugmenter
from ...core.sync import SyncOrchestrator
from ...database import DatabaseService, ProgressCallback
from ...exceptions import CatalogSyncError
from ...preferences import PreferencesStore

logger = logging.getLogger(__name__)


class InitializationError(CatalogSyncError):
    """Raised when initialization fails."""

    pass


def init_db(config: Optional[Config] = None) -> DatabaseService:
    """Initialize or get DatabaseService instance.

    Args:
        config: Application configuration (creates new if not provided)

    Returns:
        DatabaseService instance

    Raises:
        InitializationError: If database cannot be initialized
    """
    if config is None:
        config = Config()

    try:
        db_service = DatabaseService(
            db_path=config.database_path,
            max_variable_number=config.max_variable_number,
        )

        if not db_service.is_initialized():
            logger.info("Initializing database schema...")
            db_service.init_db()

        stats = db_service.get_statistics()
        logger.debug(
            "Database connected: %d tracks, %d books, %d authors",
            stats["tracks"],
            stats["books"],
            stats["authors"],
        )
        return db_service

    except Exception as e:
        logger.exception("Database initialization failed")
        raise InitializationError(f"Database initialization failed: {e}") from e


def init_media_index(config: Optional[Config] = None) -> SQLiteMediaIndex:
    """Open the media index database.

    Raises:
        InitializationError: If the index cannot be opened
    """
    if config is None:
        config = Config()

    try:
        return SQLiteMediaIndex(config.media_index_path)
    except Exception as e:
        logger.exception("Media index initialization failed")
        raise InitializationError(f"Media index initialization failed: {e}") from e


def init_artwork_cache(config: Optional[Config] = None) -> ArtworkCacheManager:
    """Create the artwork cache manager for the configured directory."""
    if config is None:
        config = Config()
    return ArtworkCacheManager(
        config.artwork_cache_dir, max_size_bytes=config.artwork_cache_max_bytes
    )


def init_preferences(config: Optional[Config] = None) -> PreferencesStore:
    """Open the preferences store."""
    if config is None:
        config = Config()
    return PreferencesStore(config.preferences_path)


def init_orchestrator(
    config: Optional[Config] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> SyncOrchestrator:
    """Wire a SyncOrchestrator from the configuration.

    Args:
        config: Application configuration (creates new if not provided)
        progress_callback: Receives progress updates

    Returns:
        SyncOrchestrator instance

    Raises:
        InitializationError: If a required service fails to initialize
    """
    if config is None:
        config = Config()

    db_service = init_db(config)
    artwork_cache = init_artwork_cache(config)
    return SyncOrchestrator(
        db_service=db_service,
        provider=init_media_index(config),
        preferences_store=init_preferences(config),
        artwork_cache=artwork_cache,
        augmenter=MetadataAugmenter(
            artwork_cache, max_workers=config.augment_concurrency
        ),
        scan_roots=config.scan_roots,
        scan_timeout=config.scan_timeout,
        category_concurrency=config.category_query_concurrency,
        progress_callback=progress_callback,
    )
