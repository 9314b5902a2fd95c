"""Configuration management for the catalog sync application."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env file from config directory or project root
config_env = Path(__file__).parent.parent.parent / "config" / ".env"
if config_env.exists():
    load_dotenv(config_env)
else:
    load_dotenv()

DEFAULT_ARTWORK_CACHE_SIZE_BYTES = 200 * 1024 * 1024


class Config:
    """Application configuration."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        base_dir = Path(
            os.getenv(
                "CATALOG_SYNC_HOME",
                str(Path.home() / ".catalog-sync"),
            )
        )
        self.base_dir = base_dir

        # Database settings
        self.database_path = Path(
            os.getenv("CATALOG_SYNC_DATABASE_PATH", str(base_dir / "catalog.db"))
        )
        # SQLite's historical SQLITE_MAX_VARIABLE_NUMBER
        self.max_variable_number = int(
            os.getenv("CATALOG_SYNC_MAX_VARIABLE_NUMBER", "999")
        )

        # Preferences (delimiters, directory rules, last sync timestamp)
        self.preferences_path = Path(
            os.getenv(
                "CATALOG_SYNC_PREFERENCES_PATH", str(base_dir / "preferences.json")
            )
        )

        # External media index
        self.media_index_path = Path(
            os.getenv("CATALOG_SYNC_MEDIA_INDEX_PATH", str(base_dir / "media_index.db"))
        )
        self.scan_roots: List[Path] = [
            Path(p)
            for p in os.getenv(
                "CATALOG_SYNC_SCAN_ROOTS", str(Path.home() / "Music")
            ).split(os.pathsep)
            if p
        ]
        self.scan_timeout = float(os.getenv("CATALOG_SYNC_SCAN_TIMEOUT", "15"))

        # Artwork cache
        self.artwork_cache_dir = Path(
            os.getenv("CATALOG_SYNC_ARTWORK_CACHE_DIR", str(base_dir / "cache"))
        )
        self.artwork_cache_max_bytes = int(
            os.getenv(
                "CATALOG_SYNC_ARTWORK_CACHE_MAX_BYTES",
                str(DEFAULT_ARTWORK_CACHE_SIZE_BYTES),
            )
        )

        # Concurrency
        self.augment_concurrency = int(
            os.getenv("CATALOG_SYNC_AUGMENT_CONCURRENCY", "8")
        )
        self.category_query_concurrency = int(
            os.getenv("CATALOG_SYNC_CATEGORY_CONCURRENCY", "4")
        )

        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.preferences_path.parent.mkdir(parents=True, exist_ok=True)
        self.artwork_cache_dir.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """Get application configuration."""
    return Config()
