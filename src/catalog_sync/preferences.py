"""Sync preferences consulted (and partly written) by every sync pass.

Preferences live in a small JSON document next to the catalog database. The
sync engine reads the author delimiters, grouping policy, directory rules and
rescan flag, and writes back the last-sync timestamp and the cleared rescan
flag after a successful pass.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, List, Set

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR_DELIMITERS: List[str] = ["/", ";", ",", "+", "&"]


def _dedupe_delimiters(delimiters: List[str]) -> List[str]:
    result: List[str] = []
    for delimiter in delimiters:
        if delimiter and delimiter not in result:
            result.append(delimiter)
    return result


class SyncPreferences(BaseModel):
    """User-controlled settings that shape a sync pass."""

    author_delimiters: List[str] = Field(
        default_factory=lambda: list(DEFAULT_AUTHOR_DELIMITERS)
    )
    group_by_book_author: bool = True
    allowed_directories: Set[str] = Field(default_factory=set)
    blocked_directories: Set[str] = Field(default_factory=set)
    rescan_required: bool = False
    last_sync_timestamp: int = 0  # epoch milliseconds
    auto_scan_annotations: bool = False

    @field_validator("author_delimiters")
    @classmethod
    def drop_empty_delimiters(cls, value: List[str]) -> List[str]:
        """Remove empty and repeated delimiters, keeping the configured order."""
        return _dedupe_delimiters(value)


class PreferencesStore:
    """JSON-backed store for SyncPreferences."""

    def __init__(self, path: Path) -> None:
        """Initialize preferences store.

        Args:
            path: Location of the preferences JSON file
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> SyncPreferences:
        """Load preferences, falling back to defaults for a missing file.

        Returns:
            SyncPreferences instance
        """
        with self._lock:
            return self._read()

    def save(self, preferences: SyncPreferences) -> None:
        """Persist preferences.

        Args:
            preferences: Preferences to write
        """
        with self._lock:
            self._write(preferences)

    def update(self, mutate: Callable[[SyncPreferences], Any]) -> SyncPreferences:
        """Apply a read-modify-write cycle atomically.

        Args:
            mutate: Callable receiving the current preferences to modify in place

        Returns:
            Updated preferences
        """
        with self._lock:
            preferences = self._read()
            mutate(preferences)
            self._write(preferences)
            return preferences

    def set_author_delimiters(self, delimiters: List[str]) -> SyncPreferences:
        """Change author delimiters and flag that a full rescan is needed.

        Raises:
            ValueError: If no usable delimiter is given
        """
        cleaned = [d for d in delimiters if d]
        if not cleaned:
            raise ValueError("At least one author delimiter is required")

        def _apply(prefs: SyncPreferences) -> None:
            prefs.author_delimiters = _dedupe_delimiters(cleaned)
            prefs.rescan_required = True

        return self.update(_apply)

    def set_group_by_book_author(self, enabled: bool) -> SyncPreferences:
        """Toggle grouping by book-level author; regrouping requires a rescan."""

        def _apply(prefs: SyncPreferences) -> None:
            if prefs.group_by_book_author != enabled:
                prefs.group_by_book_author = enabled
                prefs.rescan_required = True

        return self.update(_apply)

    def clear_rescan_required(self) -> None:
        """Clear the full-rescan flag after a successful pass."""
        self.update(lambda prefs: setattr(prefs, "rescan_required", False))

    def set_last_sync_timestamp(self, timestamp_ms: int) -> None:
        """Record the time of the last successful pass (epoch milliseconds)."""
        self.update(lambda prefs: setattr(prefs, "last_sync_timestamp", timestamp_ms))

    def _read(self) -> SyncPreferences:
        if not self.path.exists():
            return SyncPreferences()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return SyncPreferences.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Invalid preferences file %s, using defaults: %s", self.path, e)
            return SyncPreferences()

    def _write(self, preferences: SyncPreferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(preferences.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
