"""CLI display and formatting utilities."""

from .formatters import (
    display_errors,
    display_preferences,
    display_status,
    display_sync_result,
)

__all__ = [
    "display_errors",
    "display_preferences",
    "display_status",
    "display_sync_result",
]
