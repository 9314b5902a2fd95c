"""Utility modules for the catalog sync application."""

from .logging_config import configure_third_party_loggers, setup_logging
from .text import (
    is_blank,
    normalize_metadata_text,
    sanitize_for_filename,
)

__all__ = [
    "setup_logging",
    "configure_third_party_loggers",
    "normalize_metadata_text",
    "is_blank",
    "sanitize_for_filename",
]
