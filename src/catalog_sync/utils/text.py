"""Text helpers for metadata coming from media indexes and tags."""

import re
from typing import Optional

# NUL padding and other control characters that tag writers leave behind
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def normalize_metadata_text(value: Optional[str]) -> Optional[str]:
    """Strip control characters and surrounding whitespace.

    Args:
        value: Raw text from a provider column or a tag frame

    Returns:
        Cleaned text, or None when nothing meaningful remains
    """
    if value is None:
        return None
    cleaned = _CONTROL_CHARS.sub("", value).strip()
    return cleaned or None


def is_blank(value: Optional[str]) -> bool:
    """Return True for None, empty or whitespace-only strings."""
    return value is None or not value.strip()


def sanitize_for_filename(value: str) -> str:
    """Replace every non-alphanumeric ASCII character with an underscore."""
    return re.sub(r"[^a-zA-Z0-9]", "_", value)
