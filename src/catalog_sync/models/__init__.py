"""Value records shared by the reader, the sync engine and the database layer."""

from .models import AuthorRecord, BookRecord, CrossRefRecord, RawRecord, TrackRecord

__all__ = [
    "AuthorRecord",
    "BookRecord",
    "CrossRefRecord",
    "RawRecord",
    "TrackRecord",
]
