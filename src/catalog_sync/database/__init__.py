"""Database package for the local media catalog.

Contains the pure database layer (ORM models, service, progress tracking).
Sync logic lives in core/ modules.
"""

from .models import Author, Base, Book, Track, TrackAuthorCrossRef
from .progress_tracker import (
    ConsoleProgressReporter,
    ProgressCallback,
    ProgressPhase,
    ProgressTracker,
    ProgressUpdate,
    RichProgressReporter,
)
from .service import DatabaseService

__all__ = [
    # Models
    "Base",
    "Track",
    "Book",
    "Author",
    "TrackAuthorCrossRef",
    # Database service
    "DatabaseService",
    # Progress tracking
    "ProgressTracker",
    "ProgressPhase",
    "ProgressUpdate",
    "ProgressCallback",
    "ConsoleProgressReporter",
    "RichProgressReporter",
]
