"""Media catalog synchronization engine.

Keeps a local SQLite catalog of audio tracks, books and authors in step with
an external media index.
"""

__version__ = "1.0.0"
__author__ = "Anton"
