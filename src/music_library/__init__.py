"""
Music Library

A personal music library service: uploaded audio is fingerprinted, its
metadata extracted, merged and enriched, and the result reconciled against
the existing library.

Features:
- Acoustic fingerprinting (Chromaprint) with content-hash fallback
- Fixed-precedence metadata merge with MusicBrainz enrichment
- Duplicate reconciliation that repairs orphaned records
- SQLite song database and local blob storage
"""

__version__ = "1.0.0"
__author__ = "Music Library Contributors"
__license__ = "MIT"

from .core.config_manager import get_config_manager, MusicLibraryConfig
from .core.ingestion import SongIngestionService, IngestionError, InputRejectedError, IngestionFailedError
from .core.models import AudioBlob, TrackMetadata, IngestOutcome, IngestResult, SongRecord

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "MusicLibraryConfig",
    "get_config_manager",
    "SongIngestionService",
    "IngestionError",
    "InputRejectedError",
    "IngestionFailedError",
    "AudioBlob",
    "TrackMetadata",
    "IngestOutcome",
    "IngestResult",
    "SongRecord",
]
