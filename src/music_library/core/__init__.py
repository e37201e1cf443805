"""Core components for the Music Library service."""

from .models import (
    AudioBlob,
    Fingerprint,
    FingerprintKind,
    IngestOutcome,
    IngestResult,
    MergedMetadata,
    SongRecord,
    TrackMetadata,
)
from .config_manager import get_config_manager, MusicLibraryConfig
from .song_database import SongDatabase, RecordStoreError, DuplicateFingerprintError
from .blob_store import LocalBlobStore, StorageError
from .duplicate_reconciler import DuplicateReconciler
from .ingestion import SongIngestionService, IngestionError, InputRejectedError, IngestionFailedError

__all__ = [
    "AudioBlob",
    "Fingerprint",
    "FingerprintKind",
    "IngestOutcome",
    "IngestResult",
    "MergedMetadata",
    "SongRecord",
    "TrackMetadata",
    "MusicLibraryConfig",
    "get_config_manager",
    "SongDatabase",
    "RecordStoreError",
    "DuplicateFingerprintError",
    "LocalBlobStore",
    "StorageError",
    "DuplicateReconciler",
    "SongIngestionService",
    "IngestionError",
    "InputRejectedError",
    "IngestionFailedError",
]
