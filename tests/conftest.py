"""
Shared pytest fixtures for Music Library tests.

Provides temporary stores, a fingerprinter that always falls back to
content hashes, and an ingestion service wired from them.
"""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from music_library.audio.fingerprinting import AudioFingerprinter
from music_library.core.blob_store import LocalBlobStore
from music_library.core.ingestion import SongIngestionService
from music_library.core.models import AudioBlob, TrackMetadata
from music_library.core.song_database import SongDatabase
from music_library.metadata.tag_extractor import TagExtractor


@pytest.fixture
def temp_workspace():
    """Create temporary workspace directory."""
    workspace = tempfile.mkdtemp()
    yield Path(workspace)
    shutil.rmtree(workspace, ignore_errors=True)


@pytest.fixture
def song_db(temp_workspace):
    return SongDatabase(str(temp_workspace / "songs.db"))


@pytest.fixture
def blob_store(temp_workspace):
    return LocalBlobStore(temp_workspace / "blobs")


@pytest.fixture
def hash_fingerprinter(temp_workspace):
    """Fingerprinter without fpcalc: every fingerprint is a content hash"""
    return AudioFingerprinter(fpcalc_candidates=[], scratch_dir=temp_workspace / "scratch")


@pytest.fixture
def mock_extractor():
    """Tag extractor that finds no embedded tags"""
    extractor = Mock(spec=TagExtractor)
    extractor.extract.return_value = TrackMetadata()
    return extractor


@pytest.fixture
def service(song_db, blob_store, hash_fingerprinter, mock_extractor):
    return SongIngestionService(
        songs=song_db,
        blobs=blob_store,
        fingerprinter=hash_fingerprinter,
        extractor=mock_extractor,
        lookup=None,
        allowed_mime_types=['audio/mpeg', 'audio/flac'],
        max_file_size_bytes=1024 * 1024,
    )


@pytest.fixture
def sample_blob():
    return AudioBlob(data=b"ID3 fake audio payload 1", content_type="audio/mpeg", filename="My Song.mp3")
