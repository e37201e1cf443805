"""
Song Ingestion Orchestrator

Turns an uploaded audio blob into a library record:

1. Validate the upload (before any side effect)
2. Extract embedded tags and fingerprint the bytes
3. Merge metadata (user > tags > fallbacks, optional online enrichment)
4. Reconcile against existing records by fingerprint

Also hosts the maintenance operations on stored songs: direct metadata
edits, online enrichment, deletion and fingerprint regeneration.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .blob_store import LocalBlobStore, StorageError
from .constants import UNKNOWN_ARTIST
from .duplicate_reconciler import DuplicateReconciler
from .models import AudioBlob, IngestResult, SongRecord, TrackMetadata, coerce_genres, coerce_year
from .song_database import DuplicateFingerprintError, RecordStoreError, SongDatabase
from ..audio.fingerprinting import AudioFingerprinter
from ..metadata.artist_parser import parse_artists
from ..metadata.metadata_cleaner import clean_genres, clean_metadata_string
from ..metadata.metadata_merger import MetadataMerger, merge_genres
from ..metadata.musicbrainz_lookup import MusicBrainzLookup
from ..metadata.tag_extractor import TagExtractor
from ..utils.decorators import track_performance

# Input rejection codes
MISSING_FILE = 'MISSING_FILE'
INVALID_FILE_TYPE = 'INVALID_FILE_TYPE'
FILE_TOO_LARGE = 'FILE_TOO_LARGE'
MISSING_METADATA = 'MISSING_METADATA'
SONG_NOT_FOUND = 'SONG_NOT_FOUND'

EDITABLE_FIELDS = ('title', 'artist', 'album', 'year', 'genre')


class IngestionError(Exception):
    """Base class for errors surfaced to callers of the ingestion service"""

    code = 'INGESTION_ERROR'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {'code': self.code, 'message': self.message}
        if self.details:
            error['details'] = self.details
        return {'error': error}


class InputRejectedError(IngestionError):
    """The request was rejected before anything was written"""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = code


class IngestionFailedError(IngestionError):
    """A store was unavailable; the message never carries internal detail"""

    def __init__(self, message: str = 'Failed to upload song', code: str = 'UPLOAD_FAILED'):
        super().__init__(message)
        self.code = code


class SongIngestionService:
    """
    End-to-end ingestion pipeline over injected collaborators.

    One call handles one upload sequentially; the stores are the only
    shared state between calls.
    """

    def __init__(self,
                 songs: SongDatabase,
                 blobs: LocalBlobStore,
                 fingerprinter: AudioFingerprinter,
                 extractor: Optional[TagExtractor] = None,
                 lookup: Optional[MusicBrainzLookup] = None,
                 merger: Optional[MetadataMerger] = None,
                 reconciler: Optional[DuplicateReconciler] = None,
                 allowed_mime_types: Optional[List[str]] = None,
                 max_file_size_bytes: Optional[int] = None):
        self.logger = logging.getLogger(__name__)
        self.songs = songs
        self.blobs = blobs
        self.fingerprinter = fingerprinter
        self.extractor = extractor or TagExtractor()
        self.lookup = lookup
        self.merger = merger or MetadataMerger()
        self.reconciler = reconciler or DuplicateReconciler(songs, blobs)
        self.allowed_mime_types = set(allowed_mime_types) if allowed_mime_types else None
        self.max_file_size_bytes = max_file_size_bytes

    @classmethod
    def from_config(cls, config) -> 'SongIngestionService':
        """Wire the shipped collaborators from a ``MusicLibraryConfig``"""
        songs = SongDatabase(config.storage.database_path)
        blobs = LocalBlobStore(config.storage.blob_root)
        lookup = MusicBrainzLookup.from_config(config.lookup) if config.lookup.enabled else None

        return cls(
            songs=songs,
            blobs=blobs,
            fingerprinter=AudioFingerprinter.from_config(config.fingerprint),
            lookup=lookup,
            reconciler=DuplicateReconciler(songs, blobs, key_prefix=config.storage.key_prefix),
            allowed_mime_types=config.upload.allowed_mime_types,
            max_file_size_bytes=config.upload.max_file_size_bytes,
        )

    @contextmanager
    def _store_failures(self, action: str, message: str, code: str):
        """Turn store failures into a detail-free IngestionFailedError"""
        try:
            yield
        except (StorageError, RecordStoreError) as e:
            self.logger.exception(f"{action} failed: {e}")
            raise IngestionFailedError(message, code) from e

    # ===== UPLOAD =====

    def validate_upload(self, blob: Optional[AudioBlob]):
        """
        Reject uploads that cannot be ingested.

        Raises:
            InputRejectedError: Missing file, disallowed type or too large
        """
        if blob is None or not blob.data:
            raise InputRejectedError(MISSING_FILE, 'No audio file provided')

        if self.allowed_mime_types is not None and blob.content_type not in self.allowed_mime_types:
            raise InputRejectedError(
                INVALID_FILE_TYPE,
                f"Unsupported file type: {blob.content_type}",
                {'allowedTypes': sorted(self.allowed_mime_types)},
            )

        if self.max_file_size_bytes is not None and blob.size > self.max_file_size_bytes:
            raise InputRejectedError(
                FILE_TOO_LARGE,
                'File exceeds the maximum upload size',
                {'maxBytes': self.max_file_size_bytes, 'size': blob.size},
            )

    @track_performance(threshold_ms=30000)
    def ingest(self,
               blob: Optional[AudioBlob],
               user_supplied: Optional[TrackMetadata] = None,
               uploaded_by: str = 'local') -> IngestResult:
        """
        Ingest one upload.

        Args:
            blob: Uploaded audio
            user_supplied: Metadata given with the request
            uploaded_by: Uploader identity

        Returns:
            IngestResult; a duplicate is a result, not an error

        Raises:
            InputRejectedError: The upload was rejected before any write
            IngestionFailedError: A store was unavailable
        """
        self.validate_upload(blob)

        self.logger.info(f"Ingesting {blob.filename} ({blob.size} bytes, {blob.content_type})")

        extracted = self.extractor.extract(blob.data, blob.filename)
        fingerprint = self.fingerprinter.generate(blob.data)

        lookup_func = self.lookup.lookup if self.lookup is not None else None
        merged = self.merger.resolve(extracted, user_supplied, blob.filename, lookup_func)

        if not merged.title or not merged.artist:
            raise InputRejectedError(MISSING_METADATA, 'Title and artist could not be resolved')

        with self._store_failures(f"Ingestion of {blob.filename}", 'Failed to upload song', 'UPLOAD_FAILED'):
            result = self.reconciler.reconcile(fingerprint, merged, blob, uploaded_by)

        self.logger.info(f"{blob.filename}: {result.outcome.value} (song {result.song.id})")
        return result

    # ===== MAINTENANCE =====

    def get_song(self, song_id: str) -> SongRecord:
        with self._store_failures(f"Loading song {song_id}", 'Failed to load song', 'LOOKUP_FAILED'):
            record = self.songs.get(song_id)
        if record is None:
            raise InputRejectedError(SONG_NOT_FOUND, f"Song not found: {song_id}")
        return record

    def list_songs(self, limit: int = 50, offset: int = 0) -> List[SongRecord]:
        with self._store_failures('Listing songs', 'Failed to list songs', 'LOOKUP_FAILED'):
            return self.songs.list_songs(limit=limit, offset=offset)

    def update_song_metadata(self, song_id: str, updates: Mapping[str, Any]) -> SongRecord:
        """
        Direct metadata edit.

        Only title, artist, album, year and genre are editable; values are
        cleaned and the artist list is re-parsed. Blank album, year or genre
        clears the field; a title or artist that is blank after cleaning is
        rejected.
        """
        record = self.get_song(song_id)
        fields: Dict[str, Any] = {}

        ignored = set(updates) - set(EDITABLE_FIELDS)
        if ignored:
            self.logger.warning(f"Ignoring non-editable fields: {', '.join(sorted(ignored))}")

        for name in ('title', 'artist'):
            if name in updates:
                value = clean_metadata_string(str(updates[name] or '').strip())
                if not value:
                    raise InputRejectedError(MISSING_METADATA, f"{name.capitalize()} cannot be empty")
                fields[name] = value

        if 'artist' in fields:
            fields['artists'] = parse_artists(fields['artist'])

        if 'album' in updates:
            fields['album'] = clean_metadata_string(str(updates['album'] or '').strip()) or None

        if 'year' in updates:
            fields['year'] = coerce_year(updates['year'])

        if 'genre' in updates:
            fields['genre'] = clean_genres(coerce_genres(updates['genre']))

        if not fields:
            return record

        with self._store_failures(f"Editing song {song_id}", 'Failed to update song', 'UPDATE_FAILED'):
            updated = self.songs.update_fields(song_id, fields)

        self.logger.info(f"Edited song {song_id}: {', '.join(fields)}")
        return updated

    def enrich_song(self, song_id: str, force: bool = False) -> Tuple[SongRecord, List[str]]:
        """
        Enrich a stored song from the online lookup.

        Album, year and album art are filled when missing, or overwritten
        when ``force`` is set. New genres are merged into the stored list.

        Returns:
            The (possibly updated) song and the names of changed fields
        """
        record = self.get_song(song_id)

        if self.lookup is None:
            self.logger.warning("Online lookup is disabled; nothing to enrich")
            return record, []

        artist = None if record.artist == UNKNOWN_ARTIST else record.artist
        enriched = self.lookup.lookup(record.title, artist)
        if enriched is None:
            self.logger.info(f"No online metadata for song {song_id}")
            return record, []

        def should_update(current, incoming) -> bool:
            if not incoming:
                return False
            return not current or force

        fields: Dict[str, Any] = {}

        album = clean_metadata_string(enriched.album) if enriched.album else None
        if should_update(record.album, album):
            fields['album'] = album

        if should_update(record.year, enriched.year):
            fields['year'] = enriched.year

        new_genres = [genre for genre in clean_genres(enriched.genre) if genre not in record.genre]
        if new_genres:
            merged_genres = merge_genres(record.genre, new_genres)
            if merged_genres != record.genre:
                fields['genre'] = merged_genres

        if should_update(record.album_art, enriched.album_art):
            fields['album_art'] = enriched.album_art

        if not fields:
            self.logger.info(f"Song {song_id} metadata already up to date")
            return record, []

        with self._store_failures(f"Enriching song {song_id}", 'Failed to update song', 'UPDATE_FAILED'):
            updated = self.songs.update_fields(song_id, fields)

        self.logger.info(f"Enriched song {song_id}: {', '.join(fields)}")
        return updated, list(fields)

    def delete_song(self, song_id: str) -> SongRecord:
        """Delete the record, then its blob best-effort"""
        record = self.get_song(song_id)

        with self._store_failures(f"Deleting song {song_id}", 'Failed to delete song', 'DELETE_FAILED'):
            self.songs.delete(song_id)

        try:
            self.blobs.delete(record.file_key)
        except StorageError as e:
            self.logger.warning(f"Song {song_id} deleted but blob {record.file_key} remains: {e}")

        self.logger.info(f"Deleted song {song_id}: {record.artist} - {record.title}")
        return record

    def regenerate_fingerprints(self, limit: int = 10,
                                song_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Replace hash fingerprints with acoustic ones where possible.

        Args:
            limit: Maximum number of songs to process
            song_ids: Restrict to these songs when given

        Returns:
            Summary with per-song results
        """
        with self._store_failures('Fingerprint regeneration', 'Fingerprint regeneration failed',
                                  'REGENERATION_FAILED'):
            candidates = self.songs.find_hash_fingerprinted(limit=limit, song_ids=song_ids)

        self.logger.info(f"Found {len(candidates)} songs with hash fingerprints (limit {limit})")

        results = []
        for record in candidates:
            results.append(self._regenerate_one(record))

        processed = sum(1 for result in results if result['status'] == 'success')
        return {
            'total': len(candidates),
            'processed': processed,
            'failed': len(results) - processed,
            'results': results,
        }

    def _regenerate_one(self, record: SongRecord) -> Dict[str, Any]:
        result: Dict[str, Any] = {'id': record.id, 'title': record.title, 'status': 'failed'}

        try:
            data = self.blobs.read_bytes(record.file_key)
        except StorageError as e:
            self.logger.error(f"Failed to read blob {record.file_key} of song {record.id}: {e}")
            result['error'] = 'Failed to read audio file from storage'
            return result

        fingerprint = self.fingerprinter.generate(data)
        if not fingerprint.is_acoustic:
            result['error'] = 'Acoustic fingerprinting not available, kept hash'
            return result

        try:
            self.songs.update_fields(record.id, {'fingerprint': fingerprint.value})
        except DuplicateFingerprintError as e:
            other = e.existing.id if e.existing else 'another song'
            self.logger.warning(f"Acoustic fingerprint of song {record.id} already belongs to {other}")
            result['error'] = f"Acoustic fingerprint already belongs to song {other}"
            return result
        except RecordStoreError as e:
            self.logger.error(f"Failed to store fingerprint of song {record.id}: {e}")
            result['error'] = 'Failed to update song'
            return result

        self.logger.info(f"Updated fingerprint for: {record.title}")
        result.update({
            'status': 'success',
            'oldFingerprint': record.fingerprint[:50] + '...',
            'newFingerprint': fingerprint.short(),
        })
        return result
