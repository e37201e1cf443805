"""
Duplicate Reconciler

Decides how an upload is integrated when its fingerprint may already be in
the library:

- ACCEPT_NEW: fingerprint unknown; store blob, insert record
- REPLACE_ORPHAN: record exists but its blob is gone; store blob under a new
  key and overwrite the record
- UPDATE_METADATA: record and blob exist, metadata improved; patch metadata
- REJECT_DUPLICATE: nothing to change

Records are written only after the blob write they point to has succeeded.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .blob_store import LocalBlobStore, StorageError
from .constants import DEFAULT_FILE_EXTENSION, SONG_KEY_PREFIX
from .models import (
    AudioBlob,
    Fingerprint,
    IngestOutcome,
    IngestResult,
    MergedMetadata,
    SongRecord,
)
from .song_database import DuplicateFingerprintError, RecordStoreError, SongDatabase
from ..metadata.metadata_merger import merge_genres


def _normalize_genres(genres: Optional[List[str]]) -> List[str]:
    return [genre.strip() for genre in (genres or []) if genre and genre.strip()]


class DuplicateReconciler:
    """Fingerprint-keyed reconciliation of uploads against stored songs"""

    def __init__(self, songs: SongDatabase, blobs: LocalBlobStore, key_prefix: str = SONG_KEY_PREFIX):
        self.songs = songs
        self.blobs = blobs
        self.key_prefix = key_prefix.strip('/') or SONG_KEY_PREFIX
        self.logger = logging.getLogger(__name__)

        self.stats = {outcome.value: 0 for outcome in IngestOutcome}

    def allocate_key(self, blob: AudioBlob) -> str:
        """Fresh blob key: ``<prefix>/<uuid4>.<extension>``"""
        extension = blob.extension or DEFAULT_FILE_EXTENSION
        return f"{self.key_prefix}/{uuid.uuid4()}.{extension}"

    def reconcile(self,
                  fingerprint: Fingerprint,
                  merged: MergedMetadata,
                  blob: AudioBlob,
                  uploaded_by: str) -> IngestResult:
        """
        Integrate one upload.

        Args:
            fingerprint: Fingerprint of the uploaded bytes
            merged: Finalized metadata for the upload
            blob: The uploaded audio
            uploaded_by: Uploader identity

        Returns:
            IngestResult describing the outcome

        Raises:
            StorageError: Blob store failure
            RecordStoreError: Record store failure
        """
        existing = self.songs.find_by_fingerprint(fingerprint.value)

        if existing is None:
            result = self._accept_new(fingerprint, merged, blob, uploaded_by)
        elif not self.blobs.exists(existing.file_key):
            result = self._replace_orphan(existing, fingerprint, merged, blob)
        else:
            changes = self.metadata_changes(existing, merged)
            if changes:
                result = self._update_metadata(existing, fingerprint, changes)
            else:
                self.logger.info(f"Duplicate upload of song {existing.id} "
                                 f"({existing.artist} - {existing.title})")
                result = IngestResult(IngestOutcome.REJECT_DUPLICATE, existing, fingerprint.kind)

        self.stats[result.outcome.value] += 1
        return result

    def metadata_changes(self, existing: SongRecord, merged: MergedMetadata) -> Dict[str, Any]:
        """
        Fields of ``existing`` that the upload would change.

        Only title, artist, album, year and genre are compared. A merged value
        that is absent or came from a fallback placeholder never replaces a
        stored value. Genres are unioned with the stored list.
        """
        changes: Dict[str, Any] = {}

        for field_name in ('title', 'artist', 'album', 'year'):
            candidate = getattr(merged, field_name)
            if candidate is None or merged.is_fallback(field_name):
                continue
            if candidate != getattr(existing, field_name):
                changes[field_name] = candidate

        if 'artist' in changes:
            changes['artists'] = list(merged.artists)

        stored_genres = _normalize_genres(existing.genre)
        new_genres = [genre for genre in _normalize_genres(merged.genre) if genre not in stored_genres]
        if new_genres:
            candidate_genres = merge_genres(stored_genres, merged.genre)
            if candidate_genres != stored_genres:
                changes['genre'] = candidate_genres

        if changes:
            # Carried along with a real change, never a reason for one
            if existing.duration is None and merged.duration is not None:
                changes['duration'] = merged.duration
            if existing.album_art is None and merged.album_art is not None:
                changes['album_art'] = merged.album_art

        return changes

    def _blob_attrs(self, merged: MergedMetadata, blob: AudioBlob, uploaded_by: str) -> Dict[str, Optional[str]]:
        return {
            'title': merged.title,
            'artist': merged.artist,
            'original-filename': blob.filename,
            'uploaded-by': uploaded_by,
        }

    def _accept_new(self, fingerprint: Fingerprint, merged: MergedMetadata,
                    blob: AudioBlob, uploaded_by: str) -> IngestResult:
        file_key = self.allocate_key(blob)
        self.blobs.put(file_key, blob.data, blob.content_type, self._blob_attrs(merged, blob, uploaded_by))

        record = SongRecord(
            title=merged.title,
            artist=merged.artist,
            artists=list(merged.artists),
            album=merged.album,
            year=merged.year,
            genre=list(merged.genre),
            duration=merged.duration,
            album_art=merged.album_art,
            file_key=file_key,
            mime_type=blob.content_type,
            uploaded_by=uploaded_by,
            fingerprint=fingerprint.value,
        )

        try:
            record = self.songs.insert(record)
        except DuplicateFingerprintError as e:
            # A concurrent upload inserted the same fingerprint first
            self._discard_blob(file_key)
            existing = e.existing or self.songs.find_by_fingerprint(fingerprint.value)
            if existing is None:
                raise RecordStoreError("Fingerprint conflict without a stored record") from e
            self.logger.info(f"Concurrent duplicate of song {existing.id} rejected")
            return IngestResult(IngestOutcome.REJECT_DUPLICATE, existing, fingerprint.kind)
        except RecordStoreError:
            self._discard_blob(file_key)
            raise

        self.logger.info(f"Accepted new song {record.id}: {record.artist} - {record.title} "
                         f"({fingerprint.kind.value} fingerprint)")
        return IngestResult(IngestOutcome.ACCEPT_NEW, record, fingerprint.kind)

    def _replace_orphan(self, existing: SongRecord, fingerprint: Fingerprint,
                        merged: MergedMetadata, blob: AudioBlob) -> IngestResult:
        self.logger.warning(f"Song {existing.id} lost its blob {existing.file_key}; replacing it")

        file_key = self.allocate_key(blob)
        self.blobs.put(file_key, blob.data, blob.content_type,
                       self._blob_attrs(merged, blob, existing.uploaded_by))

        fields = merged.to_fields()
        fields['file_key'] = file_key
        fields['mime_type'] = blob.content_type

        try:
            record = self.songs.update_fields(existing.id, fields)
        except RecordStoreError:
            self._discard_blob(file_key)
            raise

        self.logger.info(f"Replaced orphaned song {record.id}: {existing.file_key} -> {file_key}")
        return IngestResult(IngestOutcome.REPLACE_ORPHAN, record, fingerprint.kind,
                            updated_fields=tuple(fields))

    def _update_metadata(self, existing: SongRecord, fingerprint: Fingerprint,
                         changes: Dict[str, Any]) -> IngestResult:
        record = self.songs.update_fields(existing.id, changes)
        self.logger.info(f"Updated metadata of song {record.id}: {', '.join(changes)}")
        return IngestResult(IngestOutcome.UPDATE_METADATA, record, fingerprint.kind,
                            updated_fields=tuple(changes))

    def _discard_blob(self, file_key: str):
        """Best-effort removal of a blob no record points to"""
        try:
            self.blobs.delete(file_key)
        except StorageError as e:
            self.logger.warning(f"Could not remove unreferenced blob {file_key}: {e}")

    def get_statistics(self) -> Dict[str, int]:
        return dict(self.stats)
