"""
Song Record Store

SQLite-backed persistence for song records. The fingerprint column carries a
UNIQUE index, which is the safety net against two concurrent uploads of the
same audio both inserting.
"""

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .constants import DB_TIMEOUT, GENRE_DELIMITER, HASH_FINGERPRINT_PREFIX, PATCHABLE_FIELDS
from .models import SongRecord, coerce_genres


class RecordStoreError(Exception):
    """The record store could not complete an operation"""
    pass


class DuplicateFingerprintError(RecordStoreError):
    """A record with this fingerprint already exists"""

    def __init__(self, fingerprint: str, existing: Optional[SongRecord] = None):
        super().__init__(f"Fingerprint already stored: {fingerprint[:50]}")
        self.fingerprint = fingerprint
        self.existing = existing


def genres_to_column(genres: Optional[Iterable[str]]) -> Optional[str]:
    """Store genres as a delimited string; empty lists become NULL"""
    values = [genre for genre in (genres or []) if genre]
    return GENRE_DELIMITER.join(values) if values else None


def genres_from_column(value: Optional[str]) -> List[str]:
    return coerce_genres(value)


class SongDatabase:
    """
    Song record store.

    All metadata mutations go through ``update_fields``, which accepts only
    whitelisted field names.
    """

    def __init__(self, db_path: str = "songs.db"):
        self.db_path = Path(db_path)
        self.logger = logging.getLogger(__name__)
        self._lock = threading.RLock()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

        self.logger.info(f"SongDatabase initialized: {self.db_path}")

    def _init_database(self):
        """Create the songs schema"""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS songs (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    artist TEXT NOT NULL,
                    artists TEXT NOT NULL DEFAULT '[]',
                    album TEXT,
                    year INTEGER,
                    genre TEXT,
                    duration REAL,
                    file_key TEXT NOT NULL UNIQUE,
                    mime_type TEXT NOT NULL,
                    uploaded_by TEXT NOT NULL,
                    fingerprint TEXT NOT NULL,
                    album_art TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_songs_fingerprint
                ON songs(fingerprint)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_songs_created
                ON songs(created_at)
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection; sqlite errors surface as RecordStoreError"""
        conn = None
        try:
            with self._lock:
                conn = sqlite3.connect(str(self.db_path), timeout=DB_TIMEOUT)
                conn.row_factory = sqlite3.Row
                yield conn
        except sqlite3.IntegrityError:
            if conn:
                conn.rollback()
            raise
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            self.logger.error(f"Database error: {e}")
            raise RecordStoreError(str(e)) from e
        finally:
            if conn:
                conn.close()

    def _row_to_record(self, row: sqlite3.Row) -> SongRecord:
        data = dict(row)
        return SongRecord(
            id=data['id'],
            title=data['title'],
            artist=data['artist'],
            artists=json.loads(data['artists'] or '[]'),
            album=data['album'],
            year=data['year'],
            genre=genres_from_column(data['genre']),
            duration=data['duration'],
            file_key=data['file_key'],
            mime_type=data['mime_type'],
            uploaded_by=data['uploaded_by'],
            fingerprint=data['fingerprint'],
            album_art=data['album_art'],
            created_at=datetime.fromisoformat(data['created_at']),
        )

    def _to_column(self, field_name: str, value: Any) -> Any:
        if field_name == 'genre':
            return genres_to_column(value)
        if field_name == 'artists':
            return json.dumps(list(value or []), ensure_ascii=False)
        return value

    # ===== QUERIES =====

    def get(self, song_id: str) -> Optional[SongRecord]:
        """Get a song by id"""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM songs WHERE id = ?", (song_id,)).fetchone()
            return self._row_to_record(row) if row else None

    def find_by_fingerprint(self, fingerprint: str) -> Optional[SongRecord]:
        """Get the song stored under a fingerprint"""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM songs WHERE fingerprint = ?", (fingerprint,)
            ).fetchone()
            return self._row_to_record(row) if row else None

    def find_hash_fingerprinted(self, limit: int = 10,
                                song_ids: Optional[List[str]] = None) -> List[SongRecord]:
        """
        Songs whose fingerprint is a content hash, oldest first.

        Args:
            limit: Maximum number of songs
            song_ids: Restrict to these ids when given
        """
        query = "SELECT * FROM songs WHERE fingerprint LIKE ?"
        params: List[Any] = [f"{HASH_FINGERPRINT_PREFIX}%"]

        if song_ids:
            placeholders = ', '.join('?' for _ in song_ids)
            query += f" AND id IN ({placeholders})"
            params.extend(song_ids)

        query += " ORDER BY created_at ASC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_record(row) for row in rows]

    def list_songs(self, limit: int = 50, offset: int = 0) -> List[SongRecord]:
        """Most recent songs first"""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM songs ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (limit, offset)
            ).fetchall()
            return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0]

    # ===== MUTATIONS =====

    def insert(self, record: SongRecord) -> SongRecord:
        """
        Insert a new song record.

        Args:
            record: Record to insert; an id is allocated when missing

        Returns:
            The stored record

        Raises:
            DuplicateFingerprintError: The fingerprint is already stored
        """
        if record.id is None:
            record.id = uuid.uuid4().hex

        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO songs
                    (id, title, artist, artists, album, year, genre, duration,
                     file_key, mime_type, uploaded_by, fingerprint, album_art, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.id,
                    record.title,
                    record.artist,
                    self._to_column('artists', record.artists),
                    record.album,
                    record.year,
                    self._to_column('genre', record.genre),
                    record.duration,
                    record.file_key,
                    record.mime_type,
                    record.uploaded_by,
                    record.fingerprint,
                    record.album_art,
                    record.created_at.isoformat(),
                ))
                conn.commit()
        except sqlite3.IntegrityError as e:
            existing = self.find_by_fingerprint(record.fingerprint)
            if existing is not None:
                self.logger.warning(f"Insert rejected, fingerprint already stored as song {existing.id}")
                raise DuplicateFingerprintError(record.fingerprint, existing) from e
            self.logger.error(f"Failed to insert song: {e}")
            raise RecordStoreError(str(e)) from e

        self.logger.debug(f"Inserted song {record.id}: {record.artist} - {record.title}")
        return record

    def update_fields(self, song_id: str, fields: Mapping[str, Any]) -> SongRecord:
        """
        Patch named fields of one song.

        Args:
            song_id: Song to update
            fields: Field name to new value; names must be patchable

        Returns:
            The updated record

        Raises:
            ValueError: A field name is not patchable
            RecordStoreError: The song does not exist or the write failed
        """
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        if fields:
            # Column names come from the whitelist above
            assignments = ', '.join(f"{name} = ?" for name in fields)
            values = [self._to_column(name, value) for name, value in fields.items()]
            values.append(song_id)

            try:
                with self._get_connection() as conn:
                    cursor = conn.execute(f"UPDATE songs SET {assignments} WHERE id = ?", values)
                    conn.commit()
                    updated = cursor.rowcount
            except sqlite3.IntegrityError as e:
                fingerprint = fields.get('fingerprint')
                if fingerprint:
                    raise DuplicateFingerprintError(fingerprint, self.find_by_fingerprint(fingerprint)) from e
                raise RecordStoreError(str(e)) from e

            if updated == 0:
                raise RecordStoreError(f"Song not found: {song_id}")

            self.logger.debug(f"Updated song {song_id}: {', '.join(fields)}")

        record = self.get(song_id)
        if record is None:
            raise RecordStoreError(f"Song not found: {song_id}")
        return record

    def delete(self, song_id: str) -> bool:
        """Delete a song record; False when it did not exist"""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM songs WHERE id = ?", (song_id,))
            conn.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            self.logger.info(f"Deleted song record {song_id}")
        return deleted
