"""
Data model for the song ingestion pipeline

Metadata shapes flowing through the pipeline, the fingerprint value and the
persisted song record.
"""

import re
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .constants import HASH_FINGERPRINT_PREFIX


_YEAR_PATTERN = re.compile(r'(\d{4})')


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_year(value: Any) -> Optional[int]:
    """Turn 1999, "1999" or "1999-03-01" into 1999; anything else into None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    match = _YEAR_PATTERN.search(str(value))
    if not match:
        return None
    year = int(match.group(1))
    return year if year > 0 else None


def coerce_genres(value: Any) -> List[str]:
    """Accept a list of genres or a comma-delimited string"""
    if not value:
        return []
    if isinstance(value, str):
        parts = value.split(',')
    else:
        parts = [str(item) for item in value if item is not None]
    return [part.strip() for part in parts if part and part.strip()]


def coerce_duration(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return None
    return duration if duration > 0 else None


@dataclass(frozen=True)
class AudioBlob:
    """Raw uploaded audio plus what the client told us about it"""
    data: bytes
    content_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> Optional[str]:
        if '.' not in self.filename:
            return None
        extension = self.filename.rsplit('.', 1)[1].strip().lower()
        return extension or None


@dataclass(frozen=True)
class TrackMetadata:
    """
    Optional song fields from one metadata source.

    Used for embedded tags, user-supplied fields and online enrichment alike.
    """
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    year: Optional[int] = None
    genre: List[str] = field(default_factory=list)
    duration: Optional[float] = None

    # Enrichment only
    album_art: Optional[str] = None
    musicbrainz_id: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'TrackMetadata':
        """
        Build metadata from loosely typed input (request body, CLI options).

        Blank strings count as absent, years may be strings or dates and
        genres may be a comma-delimited string.
        """
        if not data:
            return cls()
        return cls(
            title=_blank_to_none(data.get('title')),
            artist=_blank_to_none(data.get('artist')),
            album=_blank_to_none(data.get('album')),
            year=coerce_year(data.get('year')),
            genre=coerce_genres(data.get('genre') or data.get('genres')),
            duration=coerce_duration(data.get('duration')),
            album_art=_blank_to_none(data.get('album_art')),
            musicbrainz_id=_blank_to_none(data.get('musicbrainz_id')),
        )

    def is_empty(self) -> bool:
        return not any([self.title, self.artist, self.album, self.year, self.genre, self.duration])


@dataclass(frozen=True)
class MergedMetadata:
    """Resolved metadata ready for reconciliation and persistence"""
    title: str
    artist: str
    artists: List[str]
    album: Optional[str] = None
    year: Optional[int] = None
    genre: List[str] = field(default_factory=list)
    duration: Optional[float] = None
    album_art: Optional[str] = None

    # Fields filled by a placeholder or the filename rather than a real source
    fallback_fields: FrozenSet[str] = frozenset()

    def to_fields(self) -> Dict[str, Any]:
        """Record fields carried by this metadata"""
        return {
            'title': self.title,
            'artist': self.artist,
            'artists': list(self.artists),
            'album': self.album,
            'year': self.year,
            'genre': list(self.genre),
            'duration': self.duration,
            'album_art': self.album_art,
        }

    def is_fallback(self, field_name: str) -> bool:
        return field_name in self.fallback_fields


class FingerprintKind(Enum):
    """How a fingerprint was computed"""
    ACOUSTIC = "acoustic"
    HASH = "hash"


@dataclass(frozen=True)
class Fingerprint:
    """
    Identity value of an audio file.

    Hash fingerprints carry the ``HASH:`` prefix in ``value`` so the two kinds
    can be told apart at rest.
    """
    value: str
    kind: FingerprintKind

    @classmethod
    def parse(cls, stored: str) -> 'Fingerprint':
        if stored.startswith(HASH_FINGERPRINT_PREFIX):
            return cls(stored, FingerprintKind.HASH)
        return cls(stored, FingerprintKind.ACOUSTIC)

    @property
    def is_acoustic(self) -> bool:
        return self.kind is FingerprintKind.ACOUSTIC

    def short(self, length: int = 50) -> str:
        if len(self.value) <= length:
            return self.value
        return self.value[:length] + '...'


@dataclass
class SongRecord:
    """Persisted song document"""
    title: str
    artist: str
    file_key: str
    mime_type: str
    uploaded_by: str
    fingerprint: str
    artists: List[str] = field(default_factory=list)
    album: Optional[str] = None
    year: Optional[int] = None
    genre: List[str] = field(default_factory=list)
    duration: Optional[float] = None
    album_art: Optional[str] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        return data

    def summary(self) -> Dict[str, Any]:
        """Short reference used in API-style responses"""
        return {
            'id': self.id,
            'title': self.title,
            'artist': self.artist,
            'mimeType': self.mime_type,
            'createdAt': self.created_at.isoformat(),
        }


class IngestOutcome(Enum):
    """Terminal states of the duplicate reconciler"""
    ACCEPT_NEW = "accept_new"
    REPLACE_ORPHAN = "replace_orphan"
    UPDATE_METADATA = "update_metadata"
    REJECT_DUPLICATE = "reject_duplicate"


@dataclass
class IngestResult:
    """What happened to one upload"""
    outcome: IngestOutcome
    song: SongRecord
    fingerprint_kind: FingerprintKind
    updated_fields: Tuple[str, ...] = ()

    @property
    def is_duplicate(self) -> bool:
        return self.outcome is IngestOutcome.REJECT_DUPLICATE

    def to_dict(self) -> Dict[str, Any]:
        """Structured response a caller can render directly"""
        if self.is_duplicate:
            return {
                'error': {
                    'code': 'DUPLICATE_SONG',
                    'message': 'This song already exists in the library',
                    'details': {
                        'existingSong': {
                            'id': self.song.id,
                            'title': self.song.title,
                            'artist': self.song.artist,
                        },
                    },
                },
            }
        return {
            'outcome': self.outcome.value,
            'fingerprintKind': self.fingerprint_kind.value,
            'updatedFields': list(self.updated_fields),
            'song': self.song.summary(),
        }
