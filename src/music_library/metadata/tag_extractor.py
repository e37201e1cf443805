"""
Embedded Tag Extraction

Reads ID3v2/ID3v1, Vorbis comments and MP4 atoms from in-memory audio with
mutagen. Extraction is best effort: unreadable input yields empty metadata.
"""

import io
import logging
from typing import Any, List, Optional

import mutagen

from ..core.models import TrackMetadata, coerce_duration, coerce_genres, coerce_year

TITLE_TAGS = ['TIT2', 'TITLE', 'title', '\xa9nam']
ARTIST_TAGS = ['TPE1', 'ARTIST', 'artist', '\xa9ART', 'TPE2', 'ALBUMARTIST', 'albumartist', 'aART']
ALBUM_TAGS = ['TALB', 'ALBUM', 'album', '\xa9alb']
YEAR_TAGS = ['TDRC', 'TYER', 'DATE', 'date', 'YEAR', '\xa9day']
GENRE_TAGS = ['TCON', 'GENRE', 'genre', '\xa9gen']


class TagExtractor:
    """Embedded-tag extractor over raw bytes"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def extract(self, data: bytes, filename: Optional[str] = None) -> TrackMetadata:
        """
        Extract embedded metadata.

        Args:
            data: Raw audio file content
            filename: Display name, used for log messages only

        Returns:
            TrackMetadata; empty when nothing could be read
        """
        name = filename or '<upload>'

        try:
            audio_file = mutagen.File(io.BytesIO(data))
        except Exception as e:
            self.logger.warning(f"Could not parse tags of {name}: {e}")
            return TrackMetadata()

        if audio_file is None:
            self.logger.debug(f"No recognizable audio container in {name}")
            return TrackMetadata()

        duration = None
        info = getattr(audio_file, 'info', None)
        if info is not None:
            duration = coerce_duration(getattr(info, 'length', None))

        tags = audio_file.tags
        if not tags:
            return TrackMetadata(duration=duration)

        try:
            metadata = TrackMetadata(
                title=self._first_value(tags, TITLE_TAGS),
                artist=self._first_value(tags, ARTIST_TAGS),
                album=self._first_value(tags, ALBUM_TAGS),
                year=coerce_year(self._first_value(tags, YEAR_TAGS)),
                genre=self._genres(tags),
                duration=duration,
            )
        except Exception as e:
            self.logger.warning(f"Tag values of {name} could not be read: {e}")
            return TrackMetadata(duration=duration)

        self.logger.debug(f"Extracted tags from {name}: {metadata.artist} - {metadata.title}")
        return metadata

    def _values(self, tags: Any, tag_name: str) -> List[str]:
        if tag_name not in tags:
            return []

        value = tags[tag_name]
        if hasattr(value, 'genres'):
            # ID3 TCON resolves numeric genre references
            items = value.genres
        elif hasattr(value, 'text'):
            items = value.text
        elif isinstance(value, (list, tuple)):
            items = value
        else:
            items = [value]

        return [str(item).strip() for item in items if item is not None and str(item).strip()]

    def _first_value(self, tags: Any, tag_names: List[str]) -> Optional[str]:
        """Extract tag value trying multiple tag name variants"""
        for tag_name in tag_names:
            values = self._values(tags, tag_name)
            if values:
                return values[0]
        return None

    def _genres(self, tags: Any) -> List[str]:
        for tag_name in GENRE_TAGS:
            values = self._values(tags, tag_name)
            if values:
                genres: List[str] = []
                for value in values:
                    genres.extend(coerce_genres(value))
                return genres
        return []
