"""
Metadata Merger

Resolves one set of song metadata from the sources available for an upload.

Precedence per field:
1. Online enrichment (second pass, only when the artist is unresolved)
2. User-supplied fields
3. Embedded tags
4. Fallbacks: filename stem or "Unknown Title", "Unknown Artist"
"""

import logging
import os
from dataclasses import replace
from typing import Callable, Iterable, List, Optional

from ..core.constants import MAX_GENRES, UNKNOWN_ARTIST, UNKNOWN_TITLE
from ..core.models import MergedMetadata, TrackMetadata
from .artist_parser import parse_artists
from .metadata_cleaner import clean_metadata, clean_metadata_string

LookupFunc = Callable[[str, Optional[str]], Optional[TrackMetadata]]


def title_from_filename(filename: Optional[str]) -> Optional[str]:
    """Display filename without directory and extension"""
    if not filename:
        return None
    stem = os.path.splitext(os.path.basename(filename.strip()))[0].strip()
    return stem or None


def merge_genres(existing: Optional[Iterable[str]], new: Optional[Iterable[str]]) -> List[str]:
    """
    Union of two genre lists for a record that already exists.

    Case-sensitive, first-seen order with existing genres first, capped at
    MAX_GENRES entries.
    """
    merged: List[str] = []
    for genre in list(existing or []) + list(new or []):
        genre = genre.strip() if genre else ''
        if genre and genre not in merged:
            merged.append(genre)
    return merged[:MAX_GENRES]


def _first_present(*values):
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, (list, tuple)) and not value:
            continue
        return value
    return None


class MetadataMerger:
    """Fixed-precedence merge of metadata sources"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'merged': 0,
            'title_fallbacks': 0,
            'artist_fallbacks': 0,
            'enrichment_attempts': 0,
            'enrichment_applied': 0,
        }

    def merge(self,
              extracted: Optional[TrackMetadata],
              user_supplied: Optional[TrackMetadata],
              filename: Optional[str]) -> MergedMetadata:
        """
        First merge pass: user fields over embedded tags over fallbacks.

        Args:
            extracted: Embedded-tag metadata
            user_supplied: Fields from the caller's request
            filename: Display filename of the upload

        Returns:
            MergedMetadata with non-empty title and artist
        """
        extracted = extracted or TrackMetadata()
        user = user_supplied or TrackMetadata()
        fallback_fields = set()

        title = _first_present(user.title, extracted.title)
        if title is None:
            title = clean_metadata_string(title_from_filename(filename)) or UNKNOWN_TITLE
            fallback_fields.add('title')
            self.stats['title_fallbacks'] += 1

        artist = _first_present(user.artist, extracted.artist)
        if artist is None:
            artist = UNKNOWN_ARTIST
            fallback_fields.add('artist')
            self.stats['artist_fallbacks'] += 1

        self.stats['merged'] += 1

        return MergedMetadata(
            title=title.strip(),
            artist=artist.strip(),
            artists=parse_artists(artist),
            album=_first_present(user.album, extracted.album),
            year=_first_present(user.year, extracted.year),
            genre=list(_first_present(user.genre, extracted.genre) or []),
            duration=extracted.duration,
            fallback_fields=frozenset(fallback_fields),
        )

    def needs_enrichment(self, merged: MergedMetadata) -> bool:
        """Enrichment is attempted only while the artist is unresolved"""
        return merged.artist == UNKNOWN_ARTIST

    def apply_enrichment(self, merged: MergedMetadata, enriched: Optional[TrackMetadata]) -> MergedMetadata:
        """
        Second merge pass: every field the lookup provided wins.

        Args:
            merged: Result of the first pass
            enriched: Lookup result, may be None

        Returns:
            Updated MergedMetadata
        """
        if enriched is None:
            return merged

        changes = {}
        if _first_present(enriched.title) is not None:
            changes['title'] = enriched.title.strip()
        if _first_present(enriched.artist) is not None:
            changes['artist'] = enriched.artist.strip()
            changes['artists'] = parse_artists(enriched.artist)
        if _first_present(enriched.album) is not None:
            changes['album'] = enriched.album
        if enriched.year is not None:
            changes['year'] = enriched.year
        if enriched.genre:
            changes['genre'] = list(enriched.genre)
        if _first_present(enriched.album_art) is not None:
            changes['album_art'] = enriched.album_art

        if not changes:
            return merged

        changes['fallback_fields'] = merged.fallback_fields - set(changes)
        self.stats['enrichment_applied'] += 1
        self.logger.debug(f"Enrichment overrode: {', '.join(sorted(k for k in changes if k != 'fallback_fields'))}")
        return replace(merged, **changes)

    def resolve(self,
                extracted: Optional[TrackMetadata],
                user_supplied: Optional[TrackMetadata],
                filename: Optional[str],
                lookup: Optional[LookupFunc] = None) -> MergedMetadata:
        """
        Run both merge passes and clean the result.

        A lookup that returns nothing or raises counts as no enrichment.
        """
        merged = self.merge(extracted, user_supplied, filename)

        if lookup is not None and self.needs_enrichment(merged):
            self.stats['enrichment_attempts'] += 1
            title = None if merged.is_fallback('title') and merged.title == UNKNOWN_TITLE else merged.title
            enriched = None
            if title:
                try:
                    enriched = lookup(title, None)
                except Exception as e:
                    self.logger.warning(f"Metadata lookup failed for '{title}': {e}")
            merged = self.apply_enrichment(merged, enriched)

        return self.finalize(merged, filename)

    def finalize(self, merged: MergedMetadata, filename: Optional[str]) -> MergedMetadata:
        """
        Clean merged fields and restore the title/artist invariant.

        Cleaning can empty a value (a title that was only a URL); the title
        and artist fallbacks are applied again in that case and the artist
        list is re-parsed from the cleaned artist.
        """
        cleaned = clean_metadata({
            'title': merged.title,
            'artist': merged.artist,
            'album': merged.album,
            'genre': list(merged.genre),
        })
        fallback_fields = set(merged.fallback_fields)

        title = cleaned['title']
        if not title:
            title = clean_metadata_string(title_from_filename(filename)) or UNKNOWN_TITLE
            fallback_fields.add('title')

        artist = cleaned['artist']
        if not artist:
            artist = UNKNOWN_ARTIST
            fallback_fields.add('artist')

        return replace(
            merged,
            title=title,
            artist=artist,
            artists=parse_artists(artist),
            album=cleaned['album'] or None,
            genre=cleaned['genre'] or [],
            fallback_fields=frozenset(fallback_fields),
        )

    def get_statistics(self):
        return dict(self.stats)
