"""
Metadata handling for the Music Library service

Sources in precedence order:
1. Online enrichment (MusicBrainz) - only while the artist is unresolved
2. User-supplied fields
3. Embedded tags
4. Fallbacks (filename, placeholders)
"""

from .artist_parser import parse_artists, primary_artist, featured_artists, format_artists
from .metadata_cleaner import clean_metadata, clean_metadata_string
from .metadata_merger import MetadataMerger, merge_genres
from .tag_extractor import TagExtractor
from .musicbrainz_lookup import MusicBrainzLookup

__all__ = [
    'parse_artists',
    'primary_artist',
    'featured_artists',
    'format_artists',
    'clean_metadata',
    'clean_metadata_string',
    'MetadataMerger',
    'merge_genres',
    'TagExtractor',
    'MusicBrainzLookup',
]
