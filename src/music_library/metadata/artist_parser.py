"""
Artist string parsing

Splits free-text artist credits ("A feat. B & C") into an ordered list of
distinct artist names.
"""

import re
from typing import List

from ..core.constants import UNKNOWN_ARTIST


# (pattern, flags) pairs; every match is replaced by a comma
_SEPARATOR_PATTERNS = [
    (r'\s+feat\.?\s+', re.IGNORECASE),
    (r'\s+ft\.?\s+', re.IGNORECASE),
    (r'\s+featuring\s+', re.IGNORECASE),
    (r'\s+&\s+', 0),
    (r'\s+and\s+', re.IGNORECASE),
    (r'\s+with\s+', re.IGNORECASE),
    (r'\s*;\s*', 0),
    (r'\s*/\s*', 0),
]

_SEPARATORS = [re.compile(pattern, flags) for pattern, flags in _SEPARATOR_PATTERNS]


def parse_artists(artist_string: str) -> List[str]:
    """
    Parse an artist credit into individual artists.

    Handles "feat.", "ft.", "featuring", "&", "and", "with", ";" and "/"
    as separators in addition to commas. Duplicates are removed
    case-insensitively, keeping the first spelling seen.

    Args:
        artist_string: Raw artist credit

    Returns:
        Non-empty list of artist names
    """
    if not artist_string or not artist_string.strip():
        return [UNKNOWN_ARTIST]

    normalized = artist_string
    for separator in _SEPARATORS:
        normalized = separator.sub(', ', normalized)

    artists: List[str] = []
    seen = set()
    for part in normalized.split(','):
        name = part.strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        artists.append(name)

    return artists or [UNKNOWN_ARTIST]


def primary_artist(artist_string: str) -> str:
    """Get the primary (first credited) artist"""
    return parse_artists(artist_string)[0]


def featured_artists(artist_string: str) -> List[str]:
    """Get every credited artist except the primary one"""
    return parse_artists(artist_string)[1:]


def format_artists(artists: List[str]) -> str:
    """
    Format artists for display.

    Example: ["A", "B", "C"] -> "A, B & C"
    """
    if not artists:
        return UNKNOWN_ARTIST
    if len(artists) == 1:
        return artists[0]
    if len(artists) == 2:
        return f"{artists[0]} & {artists[1]}"
    return f"{', '.join(artists[:-1])} & {artists[-1]}"
