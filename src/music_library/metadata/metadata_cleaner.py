"""
Metadata cleaning

Removes junk that leaks into embedded tags from download sites: bare URLs,
domain names, promo phrases and control characters.
"""

import re
from typing import Any, Dict, List, Optional


URL_PATTERN = re.compile(r'(https?://[^\s\])]+)|(www\.[^\s\])]+)', re.IGNORECASE)

# Words ending in a common TLD; regular words rarely match this
DOMAIN_PATTERN = re.compile(
    r'\b[\w-]+\.(com|net|org|io|co|in|us|uk|biz|info|me|tv|cc)\b',
    re.IGNORECASE
)

# "downloaded from ..." and friends run to the end of the value
PROMO_PATTERN = re.compile(r'\b(downloaded from|uploaded by|visit|website|url)\b.*$', re.IGNORECASE)

WHITESPACE_CONTROL_PATTERN = re.compile(r'[\t\r\n\x0b\x0c]')
CONTROL_PATTERN = re.compile(r'[\x00-\x08\x0e-\x1f\x7f]')
EMPTY_BRACKETS_PATTERN = re.compile(r'\[\s*\]|\(\s*\)|\{\s*\}')
WHITESPACE_PATTERN = re.compile(r'\s+')

CLEANED_TEXT_FIELDS = ('title', 'artist', 'album')


def _clean_once(text: str) -> str:
    cleaned = WHITESPACE_CONTROL_PATTERN.sub(' ', text)
    cleaned = CONTROL_PATTERN.sub('', cleaned)
    cleaned = URL_PATTERN.sub('', cleaned)
    cleaned = DOMAIN_PATTERN.sub('', cleaned)
    cleaned = PROMO_PATTERN.sub('', cleaned)
    # "Song Name [www.site.com]" -> "Song Name []" -> "Song Name"
    cleaned = EMPTY_BRACKETS_PATTERN.sub('', cleaned)
    cleaned = WHITESPACE_PATTERN.sub(' ', cleaned)
    return cleaned.strip()


def clean_metadata_string(text: Optional[str]) -> Optional[str]:
    """
    Clean a metadata string by removing URLs, website names and control characters.

    Args:
        text: The text to clean

    Returns:
        The cleaned text (empty input is returned unchanged)
    """
    if not text:
        return text

    # Each pass shortens the value or leaves it unchanged
    cleaned = text
    while True:
        next_pass = _clean_once(cleaned)
        if next_pass == cleaned:
            break
        cleaned = next_pass

    return cleaned


def clean_genres(genres: Optional[List[str]]) -> List[str]:
    """Clean each genre and drop the ones that end up empty"""
    if not genres:
        return []
    cleaned = (clean_metadata_string(genre) for genre in genres if genre)
    return [genre for genre in cleaned if genre]


def clean_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """
    Clean the text fields of a metadata mapping.

    title, artist and album are cleaned in place of a copy; genre may be a
    list or a single string and keeps its shape. Other keys pass through.

    Args:
        metadata: Metadata fields

    Returns:
        New dict with cleaned values
    """
    cleaned = dict(metadata)

    for field_name in CLEANED_TEXT_FIELDS:
        if cleaned.get(field_name):
            cleaned[field_name] = clean_metadata_string(cleaned[field_name])

    genre = cleaned.get('genre')
    if genre:
        if isinstance(genre, (list, tuple)):
            cleaned['genre'] = clean_genres(list(genre))
        elif isinstance(genre, str):
            cleaned['genre'] = clean_metadata_string(genre)

    return cleaned
