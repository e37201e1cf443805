"""
Header-safe strings for blob attributes

Blob attributes travel as HTTP header values in object stores, so they may
only contain visible ASCII and spaces.
"""

import re
from typing import Dict, Mapping, Optional

_LINE_BREAKS = re.compile(r'[\r\n\t]')
_NON_PRINTABLE = re.compile(r'[^\x20-\x7E]')
_WHITESPACE = re.compile(r'\s+')


def sanitize_header_value(value: Optional[str]) -> str:
    """Reduce a value to printable ASCII with single spaces"""
    if not value:
        return ''

    sanitized = _LINE_BREAKS.sub(' ', str(value))
    sanitized = _NON_PRINTABLE.sub('', sanitized)
    sanitized = _WHITESPACE.sub(' ', sanitized)
    return sanitized.strip()


def sanitize_metadata_for_headers(metadata: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """Sanitize every non-null value; null values are dropped"""
    return {
        key: sanitize_header_value(value)
        for key, value in metadata.items()
        if value is not None
    }
