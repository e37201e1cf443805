"""
Audio fingerprinting for duplicate detection
"""

from .fingerprinting import AudioFingerprinter, hash_fingerprint

__all__ = [
    'AudioFingerprinter',
    'hash_fingerprint',
]
