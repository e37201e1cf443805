"""
Core Constants for the Music Library service

Placeholders, storage formats and upload limits shared by the ingestion pipeline.
"""

# Metadata placeholders
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown Title"

# Genre handling
MAX_GENRES = 5
GENRE_DELIMITER = ", "

# Fingerprints
HASH_FINGERPRINT_PREFIX = "HASH:"
FPCALC_OUTPUT_KEY = "FINGERPRINT="
FPCALC_TIMEOUT = 30            # seconds
FPCALC_DEFAULT_LENGTH = 120    # seconds of audio analysed

# Blob keys
SONG_KEY_PREFIX = "songs"
DEFAULT_FILE_EXTENSION = "mp3"

# Uploads
MAX_UPLOAD_SIZE_MB = 50
ALLOWED_MIME_TYPES = [
    'audio/mpeg',
    'audio/mp3',
    'audio/wav',
    'audio/wave',
    'audio/x-wav',
    'audio/ogg',
    'audio/flac',
    'audio/aac',
    'audio/m4a',
    'audio/x-m4a',
]

# Record fields that may be patched after insert
PATCHABLE_FIELDS = frozenset({
    'title',
    'artist',
    'artists',
    'album',
    'year',
    'genre',
    'duration',
    'file_key',
    'mime_type',
    'fingerprint',
    'album_art',
})

# Database Configuration
DB_TIMEOUT = 30.0              # Database timeout in seconds

# Online lookup
LOOKUP_TIMEOUT = 10            # seconds
COVER_ART_BASE_URL = "https://coverartarchive.org/release"

# Logging
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
