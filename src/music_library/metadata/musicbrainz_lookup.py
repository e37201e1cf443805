"""
MusicBrainz Metadata Lookup

Online enrichment keyed on (title, artist): recording search through
musicbrainzngs, front cover URL from the Cover Art Archive.
"""

import logging
from typing import Any, Dict, List, Optional

import musicbrainzngs
import requests

from ..core.constants import COVER_ART_BASE_URL, LOOKUP_TIMEOUT, MAX_GENRES
from ..core.models import TrackMetadata, coerce_year
from ..utils.decorators import handle_errors, retry, track_performance


def _tag_count(tag: Dict[str, Any]) -> int:
    try:
        return int(tag.get('count', 0))
    except (TypeError, ValueError):
        return 0


class MusicBrainzLookup:
    """
    MusicBrainz recording search client.

    Features:
    - Recording search by title and optional artist
    - Album and year from the first release
    - Top tags as genres
    - Cover Art Archive front image
    """

    def __init__(self,
                 app_name: str = "Music-Library",
                 app_version: str = "1.0.0",
                 contact: str = "music-library@example.com",
                 timeout: int = LOOKUP_TIMEOUT,
                 fetch_cover_art: bool = True,
                 enabled: bool = True):
        self.logger = logging.getLogger(__name__)
        self.enabled = enabled
        self.timeout = timeout
        self.fetch_cover_art = fetch_cover_art
        self.session = requests.Session()
        self.session.headers['User-Agent'] = f"{app_name}/{app_version} ( {contact} )"

        if self.enabled:
            musicbrainzngs.set_useragent(app_name, app_version, contact)
            musicbrainzngs.set_rate_limit(True)
            self.logger.info("MusicBrainz lookup initialized")
        else:
            self.logger.warning("MusicBrainz lookup disabled")

        self.stats = {
            'lookups': 0,
            'matches': 0,
            'cover_art_found': 0,
        }

    @classmethod
    def from_config(cls, config) -> 'MusicBrainzLookup':
        """Build from a ``LookupConfig``"""
        return cls(
            app_name=config.app_name,
            app_version=config.app_version,
            contact=config.contact,
            timeout=config.timeout,
            fetch_cover_art=config.fetch_cover_art,
            enabled=config.enabled,
        )

    @handle_errors(log_level="warning", return_on_error=None)
    @track_performance(threshold_ms=10000)
    def lookup(self, title: str, artist: Optional[str] = None) -> Optional[TrackMetadata]:
        """
        Look up canonical metadata for a recording.

        Args:
            title: Recording title
            artist: Artist name; omitted from the query when empty

        Returns:
            TrackMetadata, or None on no match or failure
        """
        if not self.enabled or not title:
            return None

        self.stats['lookups'] += 1
        recordings = self._search(title, artist)
        if not recordings:
            self.logger.info(f"No MusicBrainz match for '{title}' ({artist or 'any artist'})")
            return None

        match = recordings[0]
        album = None
        year = None
        album_art = None

        releases = match.get('release-list') or []
        if releases:
            release = releases[0]
            album = release.get('title')
            year = coerce_year(release.get('date'))
            if self.fetch_cover_art and release.get('id'):
                album_art = self.cover_art_url(release['id'])

        tags = sorted(match.get('tag-list') or [], key=_tag_count, reverse=True)
        genres = [tag['name'] for tag in tags[:MAX_GENRES] if tag.get('name')]

        result = TrackMetadata(
            title=match.get('title'),
            artist=self._credited_artist(match.get('artist-credit') or []),
            album=album,
            year=year,
            genre=genres,
            album_art=album_art,
            musicbrainz_id=match.get('id'),
        )

        self.stats['matches'] += 1
        self.logger.info(f"MusicBrainz match for '{title}': {result.artist} - {result.title}")
        return result

    @retry(max_attempts=2, delay=2.0, exceptions=(musicbrainzngs.NetworkError,))
    def _search(self, title: str, artist: Optional[str]) -> List[Dict[str, Any]]:
        fields = {'recording': title}
        if artist:
            fields['artist'] = artist

        results = musicbrainzngs.search_recordings(limit=1, **fields)
        return results.get('recording-list') or []

    def _credited_artist(self, credits: List[Any]) -> Optional[str]:
        """First credited artist name"""
        for credit in credits:
            if isinstance(credit, dict):
                name = credit.get('name') or (credit.get('artist') or {}).get('name')
                if name:
                    return name
        return None

    def cover_art_url(self, release_id: str) -> Optional[str]:
        """Front cover image URL of a release, or None"""
        try:
            response = self.session.get(f"{COVER_ART_BASE_URL}/{release_id}", timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            images = response.json().get('images') or []
        except (requests.RequestException, ValueError) as e:
            self.logger.debug(f"Cover art lookup failed for release {release_id}: {e}")
            return None

        if not images:
            return None

        front = next((image for image in images if image.get('front')), images[0])
        url = front.get('image')
        if url:
            self.stats['cover_art_found'] += 1
        return url

    def get_statistics(self) -> Dict[str, int]:
        return dict(self.stats)
