"""
Unit tests for MetadataMerger.

Covers field precedence, fallbacks, the enrichment pass and genre unions.
"""

from unittest.mock import Mock

import pytest

from music_library.core.constants import UNKNOWN_ARTIST, UNKNOWN_TITLE
from music_library.core.models import TrackMetadata
from music_library.metadata.metadata_merger import MetadataMerger, merge_genres, title_from_filename


@pytest.fixture
def merger():
    return MetadataMerger()


class TestMerge:
    """Test the first merge pass."""

    def test_empty_sources_fall_back_to_filename(self, merger):
        merged = merger.merge(TrackMetadata(), TrackMetadata(), "My Song.mp3")

        assert merged.title == "My Song"
        assert merged.artist == UNKNOWN_ARTIST
        assert merged.artists == [UNKNOWN_ARTIST]
        assert merged.album is None
        assert merged.year is None
        assert merged.genre == []
        assert merged.fallback_fields == {'title', 'artist'}

    def test_filename_fallback_is_cleaned(self, merger):
        assert merger.merge(None, None, "Song [www.x.com].mp3").title == "Song"
        assert merger.merge(None, None, "www.freemp3.com.mp3").title == UNKNOWN_TITLE

    def test_user_precedence_per_field(self, merger):
        extracted = TrackMetadata(title="T", artist="Art")
        user = TrackMetadata(title="User")

        merged = merger.merge(extracted, user, "f.mp3")

        assert merged.title == "User"
        assert merged.artist == "Art"
        assert merged.fallback_fields == frozenset()

    def test_blank_user_values_do_not_win(self, merger):
        extracted = TrackMetadata(title="Tagged", album="Tagged Album", genre=["Rock"])
        user = TrackMetadata.from_mapping({'title': '  ', 'album': '', 'genre': ''})

        merged = merger.merge(extracted, user, "f.mp3")

        assert merged.title == "Tagged"
        assert merged.album == "Tagged Album"
        assert merged.genre == ["Rock"]

    def test_title_falls_back_to_placeholder(self, merger):
        merged = merger.merge(None, None, "")
        assert merged.title == UNKNOWN_TITLE

    def test_duration_only_from_extracted(self, merger):
        merged = merger.merge(TrackMetadata(duration=201.5), TrackMetadata(duration=10.0), "f.mp3")
        assert merged.duration == 201.5

    def test_artist_list_is_parsed(self, merger):
        merged = merger.merge(TrackMetadata(artist="A feat. B & C"), None, "f.mp3")
        assert merged.artist == "A feat. B & C"
        assert merged.artists == ["A", "B", "C"]

    def test_title_from_filename(self):
        assert title_from_filename("dir/Track One.flac") == "Track One"
        assert title_from_filename("noext") == "noext"
        assert title_from_filename(".mp3") == ".mp3"
        assert title_from_filename(None) is None


class TestEnrichment:
    """Test the enrichment pass."""

    def test_needs_enrichment_only_for_unknown_artist(self, merger):
        unresolved = merger.merge(TrackMetadata(title="Song"), None, "f.mp3")
        resolved = merger.merge(TrackMetadata(title="Song", artist="Band"), None, "f.mp3")

        assert merger.needs_enrichment(unresolved)
        assert not merger.needs_enrichment(resolved)

    def test_enrichment_overrides_provided_fields(self, merger):
        merged = merger.merge(TrackMetadata(title="song", album="Old", year=1990), None, "f.mp3")
        enriched = TrackMetadata(title="Song", artist="Band", year=2001, genre=["Rock"],
                                 album_art="https://img/front.jpg")

        result = merger.apply_enrichment(merged, enriched)

        assert result.title == "Song"
        assert result.artist == "Band"
        assert result.artists == ["Band"]
        assert result.album == "Old"
        assert result.year == 2001
        assert result.genre == ["Rock"]
        assert result.album_art == "https://img/front.jpg"
        assert 'artist' not in result.fallback_fields

    def test_apply_none_is_noop(self, merger):
        merged = merger.merge(None, None, "f.mp3")
        assert merger.apply_enrichment(merged, None) is merged

    def test_resolve_calls_lookup_with_title_only(self, merger):
        lookup = Mock(return_value=TrackMetadata(artist="Found Artist", album="Found Album"))

        result = merger.resolve(TrackMetadata(title="Track"), None, "f.mp3", lookup)

        lookup.assert_called_once_with("Track", None)
        assert result.artist == "Found Artist"
        assert result.album == "Found Album"

    def test_resolve_skips_lookup_when_artist_known(self, merger):
        lookup = Mock()
        result = merger.resolve(TrackMetadata(title="Track", artist="Band"), None, "f.mp3", lookup)

        lookup.assert_not_called()
        assert result.artist == "Band"

    def test_resolve_treats_lookup_failure_as_no_enrichment(self, merger):
        lookup = Mock(side_effect=RuntimeError("service down"))

        result = merger.resolve(TrackMetadata(title="Track"), None, "f.mp3", lookup)

        assert result.title == "Track"
        assert result.artist == UNKNOWN_ARTIST

    def test_resolve_without_lookup(self, merger):
        result = merger.resolve(None, TrackMetadata(artist="Band"), "Song.mp3")
        assert result.title == "Song"
        assert result.artist == "Band"


class TestFinalize:
    """Test cleaning of merged metadata."""

    def test_cleaning_restores_fallbacks(self, merger):
        merged = merger.merge(TrackMetadata(title="www.site.com", artist="http://spam.net"), None, "Real Name.mp3")

        result = merger.finalize(merged, "Real Name.mp3")

        assert result.title == "Real Name"
        assert result.artist == UNKNOWN_ARTIST
        assert result.artists == [UNKNOWN_ARTIST]
        assert result.fallback_fields == {'title', 'artist'}

    def test_cleaning_reparses_artists(self, merger):
        merged = merger.merge(TrackMetadata(title="T", artist="A & B [www.x.com]"), None, "f.mp3")

        result = merger.finalize(merged, "f.mp3")

        assert result.artist == "A & B"
        assert result.artists == ["A", "B"]

    def test_junk_filename_never_persisted(self, merger):
        result = merger.resolve(None, None, "www.freemp3.com.mp3")

        assert result.title == UNKNOWN_TITLE
        assert result.is_fallback('title')

    def test_emptied_title_uses_cleaned_filename(self, merger):
        merged = merger.merge(TrackMetadata(title="http://spam.net"), None, "Track (www.mp3site.com).mp3")

        assert merger.finalize(merged, "Track (www.mp3site.com).mp3").title == "Track"


class TestMergeGenres:
    """Test genre union for existing records."""

    def test_union_existing_first(self):
        assert merge_genres(["Rock"], ["Pop", "Rock"]) == ["Rock", "Pop"]

    def test_case_sensitive(self):
        assert merge_genres(["rock"], ["Rock"]) == ["rock", "Rock"]

    def test_capped_at_five(self):
        assert merge_genres(["A", "B", "C"], ["D", "E", "F", "G"]) == ["A", "B", "C", "D", "E"]

    def test_empty_inputs(self):
        assert merge_genres(None, None) == []
        assert merge_genres([], ["Jazz"]) == ["Jazz"]
