"""
Unit tests for metadata cleaning.
"""

import pytest

from music_library.metadata.metadata_cleaner import (
    clean_genres,
    clean_metadata,
    clean_metadata_string,
)


class TestCleanMetadataString:
    """Test clean_metadata_string."""

    def test_removes_bracketed_url(self):
        assert clean_metadata_string("Song Name [www.site.com]") == "Song Name"

    def test_removes_http_url(self):
        assert clean_metadata_string("Track http://example.net/dl?id=1") == "Track"

    def test_removes_domain_names(self):
        assert clean_metadata_string("Title mp3juice.cc") == "Title"
        assert clean_metadata_string("Artist (mp3skull.com)") == "Artist"

    def test_removes_promo_suffix(self):
        assert clean_metadata_string("Track Title visit our page") == "Track Title"
        assert clean_metadata_string("Album downloaded from somewhere") == "Album"

    def test_control_characters(self):
        assert clean_metadata_string("Ti\x00tle") == "Title"
        assert clean_metadata_string("Line\r\nBreak\tTab") == "Line Break Tab"

    def test_collapses_whitespace(self):
        assert clean_metadata_string("  Lots   of    space  ") == "Lots of space"

    def test_plain_values_unchanged(self):
        assert clean_metadata_string("Bohemian Rhapsody (Remastered 2011)") == "Bohemian Rhapsody (Remastered 2011)"
        assert clean_metadata_string("AC/DC") == "AC/DC"

    def test_empty_input_returned_as_is(self):
        assert clean_metadata_string("") == ""
        assert clean_metadata_string(None) is None

    @pytest.mark.parametrize("raw", [
        "Song Name [www.site.com]",
        "Song ( www.a.com ) [ b.net ] tail",
        "Intro {http://x.io} - visit www.promo.com now",
        "\x01Weird\x02  (  )  Title\n",
        "Nested ([www.a.com])",
        "Plain Title",
        "Title " + "(" * 12 + ")" * 12,
    ])
    def test_idempotent(self, raw):
        once = clean_metadata_string(raw)
        assert clean_metadata_string(once) == once


class TestCleanMetadata:
    """Test clean_metadata on field mappings."""

    def test_cleans_text_fields_and_genres(self):
        cleaned = clean_metadata({
            'title': 'Song [www.site.com]',
            'artist': 'Band\x00',
            'album': 'Album www.rip.net',
            'genre': ['Rock', 'www.spam.com', ' Pop '],
            'year': 1999,
        })

        assert cleaned == {
            'title': 'Song',
            'artist': 'Band',
            'album': 'Album',
            'genre': ['Rock', 'Pop'],
            'year': 1999,
        }

    def test_string_genre_keeps_shape(self):
        assert clean_metadata({'genre': 'House  '})['genre'] == 'House'

    def test_does_not_mutate_input(self):
        original = {'title': 'Song [www.site.com]'}
        clean_metadata(original)
        assert original['title'] == 'Song [www.site.com]'

    def test_fixed_point(self):
        fields = {'title': 'A (www.x.com)', 'artist': 'B', 'album': None, 'genre': ['C ', '']}
        once = clean_metadata(fields)
        assert clean_metadata(once) == once

    def test_clean_genres_drops_empty(self):
        assert clean_genres(['', None, 'www.x.com', 'Jazz']) == ['Jazz']
        assert clean_genres(None) == []

    def test_deeply_nested_empty_brackets(self):
        assert clean_metadata_string("Title " + "(" * 12 + ")" * 12) == "Title"
        assert clean_metadata_string("Mix " + "[(" * 8 + ")]" * 8) == "Mix"
