"""Tests for album identity normalization."""

import pytest

from recordkeeper.domain.value_objects.album_identity import (
    basic_normalize_key,
    normalize_for_comparison,
    normalize_key,
    sanitize_for_storage,
    strip_edition_suffixes,
)


class TestNormalizeKey:
    """Variants of the same album must collapse to one key."""

    def test_leading_article_and_edition_suffix_removed(self) -> None:
        assert normalize_key("The Beatles", "Abbey Road (Remastered)") == "beatles::abbey road"

    def test_case_insensitive(self) -> None:
        assert normalize_key("THE BEATLES", "ABBEY ROAD") == normalize_key(
            "the beatles", "abbey road"
        )

    def test_slash_removed(self) -> None:
        assert normalize_key("AC/DC", "Back in Black") == "acdc::back in black"
        assert normalize_key("AC/DC", "Back in Black") == normalize_key("ACDC", "Back in Black")

    def test_apostrophes_ignored(self) -> None:
        assert normalize_key("Guns N' Roses", "Appetite for Destruction") == normalize_key(
            "Guns N Roses", "Appetite for Destruction"
        )

    def test_unicode_apostrophe_matches_ascii(self) -> None:
        assert normalize_key("Guns N’ Roses", "Lies") == normalize_key("Guns N' Roses", "Lies")

    def test_ampersand_equals_and(self) -> None:
        assert normalize_key("Simon & Garfunkel", "Bookends") == "simon and garfunkel::bookends"
        assert normalize_key("Simon & Garfunkel", "Bookends") == normalize_key(
            "Simon and Garfunkel", "Bookends"
        )

    def test_deluxe_edition_matches_plain_title(self) -> None:
        assert normalize_key("Radiohead", "OK Computer (Deluxe Edition)") == normalize_key(
            "Radiohead", "OK Computer"
        )

    def test_stacked_qualifiers_all_removed(self) -> None:
        assert normalize_key("Artist", "Album (Live) [Remastered]") == "artist::album"

    def test_album_keeps_its_article(self) -> None:
        assert normalize_key("Queen", "A Night at the Opera") == "queen::a night at the opera"

    def test_article_alone_is_kept(self) -> None:
        # Nothing follows "the", so it IS the name
        assert normalize_key("The", "Soul Mining") == "the::soul mining"

    def test_whitespace_collapsed(self) -> None:
        assert normalize_key("  Pink   Floyd ", " The  Wall ") == "pink floyd::the wall"

    @pytest.mark.parametrize("empty", [None, "", "   "])
    def test_total_on_empty_input(self, empty: str | None) -> None:
        assert normalize_key(empty, empty) == "::"

    def test_non_string_input_is_stringified(self) -> None:
        assert normalize_key("Blink", 182) == "blink::182"

    @pytest.mark.parametrize(
        "artist, album",
        [
            ("The Beatles", "Abbey Road (Remastered)"),
            ("The The The", "X"),
            ("'The Band'", "Music from Big Pink [2000 Remaster]"),
            ("AC/DC & Friends", "Live (at Donington) (Deluxe)"),
        ],
    )
    def test_segments_are_idempotent(self, artist: str, album: str) -> None:
        once_artist = normalize_for_comparison(artist, remove_articles=True)
        once_album = normalize_for_comparison(album, strip_editions=True)
        assert normalize_for_comparison(once_artist, remove_articles=True) == once_artist
        assert normalize_for_comparison(once_album, strip_editions=True) == once_album


class TestBasicNormalizeKey:
    """basic_normalize_key() only lowercases and trims."""

    def test_edition_suffix_kept(self) -> None:
        assert (
            basic_normalize_key("Radiohead", "OK Computer (Deluxe Edition)")
            == "radiohead::ok computer (deluxe edition)"
        )

    def test_article_kept(self) -> None:
        assert basic_normalize_key("  The Beatles ", "Abbey Road") == "the beatles::abbey road"

    def test_none_becomes_empty_segment(self) -> None:
        assert basic_normalize_key(None, "Album") == "::album"


class TestSanitizeForStorage:
    def test_collapses_whitespace_and_keeps_case(self) -> None:
        assert sanitize_for_storage("  Foo   Bar  ") == "Foo Bar"

    def test_unicode_punctuation_folded(self) -> None:
        assert sanitize_for_storage("Guns N’ Roses – Live…") == "Guns N' Roses - Live..."

    def test_none_is_empty(self) -> None:
        assert sanitize_for_storage(None) == ""


def test_strip_edition_suffixes_leaves_inner_parentheses() -> None:
    assert strip_edition_suffixes("(What's the Story) Morning Glory?") == (
        "(What's the Story) Morning Glory?"
    )
