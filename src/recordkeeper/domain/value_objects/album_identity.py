"""Album identity normalization for matching and deduplication.

Hey future me - this module decides whether two (artist, album) pairs are the
SAME logical album! The same record shows up from MusicBrainz, Spotify, Tidal
and manual entry with slightly different spellings:

- Case: "THE BEATLES" vs "the beatles"
- Articles: "The Beatles" vs "Beatles"
- Editions: "OK Computer (Deluxe Edition)" vs "OK Computer"
- Punctuation: "AC/DC" vs "ACDC", "Guns N' Roses" vs "Guns N Roses", "&" vs "and"

normalize_key() folds all of those into one "artist::album" key.
basic_normalize_key() only lowercases and trims - the dedup migration uses it
on purpose so historical rows that are already distinct don't get over-merged.

Examples:
    >>> normalize_key("The Beatles", "Abbey Road (Remastered)")
    'beatles::abbey road'
    >>> normalize_key("AC/DC", "Back in Black")
    'acdc::back in black'
    >>> basic_normalize_key("Radiohead", "OK Computer (Deluxe Edition)")
    'radiohead::ok computer (deluxe edition)'
"""

import re

KEY_SEPARATOR = "::"

# Leading words dropped from the ARTIST segment only ("The Beatles" -> "beatles").
# Albums keep their articles - "A Night at the Opera" is not "Night at the Opera".
ARTICLES: tuple[str, ...] = ("the", "a", "an")

# Unicode variants that differ between sources for the same name.
_UNICODE_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("…", "..."),  # ellipsis
    ("–", "-"),  # en dash
    ("—", "-"),  # em dash
    ("‘", "'"),
    ("’", "'"),
    ("`", "'"),
    ("´", "'"),
    ("“", '"'),
    ("”", '"'),
)

_EDITION_SUFFIX = re.compile(r"\s*(\([^()]*\)|\[[^\[\]]*\])\s*$")
_ARTICLE_PREFIX = re.compile(rf"^(?:{'|'.join(ARTICLES)})\s+(?=\S)")
_WHITESPACE = re.compile(r"\s+")


def _to_text(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def sanitize_for_storage(value: object) -> str:
    """Light cleanup applied before storing or comparing names.

    Converts Unicode punctuation variants to ASCII and collapses whitespace.
    Case and diacritics are preserved - this is still display text.

    Args:
        value: Raw artist or album name (may be None)

    Returns:
        Sanitized string, empty string for None
    """
    text = _to_text(value)
    for variant, replacement in _UNICODE_REPLACEMENTS:
        text = text.replace(variant, replacement)
    return _WHITESPACE.sub(" ", text).strip()


def strip_edition_suffixes(text: str) -> str:
    """Remove trailing "(...)" / "[...]" qualifiers, e.g. "(Deluxe Edition)".

    Stacked qualifiers like "Album (Live) [Remastered]" are all removed.
    """
    previous = None
    while previous != text:
        previous = text
        text = _EDITION_SUFFIX.sub("", text)
    return text.strip()


def strip_leading_article(text: str) -> str:
    """Drop leading articles while more words follow them.

    Stacked articles ("the a team") are all dropped so that normalizing an
    already-normalized name never changes it again.
    """
    previous = None
    while previous != text:
        previous = text
        text = _ARTICLE_PREFIX.sub("", text, count=1)
    return text


def normalize_punctuation(text: str) -> str:
    """Fold punctuation that commonly varies between sources."""
    text = text.replace("'", "")
    text = re.sub(r"[/\\]", "", text)
    text = text.replace("&", " and ")
    return text


def normalize_for_comparison(
    value: object,
    *,
    remove_articles: bool = False,
    strip_editions: bool = False,
) -> str:
    """Normalize a single artist or album segment.

    Args:
        value: Raw text (None/empty degrade to "")
        remove_articles: Drop a leading "the"/"a"/"an" word
        strip_editions: Drop trailing parenthetical/bracketed qualifiers

    Returns:
        Lowercased, punctuation-folded, whitespace-collapsed segment
    """
    text = sanitize_for_storage(value).lower().strip()
    if strip_editions:
        text = strip_edition_suffixes(text)
    # Punctuation before articles: "'the x" must end up as "x", same as "the x"
    text = normalize_punctuation(text)
    text = _WHITESPACE.sub(" ", text).strip()
    if remove_articles:
        text = strip_leading_article(text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_key(artist: object, album: object) -> str:
    """Build the matching key used for duplicate detection.

    Case-insensitive, edition-insensitive, punctuation-insensitive. Total:
    None, empty and whitespace-only inputs become empty segments.

    Args:
        artist: Artist name
        album: Album title

    Returns:
        Key in "artist::album" form
    """
    normalized_artist = normalize_for_comparison(artist, remove_articles=True)
    normalized_album = normalize_for_comparison(album, strip_editions=True)
    return f"{normalized_artist}{KEY_SEPARATOR}{normalized_album}"


def basic_normalize_key(artist: object, album: object) -> str:
    """Lowercase + trim only.

    Hey future me - DON'T "improve" this one! It has to stay dumb: the
    storage-dedup migration relies on it to avoid merging rows that the
    sophisticated key would consider the same album.
    """
    normalized_artist = _to_text(artist).lower().strip()
    normalized_album = _to_text(album).lower().strip()
    return f"{normalized_artist}{KEY_SEPARATOR}{normalized_album}"


__all__ = [
    "ARTICLES",
    "KEY_SEPARATOR",
    "basic_normalize_key",
    "normalize_for_comparison",
    "normalize_key",
    "normalize_punctuation",
    "sanitize_for_storage",
    "strip_edition_suffixes",
    "strip_leading_article",
]
