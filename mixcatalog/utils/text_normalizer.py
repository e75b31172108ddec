"""Text normalization utilities for track titles, artist names and tracklists.

This module handles three distinct concerns:

1. **Match normalization** -- :func:`normalize` is the single canonical form
   every string passes through before fuzzy scoring.  It lowercases, drops
   bracketed/parenthetical asides ("(Original Mix)", "[FREE DL]"), and folds
   the featuring/versus/ampersand spellings DJs and uploaders use
   interchangeably.  It is idempotent: ``normalize(normalize(s)) ==
   normalize(s)``.

2. **Tracklist line parsing** -- Uploaders paste tracklists as
   ``"[01:02:03] 12. Artist - Title"`` or ``"Title by Artist"``.
   :func:`parse_tracklist_line` strips timestamps and numbering and splits
   the remainder into artist and title.

3. **Alias generation** -- :func:`split_artist_variations` and
   :func:`search_aliases` produce the alternative spellings stored next to a
   new track so later lookups can find it by any of them.
"""

from __future__ import annotations

import re

_BRACKETED_RE = re.compile(r"\[[^\]]*\]")
_PARENTHETICAL_RE = re.compile(r"\([^)]*\)")
_FEATURING_RE = re.compile(r"\b(?:feat|ft)\b\.?")
_VERSUS_RE = re.compile(r"\bvs\b\.?")
_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")

_TIMESTAMP_RE = re.compile(r"^\[?\d{1,2}:\d{2}(?::\d{2})?\]?\s*")
_NUMBERING_RE = re.compile(r"^\d+[.)]\s*")
_BY_RE = re.compile(r"\s+by\s+", re.IGNORECASE)

_ARTIST_SEPARATOR_RE = re.compile(
    r"\s+(?:feat\.?|ft\.?|featuring|vs\.?|versus|&|and|x|with)\s+",
    re.IGNORECASE,
)
_LEADING_ARTICLE_RE = re.compile(r"^(?:the|a|an)\s+")
_VERSION_SUFFIX_RE = re.compile(r"\s+-\s+[^-]*\b(?:mix|remix|edit|version|dub|rework)$")


def normalize(text: str) -> str:
    """Return the canonical comparison form of *text*.

    Steps, in order: lowercase, remove ``[...]`` and ``(...)`` asides,
    ``feat./ft.`` -> ``featuring``, ``vs.`` -> ``versus``, ``&`` -> ``and``,
    collapse whitespace and trim.

    Args:
        text: Raw title, artist name or free text.

    Returns:
        Normalized text (possibly empty).
    """
    if not text:
        return ""

    normalized = text.lower()
    normalized = _BRACKETED_RE.sub(" ", normalized)
    normalized = _PARENTHETICAL_RE.sub(" ", normalized)
    normalized = _FEATURING_RE.sub("featuring", normalized)
    normalized = _VERSUS_RE.sub("versus", normalized)
    normalized = normalized.replace("&", " and ")
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def entity_key(name: str) -> str:
    """Punctuation-insensitive lookup key for contexts and venues.

    ``"Fabric, London"`` and ``"fabric london"`` share the key ``"fabric london"``.
    """
    key = _PUNCTUATION_RE.sub(" ", normalize(name))
    return _WHITESPACE_RE.sub(" ", key).strip()


def strip_line_prefix(line: str) -> str:
    """Remove a leading cue timestamp and track numbering from a tracklist line."""
    cleaned = _TIMESTAMP_RE.sub("", line.strip())
    cleaned = _NUMBERING_RE.sub("", cleaned)
    return cleaned.strip()


def parse_tracklist_line(line: str) -> tuple[str | None, str]:
    """Split a raw tracklist line into ``(artist, title)``.

    Recognises ``"Artist - Title"`` and ``"Title by Artist"``; anything else
    is treated as a bare title with no artist.

    >>> parse_tracklist_line("[12:30] 4. Lane 8 - Fingerprint")
    ('Lane 8', 'Fingerprint')
    """
    cleaned = strip_line_prefix(line)

    if " - " in cleaned:
        artist, _, title = cleaned.partition(" - ")
        return artist.strip() or None, title.strip()

    parts = _BY_RE.split(cleaned, maxsplit=1)
    if len(parts) == 2 and parts[0].strip() and parts[1].strip():
        return parts[1].strip(), parts[0].strip()

    return None, cleaned


def split_artist_variations(name: str) -> list[str]:
    """Return *name* plus each collaborator named in it.

    Splits on featuring/versus/``&``/``and``/``x``/``with``; fragments of two
    characters or fewer are discarded as noise.

    >>> split_artist_variations("Bicep & Hammer")
    ['Bicep & Hammer', 'Bicep', 'Hammer']
    """
    stripped = name.strip()
    if not stripped:
        return []

    variations = [stripped]
    for part in _ARTIST_SEPARATOR_RE.split(stripped):
        part = part.strip()
        if len(part) > 2 and part not in variations:
            variations.append(part)
    return variations


def search_aliases(text: str) -> list[str]:
    """Generate normalized lookup aliases for a title.

    Includes the normalized text itself, the text without a leading article,
    and the text without a trailing `` - X Remix``/`` - Radio Edit`` style
    version suffix.
    """
    base = normalize(text)
    if not base:
        return []

    aliases = [base]
    for candidate in (_LEADING_ARTICLE_RE.sub("", base), _VERSION_SUFFIX_RE.sub("", base)):
        candidate = candidate.strip()
        if candidate and candidate not in aliases:
            aliases.append(candidate)
    return aliases


def token_count(text: str) -> int:
    """Number of whitespace-separated tokens in *text*."""
    return len(text.split())
