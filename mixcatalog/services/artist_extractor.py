"""Performer extraction from upload titles.

Platforms rarely report the performing DJ as a field.  When a record
arrives without ``raw_artist`` the canonicalizer asks this module who is
playing, using three strategies in order:

1. Known host channels (Cercle, Boiler Room, HATE, Mixmag) publish other
   artists' sets; their title and description formats are parsed with
   channel-specific patterns.
2. Known artist and label channels either *are* the artist or use a
   fixed "Artist - Title" format.
3. Anything else: generic title shapes ("Artist live at Venue",
   "Artist @ Venue", "Artist - Title", "Artist | Venue", "Artist presents",
   "Artist:") when the title looks hosted, otherwise the channel itself.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from mixcatalog.models.catalog import MatchConfidence


class ArtistExtraction(BaseModel):
    """Who performs in an upload, and how that was decided."""

    model_config = ConfigDict(frozen=True)

    performing_artists: list[str] = Field(default_factory=list)
    host_channel: str | None = None
    confidence: MatchConfidence = MatchConfidence.LOW
    method: str

    @property
    def artist_credit(self) -> str | None:
        """Credit string for the artist matcher, or ``None`` when nobody was found."""
        return ", ".join(self.performing_artists) or None


@dataclass(frozen=True)
class _ChannelProfile:
    name: str
    title_patterns: tuple[re.Pattern[str], ...] = ()
    description_patterns: tuple[re.Pattern[str], ...] = ()
    channel_is_artist: bool = False
    channel_id: str | None = None


def _patterns(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


HOST_CHANNELS: tuple[_ChannelProfile, ...] = (
    _ChannelProfile(
        "Cercle",
        title_patterns=_patterns(
            r"^([^@]+?)\s+(?:live|performance)\s+at\s+Cercle",
            r"^([^-]+?)\s*-?\s*Cercle",
            r"Cercle:\s*([^-]+)",
        ),
        description_patterns=_patterns(
            r"^([^@\n]+?)\s+performing\s+at\s+Cercle",
            r"^([^@\n]+?)\s+live\s+at\s+Cercle",
        ),
    ),
    _ChannelProfile(
        "Boiler Room",
        title_patterns=_patterns(r"^([^|]+?)\s*\|\s*Boiler\s+Room", r"^([^@]+?)\s+Boiler\s+Room"),
        description_patterns=_patterns(r"^([^@\n]+?)\s+in\s+the\s+Boiler\s+Room"),
    ),
    _ChannelProfile("HATE", title_patterns=_patterns(r"^([^@]+?)\s+@\s+HATE", r"HATE:\s*([^-]+)")),
    _ChannelProfile("Mixmag", title_patterns=_patterns(r"^([^-]+?)\s*-?\s*.*?Mixmag", r"Mixmag:\s*([^-]+)")),
)

ARTIST_CHANNELS: tuple[_ChannelProfile, ...] = (
    _ChannelProfile("Lane 8", channel_is_artist=True),
    _ChannelProfile("Anjunadeep", title_patterns=_patterns(r"^([^-]+?)\s*-")),
)

_HOSTING_KEYWORDS = ("live at", "boiler room", "cercle", "@", "presents", "in the mix")

_GENERIC_TITLE_PATTERNS = _patterns(
    r"^([^@]+?)\s+live\s+at\s+",
    r"^([^@]+?)\s+@\s+",
    r"^([^-]+?)\s*-\s*[^-]+$",
    r"^([^|]+?)\s*\|\s*",
    r"^([^:]+?)\s+presents",
    r"^([^:]+?):\s*",
)

_WHITESPACE_RE = re.compile(r"\s+")
_PREFIX_RE = re.compile(r"^(?:dj|artist)\s+", re.IGNORECASE)
_SUFFIX_RE = re.compile(r"\s+(?:live|dj|set)$", re.IGNORECASE)
_QUOTES_RE = re.compile(r"['\"()]")


def clean_artist_name(name: str) -> str:
    """Trim a captured name and drop "DJ"/"live"/"set" decorations and quotes."""
    cleaned = _WHITESPACE_RE.sub(" ", name.strip())
    cleaned = _PREFIX_RE.sub("", cleaned)
    cleaned = _SUFFIX_RE.sub("", cleaned)
    return _QUOTES_RE.sub("", cleaned).strip()


def extract_artists(
    title: str | None,
    channel_name: str | None = None,
    description: str | None = None,
    channel_id: str | None = None,
) -> ArtistExtraction:
    """Work out the performing artist of an upload.

    Parameters
    ----------
    title:
        Upload title.
    channel_name, channel_id:
        Uploader as reported by the platform; used to pick a channel profile.
    description:
        Upload description, consulted for host channels only.

    Returns
    -------
    ArtistExtraction
        Empty ``performing_artists`` when neither the title nor the channel
        names anyone.
    """
    title = title or ""
    description = description or ""

    host = _find_profile(HOST_CHANNELS, channel_name, channel_id)
    if host is not None:
        return _from_host_channel(title, description, host)

    artist_channel = _find_profile(ARTIST_CHANNELS, channel_name, channel_id)
    if artist_channel is not None:
        return _from_artist_channel(title, artist_channel)

    return _from_heuristics(title, channel_name)


def artist_from_title(title: str | None) -> str | None:
    """First performer named by a generic title shape, e.g. ``"Bicep @ Printworks"`` -> ``"Bicep"``."""
    for pattern in _GENERIC_TITLE_PATTERNS:
        match = pattern.search(title or "")
        if match and match.group(1):
            artist = clean_artist_name(match.group(1))
            if len(artist) > 2:
                return artist
    return None


def _find_profile(
    profiles: tuple[_ChannelProfile, ...], channel_name: str | None, channel_id: str | None
) -> _ChannelProfile | None:
    for profile in profiles:
        if profile.channel_id and channel_id and profile.channel_id == channel_id:
            return profile
        if channel_name and profile.name.lower() == channel_name.lower():
            return profile
    return None


def _first_capture(patterns: tuple[re.Pattern[str], ...], text: str) -> tuple[str, str] | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            artist = clean_artist_name(match.group(1))
            if artist:
                return artist, pattern.pattern
    return None


def _from_host_channel(title: str, description: str, host: _ChannelProfile) -> ArtistExtraction:
    hit = _first_capture(host.title_patterns, title)
    if hit is not None:
        return ArtistExtraction(
            performing_artists=[hit[0]],
            host_channel=host.name,
            confidence=MatchConfidence.HIGH,
            method=f"title_pattern: {hit[1]}",
        )

    hit = _first_capture(host.description_patterns, description)
    if hit is not None:
        return ArtistExtraction(
            performing_artists=[hit[0]],
            host_channel=host.name,
            confidence=MatchConfidence.MEDIUM,
            method=f"description_pattern: {hit[1]}",
        )

    fallback = artist_from_title(title)
    if fallback is not None:
        return ArtistExtraction(performing_artists=[fallback], host_channel=host.name, method="generic_title_parsing")
    return ArtistExtraction(host_channel=host.name, method="host_channel_fallback")


def _from_artist_channel(title: str, channel: _ChannelProfile) -> ArtistExtraction:
    if channel.channel_is_artist:
        return ArtistExtraction(
            performing_artists=[channel.name], confidence=MatchConfidence.HIGH, method="channel_is_artist"
        )

    hit = _first_capture(channel.title_patterns, title)
    if hit is not None:
        return ArtistExtraction(
            performing_artists=[hit[0]],
            confidence=MatchConfidence.HIGH,
            method=f"label_title_pattern: {hit[1]}",
        )
    return ArtistExtraction(
        performing_artists=[channel.name], confidence=MatchConfidence.MEDIUM, method="channel_fallback"
    )


def _from_heuristics(title: str, channel_name: str | None) -> ArtistExtraction:
    lowered = title.lower()
    if any(keyword in lowered for keyword in _HOSTING_KEYWORDS):
        artist = artist_from_title(title)
        if artist is not None and artist != channel_name:
            return ArtistExtraction(
                performing_artists=[artist],
                host_channel=channel_name,
                confidence=MatchConfidence.MEDIUM,
                method="heuristic_hosting_detected",
            )

    if channel_name:
        return ArtistExtraction(performing_artists=[channel_name], method="channel_default")
    # No uploader to fall back on: take whatever the title shape gives.
    artist = artist_from_title(title)
    return ArtistExtraction(
        performing_artists=[artist] if artist else [],
        method="generic_title_parsing" if artist else "no_artist_found",
    )
