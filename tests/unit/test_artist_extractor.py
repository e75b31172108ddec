"""Unit tests for performer extraction from titles and channels."""

from __future__ import annotations

import pytest

from mixcatalog.models.catalog import MatchConfidence
from mixcatalog.services.artist_extractor import (
    ArtistExtraction,
    artist_from_title,
    clean_artist_name,
    extract_artists,
)

# ======================================================================
# Channel profiles
# ======================================================================


class TestKnownChannels:
    def test_host_channel_title_pattern(self) -> None:
        result = extract_artists("Monolink live at Cercle", channel_name="Cercle")

        assert result.performing_artists == ["Monolink"]
        assert result.host_channel == "Cercle"
        assert result.confidence is MatchConfidence.HIGH
        assert result.method.startswith("title_pattern")

    def test_host_channel_matched_case_insensitively(self) -> None:
        result = extract_artists("Bicep | Boiler Room London", channel_name="boiler room")
        assert result.performing_artists == ["Bicep"]

    def test_host_channel_description_fallback(self) -> None:
        result = extract_artists(
            "Sunrise at Mont Saint-Michel",
            channel_name="Cercle",
            description="Ben Böhmer performing at Cercle",
        )

        assert result.performing_artists == ["Ben Böhmer"]
        assert result.confidence is MatchConfidence.MEDIUM

    def test_host_channel_without_performer(self) -> None:
        result = extract_artists("Cercle", channel_name="Cercle")

        assert result.performing_artists == []
        assert result.method == "host_channel_fallback"
        assert result.artist_credit is None

    def test_artist_channel_is_the_artist(self) -> None:
        result = extract_artists("Summer Mix 2024", channel_name="Lane 8")

        assert result.performing_artists == ["Lane 8"]
        assert result.method == "channel_is_artist"

    def test_label_channel_reads_title(self) -> None:
        result = extract_artists("Yotto - Anjunadeep Explorations 12", channel_name="Anjunadeep")

        assert result.performing_artists == ["Yotto"]
        assert result.confidence is MatchConfidence.HIGH


# ======================================================================
# Heuristics for unknown channels
# ======================================================================


class TestHeuristics:
    def test_hosted_title_on_unknown_channel(self) -> None:
        result = extract_artists("Charlotte de Witte @ Tomorrowland 2023", channel_name="Mixes Archive")

        assert result.performing_artists == ["Charlotte de Witte"]
        assert result.host_channel == "Mixes Archive"
        assert result.method == "heuristic_hosting_detected"

    def test_unknown_channel_defaults_to_channel(self) -> None:
        result = extract_artists("Summer Vibes 2024", channel_name="DeepHouseNation")

        assert result.performing_artists == ["DeepHouseNation"]
        assert result.confidence is MatchConfidence.LOW

    def test_no_channel_uses_title_shape(self) -> None:
        result = extract_artists("Bicep - Live in Belfast")

        assert result.performing_artists == ["Bicep"]
        assert result.artist_credit == "Bicep"

    def test_nothing_to_go_on(self) -> None:
        result = extract_artists(None)
        assert result == ArtistExtraction(method="no_artist_found")


class TestTitleShapes:
    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("Peggy Gou live at Printworks", "Peggy Gou"),
            ("Bicep @ Printworks London", "Bicep"),
            ("Lane 8 - Summer Mix 2024", "Lane 8"),
            ("Four Tet | Alexandra Palace", "Four Tet"),
            ("Anjunadeep presents Yotto", "Anjunadeep"),
            ("Fred again..: Boiler Room", "Fred again.."),
        ],
    )
    def test_generic_shapes(self, title: str, expected: str) -> None:
        assert artist_from_title(title) == expected

    def test_too_short_capture_ignored(self) -> None:
        assert artist_from_title("DJ - Mix") is None

    def test_clean_artist_name(self) -> None:
        assert clean_artist_name("  DJ Seinfeld   live ") == "Seinfeld"
        assert clean_artist_name('"Kölsch"') == "Kölsch"
