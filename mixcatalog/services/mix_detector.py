"""Content classification: is an upload plausibly a DJ mix?

The check is permissive.  Fetchers pull whole channels, so talks,
tutorials and single tracks arrive alongside the mixes; the verdict is
stored on the staged record for moderators to filter on and never drops
a record by itself.

Scoring (0-100, clamped):

* duration: 45+ min = 40, 20-44 min = 30, 10-19 min = 15, shorter = 0
* 10 points per mix keyword found in the title or description
* -30 when the title names an obviously non-mix format

``is_mix`` needs a score of at least 20, no exclusion hit and at least ten
minutes of audio.  Records without a known duration (tracklist pages)
are judged on keywords alone.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from mixcatalog.models.catalog import MatchConfidence

MIX_KEYWORDS: tuple[str, ...] = (
    "mix", "set", "session", "radio", "podcast", "show", "live",
    "dj", "playlist", "compilation", "collection", "edition",
    "episode", "ep.", "vol.", "volume", "part", "chapter",
)

NON_MIX_PATTERNS: tuple[str, ...] = (
    "interview", "documentary", "tutorial", "how to", "review",
    "unboxing", "vlog", "reaction video", "breakdown", "analysis",
    "studio tour", "gear review", "masterclass", "lesson", "course",
)

MIN_MIX_SECONDS = 10 * 60
_MIX_SCORE_FLOOR = 20


class MixDetection(BaseModel):
    """Verdict for one upload."""

    model_config = ConfigDict(frozen=True)

    is_mix: bool
    confidence: MatchConfidence
    score: int = Field(ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)

    def as_metadata(self) -> dict[str, object]:
        """JSON-friendly form stored under ``raw_metadata["mix_detection"]``."""
        return {
            "is_mix": self.is_mix,
            "confidence": self.confidence.value,
            "score": self.score,
            "reasons": list(self.reasons),
        }


def detect_mix(title: str | None, description: str | None, duration_seconds: int | None) -> MixDetection:
    """Score an upload's title, description and duration.

    Parameters
    ----------
    title, description:
        Raw text as delivered by the platform; ``None`` counts as empty.
    duration_seconds:
        Audio length, or ``None`` when the platform does not report one.

    Returns
    -------
    MixDetection
        ``confidence`` is HIGH from 40 points, MEDIUM from 15, LOW below.
    """
    title_text = (title or "").lower()
    description_text = (description or "").lower()
    reasons: list[str] = []
    score = 0

    if duration_seconds is None:
        reasons.append("Duration unknown")
    else:
        minutes = round(duration_seconds / 60)
        if duration_seconds >= 45 * 60:
            score += 40
            reasons.append(f"Very long duration ({minutes} min)")
        elif duration_seconds >= 20 * 60:
            score += 30
            reasons.append(f"Long duration ({minutes} min)")
        elif duration_seconds >= MIN_MIX_SECONDS:
            score += 15
            reasons.append(f"Medium duration ({minutes} min)")
        else:
            reasons.append(f"Too short for mix ({minutes} min)")

    found = [kw for kw in MIX_KEYWORDS if kw in title_text or kw in description_text]
    if found:
        score += 10 * len(found)
        reasons.append(f"Mix keywords: {', '.join(found[:3])}")

    exclusion = next((pattern for pattern in NON_MIX_PATTERNS if pattern in title_text), None)
    if exclusion is not None:
        score -= 30
        reasons.append(f"Likely non-mix: {exclusion}")

    if score >= 40:
        confidence = MatchConfidence.HIGH
    elif score >= 15:
        confidence = MatchConfidence.MEDIUM
    else:
        confidence = MatchConfidence.LOW

    long_enough = duration_seconds is None or duration_seconds >= MIN_MIX_SECONDS
    return MixDetection(
        is_mix=score >= _MIX_SCORE_FLOOR and exclusion is None and long_enough,
        confidence=confidence,
        score=max(0, min(100, score)),
        reasons=reasons,
    )
