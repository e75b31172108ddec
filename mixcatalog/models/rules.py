"""Context rule models.

A :class:`ContextRule` infers a context (festival, radio show, publisher...)
from a mix's title, description or uploader channel.  Its ``config`` is a
tagged union over the four rule shapes, discriminated by ``rule_type``, and
is validated (including regex compilation) once when the rule is loaded.

Rule types:

    pattern / description_pattern  -- regex over the title or description
    keyword                        -- any/all keyword presence
    channel_mapping                -- uploader channel allow-list per platform
    title_pattern                  -- substring gate plus optional venue extraction
"""

from __future__ import annotations

import re
from enum import Enum
from functools import cached_property
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mixcatalog.models.catalog import ContextType
from mixcatalog.models.staging import Provider

# JavaScript-style flag letters accepted in stored rules; "g", "u" and "y"
# have no Python equivalent and are ignored.
_REGEX_FLAGS: dict[str, int] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "g": 0,
    "u": 0,
    "y": 0,
}


class RuleScope(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Which records a rule is allowed to fire for."""

    GLOBAL = "global"
    ARTIST = "artist"
    PLATFORM = "platform"


class RuleAction(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """What the orchestrator did with a suggestion."""

    LINKED = "linked"
    PENDING_REVIEW = "pending_review"
    SUGGESTED = "suggested"


# ---------------------------------------------------------------------------
# Rule configs (tagged union)
# ---------------------------------------------------------------------------

class PatternConfig(BaseModel):
    """Regex rule.  ``description_pattern`` matches the description only."""

    model_config = ConfigDict(frozen=True)

    rule_type: Literal["pattern", "description_pattern"] = "pattern"
    regex: str = Field(min_length=1)
    flags: str = "i"

    @field_validator("flags")
    @classmethod
    def _known_flags(cls, value: str) -> str:
        unknown = set(value) - set(_REGEX_FLAGS)
        if unknown:
            raise ValueError(f"unsupported regex flags: {''.join(sorted(unknown))}")
        return value

    @model_validator(mode="after")
    def _regex_compiles(self) -> PatternConfig:
        try:
            re.compile(self.regex, self.re_flags)
        except re.error as exc:
            raise ValueError(f"invalid regex {self.regex!r}: {exc}") from exc
        return self

    @property
    def re_flags(self) -> int:
        result = 0
        for letter in self.flags:
            result |= _REGEX_FLAGS[letter]
        return result

    @cached_property
    def compiled(self) -> re.Pattern[str]:
        return re.compile(self.regex, self.re_flags)


class KeywordConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_type: Literal["keyword"] = "keyword"
    keywords: list[str] = Field(min_length=1)
    require_all: bool = False


class ChannelMappingConfig(BaseModel):
    """Per-platform allow-lists of uploader channel ids / usernames."""

    model_config = ConfigDict(frozen=True)

    rule_type: Literal["channel_mapping"] = "channel_mapping"
    youtube_channel_ids: list[str] = Field(default_factory=list)
    soundcloud_usernames: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _has_channels(self) -> ChannelMappingConfig:
        if not self.youtube_channel_ids and not self.soundcloud_usernames:
            raise ValueError("channel_mapping rule lists no channels")
        return self


class TitlePatternConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_type: Literal["title_pattern"] = "title_pattern"
    contains: list[str] = Field(min_length=1)
    followed_by: list[str] = Field(default_factory=list)
    extract_venue: bool = False


RuleConfig = Annotated[
    Union[PatternConfig, KeywordConfig, ChannelMappingConfig, TitlePatternConfig],
    Field(discriminator="rule_type"),
]


# ---------------------------------------------------------------------------
# Rules, inputs and outputs
# ---------------------------------------------------------------------------

class ContextRule(BaseModel):
    """A loaded, validated context rule."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    config: RuleConfig
    target_context_type: ContextType
    target_context_name: str = Field(min_length=1)
    confidence_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    requires_approval: bool = False
    priority: int = 100
    is_active: bool = True
    scope: RuleScope = RuleScope.GLOBAL
    scope_value: str | None = None

    @property
    def rule_type(self) -> str:
        return self.config.rule_type


class MixContent(BaseModel):
    """The subset of a mix that context rules are evaluated against."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str = ""
    platform: Provider | None = None
    channel_id: str | None = None
    channel_name: str | None = None
    artist_name: str | None = None


class ContextSuggestion(BaseModel):
    """A context (or venue) a rule believes the mix belongs to."""

    model_config = ConfigDict(frozen=True)

    context_type: ContextType
    context_name: str
    confidence: float = Field(ge=0.0, le=1.0)
    rule_id: str
    rule_name: str
    requires_approval: bool
    reason: str
    is_venue: bool = False

    @property
    def dedup_key(self) -> tuple[str, str]:
        return self.context_type.value, self.context_name.lower()
