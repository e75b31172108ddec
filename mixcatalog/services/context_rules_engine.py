"""Context rules engine: infers festivals, radio shows, publishers and
venues from a mix's title, description and uploader channel.

Active rules are loaded from the rule store and cached (5 minutes by
default) so a batch of records does not re-query them per record.  Rules
are evaluated in priority order (lower first, heavier weight first on
ties).  A rule that raises while evaluating is logged and skipped; the
remaining rules still run.

When several rules point at the same context type and name, only the
highest-confidence suggestion survives.  The result is ordered by
descending confidence.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import TypeVar

import structlog

from mixcatalog.interfaces.cache_provider import ICacheProvider
from mixcatalog.interfaces.rule_store import IRuleStore
from mixcatalog.models.rules import (
    ChannelMappingConfig,
    ContextRule,
    ContextSuggestion,
    KeywordConfig,
    MixContent,
    PatternConfig,
    RuleScope,
    TitlePatternConfig,
)
from mixcatalog.models.staging import Provider
from mixcatalog.utils.errors import ValidationError
from mixcatalog.utils.logging import get_logger
from mixcatalog.utils.text_normalizer import normalize

RULES_CACHE_KEY = "context_rules:active"

# "Live at Printworks, London" -> "Printworks"
VENUE_EXTRACTION_RE = re.compile(r"(?:live at|recorded at|@)\s+([^,\-|]+)", re.IGNORECASE)

_Evaluator = Callable[[ContextRule, MixContent], ContextSuggestion | None]
_ConfigT = TypeVar("_ConfigT")


def _rule_order(rule: ContextRule) -> tuple[int, float]:
    return rule.priority, -rule.confidence_weight


def _typed_config(rule: ContextRule, expected: type[_ConfigT]) -> _ConfigT:
    config = rule.config
    if not isinstance(config, expected):
        raise ValidationError(
            f"Rule {rule.name!r} carries {type(config).__name__}, expected {expected.__name__}"
        )
    return config


def _suggestion(
    rule: ContextRule,
    confidence: float,
    reason: str,
    *,
    context_name: str | None = None,
    is_venue: bool = False,
) -> ContextSuggestion:
    return ContextSuggestion(
        context_type=rule.target_context_type,
        context_name=context_name or rule.target_context_name,
        confidence=max(0.0, min(1.0, confidence)),
        rule_id=rule.id,
        rule_name=rule.name,
        requires_approval=rule.requires_approval,
        reason=reason,
        is_venue=is_venue,
    )


class ContextRulesEngine:
    """Evaluates the active rule set against a mix."""

    def __init__(self, rule_store: IRuleStore, cache: ICacheProvider) -> None:
        self._rule_store = rule_store
        self._cache = cache
        self._logger: structlog.BoundLogger = get_logger(__name__)
        self._evaluators: dict[str, _Evaluator] = {
            "pattern": self._evaluate_pattern,
            "description_pattern": self._evaluate_pattern,
            "keyword": self._evaluate_keyword,
            "channel_mapping": self._evaluate_channel_mapping,
            "title_pattern": self._evaluate_title_pattern,
        }

    # -- Public API -----------------------------------------------------------

    async def get_rules(self) -> list[ContextRule]:
        """Active rules in evaluation order, served from cache when fresh."""
        return await self._cache.get_or_load(RULES_CACHE_KEY, self._load_rules)

    async def clear_cache(self) -> None:
        """Force the next evaluation to reload rules from the store."""
        await self._cache.delete(RULES_CACHE_KEY)
        self._logger.info("context_rules_cache_cleared")

    async def suggest_contexts(self, content: MixContent) -> list[ContextSuggestion]:
        """Evaluate every in-scope rule against *content*.

        Parameters
        ----------
        content:
            Title, description, platform and channel of the mix.

        Returns
        -------
        list[ContextSuggestion]
            De-duplicated by (context type, lower-cased name),
            keeping the highest confidence, sorted by descending confidence.
        """
        rules = await self.get_rules()
        best: dict[tuple[str, str], ContextSuggestion] = {}

        for rule in rules:
            if not self._in_scope(rule, content):
                continue
            try:
                suggestion = self.evaluate_rule(rule, content)
            except Exception as exc:  # noqa: BLE001 — rule config is user-supplied
                self._logger.warning(
                    "context_rule_evaluation_failed",
                    rule_id=rule.id,
                    rule_name=rule.name,
                    error=str(exc),
                )
                continue
            if suggestion is None:
                continue
            current = best.get(suggestion.dedup_key)
            if current is None or suggestion.confidence > current.confidence:
                best[suggestion.dedup_key] = suggestion

        suggestions = sorted(best.values(), key=lambda s: s.confidence, reverse=True)
        self._logger.debug("context_suggestions", evaluated=len(rules), suggested=len(suggestions))
        return suggestions

    def evaluate_rule(self, rule: ContextRule, content: MixContent) -> ContextSuggestion | None:
        """Evaluate one rule; ``None`` when it does not fire."""
        evaluator = self._evaluators.get(rule.rule_type)
        if evaluator is None:
            raise ValueError(f"No evaluator for rule type {rule.rule_type!r}")
        return evaluator(rule, content)

    # -- Private helpers -------------------------------------------------------

    async def _load_rules(self) -> list[ContextRule]:
        rules = await self._rule_store.list_active()
        self._logger.info("context_rules_loaded", count=len(rules))
        return sorted(rules, key=_rule_order)

    @staticmethod
    def _in_scope(rule: ContextRule, content: MixContent) -> bool:
        if rule.scope is RuleScope.GLOBAL:
            return True
        if not rule.scope_value:
            return False
        if rule.scope is RuleScope.PLATFORM:
            return content.platform is not None and content.platform.value == rule.scope_value
        # RuleScope.ARTIST
        return bool(content.artist_name) and normalize(content.artist_name or "") == normalize(
            rule.scope_value
        )

    @staticmethod
    def _evaluate_pattern(rule: ContextRule, content: MixContent) -> ContextSuggestion | None:
        config = _typed_config(rule, PatternConfig)
        fields = (
            [("description", content.description)]
            if config.rule_type == "description_pattern"
            else [("title", content.title), ("description", content.description)]
        )
        for field_name, text in fields:
            if text and config.compiled.search(text):
                return _suggestion(
                    rule,
                    rule.confidence_weight,
                    f"Pattern /{config.regex}/ matched {field_name}",
                )
        return None

    @staticmethod
    def _evaluate_keyword(rule: ContextRule, content: MixContent) -> ContextSuggestion | None:
        config = _typed_config(rule, KeywordConfig)
        haystack = f"{content.title} {content.description}".lower()
        matched = [keyword for keyword in config.keywords if keyword.lower() in haystack]
        if not matched:
            return None
        if config.require_all:
            if len(matched) < len(config.keywords):
                return None
            confidence = rule.confidence_weight
        else:
            confidence = rule.confidence_weight * len(matched) / len(config.keywords)
        return _suggestion(rule, confidence, f"Keywords matched: {', '.join(matched)}")

    @staticmethod
    def _evaluate_channel_mapping(rule: ContextRule, content: MixContent) -> ContextSuggestion | None:
        config = _typed_config(rule, ChannelMappingConfig)
        if content.platform is Provider.YOUTUBE and content.channel_id:
            if content.channel_id in config.youtube_channel_ids:
                return _suggestion(rule, rule.confidence_weight, f"YouTube channel {content.channel_id}")
        if content.platform is Provider.SOUNDCLOUD and content.channel_name:
            usernames = {name.lower() for name in config.soundcloud_usernames}
            if content.channel_name.lower() in usernames:
                return _suggestion(rule, rule.confidence_weight, f"SoundCloud user {content.channel_name}")
        return None

    @staticmethod
    def _evaluate_title_pattern(rule: ContextRule, content: MixContent) -> ContextSuggestion | None:
        config = _typed_config(rule, TitlePatternConfig)
        title = content.title.lower()

        hit = next((phrase for phrase in config.contains if phrase.lower() in title), None)
        if hit is None:
            return None
        if config.followed_by:
            remainder = title[title.index(hit.lower()) + len(hit) :]
            if not any(word.lower() in remainder for word in config.followed_by):
                return None

        match = VENUE_EXTRACTION_RE.search(content.title) if config.extract_venue else None
        venue = match.group(1).strip() if match else ""
        if venue:
            return _suggestion(
                rule,
                rule.confidence_weight,
                f"Venue extracted from title: {venue}",
                context_name=venue,
                is_venue=True,
            )

        return _suggestion(rule, rule.confidence_weight, f"Title contains '{hit}'")
