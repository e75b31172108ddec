"""Turns context suggestions into catalog links or review records.

Every suggestion is recorded in ``rule_applications`` with the action
taken, so moderators can review and grade rule output:

* ``pending_review`` when the rule requires approval,
* ``linked`` when auto-linking is on and confidence reaches the floor,
* ``suggested`` otherwise.

Venue suggestions link through ``mixes.venue_id``; everything else goes to
``mix_contexts`` with the role implied by the context type.
"""

from __future__ import annotations

import structlog

from mixcatalog.interfaces.catalog_store import ICatalogStore
from mixcatalog.models.catalog import ROLE_BY_CONTEXT_TYPE, Context, ContextType, Venue
from mixcatalog.models.rules import ContextSuggestion, RuleAction
from mixcatalog.utils.logging import get_logger


class ContextLinker:
    """Resolves suggestion names to context/venue rows and applies them to a mix."""

    def __init__(self, catalog: ICatalogStore) -> None:
        self._catalog = catalog
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def ensure_context(self, name: str, context_type: ContextType) -> Context:
        """Return the context with this name and type, creating it (unverified) if needed."""
        existing = await self._catalog.find_context(name, context_type)
        if existing is not None:
            return existing
        return await self._catalog.create_context(name, context_type)

    async def ensure_venue(self, name: str) -> Venue:
        """Return the venue with this name, creating it (unverified) if needed."""
        existing = await self._catalog.find_venue(name)
        if existing is not None:
            return existing
        return await self._catalog.create_venue(name)

    async def apply_suggestions(
        self,
        mix_id: str,
        suggestions: list[ContextSuggestion],
        *,
        auto_link: bool = False,
        floor: float = 0.9,
        verified_by: str | None = None,
    ) -> dict[RuleAction, int]:
        """Link, queue or record each suggestion for *mix_id*.

        Returns
        -------
        dict[RuleAction, int]
            How many suggestions ended up under each action.
        """
        counts = {action: 0 for action in RuleAction}
        for suggestion in suggestions:
            if suggestion.requires_approval:
                action = RuleAction.PENDING_REVIEW
            elif auto_link and suggestion.confidence >= floor:
                await self._link(mix_id, suggestion, verified_by)
                action = RuleAction.LINKED
            else:
                action = RuleAction.SUGGESTED

            await self._catalog.record_rule_application(mix_id, suggestion, action)
            counts[action] += 1

        if suggestions:
            self._logger.info(
                "context_suggestions_applied",
                mix_id=mix_id,
                linked=counts[RuleAction.LINKED],
                pending_review=counts[RuleAction.PENDING_REVIEW],
                suggested=counts[RuleAction.SUGGESTED],
            )
        return counts

    async def _link(self, mix_id: str, suggestion: ContextSuggestion, verified_by: str | None) -> None:
        if suggestion.is_venue:
            venue = await self.ensure_venue(suggestion.context_name)
            await self._catalog.set_mix_venue(mix_id, venue.id)
            return

        context = await self.ensure_context(suggestion.context_name, suggestion.context_type)
        await self._catalog.link_mix_context(
            mix_id,
            context.id,
            ROLE_BY_CONTEXT_TYPE[suggestion.context_type],
            suggestion.confidence,
            verified_by=verified_by,
        )
