"""Duplicate detection at the staging and canonical layers, plus the
source-priority merge used when the same mix arrives from two platforms.

Staging duplicates are found by exact ``source_url`` or by the platform's
own identifier.  Canonical duplicates are found by overlapping external
IDs (any shared provider key with an equal value) or by a mix already
built from the same source URL, which is what makes re-running a
half-finished canonicalization safe.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import structlog

from mixcatalog.interfaces.catalog_store import ICatalogStore
from mixcatalog.interfaces.staging_store import IStagingStore
from mixcatalog.models.catalog import DuplicateMatch
from mixcatalog.models.staging import Provider
from mixcatalog.utils.external_ids import ExternalIdSet, matching_key
from mixcatalog.utils.logging import get_logger

# ``DuplicateMatch.matched_key`` when a mix was built from the record's own URL.
SOURCE_URL_KEY = "source_url"

# 1001Tracklists curates tracklists by hand; SoundCloud uploads are usually
# by the artist; YouTube re-uploads are the least reliable.
SOURCE_PRIORITY: dict[Provider, int] = {
    Provider.TRACKLISTS_1001: 3,
    Provider.SOUNDCLOUD: 2,
    Provider.YOUTUBE: 1,
}

MERGE_SCALAR_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "artist_name",
    "published_at",
    "duration_seconds",
    "artwork_url",
    "audio_url",
)


class MergeSource(NamedTuple):
    """Mix fields as supplied by one platform."""

    provider: Provider
    fields: dict[str, Any]


def source_priority(provider: Provider | str) -> int:
    """Priority of *provider*; unknown providers rank below all known ones."""
    try:
        return SOURCE_PRIORITY[Provider(provider)]
    except ValueError:
        return 0


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _rank(source: MergeSource) -> tuple[int, str]:
    # Equal priorities fall back to the source URL so the outcome never
    # depends on argument order.
    return source_priority(source.provider), str(source.fields.get("audio_url") or "")


def merge_by_source_priority(a: MergeSource, b: MergeSource) -> dict[str, Any]:
    """Merge two field sets, preferring the higher-priority source.

    Each scalar field comes from the higher-priority source unless it is
    empty there, in which case the other source fills it.  ``metadata``
    dicts are unioned with the higher-priority source winning per key.
    ``merge(a, b) == merge(b, a)``.

    Returns
    -------
    dict
        The merged scalar fields, ``metadata``, and ``ingestion_source``
        set to the winning provider.
    """
    higher, lower = (a, b) if _rank(a) >= _rank(b) else (b, a)

    merged: dict[str, Any] = {}
    for field in MERGE_SCALAR_FIELDS:
        value = higher.fields.get(field)
        merged[field] = lower.fields.get(field) if _is_empty(value) else value

    merged["metadata"] = {
        **(lower.fields.get("metadata") or {}),
        **(higher.fields.get("metadata") or {}),
    }
    merged["ingestion_source"] = higher.provider
    return merged


class DuplicateResolver:
    """Looks up staged and canonical duplicates of an incoming record."""

    def __init__(self, staging: IStagingStore, catalog: ICatalogStore) -> None:
        self._staging = staging
        self._catalog = catalog
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def is_duplicate_staged(
        self,
        source_url: str,
        external_id: str | None = None,
        provider: Provider | None = None,
    ) -> bool:
        """True when a staged record already exists for this URL or platform ID."""
        if await self._staging.find_by_source_url(source_url) is not None:
            self._logger.debug("staged_duplicate", source_url=source_url, matched_on="source_url")
            return True
        if external_id and await self._staging.find_by_external_id(external_id, provider) is not None:
            self._logger.debug("staged_duplicate", source_url=source_url, matched_on="external_id")
            return True
        return False

    async def find_duplicate_canonical(
        self,
        external_ids: ExternalIdSet,
        source_url: str | None = None,
    ) -> DuplicateMatch | None:
        """Return the canonical mix this record duplicates, if any.

        Parameters
        ----------
        external_ids:
            Provider-keyed identifiers of the incoming record.
        source_url:
            The record's source URL; a mix already built from it is a
            duplicate even when no external ID is known.
        """
        if source_url:
            existing = await self._catalog.find_mix_by_audio_url(source_url)
            if existing is not None:
                self._logger.info("canonical_duplicate_found", mix_id=existing.id, matched_key=SOURCE_URL_KEY)
                return DuplicateMatch(entity_id=existing.id, matched_key=SOURCE_URL_KEY, matched_value=source_url)

        if not external_ids:
            return None

        for mix_id, existing_ids in await self._catalog.list_mix_external_ids():
            key = matching_key(external_ids, existing_ids)
            if key is not None:
                self._logger.info("canonical_duplicate_found", mix_id=mix_id, matched_key=key)
                return DuplicateMatch(entity_id=mix_id, matched_key=key, matched_value=external_ids[key])
        return None
