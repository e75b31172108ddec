"""Namespaced external identifiers (``provider:id``) and identifier sets.

An :data:`ExternalIdSet` maps a provider key (``"youtube"``,
``"soundcloud"``, ``"1001"``) to the namespaced identifier of the same
upload on that platform, e.g. ``{"youtube": "yt:dQw4w9WgXcQ"}``.  Overlap
between two sets is the only signal used to decide that two records
describe the same mix across platforms; text similarity never is.
"""

from __future__ import annotations

from typing import NamedTuple

from mixcatalog.models.staging import Provider
from mixcatalog.utils.errors import UnsupportedProviderError

ExternalIdSet = dict[str, str]

PROVIDER_PREFIXES: dict[Provider, str] = {
    Provider.YOUTUBE: "yt",
    Provider.SOUNDCLOUD: "sc",
    Provider.TRACKLISTS_1001: "1001",
}

PROVIDER_KEYS: dict[Provider, str] = {
    Provider.YOUTUBE: "youtube",
    Provider.SOUNDCLOUD: "soundcloud",
    Provider.TRACKLISTS_1001: "1001",
}

_PREFIX_TO_PROVIDER = {prefix: provider for provider, prefix in PROVIDER_PREFIXES.items()}
_KNOWN_PROVIDERS = frozenset(provider.value for provider in Provider)


class DecodedExternalId(NamedTuple):
    provider: Provider
    id: str


def _coerce_provider(provider: Provider | str) -> Provider:
    try:
        return Provider(provider)
    except ValueError:
        raise UnsupportedProviderError(
            f"No external-id prefix for provider {provider!r}",
            provider_name=str(provider),
        ) from None


def encode(provider: Provider | str, external_id: str) -> str:
    """Return ``"{prefix}:{external_id}"`` for *provider*.

    Raises:
        UnsupportedProviderError: *provider* has no registered prefix.
        ValueError: *external_id* is empty.
    """
    resolved = _coerce_provider(provider)
    if not external_id:
        raise ValueError("external_id must be a non-empty string")
    return f"{PROVIDER_PREFIXES[resolved]}:{external_id}"


def decode(external: str) -> DecodedExternalId | None:
    """Strict inverse of :func:`encode`.

    Returns ``None`` for malformed input (no separator, unknown prefix,
    empty id).  ``None`` means "no signal", not an error.
    """
    if not external or ":" not in external:
        return None
    prefix, _, raw_id = external.partition(":")
    provider = _PREFIX_TO_PROVIDER.get(prefix)
    if provider is None or not raw_id:
        return None
    return DecodedExternalId(provider, raw_id)


def provider_key(provider: Provider | str) -> str:
    """Key used for *provider* inside an :data:`ExternalIdSet`."""
    return PROVIDER_KEYS[_coerce_provider(provider)]


def external_ids_for(provider: Provider | str, external_id: str | None) -> ExternalIdSet:
    """Build the identifier set for a single upload (empty when *external_id* is missing)."""
    if not external_id:
        return {}
    return {provider_key(provider): encode(provider, external_id)}


def linked_external_ids(links: dict[str, str]) -> ExternalIdSet:
    """Identifier set from ``{provider: raw_id}`` cross-platform links.

    Links to platforms without a registered prefix are dropped.
    """
    ids: ExternalIdSet = {}
    for provider, raw_id in links.items():
        if provider in _KNOWN_PROVIDERS and raw_id:
            ids[provider_key(provider)] = encode(provider, raw_id)
    return ids


def merge(a: ExternalIdSet, b: ExternalIdSet) -> ExternalIdSet:
    """Right-biased union: keys in *b* overwrite *a*; keys only in *a* survive."""
    return {**a, **b}


def add_external_id(ids: ExternalIdSet, provider: Provider | str, external_id: str) -> ExternalIdSet:
    """Return a copy of *ids* with *provider*'s identifier set to *external_id*."""
    return merge(ids, external_ids_for(provider, external_id))


def matching_key(a: ExternalIdSet, b: ExternalIdSet) -> str | None:
    """First provider key whose identifier is identical in both sets."""
    for key, value in a.items():
        if value and b.get(key) == value:
            return key
    return None


def has_overlap(a: ExternalIdSet, b: ExternalIdSet) -> bool:
    """True iff any provider key carries the same identifier in both sets."""
    return matching_key(a, b) is not None


def encoded_ids(ids: ExternalIdSet) -> list[str]:
    """All namespaced identifiers in *ids*, in key order."""
    return [value for value in ids.values() if value]
