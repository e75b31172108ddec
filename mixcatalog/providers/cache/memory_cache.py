"""In-memory cache provider using cachetools.TTLCache.

Suitable for the single-process job runner: each processor instance keeps
its own copy and tolerates staleness up to the TTL.  The ``timer`` is
handed straight to ``TTLCache`` so tests can advance a fake clock past the
TTL and observe a reload.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from cachetools import TTLCache

from mixcatalog.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)

_MISSING = object()


class MemoryCacheProvider(ICacheProvider):
    """In-memory TTL cache backed by ``cachetools.TTLCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    ttl:
        Time-to-live in seconds for every entry.
    timer:
        Monotonic clock returning seconds; defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        max_size: int = 128,
        ttl: float = 300,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=max_size, ttl=ttl, timer=timer)

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        value = self._cache.get(key)
        logger.debug("cache_hit" if value is not None else "cache_miss", key=key)
        return value

    async def set(self, key: str, value: Any) -> None:
        self._cache[key] = value
        logger.debug("cache_set", key=key, ttl=self._ttl)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        cached = self._cache.get(key, _MISSING)
        if cached is not _MISSING:
            logger.debug("cache_hit", key=key)
            return cached

        logger.debug("cache_miss", key=key)
        value = await loader()
        self._cache[key] = value
        return value

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)
        logger.debug("cache_delete", key=key)

    async def clear(self) -> None:
        self._cache.clear()
        logger.debug("cache_cleared")
