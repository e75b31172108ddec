"""Abstract base class for cache service providers.

Defines the contract for the process-local key-value cache that fronts
slow-changing store reads (currently the active context rule set).
Implementations take the clock and the loader as parameters so callers
and tests control expiry without touching module globals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async to allow for network-backed stores without
    blocking the event loop.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Retrieve the value stored under *key*.

        Parameters
        ----------
        key:
            The cache key to look up.

        Returns
        -------
        Any or None
            The cached value if present and not expired; ``None`` otherwise.
        """

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store *value* under *key* for the provider's TTL."""

    @abstractmethod
    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for *key*, calling *loader* on a miss.

        Concurrent misses may each call *loader*; the last result stored
        wins.  Loader exceptions propagate and nothing is cached.

        Parameters
        ----------
        key:
            The cache key.
        loader:
            Zero-argument coroutine function producing the fresh value.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the entry stored under *key* (no-op if absent)."""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry, forcing the next read to reload."""
