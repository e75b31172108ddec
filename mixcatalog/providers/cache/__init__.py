"""Cache providers.

In-memory TTL cache used to avoid reloading the context rule set for every
canonicalized record.  MemoryCacheProvider is process-local; each job
processor instance holds its own copy and tolerates staleness up to the TTL.
"""

from mixcatalog.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
