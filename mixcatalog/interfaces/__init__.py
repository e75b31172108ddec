"""Public interface definitions for stores, caches and source fetchers.

Services and pipeline components depend only on these abstract base
classes; concrete adapters are constructed in ``mixcatalog/main.py`` and
injected through constructors, so tests can substitute fakes or
temp-file SQLite stores.

CONCRETE PROVIDER MAP:
    Interface        →  Concrete implementation (in mixcatalog/providers/)
    ─────────────────────────────────────────────────────────────────────
    IJobStore        →  SQLiteJobStore
    IStagingStore    →  SQLiteStagingStore
    ICatalogStore    →  SQLiteCatalogStore
    IRuleStore       →  SQLiteRuleStore
    ICacheProvider   →  MemoryCacheProvider
    ISourceFetcher   →  (platform fetchers, supplied by the deployment)
"""

from mixcatalog.interfaces.cache_provider import ICacheProvider
from mixcatalog.interfaces.catalog_store import ICatalogStore
from mixcatalog.interfaces.job_store import IJobStore
from mixcatalog.interfaces.rule_store import IRuleStore
from mixcatalog.interfaces.source_fetcher import ISourceFetcher
from mixcatalog.interfaces.staging_store import IStagingStore

__all__ = [
    "ICacheProvider",
    "ICatalogStore",
    "IJobStore",
    "IRuleStore",
    "ISourceFetcher",
    "IStagingStore",
]
