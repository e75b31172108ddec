"""aiosqlite implementations of the store interfaces (one database file, four stores)."""

from mixcatalog.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from mixcatalog.providers.store.sqlite_job_store import SQLiteJobStore
from mixcatalog.providers.store.sqlite_rule_store import SQLiteRuleStore
from mixcatalog.providers.store.sqlite_staging_store import SQLiteStagingStore

__all__ = [
    "SQLiteCatalogStore",
    "SQLiteJobStore",
    "SQLiteRuleStore",
    "SQLiteStagingStore",
]
