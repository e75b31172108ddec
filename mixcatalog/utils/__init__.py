"""Utility modules for mixcatalog.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at MixCatalogError;
  the job processor decides between retry and permanent failure by class.
- **external_ids** -- Provider-prefixed external identifier codec
  (``yt:``, ``sc:``, ``1001:``) and the overlap checks used for duplicate
  detection.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production, plus the
  per-job context binding.
- **text_normalizer** -- Title/artist normalization, tracklist line parsing
  and alias generation.
"""

# -- Domain exception hierarchy --------------------------------------------
from mixcatalog.utils.errors import (
    TERMINAL_ERRORS,
    ConfigurationError,
    MixCatalogError,
    RecordNotFoundError,
    TransientIOError,
    UnsupportedProviderError,
    ValidationError,
)

# -- Structured logging ----------------------------------------------------
from mixcatalog.utils.logging import configure_logging, get_logger, job_log_context

# -- Text normalization ----------------------------------------------------
from mixcatalog.utils.text_normalizer import (
    entity_key,
    normalize,
    parse_tracklist_line,
    search_aliases,
    split_artist_variations,
)

__all__ = [
    "ConfigurationError",
    "MixCatalogError",
    "RecordNotFoundError",
    "TERMINAL_ERRORS",
    "TransientIOError",
    "UnsupportedProviderError",
    "ValidationError",
    "configure_logging",
    "entity_key",
    "get_logger",
    "job_log_context",
    "normalize",
    "parse_tracklist_line",
    "search_aliases",
    "split_artist_variations",
]
