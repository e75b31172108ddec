"""Abstract base class for the context rule store.

The canonicalization core only ever reads active rules; rule authoring,
activation and versioning happen in external tooling.  ``save_definition``
exists for that tooling (and the ``seed-rules`` CLI command).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from mixcatalog.models.rules import ContextRule


class IRuleStore(ABC):
    """Contract for loading context rules."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist."""

    @abstractmethod
    async def list_active(self) -> list[ContextRule]:
        """Return validated active rules ordered by ascending priority.

        Rows whose configuration fails validation are logged and skipped
        so one broken rule never hides the rest.
        """

    @abstractmethod
    async def save_definition(self, definition: dict[str, Any]) -> str:
        """Insert or update a raw rule definition keyed by ``name``; return its id.

        The definition is stored as given and validated on the next load.
        """
