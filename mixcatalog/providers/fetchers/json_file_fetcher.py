"""Source fetcher that reads pre-exported records from JSON files.

Platform scrapers and API clients run outside this package; they drop
their output as ``<import_dir>/<provider>/<source_id>.json`` (a list of
:class:`StagedRecordInput` objects).  This fetcher turns such a file into
records for the fetch-and-stage worker, so the rest of the pipeline is
identical whether records came from a live API or an export.

``rolling`` mode returns the most recent uploads first; ``backfill`` walks
the file in order starting at ``config["offset"]``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from mixcatalog.interfaces.source_fetcher import ISourceFetcher
from mixcatalog.models.jobs import IngestionMode
from mixcatalog.models.staging import Provider, StagedRecordInput
from mixcatalog.utils.errors import TransientIOError, ValidationError
from mixcatalog.utils.logging import get_logger

_RECORDS_ADAPTER = TypeAdapter(list[StagedRecordInput])
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _upload_key(record: StagedRecordInput) -> datetime:
    uploaded = record.uploaded_at
    if uploaded is None:
        return _OLDEST
    return uploaded if uploaded.tzinfo else uploaded.replace(tzinfo=timezone.utc)


class JsonFileFetcher(ISourceFetcher):
    """Reads one provider's exported records from ``import_dir``."""

    def __init__(self, provider: Provider, import_dir: str | Path) -> None:
        self._provider = provider
        self._import_dir = Path(import_dir)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def provider(self) -> Provider:
        return self._provider

    def get_provider_name(self) -> str:
        return f"json-file:{self._provider.value}"

    def path_for(self, source_id: str) -> Path:
        # source ids are file stems; strip any directory component
        return self._import_dir / self._provider.value / f"{Path(source_id).name}.json"

    async def fetch(
        self,
        source_id: str,
        mode: IngestionMode,
        batch_size: int,
        config: dict[str, Any],
    ) -> list[StagedRecordInput]:
        path = self.path_for(source_id)
        if not path.exists():
            raise ValidationError(f"No export found at {path}", provider_name=self._provider.value)

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise TransientIOError(f"Could not read {path}: {exc}", provider_name=self._provider.value) from exc
        except json.JSONDecodeError as exc:
            raise ValidationError(f"{path} is not valid JSON: {exc}", provider_name=self._provider.value) from exc

        entries = raw.get("records", []) if isinstance(raw, dict) else raw
        if isinstance(entries, list):
            entries = [{"provider": self._provider.value, **entry} for entry in entries if isinstance(entry, dict)]
        try:
            records = _RECORDS_ADAPTER.validate_python(entries)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"{path} contains malformed records: {exc.error_count()} error(s)",
                provider_name=self._provider.value,
            ) from exc

        if mode is IngestionMode.ROLLING:
            selected = sorted(records, key=_upload_key, reverse=True)[:batch_size]
        else:
            offset = int(config.get("offset", 0))
            selected = records[offset : offset + batch_size]

        self._logger.debug(
            "export_file_read",
            path=str(path),
            total=len(records),
            selected=len(selected),
            mode=mode.value,
        )
        return selected
