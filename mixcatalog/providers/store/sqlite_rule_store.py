"""SQLite-backed context rule store.

Rule rows keep their type-specific settings in a ``pattern_config`` JSON
column.  :meth:`SQLiteRuleStore.list_active` folds ``rule_type`` into that
config and validates each row into a :class:`ContextRule`; rows that fail
(unknown type, missing keys, a regex that does not compile) are logged and
skipped.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from mixcatalog.interfaces.rule_store import IRuleStore
from mixcatalog.models.rules import ContextRule
from mixcatalog.providers.store.sqlite_base import SQLiteStore, new_id, to_json

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS context_rules (
    id                   TEXT    PRIMARY KEY,
    name                 TEXT    NOT NULL UNIQUE,
    description          TEXT,
    rule_type            TEXT    NOT NULL,
    target_context_type  TEXT    NOT NULL,
    target_context_name  TEXT    NOT NULL,
    pattern_config       TEXT    NOT NULL DEFAULT '{}',
    confidence_weight    REAL    NOT NULL DEFAULT 0.5,
    requires_approval    INTEGER NOT NULL DEFAULT 0,
    priority             INTEGER NOT NULL DEFAULT 100,
    is_active            INTEGER NOT NULL DEFAULT 1,
    scope                TEXT    NOT NULL DEFAULT 'global',
    scope_value          TEXT,
    created_at           TEXT    NOT NULL,
    updated_at           TEXT    NOT NULL
);
""",
    "CREATE INDEX IF NOT EXISTS idx_context_rules_active ON context_rules(is_active, priority);",
]

_UPSERT_SQL = """\
INSERT INTO context_rules
    (id, name, description, rule_type, target_context_type, target_context_name,
     pattern_config, confidence_weight, requires_approval, priority, is_active,
     scope, scope_value, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(name)
DO UPDATE SET description         = excluded.description,
              rule_type           = excluded.rule_type,
              target_context_type = excluded.target_context_type,
              target_context_name = excluded.target_context_name,
              pattern_config      = excluded.pattern_config,
              confidence_weight   = excluded.confidence_weight,
              requires_approval   = excluded.requires_approval,
              priority            = excluded.priority,
              is_active           = excluded.is_active,
              scope               = excluded.scope,
              scope_value         = excluded.scope_value,
              updated_at          = excluded.updated_at;
"""

_SELECT_ACTIVE_SQL = """\
SELECT * FROM context_rules
WHERE is_active = 1
ORDER BY priority ASC, confidence_weight DESC, name ASC;
"""


def _row_to_rule(row: dict[str, Any]) -> ContextRule:
    config = json.loads(row["pattern_config"] or "{}")
    return ContextRule.model_validate(
        {
            **row,
            "config": {**config, "rule_type": row["rule_type"]},
            "requires_approval": bool(row["requires_approval"]),
            "is_active": bool(row["is_active"]),
        }
    )


class SQLiteRuleStore(SQLiteStore, IRuleStore):
    """SQLite persistence for context rules."""

    async def initialize(self) -> None:
        await self._create_schema(_CREATE_TABLES_SQL)
        logger.info("rule_store_initialized", path=str(self._db_path))

    async def list_active(self) -> list[ContextRule]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_ACTIVE_SQL)
            rows = await cursor.fetchall()

        rules: list[ContextRule] = []
        for row in rows:
            data = dict(row)
            try:
                rules.append(_row_to_rule(data))
            except (PydanticValidationError, json.JSONDecodeError) as exc:
                logger.warning(
                    "context_rule_invalid",
                    rule_id=data["id"],
                    rule_name=data["name"],
                    error=str(exc),
                )
        logger.debug("context_rules_loaded", active=len(rules), skipped=len(rows) - len(rules))
        return rules

    async def save_definition(self, definition: dict[str, Any]) -> str:
        now = self._now()
        config = definition.get("pattern_config", definition.get("config", {}))
        async with self._connect() as db:
            await db.execute(
                _UPSERT_SQL,
                (
                    definition.get("id") or new_id(),
                    definition["name"],
                    definition.get("description"),
                    definition["rule_type"],
                    definition["target_context_type"],
                    definition["target_context_name"],
                    to_json(config),
                    float(definition.get("confidence_weight", 0.5)),
                    int(bool(definition.get("requires_approval", False))),
                    int(definition.get("priority", 100)),
                    int(bool(definition.get("is_active", True))),
                    definition.get("scope", "global"),
                    definition.get("scope_value"),
                    now,
                    now,
                ),
            )
            cursor = await db.execute("SELECT id FROM context_rules WHERE name = ?", (definition["name"],))
            row = await cursor.fetchone()
        logger.info("context_rule_saved", rule_name=definition["name"])
        return str(row["id"])
