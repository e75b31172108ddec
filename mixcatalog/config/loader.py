"""YAML loader for context rule seed files.

# ─── RULE SEED FILES ───────────────────────────────────────────────────
#
# Context rules live in the database, but the initial set is checked into
# the repo as YAML (config/context_rules.yaml) and upserted by name with
# ``mixcatalog seed-rules``.  The file has a ``rules:`` list:
#
#   rules:
#     - name: Ultra Music Festival
#       rule_type: keyword
#       target_context_type: festival
#       target_context_name: Ultra Music Festival
#       confidence_weight: 0.9
#       pattern_config:
#         keywords: [ultra music festival, ultra miami]
#
# An optional top-level ``defaults:`` mapping is merged under every entry;
# entry keys win (the _deep_merge helper does the recursive dict merging).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from mixcatalog.utils.errors import ConfigurationError

_REQUIRED_KEYS = ("name", "rule_type", "target_context_type", "target_context_name")


def load_rule_seeds(path: str | Path = "config/context_rules.yaml") -> list[dict[str, Any]]:
    """Load rule definitions from a YAML seed file.

    Args:
        path: Path to the YAML seed file.

    Returns:
        A list of rule definition dicts, ready for ``IRuleStore.save_definition``.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or an entry
            lacks one of the required keys.
    """
    seed_path = Path(path)
    if not seed_path.exists():
        raise ConfigurationError(f"Rule seed file not found: {seed_path}")

    try:
        with open(seed_path) as f:
            document = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Could not parse {seed_path}: {exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get("rules", []), list):
        raise ConfigurationError(f"{seed_path} must contain a 'rules' list")

    defaults = document.get("defaults") or {}
    definitions: list[dict[str, Any]] = []
    for index, entry in enumerate(document.get("rules") or []):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"{seed_path}: rule #{index} is not a mapping")
        definition = copy.deepcopy(defaults)
        _deep_merge(definition, entry)
        missing = [key for key in _REQUIRED_KEYS if not definition.get(key)]
        if missing:
            raise ConfigurationError(
                f"{seed_path}: rule #{index} is missing {', '.join(missing)}"
            )
        definitions.append(definition)
    return definitions


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
