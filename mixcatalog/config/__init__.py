"""Configuration module: exports Settings and the rule seed loader."""

from mixcatalog.config.loader import load_rule_seeds
from mixcatalog.config.settings import Settings

__all__ = ["Settings", "load_rule_seeds"]
