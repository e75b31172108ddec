# =============================================================================
# mixcatalog/cli/__init__.py — CLI Module Overview
# =============================================================================
#
# Operator tooling for the ingestion pipeline.  Everything lives in
# jobs.py; `python -m mixcatalog.cli <command>` dispatches to it.
#
# Architecture Notes:
#   - argparse (not Click/Typer), one subparser per command.
#   - The object graph comes from mixcatalog.main.build_components, the
#     same composition root the integration tests use.
# =============================================================================

"""CLI tools for mixcatalog.

- ``python -m mixcatalog.cli`` — queue management, the job processor loop,
  direct canonicalization sweeps, rule seeding and catalog stats.
"""
