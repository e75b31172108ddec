# =============================================================================
# mixcatalog/cli/jobs.py — Operator CLI for the ingestion job queue
# =============================================================================
#
# Typical usage:
#   python -m mixcatalog.cli init-db
#   python -m mixcatalog.cli seed-rules --file config/context_rules.yaml
#   python -m mixcatalog.cli enqueue youtube UCxxxxxxxx --mode backfill --batch-size 50
#   python -m mixcatalog.cli run                 # poll forever (Ctrl-C to stop)
#   python -m mixcatalog.cli run --once          # one lease/execute/ack cycle
#   python -m mixcatalog.cli canonicalize --batch-size 100
#   python -m mixcatalog.cli requeue-failed
#   python -m mixcatalog.cli reset-job <job-id>
#   python -m mixcatalog.cli plan-backfill --artist "Lane 8" --profile youtube:UCxx:0.8
#   python -m mixcatalog.cli cleanup --days 30
#   python -m mixcatalog.cli stats
#
# All commands read Settings from the environment / .env (DB_PATH etc.)
# and exit 0 on success, 1 on failure.
# =============================================================================
"""Operator CLI for the mixcatalog ingestion queue and canonical catalog."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from contextlib import suppress
from datetime import datetime, timedelta, timezone

from mixcatalog.config.loader import load_rule_seeds
from mixcatalog.config.settings import Settings
from mixcatalog.main import Components, build_components
from mixcatalog.models.jobs import IngestionMode, JobStatus, WorkerType
from mixcatalog.models.staging import Provider, StagedStatus
from mixcatalog.services.backfill_planner import PlatformProfile
from mixcatalog.utils.errors import MixCatalogError
from mixcatalog.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_init_db(components: Components) -> int:
    print(f"Database initialized: {components.settings.db_path}")
    return 0


async def _handle_seed_rules(args: argparse.Namespace, components: Components) -> int:
    """Upsert rule definitions from a YAML seed file."""
    definitions = load_rule_seeds(args.file)
    for definition in definitions:
        await components.rule_store.save_definition(definition)
    await components.rules_engine.clear_cache()

    active = await components.rule_store.list_active()
    print(f"Seeded {len(definitions)} rules from {args.file} ({len(active)} active and valid)")
    return 0


async def _handle_enqueue(args: argparse.Namespace, components: Components) -> int:
    payload = {
        "worker_type": args.worker_type,
        "source_id": args.source_id,
        "mode": args.mode,
        "batch_size": args.batch_size,
    }
    if args.record_id:
        payload["staged_record_id"] = args.record_id
    job = await components.job_store.create_job(
        args.worker_type,
        payload,
        max_attempts=components.settings.job_max_attempts,
        requested_by=args.requested_by,
    )
    print(f"Enqueued job {job.id} ({job.worker_type}, {args.mode}, source={args.source_id})")
    return 0


async def _handle_run(args: argparse.Namespace, components: Components) -> int:
    """Run the poll loop; SIGINT/SIGTERM stop it after releasing the current job."""
    processor = components.processor

    if args.once:
        processed = await processor.process_one()
        print("Processed 1 job" if processed else "No runnable jobs")
        return 0

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, processor.stop)

    print(f"Job processor running (workers: {', '.join(processor.worker_types)}). Ctrl-C to stop.")
    await processor.run(max_iterations=args.max_iterations)
    return 0


async def _handle_canonicalize(args: argparse.Namespace, components: Components) -> int:
    """Canonicalize pending staged records directly, without the queue."""
    options = components.canonicalization_options
    if not args.rolling:
        options = options.model_copy(update={"auto_verify": False})

    records = await components.staging_store.list_by_status(StagedStatus.PENDING, args.batch_size)
    created = merged = skipped = failed = 0
    for record in records:
        try:
            outcome = await components.canonicalizer.canonicalize(record.id, options)
        except Exception as exc:  # noqa: BLE001 — reported per record, the sweep continues
            failed += 1
            print(f"  FAILED {record.id}: {exc}", file=sys.stderr)
            continue
        if outcome.created:
            created += 1
        elif outcome.merged:
            merged += 1
        else:
            skipped += 1

    print(f"Canonicalized {len(records)} records:")
    print(f"  Created: {created}")
    print(f"  Merged:  {merged}")
    print(f"  Skipped: {skipped}")
    print(f"  Failed:  {failed}")
    return 1 if failed else 0


async def _handle_requeue_failed(args: argparse.Namespace, components: Components) -> int:
    """Return failed staged records to pending and queue a sweep for them."""
    count = await components.staging_store.requeue_failed(limit=args.limit)
    print(f"Requeued {count} failed staged records")
    if count and not args.no_enqueue:
        job = await components.job_store.create_job(
            WorkerType.CANONICALIZATION.value,
            {
                "worker_type": WorkerType.CANONICALIZATION.value,
                "source_id": "requeue-failed",
                "mode": IngestionMode.BACKFILL.value,
                "batch_size": count,
            },
            max_attempts=components.settings.job_max_attempts,
            requested_by="cli:requeue-failed",
        )
        print(f"Enqueued canonicalization job {job.id}")
    return 0


async def _handle_reset_job(args: argparse.Namespace, components: Components) -> int:
    if await components.job_store.reset_job(args.job_id):
        print(f"Job {args.job_id} reset to pending")
        return 0
    print(f"Job {args.job_id} not found or not failed", file=sys.stderr)
    return 1


async def _handle_plan_backfill(args: argparse.Namespace, components: Components) -> int:
    profiles: list[PlatformProfile] = []
    for spec in args.profile:
        provider, _, rest = spec.partition(":")
        source_id, _, confidence = rest.rpartition(":")
        if not source_id:
            print(f"Invalid --profile {spec!r}; expected provider:source_id:confidence", file=sys.stderr)
            return 1
        profiles.append(
            PlatformProfile(provider=Provider(provider), source_id=source_id, confidence=float(confidence))
        )

    jobs = await components.backfill_planner.plan_for_approved_artist(
        args.artist, profiles, requested_by=args.requested_by
    )
    print(f"Planned {len(jobs)} backfill jobs for {args.artist}")
    for job in jobs:
        print(f"  {job.id}  {job.worker_type}  {job.payload['source_id']}")
    return 0


async def _handle_cleanup(args: argparse.Namespace, components: Components) -> int:
    cutoff = datetime.now(timezone.utc) - timedelta(days=args.days)
    purged = await components.job_store.purge_finished(cutoff)
    print(f"Purged {purged} finished jobs older than {args.days} days")
    return 0


async def _handle_stats(components: Components) -> int:
    jobs = await components.job_store.status_counts()
    staged = await components.staging_store.status_counts()
    catalog = await components.catalog_store.entity_counts()
    heartbeat = await components.job_store.get_heartbeat(components.settings.heartbeat_service_name)

    print("Jobs")
    for status in JobStatus:
        print(f"  {status.value:<14} {jobs.get(status.value, 0)}")
    print("Staged records")
    for status in StagedStatus:
        print(f"  {status.value:<14} {staged.get(status.value, 0)}")
    print("Catalog")
    for table, total in catalog.items():
        print(f"  {table:<18} {total}")
    if heartbeat:
        print(f"Processor heartbeat: {heartbeat['status']} at {heartbeat['last_heartbeat']}")
    else:
        print("Processor heartbeat: never")
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the jobs CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m mixcatalog.cli",
        description="Manage the mixcatalog ingestion queue and catalog.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init-db", help="Create database tables")

    seed_parser = subparsers.add_parser("seed-rules", help="Upsert context rules from YAML")
    seed_parser.add_argument("--file", default="config/context_rules.yaml", help="Rule seed file")

    enqueue_parser = subparsers.add_parser("enqueue", help="Enqueue a job")
    enqueue_parser.add_argument("worker_type", choices=[w.value for w in WorkerType])
    enqueue_parser.add_argument("source_id", help="Channel id, username or export name")
    enqueue_parser.add_argument("--mode", choices=[m.value for m in IngestionMode], default="rolling")
    enqueue_parser.add_argument("--batch-size", type=int, default=50, dest="batch_size")
    enqueue_parser.add_argument("--record-id", dest="record_id", help="Staged record (canonicalization only)")
    enqueue_parser.add_argument("--requested-by", dest="requested_by", default="cli")

    run_parser = subparsers.add_parser("run", help="Run the job processor")
    run_parser.add_argument("--once", action="store_true", help="Process at most one job and exit")
    run_parser.add_argument("--max-iterations", type=int, default=None, dest="max_iterations")

    canon_parser = subparsers.add_parser("canonicalize", help="Canonicalize pending staged records now")
    canon_parser.add_argument("--batch-size", type=int, default=100, dest="batch_size")
    canon_parser.add_argument(
        "--rolling", action="store_true", help="Apply rolling-mode options (auto-verify if configured)"
    )

    requeue_parser = subparsers.add_parser("requeue-failed", help="Requeue failed staged records")
    requeue_parser.add_argument("--limit", type=int, default=None)
    requeue_parser.add_argument(
        "--no-enqueue", action="store_true", dest="no_enqueue", help="Do not queue a canonicalization job"
    )

    reset_parser = subparsers.add_parser("reset-job", help="Reset a failed job to pending")
    reset_parser.add_argument("job_id")

    plan_parser = subparsers.add_parser("plan-backfill", help="Queue backfill jobs for an approved artist")
    plan_parser.add_argument("--artist", required=True)
    plan_parser.add_argument(
        "--profile",
        action="append",
        default=[],
        help="provider:source_id:confidence (repeatable)",
    )
    plan_parser.add_argument("--requested-by", dest="requested_by", default="cli")

    cleanup_parser = subparsers.add_parser("cleanup", help="Purge old completed/failed jobs")
    cleanup_parser.add_argument("--days", type=int, default=None, help="Retention (default: JOB_RETENTION_DAYS)")

    subparsers.add_parser("stats", help="Show queue, staging and catalog counts")

    return parser


async def _dispatch(args: argparse.Namespace, components: Components) -> int:
    await components.initialize()

    if args.command == "init-db":
        return await _handle_init_db(components)
    if args.command == "seed-rules":
        return await _handle_seed_rules(args, components)
    if args.command == "enqueue":
        return await _handle_enqueue(args, components)
    if args.command == "run":
        return await _handle_run(args, components)
    if args.command == "canonicalize":
        return await _handle_canonicalize(args, components)
    if args.command == "requeue-failed":
        return await _handle_requeue_failed(args, components)
    if args.command == "reset-job":
        return await _handle_reset_job(args, components)
    if args.command == "plan-backfill":
        return await _handle_plan_backfill(args, components)
    if args.command == "cleanup":
        if args.days is None:
            args.days = components.settings.job_retention_days
        return await _handle_cleanup(args, components)
    if args.command == "stats":
        return await _handle_stats(components)
    return 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """CLI entry point.

    Returns the exit code instead of calling ``sys.exit`` so tests can call
    it in-process; ``__main__`` exits with the returned value.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = settings or Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    components = build_components(app_settings)

    try:
        return asyncio.run(_dispatch(args, components))
    except (MixCatalogError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
