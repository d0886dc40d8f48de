#!/usr/bin/env python3
"""
Run the periodic workflow jobs once, or serve them on their schedules.

Configuration comes from --config, else TAXFLOW_CONFIG, else the built-in
defaults.  --database-url (or TAXFLOW_DATABASE_URL) overrides the URL in
the policy file.

Usage:
    python3 scripts/run_jobs.py [options] run <job_name>
    python3 scripts/run_jobs.py [options] serve
    python3 scripts/run_jobs.py list

Examples:
    # Evaluate triggers once against a local SQLite file, creating tables first
    python3 scripts/run_jobs.py --database-url sqlite+aiosqlite:///taxflow.db \\
        --create-tables run trigger_evaluation

    # Run all jobs on their configured cadence until interrupted
    python3 scripts/run_jobs.py --config policy.yaml serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run workflow jobs: trigger evaluation, compliance monitoring, escalation, cleanup.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Policy YAML file (default: TAXFLOW_CONFIG env or built-in defaults).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Async database URL, e.g. postgresql+asyncpg://... (overrides config).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the structured JSON logs (default: INFO).",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    run = sub.add_parser("run", help="Run one job once and print its summary.")
    run.add_argument("job_name", help="Registered job name (see `list`).")
    serve = sub.add_parser("serve", help="Run all enabled jobs on their schedules.")
    serve.add_argument(
        "--tick-seconds",
        type=int,
        default=None,
        help="Scheduler polling interval (default: from config).",
    )
    sub.add_parser("list", help="List registered job names.")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> int:
    # Lazy imports so we fail fast on args first
    from taxflow_batch.orchestrator import WorkflowOrchestrator
    from taxflow_config import load_config
    from taxflow_kernel.db.engine import create_tables, reset_engine
    from taxflow_kernel.exceptions import ConfigurationError, JobNotRegisteredError

    try:
        config = load_config(args.config)
    except (OSError, ConfigurationError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1
    if args.database_url:
        config = replace(config, database_url=args.database_url)

    orchestrator = WorkflowOrchestrator.from_config(config)
    try:
        if args.command == "list":
            for name in orchestrator.job_registry.list_jobs():
                print(name)
            return 0

        if args.create_tables:
            await create_tables()

        if args.command == "run":
            try:
                result = await orchestrator.run_job(args.job_name)
            except JobNotRegisteredError as e:
                print(f"ERROR: {e}", file=sys.stderr)
                return 1
            print(json.dumps(
                {
                    "job_name": result.job_name,
                    "run_id": str(result.run_id),
                    "status": result.status.value,
                    "evaluated": result.evaluated,
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                    "details": result.details,
                    "duration_ms": round(result.duration_ms, 2),
                },
                indent=2,
                default=str,
            ))
            return 0

        scheduler = orchestrator.create_scheduler(args.tick_seconds)
        print(f"Serving jobs: {', '.join(orchestrator.job_registry.list_jobs())} (Ctrl+C to stop)")
        await scheduler.run_forever()
        return 0
    finally:
        await reset_engine()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from taxflow_kernel.logging_config import configure_logging

    configure_logging(level=getattr(logging, args.log_level))
    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
