"""Batch theory content generation for all (dimension x level) units.

Generates concepts, models and demonstrations for each unit, validates
them, and publishes one record per unit. Units that already have a
published record are skipped unless --no-skip-existing is given.

Usage:
    # Everything that is not published yet (local DB)
    python -m app.theory_generation.scripts.run_theory_generation

    # Two levels of one dimension against staging
    python -m app.theory_generation.scripts.run_theory_generation \
        --dimensions causal_analysis --levels 1,2 --env staging

    # Exercise the whole flow without writing to any database
    python -m app.theory_generation.scripts.run_theory_generation --dry-run

    # Re-insert a snapshot left behind by an interrupted run
    python -m app.theory_generation.scripts.run_theory_generation \
        --replay-backup app/data/backups/theory-content/<file>.json
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path

from app.llm_clients import load_default_chat_client
from app.storage import DBClient, DBConfig
from app.theory_generation.dimensions import DimensionCatalog, load_catalog
from app.theory_generation.errors import TheoryGenerationError
from app.theory_generation.models import BatchRunResult, GenerationConfig
from app.theory_generation.persistence import (
    ContentStore,
    InMemoryContentStore,
    PersistenceGateway,
    PostgresContentStore,
)
from app.theory_generation.pipeline import build_pipeline
from app.theory_generation.progress import CostAccumulator
from app.utils.logging_config import RunEventLog, setup_logging


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = _build_config(args)
        catalog = load_catalog()
        store = _build_store(args)
    except (TheoryGenerationError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    with RunEventLog(log_dir=config.log_dir, write_file=True) as events:
        if args.replay_backup:
            sys.exit(_replay(args.replay_backup, store, catalog, config, events, args))

        try:
            chat_client = load_default_chat_client(
                model=config.model, timeout=config.request_timeout_seconds,
            )
        except RuntimeError as exc:
            print(f"Configuration error: {exc}", file=sys.stderr)
            sys.exit(1)

        costs = CostAccumulator()
        pipeline = build_pipeline(
            chat_client, store, catalog, config,
            events=events, cost_accumulator=costs,
        )
        result = asyncio.run(
            pipeline.run(
                target_dimensions=args.dimensions,
                target_levels=args.levels,
                skip_existing=args.skip_existing,
            ),
        )
        costs.report()
        _print_summary(result, events)

    sys.exit(0 if result.success else 1)


# -------------------------------------------------------------------
# Argument parsing
# -------------------------------------------------------------------


def parse_dimension_list(value: str) -> list[str]:
    """Parse ``a,b,c`` into a list of dimension ids."""
    items = [v.strip() for v in value.split(",") if v.strip()]
    if not items:
        msg = "expected a comma-separated list of dimension ids"
        raise argparse.ArgumentTypeError(msg)
    return items


def parse_level_list(value: str) -> list[int]:
    """Parse ``1,2`` into a list of levels."""
    try:
        levels = [int(v) for v in value.split(",") if v.strip()]
    except ValueError as exc:
        msg = f"levels must be integers, got {value!r}"
        raise argparse.ArgumentTypeError(msg) from exc
    if not levels:
        msg = "expected a comma-separated list of levels"
        raise argparse.ArgumentTypeError(msg)
    return levels


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate critical-thinking theory content in batch",
    )
    parser.add_argument(
        "--dimensions", type=parse_dimension_list, default=None,
        help="Comma-separated dimension ids (default: all configured)",
    )
    parser.add_argument(
        "--levels", type=parse_level_list, default=None,
        help="Comma-separated levels (default: 1,2,3,4,5)",
    )
    parser.add_argument(
        "--no-skip-existing", dest="skip_existing", action="store_false",
        help="Generate even if a published record already exists",
    )
    parser.add_argument(
        "--env", choices=["local", "staging", "prod"], default="local",
        help="Target database environment (default: local)",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Use an in-memory store; nothing is written to the database",
    )
    parser.add_argument(
        "--no-backup", dest="backup", action="store_false",
        help="Do not snapshot documents before saving",
    )
    parser.add_argument(
        "--max-retries", type=int, default=None,
        help="Attempts per section (default: THEORY_GEN_MAX_RETRIES or 3)",
    )
    parser.add_argument(
        "--replay-backup", type=Path, default=None, metavar="PATH",
        help="Validate and insert a snapshot file instead of generating",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


# -------------------------------------------------------------------
# Wiring
# -------------------------------------------------------------------


def _build_config(args: argparse.Namespace) -> GenerationConfig:
    config = GenerationConfig.from_env()
    overrides: dict[str, object] = {}
    if args.max_retries is not None:
        overrides["max_retries"] = args.max_retries
    if not args.backup:
        overrides["backup_enabled"] = False
    return dataclasses.replace(config, **overrides) if overrides else config


def _build_store(args: argparse.Namespace) -> ContentStore:
    if args.dry_run:
        return InMemoryContentStore(enforce_unique=True)
    return PostgresContentStore(DBClient(DBConfig.for_environment(args.env)))


def _replay(
    path: Path,
    store: ContentStore,
    catalog: DimensionCatalog,
    config: GenerationConfig,
    events: RunEventLog,
    args: argparse.Namespace,
) -> int:
    gateway = PersistenceGateway(store, catalog, config, events=events)
    try:
        record = asyncio.run(
            gateway.replay_backup(path, skip_existing=args.skip_existing),
        )
    except TheoryGenerationError as exc:
        print(f"Replay failed: {exc}", file=sys.stderr)
        return 1
    if record is None:
        print(f"Already published, nothing replayed: {path}")
    else:
        print(f"Replayed {record.dimension_id}:{record.level} as {record.id}")
    return 0


# -------------------------------------------------------------------
# Output
# -------------------------------------------------------------------


def _print_summary(result: BatchRunResult, events: RunEventLog) -> None:
    """Print a final summary of the run."""
    print(f"\n{'=' * 60}")
    print("THEORY GENERATION SUMMARY")
    print(f"{'=' * 60}")
    print(f"Total units:    {result.total_tasks}")
    print(f"Completed:      {result.completed}")
    print(f"Skipped:        {result.skipped}")
    print(f"  (conflicts):  {result.persistence_conflicts}")
    print(f"Errors:         {result.errors}")
    print(f"Elapsed:        {result.elapsed_seconds:.1f}s")
    print(f"Est. cost:      ${result.estimated_cost_usd:.4f}")

    if result.failed_units:
        print("\nFailed units:")
        for key, reason in result.failed_units.items():
            print(f"  - {key}: {reason}")

    census = result.census
    if census is not None:
        print(f"\nPublished content: {census.total}/{census.expected_total} "
              f"({census.completion_ratio:.0%})")
        for dim, count in sorted(census.by_dimension.items()):
            print(f"  {dim}: {count}")
        levels = ", ".join(
            f"L{lvl}={count}" for lvl, count in sorted(census.by_level.items())
        )
        if levels:
            print(f"  by level: {levels}")

    if events.log_file is not None:
        print(f"\nRun log: {events.log_file}")
    print(f"{'=' * 60}\n")


if __name__ == "__main__":
    main()
