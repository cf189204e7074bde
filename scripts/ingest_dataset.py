#!/usr/bin/env python3
"""
Dataset Ingestion Script

Imports a saved listings-provider dataset (JSON) into the Supabase database:
- Normalization, scoring and routing of every record
- Upsert by dedupe key (re-running the same file creates no duplicates)
- Enrichment queued for every non-discarded lead
- Summary statistics and error logging

Usage:
    python scripts/ingest_dataset.py path/to/dataset.json --search-query "yoga Madrid"
    python scripts/ingest_dataset.py path/to/dataset.json --dry-run
    python scripts/ingest_dataset.py path/to/dataset.json --wait
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Add parent directory to path to import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import build_container
from domain.routing import RoutingPolicy
from services.ingestion_service import IngestionResult, assess
from settings import load_settings

logger = logging.getLogger("ingest_dataset")


def load_records(dataset_path: str) -> list[dict[str, Any]]:
    """
    Read a dataset file.

    Accepts either a JSON list of records or an object with an `items` list
    (the shape of a downloaded provider dataset).

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the JSON has neither shape
    """
    path = Path(dataset_path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset file not found: {dataset_path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("items")
    if not isinstance(data, list):
        raise ValueError("Dataset must be a JSON list or an object with an 'items' list")

    return [record for record in data if isinstance(record, dict)]


def dry_run(records: list[dict[str, Any]], *, strict: bool = False) -> dict[str, int]:
    """Normalize, score and route each record without touching the database."""
    policy = RoutingPolicy(strict=strict)
    tiers: dict[str, int] = {}

    for number, raw in enumerate(records, start=1):
        assessment = assess(raw, policy)
        tier = assessment.score.tier.value
        tiers[tier] = tiers.get(tier, 0) + 1
        name = assessment.clean.name or "(no name)"
        print(
            f"{number:4d}. {name[:40]:40s} {tier:9s} "
            f"score={assessment.score.score:3d} route={assessment.decision.route.value}"
        )
        if assessment.flags.warning:
            print(f"      warning: {assessment.flags.warning}")

    return tiers


async def ingest(records: list[dict[str, Any]], *, search_query: str, wait: bool) -> IngestionResult:
    settings = load_settings(require_database=True)
    container = await build_container(settings)
    try:
        result = await container.pipeline.ingest_batch(records, search_query=search_query)
        if wait and container.queue.pending:
            print(f"Waiting for {container.queue.pending} enrichment tasks...")
            await container.queue.join()
            counts = container.queue.counts()
            print(
                f"Enrichment: {counts['succeeded']} succeeded, "
                f"{counts['skipped']} skipped, {counts['failed']} failed"
            )
        return result
    finally:
        # without --wait, unfinished enrichment is cancelled and can be re-triggered later
        await container.aclose()


def print_summary(result: IngestionResult) -> None:
    """Print ingestion summary statistics."""
    print()
    print("=" * 60)
    print("INGESTION SUMMARY")
    print("=" * 60)
    print(f"Accepted:         {result.accepted}")
    print(f"Created:          {result.created}")
    print(f"Updated:          {result.updated}")
    print(f"Preserved:        {result.preserved}")
    print(f"Discarded:        {result.discarded}")
    print(f"Enqueued:         {result.enqueued}")
    print(f"Failed:           {result.failed}")
    print("=" * 60)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Ingest a saved listings dataset into Supabase",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic import
  python ingest_dataset.py dataset.json --search-query "fisioterapia Sevilla"

  # Dry run (normalize / score / route only, no database)
  python ingest_dataset.py dataset.json --dry-run

  # Import and wait for enrichment to finish
  python ingest_dataset.py dataset.json --wait
        """
    )

    parser.add_argument("dataset_path", help="Path to the JSON dataset to ingest")
    parser.add_argument("--search-query", default="", help="Search that produced the dataset")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print tier, score and route per record without writing to the database",
    )
    parser.add_argument("--wait", action="store_true", help="Wait for enrichment of the ingested leads")
    parser.add_argument("--strict", action="store_true", help="Dry run: only GOLD/SILVER leads are outreach ready")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (default: from settings)")

    args = parser.parse_args()

    level = args.log_level
    if level is None:
        level = load_settings().log_level
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        records = load_records(args.dataset_path)
        print(f"Read {len(records)} records from {args.dataset_path}")
        print()

        if args.dry_run:
            tiers = dry_run(records, strict=args.strict)
            print()
            print("Tiers: " + ", ".join(f"{tier}={count}" for tier, count in sorted(tiers.items())))
            return 0

        result = asyncio.run(ingest(records, search_query=args.search_query, wait=args.wait))
        print_summary(result)
        return 1 if result.failed > 0 else 0

    except KeyboardInterrupt:
        print("\n\nIngestion interrupted by user")
        return 130

    except Exception as e:
        logger.exception("Ingestion failed")
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
