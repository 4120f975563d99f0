#!/usr/bin/env python3
"""Script to import the exam score CSV into the database."""
import argparse
import asyncio
import sys
from pathlib import Path

from score_analytics.config import settings
from score_analytics.dependencies.database import get_sessionmanager, initialize_db
from score_analytics.services.cache_service import CacheService, cache_service
from score_analytics.services.csv_import import (
    ScoreImportParseError,
    ScoreImportValidationError,
    import_scores,
    parse_scores_file,
)
from score_analytics.utils.cache_utils import generate_namespace_pattern


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import exam scores from a CSV file")
    parser.add_argument("csv_file", type=Path, help="Path to the score CSV (columns: sbd, ma_ngoai_ngu, subjects)")
    parser.add_argument(
        "--batch-size", type=int, default=settings.import_batch_size, help="Rows per transaction"
    )
    return parser.parse_args(argv)


async def invalidate_analytics_cache(cache: CacheService = cache_service) -> str:
    """
    Drop cached analytics so servers recompute reports from the new data.

    A process-local cache belongs to each server, so this process cannot reach
    it; servers using one keep serving their entries until the TTL expires.
    """
    if not cache.shared:
        return f"{cache.store_name} cache is per process and was not cleared; use DELETE /api/v1/analytics/cache"
    cleared = await cache.clear_prefix(generate_namespace_pattern(settings.cache_prefix).rstrip("*"))
    return f"cleared {cleared} {cache.store_name} cache keys"


async def main(argv: list[str] | None = None) -> None:
    """Run the score import."""
    args = parse_args(argv)
    try:
        df = parse_scores_file(args.csv_file.read_bytes(), args.csv_file.name)
        print(f"Read {len(df)} rows from {args.csv_file}")

        sessionmanager = get_sessionmanager()
        async with initialize_db(sessionmanager):
            async with sessionmanager.session() as session:
                summary = await import_scores(session, df, batch_size=args.batch_size)

        cache_note = await invalidate_analytics_cache()
        print(
            f"Imported {summary.students} students and {summary.scores} scores in {summary.batches} batches "
            f"(skipped {summary.skipped_rows} rows, {summary.skipped_values} values; {cache_note})"
        )
    except (ScoreImportParseError, ScoreImportValidationError, OSError) as e:
        print(f"Error reading {args.csv_file}: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error during score import: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
