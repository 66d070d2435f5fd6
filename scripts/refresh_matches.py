#!/usr/bin/env python3
"""
Periodic refresh of candidate embeddings and stored matches.

Each pass embeds candidates whose vector is missing or stale, recomputes
the shortlist of every job posting, then the job matches of every active
candidate. A step that fails is reported and the next pass still runs.
Runs forever at a fixed interval unless --once or --max-passes is given.
"""

import argparse
import asyncio
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def print_report(title, report):
    """Print a batch report with its failed records."""
    print(f"\n{title}")
    print("-" * 55)
    print(f"  Total:     {report.total}")
    print(f"  Succeeded: {report.succeeded}")
    print(f"  Failed:    {report.failed}")
    print(f"  Duration:  {report.duration_seconds:.1f}s")

    for outcome in report.failures[:10]:
        label = outcome.label or outcome.record_id
        print(f"  [FAILED] {label[:30]:<31} {outcome.error_kind}: {outcome.error}")
    if report.failed > 10:
        print(f"  ... and {report.failed - 10} more failures")


async def run(interval, max_passes, skip_embeddings, skip_candidate_matches):
    from talentmatch.core.matching import MatchRefreshScheduler
    from talentmatch.data.database import get_database_manager

    manager = get_database_manager()
    if not await manager.check_async_connection():
        print("Error: cannot connect to MongoDB")
        return False

    titles = {
        "candidate_embeddings": "CANDIDATE EMBEDDINGS",
        "job_matches": "JOB MATCHES",
        "candidate_matches": "CANDIDATE MATCHES",
    }
    scheduler = MatchRefreshScheduler(
        interval=interval,
        skip_embeddings=skip_embeddings,
        skip_candidate_matches=skip_candidate_matches,
        on_report=lambda name, report: print_report(titles.get(name, name), report),
    )

    try:
        return await scheduler.run(max_passes=max_passes)
    finally:
        manager.close_all()


def main():
    parser = argparse.ArgumentParser(description="Refresh embeddings and stored matches")
    parser.add_argument("--interval", type=float, default=None,
                        help="Seconds between passes (default: from settings)")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument("--max-passes", type=int, default=None,
                        help="Stop after this many passes")
    parser.add_argument("--skip-embeddings", action="store_true",
                        help="Do not backfill candidate embeddings")
    parser.add_argument("--skip-candidate-matches", action="store_true",
                        help="Do not refresh the job matches of each candidate")

    args = parser.parse_args()
    max_passes = 1 if args.once else args.max_passes

    from talentmatch.utils.logger import setup_logging

    setup_logging()

    print("\n" + "=" * 60)
    print("TalentMatch: match refresh")
    print("=" * 60)

    try:
        ok = asyncio.run(
            run(args.interval, max_passes, args.skip_embeddings, args.skip_candidate_matches)
        )
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
