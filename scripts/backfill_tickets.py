#!/usr/bin/env python3
"""
Create missing ticket rows for campaigns whose inventory is incomplete.

Usage:
  python scripts/backfill_tickets.py                 # every campaign that needs it
  python scripts/backfill_tickets.py <campaign_id>   # one campaign
  python scripts/backfill_tickets.py --stats-only    # report, change nothing

Environment:
  - SQLALCHEMY_DATABASE_URL (from backend/.env or the process env)
  - BACKFILL_BATCH_SIZE (default 5000; --batch-size wins)

Safe to re-run: only quota numbers that are still missing are inserted.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend")))
load_dotenv()

from rifaqui.core.observability import setup_logging  # noqa: E402
from rifaqui.database import get_db_session  # noqa: E402
from rifaqui.services import backfill  # noqa: E402
from rifaqui.utils.errors import NotFoundError  # noqa: E402

logger = logging.getLogger("scripts.backfill_tickets")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill missing raffle tickets.")
    parser.add_argument("campaign_id", nargs="?", help="repair only this campaign")
    parser.add_argument("--batch-size", type=int, default=None, help="rows per committed batch")
    parser.add_argument("--stats-only", action="store_true", help="print statistics and exit")
    parser.add_argument("--yes", "-y", action="store_true", help="do not ask for confirmation")
    args = parser.parse_args(argv)
    if args.batch_size is not None and args.batch_size < 1:
        parser.error("--batch-size must be at least 1")
    return args


def _print_statistics(db) -> int:
    stats = backfill.statistics(db)
    print(f"Campaigns:                 {stats.total_campaigns}")
    print(f"Campaigns needing backfill: {stats.campaigns_needing_backfill}")
    print(f"Missing tickets:           {stats.total_missing_tickets}")
    print(f"Largest gap:               {stats.largest_missing_count}")
    return stats.campaigns_needing_backfill


def _confirm(prompt: str) -> bool:
    answer = input(f"{prompt} [y/N] ").strip().lower()
    return answer in ("y", "yes", "s", "sim")


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = _parse_args(argv)
    with get_db_session() as db:
        pending = _print_statistics(db)
        if args.stats_only:
            return 0

        if args.campaign_id:
            if not args.yes and not _confirm(f"Backfill campaign {args.campaign_id}?"):
                print("Aborted.")
                return 1
            try:
                result = backfill.repair_campaign(db, args.campaign_id, args.batch_size)
            except NotFoundError as exc:
                print(f"Error: {exc.message} ({args.campaign_id})")
                return 2
            print(
                f"{result.campaign_title}: needed {result.total_needed}, "
                f"had {result.existing}, created {result.created}, "
                f"failed batches {result.errors}"
            )
            return 0 if result.errors == 0 else 3

        if pending == 0:
            print("Nothing to do.")
            return 0
        for candidate in backfill.campaigns_needing_repair(db)[:10]:
            print(f"  {candidate.campaign_id}  {candidate.title!r}  missing {candidate.missing_count}")
        if not args.yes and not _confirm(f"Backfill {pending} campaigns?"):
            print("Aborted.")
            return 1
        outcome = backfill.repair_all(db, args.batch_size)
        print(
            f"Processed {outcome.campaigns_processed} campaigns, "
            f"created {outcome.total_created} tickets, {outcome.total_errors} failed batches"
        )
        return 0 if outcome.total_errors == 0 else 3


if __name__ == "__main__":
    sys.exit(main())
