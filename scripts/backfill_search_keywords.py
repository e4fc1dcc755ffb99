#!/usr/bin/env python
"""Regenerate missing or stale search keywords for inventory items.

Connects with the POSTGRES_* settings (environment or .env).
"""

import argparse
import asyncio
import logging

from stockwise.database.crud import backfill_search_keywords
from stockwise.database.engine import AsyncSessionLocal, close_db


async def run(user_id: str | None, dry_run: bool) -> int:
    try:
        async with AsyncSessionLocal() as session:
            return await backfill_search_keywords(session, user_id=user_id, dry_run=dry_run)
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Backfill search keywords for inventory items")
    parser.add_argument("--user-id", help="Only backfill this tenant's catalog")
    parser.add_argument("--dry-run", action="store_true", help="Count stale items without writing")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    count = asyncio.run(run(args.user_id, args.dry_run))

    if args.dry_run:
        print(f"[DRY RUN] {count} item(s) have stale search keywords. No changes made.")
    else:
        print(f"Backfill complete. Items updated: {count}")
    return count


if __name__ == "__main__":
    main()
