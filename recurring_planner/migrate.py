"""
Legacy recurrence migration command.

Usage:
    python -m recurring_planner.migrate [--dry-run] [USER_ID]

Without a user id every user's legacy recurring tasks are migrated.
"""
import argparse
import asyncio
import sys
from typing import List, Optional

from recurring_planner.db.config import async_session_factory
from recurring_planner.db.init import init_db
from recurring_planner.services.pattern_service import PatternService
from recurring_planner.utils.logger import get_logger

logger = get_logger("recurring_planner.migrate")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Migrate legacy recurring tasks to patterns")
    parser.add_argument("user_id", nargs="?", help="Only migrate this user's tasks")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    return parser.parse_args(argv)


async def run(user_id: Optional[str], dry_run: bool) -> int:
    await init_db()
    async with async_session_factory() as session:
        service = PatternService(session)
        result = await service.migrate_all_legacy_items(user_id, dry_run=dry_run)

    logger.info("Migration summary", **result.model_dump())
    for error in result.errors:
        logger.error("Migration error", error=error)
    return 1 if result.errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.dry_run:
        logger.info("Dry run: no changes will be written")
    return asyncio.run(run(args.user_id, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
