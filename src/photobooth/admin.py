"""Maintenance commands for the analytics data in Redis.

    photobooth-admin migrate-analytics
    photobooth-admin cleanup-random-mix
    photobooth-admin clear-analytics --scope daily --date 2025-10-01
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import redis.asyncio as aioredis
from tqdm import tqdm

from .analytics import AnalyticsService
from .config import Settings
from .redis_store import RedisStore

logger = logging.getLogger(__name__)

RANDOM_MIX_PROMPT_ID = "randomMix"


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def migrated_key(metrics_key: str) -> Optional[str]:
    """
    Map a legacy metrics key to its analytics equivalent.

    metrics:today:{date}:{metric} -> analytics:daily:{date}:{metric}:total
    metrics:lifetime:{metric}     -> analytics:lifetime:{metric}:total

    Returns None for keys with any other shape.
    """
    parts = metrics_key.split(":")
    if len(parts) == 4 and parts[1] == "today":
        return f"analytics:daily:{parts[2]}:{parts[3]}:total"
    if len(parts) == 3 and parts[1] == "lifetime":
        return f"analytics:lifetime:{parts[2]}:total"
    return None


async def _scan(client: aioredis.Redis, pattern: str) -> List[str]:
    return sorted([key async for key in client.scan_iter(match=pattern)])


async def migrate_analytics(client: aioredis.Redis) -> int:
    """Copy metrics counters into analytics keys, skipping targets that exist."""
    keys = await _scan(client, "metrics:*")
    logger.info(f"Found {len(keys)} existing metrics keys")

    migrated = 0
    for key in tqdm(keys, desc="Migrating metrics"):
        target = migrated_key(key)
        if target is None:
            continue
        if await client.exists(target):
            logger.debug(f"Skipping {key}: {target} already exists")
            continue
        value = int(await client.get(key) or 0)
        await client.set(target, value)
        migrated += 1

    logger.info(f"Migration completed, migrated {migrated} metrics")
    return migrated


async def cleanup_random_mix(client: aioredis.Redis) -> int:
    """Remove the randomMix pseudo-prompt from leaderboards and analytics keys."""
    removed = 0

    leaderboards = await _scan(client, "analytics:leaderboard:*")
    for key in tqdm(leaderboards, desc="Cleaning leaderboards"):
        if await client.zrem(key, RANDOM_MIX_PROMPT_ID):
            logger.info(f"Removed {RANDOM_MIX_PROMPT_ID} from {key}")
            removed += 1

    stray = [key for key in await _scan(client, f"*{RANDOM_MIX_PROMPT_ID}*") if "analytics" in key]
    for key in tqdm(stray, desc="Deleting keys"):
        await client.delete(key)
        logger.info(f"Removed key: {key}")
        removed += 1

    if removed == 0:
        logger.info(f"No {RANDOM_MIX_PROMPT_ID} entries found in analytics data")
    return removed


async def _run(args: argparse.Namespace) -> int:
    settings = Settings.from_env(args.env_file)
    store = RedisStore(settings)
    if not await store.connect():
        logger.error("Redis not available, nothing to do")
        await store.close()
        return 1

    try:
        if args.command == "migrate-analytics":
            await migrate_analytics(store.client)
        elif args.command == "cleanup-random-mix":
            await cleanup_random_mix(store.client)
        elif args.command == "clear-analytics":
            deleted = await AnalyticsService(store).clear_analytics(args.scope, args.date)
            print(f"Deleted {deleted} keys")
    finally:
        await store.close()
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Photobooth analytics maintenance")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file with the Redis settings",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("migrate-analytics", help="Copy metrics:* counters into analytics:* keys")
    sub.add_parser("cleanup-random-mix", help="Remove randomMix from analytics data")
    clear = sub.add_parser("clear-analytics", help="Delete analytics keys")
    clear.add_argument(
        "--scope",
        choices=["daily", "lifetime", "all"],
        default="daily",
        help="Which keys to delete (default: daily)",
    )
    clear.add_argument(
        "--date",
        type=str,
        default=None,
        help="Day to clear for --scope daily, YYYY-MM-DD (default: today, UTC)",
    )

    args = parser.parse_args()
    setup_logging(args.verbose)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
