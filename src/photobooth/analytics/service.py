"""Download/share counters and leaderboards per style prompt.

Key layout:
    analytics:daily:{date}:{type}:{promptId}        daily counter
    analytics:lifetime:{type}:{promptId}            lifetime counter
    analytics:metadata:{promptId}                   hash of last-seen metadata
    analytics:active:{date}                         set of prompts seen that day
    analytics:leaderboard:daily:{date}:{type}       sorted set
    analytics:leaderboard:lifetime:{type}           sorted set

where type is one of downloads, shares, combined.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from redis.exceptions import RedisError

from ..metrics import today_utc
from ..redis_store import RedisStore

logger = logging.getLogger(__name__)

TRACK_TYPES = ("downloads", "shares", "combined")
PERIODS = ("daily", "lifetime")
DAILY_TTL_SECONDS = 30 * 24 * 60 * 60
SUMMARY_TOP_N = 10


def daily_counter_key(date: str, kind: str, prompt_id: str) -> str:
    return f"analytics:daily:{date}:{kind}:{prompt_id}"


def lifetime_counter_key(kind: str, prompt_id: str) -> str:
    return f"analytics:lifetime:{kind}:{prompt_id}"


def metadata_key(prompt_id: str) -> str:
    return f"analytics:metadata:{prompt_id}"


def active_key(date: str) -> str:
    return f"analytics:active:{date}"


def leaderboard_key(period: str, kind: str, date: Optional[str] = None) -> str:
    if period == "daily":
        return f"analytics:leaderboard:daily:{date}:{kind}"
    return f"analytics:leaderboard:lifetime:{kind}"


def _flatten_metadata(metadata: dict) -> Dict[str, str]:
    """Redis hashes only hold strings."""
    return {str(k): "" if v is None else str(v) for k, v in metadata.items()}


class AnalyticsService:
    """Tracks downloads and shares per prompt and answers leaderboard queries."""

    def __init__(self, store: RedisStore):
        self.store = store

    async def track_download(self, prompt_id: Optional[str], metadata: Optional[dict] = None) -> bool:
        return await self._track("downloads", "lastDownload", prompt_id, metadata)

    async def track_share(self, prompt_id: Optional[str], metadata: Optional[dict] = None) -> bool:
        return await self._track("shares", "lastShare", prompt_id, metadata)

    async def _track(
        self,
        kind: str,
        last_field: str,
        prompt_id: Optional[str],
        metadata: Optional[dict],
    ) -> bool:
        if not prompt_id:
            logger.warning(f"Cannot track {kind}: promptId is missing")
            return False
        if not self.store.is_ready():
            logger.warning(f"Redis not available, skipping {kind} tracking for {prompt_id}")
            return False

        date = today_utc()
        daily = daily_counter_key(date, kind, prompt_id)
        daily_combined = daily_counter_key(date, "combined", prompt_id)

        try:
            pipe = self.store.client.pipeline(transaction=True)
            pipe.incr(daily)
            pipe.incr(daily_combined)
            pipe.incr(lifetime_counter_key(kind, prompt_id))
            pipe.incr(lifetime_counter_key("combined", prompt_id))

            pipe.zincrby(leaderboard_key("daily", kind, date), 1, prompt_id)
            pipe.zincrby(leaderboard_key("daily", "combined", date), 1, prompt_id)
            pipe.zincrby(leaderboard_key("lifetime", kind), 1, prompt_id)
            pipe.zincrby(leaderboard_key("lifetime", "combined"), 1, prompt_id)

            pipe.sadd(active_key(date), prompt_id)

            if metadata:
                fields = {last_field: str(int(time.time() * 1000))}
                fields.update(_flatten_metadata(metadata))
                pipe.hset(metadata_key(prompt_id), mapping=fields)

            for key in (
                daily,
                daily_combined,
                leaderboard_key("daily", kind, date),
                leaderboard_key("daily", "combined", date),
                active_key(date),
            ):
                pipe.expire(key, DAILY_TTL_SECONDS)

            await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to track {kind} for {prompt_id}: {e}")
            return False

        if self.store.verbose:
            logger.info(f"Tracked {kind} for prompt {prompt_id}")
        return True

    async def get_prompt_analytics(self, prompt_id: str, date: Optional[str] = None) -> Optional[dict]:
        if not self.store.is_ready():
            return None

        date = date or today_utc()
        client = self.store.client
        try:
            daily_values = await client.mget([daily_counter_key(date, k, prompt_id) for k in TRACK_TYPES])
            lifetime_values = await client.mget([lifetime_counter_key(k, prompt_id) for k in TRACK_TYPES])
            metadata = await client.hgetall(metadata_key(prompt_id))
        except RedisError as e:
            logger.error(f"Failed to read analytics for {prompt_id}: {e}")
            return None

        return {
            "promptId": prompt_id,
            "date": date,
            "daily": {k: int(v or 0) for k, v in zip(TRACK_TYPES, daily_values)},
            "lifetime": {k: int(v or 0) for k, v in zip(TRACK_TYPES, lifetime_values)},
            "metadata": metadata or {},
        }

    async def get_top_prompts(
        self,
        kind: str = "combined",
        period: str = "lifetime",
        date: Optional[str] = None,
        limit: int = 50,
    ) -> List[dict]:
        """
        Read a leaderboard, highest count first.

        Args:
            kind: downloads, shares or combined
            period: daily or lifetime
            date: YYYY-MM-DD, used for the daily period
            limit: Maximum number of entries

        Returns:
            List of {promptId, count, rank}
        """
        if not self.store.is_ready():
            return []

        if period == "daily":
            date = date or today_utc()
        key = leaderboard_key(period, kind, date)

        try:
            rows = await self.store.client.zrevrange(key, 0, limit - 1, withscores=True)
        except RedisError as e:
            logger.error(f"Failed to read leaderboard {key}: {e}")
            return []

        return [
            {"promptId": prompt_id, "count": int(score), "rank": index + 1}
            for index, (prompt_id, score) in enumerate(rows)
        ]

    async def get_daily_summary(self, date: Optional[str] = None) -> Optional[dict]:
        if not self.store.is_ready():
            return None

        date = date or today_utc()
        try:
            active_count = await self.store.client.scard(active_key(date))
        except RedisError as e:
            logger.error(f"Failed to read active prompts for {date}: {e}")
            return None

        if not active_count:
            return {
                "date": date,
                "totalPrompts": 0,
                "totals": {k: 0 for k in TRACK_TYPES},
                "topPrompts": {k: [] for k in TRACK_TYPES},
            }

        top = {k: await self.get_top_prompts(k, "daily", date, SUMMARY_TOP_N) for k in TRACK_TYPES}
        return {
            "date": date,
            "totalPrompts": active_count,
            "totals": {k: sum(row["count"] for row in top[k]) for k in TRACK_TYPES},
            "topPrompts": top,
        }

    async def get_lifetime_summary(self) -> Optional[dict]:
        if not self.store.is_ready():
            return None

        top = {k: await self.get_top_prompts(k, "lifetime", None, SUMMARY_TOP_N) for k in TRACK_TYPES}
        unique = {row["promptId"] for row in top["downloads"]} | {row["promptId"] for row in top["shares"]}
        return {
            "totalPrompts": len(unique),
            "totals": {k: sum(row["count"] for row in top[k]) for k in TRACK_TYPES},
            "topPrompts": top,
        }

    async def clear_analytics(self, scope: str = "daily", date: Optional[str] = None) -> int:
        """Delete analytics keys. Returns the number of keys removed."""
        if not self.store.is_ready():
            return 0

        if scope == "daily":
            date = date or today_utc()
            patterns = [
                f"analytics:daily:{date}:*",
                f"analytics:leaderboard:daily:{date}:*",
                active_key(date),
            ]
        elif scope == "lifetime":
            patterns = ["analytics:lifetime:*", "analytics:leaderboard:lifetime:*"]
        elif scope == "all":
            patterns = ["analytics:*"]
        else:
            raise ValueError(f"Unknown analytics scope: {scope}")

        client = self.store.client
        deleted = 0
        try:
            for pattern in patterns:
                keys = [key async for key in client.scan_iter(match=pattern)]
                if keys:
                    deleted += await client.delete(*keys)
        except RedisError as e:
            logger.error(f"Failed to clear {scope} analytics: {e}")
            return deleted

        logger.info(f"Cleared {deleted} analytics keys ({scope})")
        return deleted
