"""Contest entry persistence: Redis first, JSON files on disk as backup."""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

from redis.exceptions import RedisError

from ..metrics import MetricsService
from ..redis_store import RedisStore

logger = logging.getLogger(__name__)

ENTRY_PREFIX = "contest:entry:"
INDEX_PREFIX = "contest:index:"


def entry_key(contest_id: str, entry_id: str) -> str:
    return f"{ENTRY_PREFIX}{contest_id}:{entry_id}"


def index_key(contest_id: str) -> str:
    return f"{INDEX_PREFIX}{contest_id}"


def empty_stats() -> dict:
    return {"totalEntries": 0, "uniqueUsers": 0, "oldestEntry": None, "newestEntry": None}


def user_identifier(entry: dict) -> str:
    return entry.get("address") or entry.get("username") or "anonymous"


def _field_key(entry: dict, field: str) -> tuple:
    # Missing values sort first, then numbers, then strings
    value = entry.get(field)
    if value is None:
        return (0, 0)
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


def sort_entries(entries: List[dict], sort_by: str = "timestamp", order: str = "desc") -> List[dict]:
    """Sort by votes (newest first on ties) or by any entry field."""
    descending = order != "asc"
    if sort_by == "votes":
        # Stable sorts: secondary key first
        by_time = sorted(entries, key=lambda e: e.get("timestamp") or 0, reverse=True)
        return sorted(by_time, key=lambda e: len(e.get("votes") or []), reverse=descending)
    return sorted(entries, key=lambda e: _field_key(e, sort_by), reverse=descending)


def paginate(entries: List[dict], page: int, limit: int) -> dict:
    start = (page - 1) * limit
    return {
        "entries": entries[start:start + limit],
        "total": len(entries),
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(len(entries) / limit) if limit else 0,
    }


class ContestStore:
    """Redis-backed entry store with a sorted-set index per contest."""

    def __init__(self, store: RedisStore, metrics: Optional[MetricsService] = None):
        self.store = store
        self.metrics = metrics

    def is_ready(self) -> bool:
        return self.store.is_ready()

    async def store_entry(self, contest_id: str, entry: dict, count_entry: bool = True) -> bool:
        if not self.is_ready():
            logger.warning("Redis not connected, cannot store contest entry")
            return False

        entry_id = entry["id"]
        try:
            await self.store.client.set(entry_key(contest_id, entry_id), json.dumps(entry))
            await self.store.client.zadd(index_key(contest_id), {entry_id: entry["timestamp"]})
        except RedisError as e:
            logger.error(f"Error storing contest entry {contest_id}:{entry_id}: {e}")
            return False

        if count_entry and self.metrics is not None:
            await self.metrics.increment(f"contest:{contest_id}:entries", 1)
        logger.info(f"Stored contest entry {contest_id}:{entry_id}")
        return True

    async def _load_all(self, contest_id: str, descending: bool = True) -> List[dict]:
        client = self.store.client
        if descending:
            ids = await client.zrevrange(index_key(contest_id), 0, -1)
        else:
            ids = await client.zrange(index_key(contest_id), 0, -1)
        if not ids:
            return []
        values = await client.mget([entry_key(contest_id, entry_id) for entry_id in ids])
        return [json.loads(value) for value in values if value]

    async def get_entries(
        self,
        contest_id: str,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "timestamp",
        order: str = "desc",
        moderation_status: Optional[str] = None,
    ) -> dict:
        """Filter first, then sort, then paginate."""
        if not self.is_ready():
            return paginate([], 1, limit)

        try:
            entries = await self._load_all(contest_id, descending=order != "asc")
        except RedisError as e:
            logger.error(f"Error getting contest entries for {contest_id}: {e}")
            return paginate([], 1, limit)

        if moderation_status:
            entries = [e for e in entries if e.get("moderationStatus") == moderation_status]
        if sort_by != "timestamp":
            entries = sort_entries(entries, sort_by, order)
        return paginate(entries, page, limit)

    async def get_entry(self, contest_id: str, entry_id: str) -> Optional[dict]:
        if not self.is_ready():
            return None
        try:
            data = await self.store.client.get(entry_key(contest_id, entry_id))
        except RedisError as e:
            logger.error(f"Error getting contest entry {contest_id}:{entry_id}: {e}")
            return None
        return json.loads(data) if data else None

    async def get_stats(self, contest_id: str) -> dict:
        if not self.is_ready():
            return empty_stats()

        client = self.store.client
        try:
            total = await client.zcard(index_key(contest_id))
            if not total:
                return empty_stats()
            oldest = await client.zrange(index_key(contest_id), 0, 0, withscores=True)
            newest = await client.zrange(index_key(contest_id), -1, -1, withscores=True)
            entries = await self._load_all(contest_id)
        except RedisError as e:
            logger.error(f"Error getting contest stats for {contest_id}: {e}")
            return empty_stats()

        return {
            "totalEntries": total,
            "uniqueUsers": len({user_identifier(e) for e in entries}),
            "oldestEntry": int(oldest[0][1]) if oldest else None,
            "newestEntry": int(newest[0][1]) if newest else None,
        }

    async def delete_entry(self, contest_id: str, entry_id: str) -> bool:
        if not self.is_ready():
            return False
        try:
            await self.store.client.delete(entry_key(contest_id, entry_id))
            await self.store.client.zrem(index_key(contest_id), entry_id)
        except RedisError as e:
            logger.error(f"Error deleting contest entry {contest_id}:{entry_id}: {e}")
            return False
        logger.info(f"Deleted contest entry {contest_id}:{entry_id}")
        return True


class ContestFiles:
    """Media and `{entryId}.json` metadata under uploads/contest/{contestId}/."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def contest_dir(self, contest_id: str) -> Path:
        return self.root / contest_id

    def ensure_dir(self, contest_id: str) -> Path:
        path = self.contest_dir(contest_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def metadata_path(self, contest_id: str, entry_id: str) -> Path:
        return self.contest_dir(contest_id) / f"{entry_id}.json"

    def write_media(self, contest_id: str, filename: str, data: bytes) -> Path:
        path = self.ensure_dir(contest_id) / filename
        with open(path, "wb") as f:
            f.write(data)
        return path

    def save_entry(self, entry: dict) -> None:
        self.ensure_dir(entry["contestId"])
        with open(self.metadata_path(entry["contestId"], entry["id"]), "w") as f:
            json.dump(entry, f, indent=2)

    def load_entry(self, contest_id: str, entry_id: str) -> Optional[dict]:
        path = self.metadata_path(contest_id, entry_id)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return json.load(f)

    def load_all(self, contest_id: str) -> List[dict]:
        path = self.contest_dir(contest_id)
        if not path.is_dir():
            return []
        entries = []
        for json_file in sorted(path.glob("*.json")):
            try:
                with open(json_file, "r") as f:
                    entries.append(json.load(f))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable contest metadata {json_file}: {e}")
        return entries

    def remove(self, contest_id: str, filename: Optional[str]) -> bool:
        if not filename:
            return False
        path = self.contest_dir(contest_id) / filename
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"Could not delete contest file: {path}")
            return False
        logger.info(f"Deleted contest file: {path}")
        return True

    def media_path(self, contest_id: str, filename: str) -> Path:
        return self.contest_dir(contest_id) / filename

    def stats(self, contest_id: str) -> Dict[str, Any]:
        entries = self.load_all(contest_id)
        if not entries:
            return empty_stats()
        timestamps = [e["timestamp"] for e in entries if e.get("timestamp") is not None]
        return {
            "totalEntries": len(entries),
            "uniqueUsers": len({e.get("address") or e.get("username") for e in entries} - {None, ""}),
            "oldestEntry": min(timestamps) if timestamps else None,
            "newestEntry": max(timestamps) if timestamps else None,
        }
