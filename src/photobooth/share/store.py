"""Short-lived share records: Redis when available, memory otherwise."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable, Dict, Optional, Tuple

from redis.exceptions import RedisError

from ..redis_store import RedisStore

logger = logging.getLogger(__name__)

SHARE_TTL_SECONDS = 24 * 60 * 60


def share_key(share_id: str) -> str:
    return f"mobile-share:{share_id}"


class ShareStore:
    def __init__(
        self,
        store: RedisStore,
        ttl: int = SHARE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock
        self._memory: Dict[str, Tuple[float, dict]] = {}

    async def create(self, record: dict) -> str:
        share_id = uuid.uuid4().hex[:12]
        record = {**record, "createdAt": int(self.clock() * 1000)}

        if self.store.is_ready():
            try:
                await self.store.client.set(share_key(share_id), json.dumps(record), ex=self.ttl)
                return share_id
            except RedisError as e:
                logger.warning(f"Failed to store share {share_id} in Redis, keeping it in memory: {e}")

        self._prune()
        self._memory[share_id] = (self.clock() + self.ttl, record)
        return share_id

    async def get(self, share_id: str) -> Optional[dict]:
        if self.store.is_ready():
            try:
                data = await self.store.client.get(share_key(share_id))
            except RedisError as e:
                logger.warning(f"Failed to read share {share_id} from Redis: {e}")
            else:
                if data:
                    return json.loads(data)

        item = self._memory.get(share_id)
        if item is None:
            return None
        expires_at, record = item
        if expires_at <= self.clock():
            del self._memory[share_id]
            return None
        return record

    def _prune(self) -> None:
        now = self.clock()
        for share_id in [k for k, (expires_at, _) in self._memory.items() if expires_at <= now]:
            del self._memory[share_id]
