"""Usage metrics: daily and lifetime Redis counters."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from redis.exceptions import RedisError

from .redis_store import RedisStore

logger = logging.getLogger(__name__)

DAILY_TTL_SECONDS = 90 * 24 * 60 * 60

METRIC_NAMES = (
    "batches_generated",
    "photos_generated",
    "photos_enhanced",
    "photos_taken_camera",
    "photos_uploaded_browse",
    "twitter_shares",
)


def today_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def daily_key(date: str, metric: str) -> str:
    return f"metrics:today:{date}:{metric}"


def lifetime_key(metric: str) -> str:
    return f"metrics:lifetime:{metric}"


class MetricsService:
    """Increments and reads the counters behind the admin dashboard."""

    def __init__(self, store: RedisStore):
        self.store = store

    async def increment(self, metric: str, amount: int = 1, date: Optional[str] = None) -> bool:
        if not self.store.is_ready():
            if self.store.verbose:
                logger.debug(f"Redis not ready, skipping metric {metric}")
            return False

        date = date or today_utc()
        try:
            pipe = self.store.client.pipeline()
            pipe.incrby(daily_key(date, metric), amount)
            pipe.expire(daily_key(date, metric), DAILY_TTL_SECONDS)
            pipe.incrby(lifetime_key(metric), amount)
            await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to increment metric {metric}: {e}")
            return False

        if self.store.verbose:
            logger.info(f"Metric {metric} += {amount}")
        return True

    async def get_all_metrics(self, date: Optional[str] = None) -> dict:
        date = date or today_utc()
        today: Dict[str, int] = {name: 0 for name in METRIC_NAMES}
        lifetime: Dict[str, int] = {name: 0 for name in METRIC_NAMES}

        if not self.store.is_ready():
            return {"today": today, "lifetime": lifetime, "date": date}

        try:
            daily_values = await self.store.client.mget([daily_key(date, m) for m in METRIC_NAMES])
            lifetime_values = await self.store.client.mget([lifetime_key(m) for m in METRIC_NAMES])
        except RedisError as e:
            logger.error(f"Failed to read metrics: {e}")
            return {"today": today, "lifetime": lifetime, "date": date}

        for name, value in zip(METRIC_NAMES, daily_values):
            today[name] = int(value or 0)
        for name, value in zip(METRIC_NAMES, lifetime_values):
            lifetime[name] = int(value or 0)

        return {"today": today, "lifetime": lifetime, "date": date}


class IncrementRequest(BaseModel):
    amount: int = 1


router = APIRouter()


@router.get("")
@router.get("/")
async def get_metrics(request: Request, date: Optional[str] = None):
    """Return today's and lifetime counters."""
    service: MetricsService = request.app.state.metrics
    return await service.get_all_metrics(date)


@router.post("/increment/{metric}")
async def increment_metric(metric: str, body: IncrementRequest, request: Request):
    if metric not in METRIC_NAMES:
        raise HTTPException(status_code=400, detail=f"Unknown metric: {metric}")
    if body.amount < 1:
        raise HTTPException(status_code=400, detail="amount must be positive")

    service: MetricsService = request.app.state.metrics
    success = await service.increment(metric, body.amount)
    return {"success": success, "metric": metric, "amount": body.amount}
