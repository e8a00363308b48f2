"""HTTP endpoints for prompt analytics."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from ..metrics import today_utc
from .service import AnalyticsService, PERIODS, TRACK_TYPES

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_TOP_LIMIT = 100


class TrackRequest(BaseModel):
    """Body for download/share tracking."""
    promptId: Optional[str] = None
    metadata: Optional[dict] = None


def _service(request: Request) -> AnalyticsService:
    return request.app.state.analytics


def _client_metadata(request: Request, metadata: Optional[dict]) -> dict:
    enriched = dict(metadata or {})
    enriched["userAgent"] = request.headers.get("user-agent", "")
    enriched["ip"] = request.client.host if request.client else ""
    enriched["timestamp"] = datetime.now(timezone.utc).isoformat()
    return enriched


@router.post("/track/download")
async def track_download(body: TrackRequest, request: Request):
    if not body.promptId:
        raise HTTPException(status_code=400, detail="promptId is required")

    await _service(request).track_download(body.promptId, _client_metadata(request, body.metadata))
    return {"success": True, "message": "Download tracked successfully", "promptId": body.promptId}


@router.post("/track/share")
async def track_share(body: TrackRequest, request: Request):
    if not body.promptId:
        raise HTTPException(status_code=400, detail="promptId is required")

    metadata = _client_metadata(request, body.metadata)
    metadata.setdefault("shareType", "unknown")
    await _service(request).track_share(body.promptId, metadata)
    return {"success": True, "message": "Share tracked successfully", "promptId": body.promptId}


@router.get("/prompt/{prompt_id}")
async def prompt_analytics(prompt_id: str, request: Request, date: Optional[str] = None):
    result = await _service(request).get_prompt_analytics(prompt_id, date)
    if result is None:
        raise HTTPException(status_code=404, detail="Analytics not available")
    return result


@router.get("/top")
async def top_prompts(
    request: Request,
    type: str = "combined",
    period: str = "lifetime",
    date: Optional[str] = None,
    limit: int = Query(50, ge=1),
):
    """Leaderboard for downloads, shares or combined, daily or lifetime."""
    if type not in TRACK_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid type. Must be one of: {', '.join(TRACK_TYPES)}")
    if period not in PERIODS:
        raise HTTPException(status_code=400, detail=f"Invalid period. Must be one of: {', '.join(PERIODS)}")
    if period == "daily" and not date:
        raise HTTPException(status_code=400, detail="date is required for daily period")

    limit = min(limit, MAX_TOP_LIMIT)
    results = await _service(request).get_top_prompts(type, period, date, limit)
    return {"type": type, "period": period, "date": date, "limit": limit, "results": results}


@router.get("/summary/daily")
async def daily_summary(request: Request, date: Optional[str] = None):
    summary = await _service(request).get_daily_summary(date)
    if summary is None:
        raise HTTPException(status_code=404, detail="Daily summary not available")
    return summary


@router.get("/summary/lifetime")
async def lifetime_summary(request: Request):
    summary = await _service(request).get_lifetime_summary()
    if summary is None:
        raise HTTPException(status_code=404, detail="Lifetime summary not available")
    return summary


@router.delete("/clear")
async def clear(
    request: Request,
    type: str = "daily",
    date: Optional[str] = None,
    confirm: bool = False,
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Set confirm=true to clear analytics")
    if type not in ("daily", "lifetime", "all"):
        raise HTTPException(status_code=400, detail="Invalid type. Must be one of: daily, lifetime, all")
    if type == "daily" and not date:
        raise HTTPException(status_code=400, detail="date is required when clearing daily analytics")

    deleted = await _service(request).clear_analytics(type, date)
    logger.warning(f"Analytics cleared: type={type} date={date} keys={deleted}")
    return {"success": True, "message": f"Cleared {type} analytics", "deletedKeys": deleted}


@router.get("/dashboard")
async def dashboard(request: Request):
    service = _service(request)
    today = today_utc()
    yesterday = (datetime.now(timezone.utc) - timedelta(days=1)).strftime("%Y-%m-%d")
    return {
        "today": await service.get_daily_summary(today),
        "yesterday": await service.get_daily_summary(yesterday),
        "lifetime": await service.get_lifetime_summary(),
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
