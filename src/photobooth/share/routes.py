"""Mobile share links: create a record, then serve its landing page."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from .page import render_mobile_share_page
from .store import ShareStore

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateShareRequest(BaseModel):
    imageUrl: Optional[str] = None
    videoUrl: Optional[str] = None
    isVideo: bool = False
    twitterMessage: Optional[str] = None


def _store(request: Request) -> ShareStore:
    return request.app.state.shares


@router.post("/create")
async def create_share(body: CreateShareRequest, request: Request):
    if not body.imageUrl:
        raise HTTPException(status_code=400, detail="imageUrl is required")
    if body.isVideo and not body.videoUrl:
        raise HTTPException(status_code=400, detail="videoUrl is required for video shares")

    share_id = await _store(request).create(body.model_dump())
    share_url = f"{request.app.state.settings.api_base_url}/api/mobile-share/{share_id}"
    logger.info(f"Created mobile share {share_id} ({'video' if body.isVideo else 'photo'})")
    return {"shareId": share_id, "shareUrl": share_url}


@router.get("/{share_id}", response_class=HTMLResponse)
async def share_page(share_id: str, request: Request):
    record = await _store(request).get(share_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Share not found or expired")

    return HTMLResponse(
        render_mobile_share_page(
            record["imageUrl"],
            record.get("videoUrl"),
            record.get("isVideo", False),
            record.get("twitterMessage"),
        )
    )
