"""Contest and gallery submission endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel

from .service import ContestService, EntryNotFoundError, is_valid_media_filename

logger = logging.getLogger(__name__)

router = APIRouter()


class SubmitRequest(BaseModel):
    contestId: Optional[str] = None
    imageUrl: Optional[str] = None
    prompt: Optional[str] = None
    username: Optional[str] = None
    address: Optional[str] = None
    tweetId: Optional[str] = None
    tweetUrl: Optional[str] = None
    metadata: Optional[dict] = None


class GallerySubmitRequest(BaseModel):
    imageUrl: Optional[str] = None
    videoUrl: Optional[str] = None
    isVideo: bool = False
    promptKey: Optional[str] = None
    username: Optional[str] = None
    address: Optional[str] = None
    metadata: Optional[dict] = None


class ModerationRequest(BaseModel):
    moderationStatus: Optional[str] = None
    moderatedBy: Optional[str] = None


class VoteRequest(BaseModel):
    username: Optional[str] = None


def _service(request: Request) -> ContestService:
    return request.app.state.contest


@router.post("/submit")
async def submit_entry(body: SubmitRequest, request: Request):
    """Submit a contest entry after a successful share."""
    if not body.contestId or not body.imageUrl or not body.prompt:
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: contestId, imageUrl, and prompt are required",
        )
    try:
        entry = await _service(request).save_entry(
            body.contestId,
            body.imageUrl,
            body.prompt,
            username=body.username,
            address=body.address,
            tweet_id=body.tweetId,
            tweet_url=body.tweetUrl,
            metadata=body.metadata,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Error submitting contest entry: {e}")
        raise HTTPException(status_code=500, detail="Failed to submit contest entry")

    logger.info(f"New contest entry saved for {body.contestId}: {entry['id']}")
    return {
        "success": True,
        "message": "Contest entry submitted successfully",
        "entry": {"id": entry["id"], "timestamp": entry["timestamp"]},
    }


@router.get("/gallery-submissions/approved/{prompt_key}")
async def approved_gallery_submissions(prompt_key: str, request: Request):
    entries = await _service(request).get_approved_gallery_entries(prompt_key)
    logger.debug(f"Gallery entries for {prompt_key}: {len(entries)}")
    return {"success": True, "promptKey": prompt_key, "entries": entries, "total": len(entries)}


@router.post("/gallery-submissions/entry")
async def submit_gallery_entry(body: GallerySubmitRequest, request: Request):
    if not body.imageUrl or not body.promptKey:
        raise HTTPException(status_code=400, detail="Missing required fields: imageUrl and promptKey are required")
    try:
        entry = await _service(request).submit_to_gallery(
            body.imageUrl,
            body.promptKey,
            video_url=body.videoUrl,
            is_video=body.isVideo,
            username=body.username,
            address=body.address,
            metadata=body.metadata,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Error submitting to gallery: {e}")
        raise HTTPException(status_code=500, detail="Failed to submit to gallery")

    return {
        "success": True,
        "message": "Gallery submission successful. Your image will be reviewed by moderators.",
        "entry": {"id": entry["id"], "timestamp": entry["timestamp"]},
    }


@router.get("/{contest_id}/entries")
async def list_entries(
    contest_id: str,
    request: Request,
    page: int = 1,
    limit: int = 20,
    sortBy: str = "timestamp",
    order: str = "desc",
    moderationStatus: Optional[str] = None,
):
    page = max(page, 1)
    limit = max(limit, 1)
    result = await _service(request).get_entries(contest_id, page, limit, sortBy, order, moderationStatus)
    return {"success": True, **result}


@router.get("/{contest_id}/entry/{entry_id}")
async def get_entry(contest_id: str, entry_id: str, request: Request):
    entry = await _service(request).get_entry(contest_id, entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Contest entry not found")
    return {"success": True, "entry": entry}


@router.get("/{contest_id}/stats")
async def get_stats(contest_id: str, request: Request):
    return {"success": True, "stats": await _service(request).get_stats(contest_id)}


@router.get("/{contest_id}/image/{filename}")
async def serve_media(contest_id: str, filename: str, request: Request):
    if not is_valid_media_filename(filename) or "/" in contest_id or ".." in contest_id:
        raise HTTPException(status_code=400, detail="Invalid filename")

    path = _service(request).files.media_path(contest_id, filename)
    if not path.is_file():
        logger.error(f"Contest media not found at {path}")
        raise HTTPException(status_code=404, detail="Media file not found")
    return FileResponse(path)


@router.patch("/{contest_id}/entry/{entry_id}/moderation")
async def update_moderation(contest_id: str, entry_id: str, body: ModerationRequest, request: Request):
    try:
        entry = await _service(request).update_moderation(
            contest_id, entry_id, body.moderationStatus, body.moderatedBy
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EntryNotFoundError:
        raise HTTPException(status_code=404, detail="Contest entry not found")
    return {"success": True, "message": "Moderation status updated successfully", "entry": entry}


@router.post("/{contest_id}/entry/{entry_id}/vote")
async def vote(contest_id: str, entry_id: str, body: VoteRequest, request: Request):
    if not body.username:
        raise HTTPException(status_code=401, detail="Authentication required. Please provide username.")
    try:
        entry = await _service(request).vote(contest_id, entry_id, body.username)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EntryNotFoundError:
        raise HTTPException(status_code=404, detail="Contest entry not found")
    return {
        "success": True,
        "message": "Vote recorded successfully",
        "voteCount": len(entry["votes"]),
        "votes": entry["votes"],
    }


@router.delete("/{contest_id}/entry/{entry_id}/vote")
async def unvote(contest_id: str, entry_id: str, body: VoteRequest, request: Request):
    if not body.username:
        raise HTTPException(status_code=401, detail="Authentication required. Please provide username.")
    try:
        entry = await _service(request).unvote(contest_id, entry_id, body.username)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EntryNotFoundError:
        raise HTTPException(status_code=404, detail="Contest entry not found")
    return {
        "success": True,
        "message": "Vote removed successfully",
        "voteCount": len(entry["votes"]),
        "votes": entry["votes"],
    }


@router.delete("/{contest_id}/entry/{entry_id}")
async def delete_entry(contest_id: str, entry_id: str, request: Request):
    try:
        await _service(request).delete_entry(contest_id, entry_id)
    except EntryNotFoundError:
        raise HTTPException(status_code=404, detail="Contest entry not found")
    return {"success": True, "message": "Contest entry deleted successfully"}
