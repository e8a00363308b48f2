"""Contest and gallery submissions: media files, moderation and votes."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from ..config import Settings
from ..prompts.catalog import prompt_display_name
from .store import ContestFiles, ContestStore, paginate, sort_entries

logger = logging.getLogger(__name__)

GALLERY_CONTEST_ID = "gallery-submissions"
GALLERY_LIMIT = 100

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"
MODERATION_STATUSES = (PENDING, APPROVED, REJECTED)

IMAGE_DATA_URL_RE = re.compile(r"^data:image/([a-zA-Z0-9]+);base64,(.+)$", re.DOTALL)
VIDEO_DATA_URL_RE = re.compile(r"^data:video/([a-zA-Z0-9]+);base64,(.+)$", re.DOTALL)
MEDIA_FILENAME_RE = re.compile(r"^[a-f0-9-]+(-video)?\.(jpg|jpeg|png|gif|webp|mp4|webm)$", re.IGNORECASE)


class EntryNotFoundError(LookupError):
    """No entry with that ID in the contest."""


def decode_image_data_url(data_url: str) -> Tuple[bytes, str]:
    """
    Decode and validate an image data URL.

    Returns:
        (image bytes, file extension) with jpeg normalized to jpg

    Raises:
        ValueError: Not an image data URL, or Pillow cannot read it
    """
    match = IMAGE_DATA_URL_RE.match(data_url)
    if not match:
        raise ValueError("Invalid image data URL")
    ext = "jpg" if match.group(1).lower() == "jpeg" else match.group(1).lower()
    try:
        data = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Invalid image data: {e}") from e
    return data, ext


def decode_video_data_url(data_url: str) -> Tuple[bytes, str]:
    match = VIDEO_DATA_URL_RE.match(data_url)
    if not match:
        raise ValueError("Invalid video data URL")
    try:
        return base64.b64decode(match.group(2), validate=True), match.group(1).lower()
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 video data: {e}") from e


def is_valid_media_filename(filename: str) -> bool:
    return bool(MEDIA_FILENAME_RE.match(filename))


class ContestService:
    """Saves entries to disk and Redis, and reads them back from either."""

    def __init__(
        self,
        settings: Settings,
        store: ContestStore,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.store = store
        self.files = ContestFiles(settings.contest_dir)
        self.http_client = http_client or httpx.AsyncClient(timeout=60.0, follow_redirects=True)

    async def close(self) -> None:
        await self.http_client.aclose()

    def media_url(self, contest_id: str, filename: Optional[str]) -> Optional[str]:
        if not filename:
            return None
        return f"{self.settings.api_base_url}/api/contest/{contest_id}/image/{filename}"

    async def _download(self, url: str) -> Optional[Tuple[bytes, str]]:
        """Returns (body, content type), or None when the download fails."""
        try:
            response = await self.http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to download contest media {url}: {e}")
            return None
        return response.content, response.headers.get("content-type", "")

    async def _save_image(self, contest_id: str, entry_id: str, image_url: str) -> Optional[str]:
        if image_url.startswith("data:"):
            data, ext = decode_image_data_url(image_url)
        else:
            downloaded = await self._download(image_url)
            if downloaded is None:
                return None
            data, content_type = downloaded
            ext = "png" if "png" in content_type else "jpg"

        filename = f"{entry_id}.{ext}"
        path = self.files.write_media(contest_id, filename, data)
        logger.info(f"Saved contest image to {path} ({len(data)} bytes)")
        return filename

    async def _save_video(self, contest_id: str, entry_id: str, video_url: str) -> Optional[str]:
        if video_url.startswith("data:"):
            data, ext = decode_video_data_url(video_url)
        else:
            downloaded = await self._download(video_url)
            if downloaded is None:
                return None
            data, content_type = downloaded
            ext = "webm" if "webm" in content_type else "mp4"

        filename = f"{entry_id}-video.{ext}"
        path = self.files.write_media(contest_id, filename, data)
        logger.info(f"Saved contest video to {path} ({len(data)} bytes)")
        return filename

    async def save_entry(
        self,
        contest_id: str,
        image_url: Optional[str],
        prompt: str,
        video_url: Optional[str] = None,
        is_video: bool = False,
        username: Optional[str] = None,
        address: Optional[str] = None,
        tweet_id: Optional[str] = None,
        tweet_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """
        Persist a contest entry and its media.

        Args:
            contest_id: Contest identifier, e.g. halloween
            image_url: Data URL or remote URL of the image
            prompt: Prompt (or style name) the image was made with
            video_url: Data URL or remote URL of the video, if any
            is_video: Whether the entry is a video submission

        Returns:
            The stored entry dict

        Raises:
            ValueError: A data URL could not be decoded
        """
        entry_id = str(uuid.uuid4())
        timestamp = int(time.time() * 1000)
        self.files.ensure_dir(contest_id)

        image_filename = await self._save_image(contest_id, entry_id, image_url) if image_url else None
        video_filename = None
        if video_url and is_video:
            video_filename = await self._save_video(contest_id, entry_id, video_url)

        entry = {
            "id": entry_id,
            "contestId": contest_id,
            "timestamp": timestamp,
            "prompt": prompt,
            "username": username or "Anonymous",
            "address": address or None,
            "tweetId": tweet_id or None,
            "tweetUrl": tweet_url or None,
            "imageFilename": image_filename,
            "imagePath": str(self.files.media_path(contest_id, image_filename)) if image_filename else None,
            "imageUrl": self.media_url(contest_id, image_filename),
            "videoFilename": video_filename,
            "videoPath": str(self.files.media_path(contest_id, video_filename)) if video_filename else None,
            "videoUrl": self.media_url(contest_id, video_filename),
            "isVideo": bool(is_video),
            "moderationStatus": PENDING,
            "metadata": {
                **(metadata or {}),
                "submittedAt": datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).isoformat(),
            },
        }

        if self.store.is_ready():
            await self.store.store_entry(contest_id, entry)
        else:
            logger.warning("Redis not available, contest entry only saved to filesystem")
        self.files.save_entry(entry)
        return entry

    async def submit_to_gallery(
        self,
        image_url: str,
        prompt_key: str,
        video_url: Optional[str] = None,
        is_video: bool = False,
        username: Optional[str] = None,
        address: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> dict:
        if not prompt_key:
            raise ValueError("promptKey is required")
        if prompt_key == "custom":
            raise ValueError("Custom prompts cannot be submitted to the gallery")

        return await self.save_entry(
            GALLERY_CONTEST_ID,
            image_url,
            prompt_display_name(prompt_key),
            video_url=video_url,
            is_video=is_video,
            username=username,
            address=address,
            metadata={**(metadata or {}), "promptKey": prompt_key, "submittedAt": int(time.time() * 1000)},
        )

    async def get_approved_gallery_entries(self, prompt_key: str) -> List[dict]:
        status = APPROVED if self.settings.moderation_enabled else None
        result = await self.get_entries(GALLERY_CONTEST_ID, limit=GALLERY_LIMIT, moderation_status=status)
        return [e for e in result["entries"] if (e.get("metadata") or {}).get("promptKey") == prompt_key]

    async def get_entries(
        self,
        contest_id: str,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "timestamp",
        order: str = "desc",
        moderation_status: Optional[str] = None,
    ) -> dict:
        if self.store.is_ready():
            return await self.store.get_entries(contest_id, page, limit, sort_by, order, moderation_status)

        entries = self.files.load_all(contest_id)
        if moderation_status:
            entries = [e for e in entries if e.get("moderationStatus") == moderation_status]
        return paginate(sort_entries(entries, sort_by, order), page, limit)

    async def get_entry(self, contest_id: str, entry_id: str) -> Optional[dict]:
        if self.store.is_ready():
            return await self.store.get_entry(contest_id, entry_id)
        return self.files.load_entry(contest_id, entry_id)

    async def get_stats(self, contest_id: str) -> dict:
        if self.store.is_ready():
            return await self.store.get_stats(contest_id)
        return self.files.stats(contest_id)

    async def _require_entry(self, contest_id: str, entry_id: str) -> dict:
        entry = await self.get_entry(contest_id, entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Contest entry {contest_id}:{entry_id} not found")
        return entry

    async def _update(self, contest_id: str, entry: dict) -> None:
        if self.store.is_ready():
            await self.store.store_entry(contest_id, entry, count_entry=False)
        self.files.save_entry(entry)

    async def update_moderation(
        self,
        contest_id: str,
        entry_id: str,
        status: str,
        moderated_by: Optional[str] = None,
    ) -> dict:
        if status not in MODERATION_STATUSES:
            raise ValueError("Invalid moderation status. Must be PENDING, APPROVED, or REJECTED")

        entry = await self._require_entry(contest_id, entry_id)
        entry["moderationStatus"] = status
        entry["moderatedAt"] = int(time.time() * 1000)
        if moderated_by:
            entry["moderatedBy"] = moderated_by
        await self._update(contest_id, entry)
        logger.info(f"Updated moderation status for {entry_id} to {status}")
        return entry

    async def vote(self, contest_id: str, entry_id: str, username: str) -> dict:
        entry = await self._require_entry(contest_id, entry_id)
        votes = entry.setdefault("votes", [])
        if any(v.get("username") == username for v in votes):
            raise ValueError("You have already voted for this entry")

        votes.append({"username": username, "timestamp": int(time.time() * 1000)})
        await self._update(contest_id, entry)
        logger.info(f"User {username} voted for entry {entry_id}")
        return entry

    async def unvote(self, contest_id: str, entry_id: str, username: str) -> dict:
        entry = await self._require_entry(contest_id, entry_id)
        votes = entry.get("votes") or []
        remaining = [v for v in votes if v.get("username") != username]
        if len(remaining) == len(votes):
            raise ValueError("You have not voted for this entry")

        entry["votes"] = remaining
        await self._update(contest_id, entry)
        logger.info(f"User {username} removed vote for entry {entry_id}")
        return entry

    async def delete_entry(self, contest_id: str, entry_id: str) -> None:
        entry = await self._require_entry(contest_id, entry_id)
        self.files.remove(contest_id, entry.get("imageFilename"))
        self.files.remove(contest_id, entry.get("videoFilename"))
        self.files.remove(contest_id, f"{entry_id}.json")
        if self.store.is_ready():
            await self.store.delete_entry(contest_id, entry_id)
