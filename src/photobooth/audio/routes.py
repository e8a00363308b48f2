"""Audio upload endpoints."""

import logging
import os
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from ..errors import TranscodeError
from .transcode import AudioTranscoder

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_UPLOAD_BYTES = 20 * 1024 * 1024
ALLOWED_MIME_TYPES = ("audio/mpeg", "audio/mp3", "audio/mp4", "audio/x-m4a", "audio/m4a")
ALLOWED_EXTENSIONS = (".mp3", ".m4a")
M4A_MIME_TYPES = ("audio/mp4", "audio/x-m4a")


def _transcoder(request: Request) -> AudioTranscoder:
    return request.app.state.transcoder


@router.get("/health")
async def audio_health(request: Request):
    transcoder = _transcoder(request)
    try:
        version = await transcoder.version()
    except TranscodeError as e:
        return JSONResponse(status_code=500, content={"status": "error", "ffmpeg": False, "message": e.message})
    return {"status": "ok", "ffmpeg": True, "version": version, "tempDir": str(transcoder.temp_dir)}


@router.post("/mp3-to-m4a")
async def mp3_to_m4a(request: Request, audio: Optional[UploadFile] = File(None)):
    """Convert an uploaded MP3 to M4A; M4A uploads are returned unchanged."""
    if audio is None:
        raise HTTPException(status_code=400, detail="No audio file provided")

    filename = audio.filename or "audio"
    stem, ext = os.path.splitext(filename)
    ext = ext.lower()
    content_type = (audio.content_type or "").lower()

    if content_type not in ALLOWED_MIME_TYPES and ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported audio format. Received: {content_type} ({ext}). Supported: MP3, M4A",
        )

    data = await audio.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Audio file too large (max 20MB)")

    output_filename = f"{stem}.m4a"
    logger.info(f"Audio upload {filename} ({content_type}, {len(data)} bytes)")

    if ext == ".m4a" or content_type in M4A_MIME_TYPES:
        return Response(
            content=data,
            media_type="audio/mp4",
            headers={
                "Content-Disposition": f'attachment; filename="{output_filename}"',
                "X-Original-Format": "M4A",
                "X-Transcoded": "false",
            },
        )

    try:
        output, elapsed_ms = await _transcoder(request).transcode_to_m4a(data, ext or ".mp3")
    except TranscodeError as e:
        logger.error(f"Audio transcode failed: {e.message}")
        return JSONResponse(status_code=500, content={"error": "Failed to transcode audio", "details": e.message})

    return Response(
        content=output,
        media_type="audio/mp4",
        headers={
            "Content-Disposition": f'attachment; filename="{output_filename}"',
            "X-Original-Format": (ext[1:] or "mp3").upper(),
            "X-Transcoded": "true",
            "X-Transcode-Time-Ms": str(elapsed_ms),
            "X-Original-Size": str(len(data)),
        },
    )
