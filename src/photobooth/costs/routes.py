"""Cost estimate endpoints for video, audio and camera-angle jobs."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, Response

from ..errors import EstimateError, classify_backend_error
from ..generation.routes import ensure_session_id, get_client_app_id
from .estimator import CostEstimator

logger = logging.getLogger(__name__)

router = APIRouter()

EMPTY_ESTIMATE = {"cost": None, "costInUSD": None, "formattedCost": "—"}


def _estimator(request: Request) -> CostEstimator:
    return request.app.state.costs


@router.get("/video")
async def video_estimate(
    request: Request,
    width: Optional[int] = None,
    height: Optional[int] = None,
    resolution: str = "480p",
    quality: str = "fast",
    frames: Optional[int] = None,
    fps: int = 32,
    duration: float = 5,
    jobCount: int = 1,
    tokenType: str = "spark",
):
    try:
        estimate = await _estimator(request).estimate_video(
            width, height, resolution, quality, frames, fps, duration, jobCount, tokenType
        )
    except EstimateError as e:
        logger.error(f"Video estimate failed: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return estimate.to_dict() if estimate else EMPTY_ESTIMATE


@router.get("/audio")
async def audio_estimate(
    request: Request,
    modelId: Optional[str] = None,
    duration: float = 30,
    steps: int = 8,
    audioCount: int = 1,
    tokenType: str = "spark",
):
    try:
        estimate = await _estimator(request).estimate_audio(modelId, duration, steps, audioCount, tokenType)
    except EstimateError as e:
        logger.error(f"Audio estimate failed: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    return estimate.to_dict() if estimate else EMPTY_ESTIMATE


@router.get("/camera-angle")
async def camera_angle_estimate(
    request: Request,
    response: Response,
    width: int = 1024,
    height: int = 1024,
    jobCount: int = 1,
    tokenType: str = "spark",
):
    session_id = ensure_session_id(request, response, request.app.state.settings)
    try:
        backend = await request.app.state.sessions.get_session_client(session_id, get_client_app_id(request))
        estimate = await _estimator(request).estimate_camera_angle(backend, width, height, jobCount, tokenType)
    except Exception as e:
        status_code, message = classify_backend_error(e)
        logger.error(f"Camera angle estimate failed: {e}")
        raise HTTPException(status_code=status_code, detail=message)
    return estimate.to_dict()
