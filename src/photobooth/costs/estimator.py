"""Fetch-and-cache wrappers around the cost-estimate endpoints.

Image and camera-angle quotes come from the generation backend's estimate
call; video and audio quotes come from public REST endpoints on the
socket host. Identical parameter sets are answered from cache.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..errors import EstimateError
from ..generation.backend import GenerationBackend
from ..workflows.camera_angles import CAMERA_ANGLE_DEFAULTS, CAMERA_ANGLE_MODEL
from ..workflows.video_settings import (
    VIDEO_CONFIG,
    calculate_video_dimensions,
    calculate_video_frames,
    get_video_quality_config,
)

logger = logging.getLogger(__name__)

NO_COST = "—"

IMAGE_ESTIMATE_DEFAULTS = {
    "network": "fast",
    "previewCount": 10,
    "stepCount": 7,
    "scheduler": "DPM++ SDE",
    "guidance": 2,
    "contextImages": 0,
    "cnEnabled": False,
    "guideImage": False,
}


def parse_cost(value: Any) -> Optional[float]:
    """Quotes come back as numbers or numeric strings; NaN means unknown."""
    if value is None:
        return None
    try:
        cost = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(cost):
        return None
    return cost


@dataclass(frozen=True)
class CostEstimate:
    cost: Optional[float]
    cost_in_usd: Optional[float] = None

    @property
    def formatted(self) -> str:
        return f"{self.cost:.2f}" if self.cost is not None else NO_COST

    def to_dict(self) -> dict:
        return {"cost": self.cost, "costInUSD": self.cost_in_usd, "formattedCost": self.formatted}


def params_hash(params: Dict[str, Any]) -> str:
    return json.dumps(params, sort_keys=True, default=str)


class CostEstimator:
    """Estimates job costs, remembering answers per parameter set."""

    def __init__(
        self,
        socket_url: str = "https://socket.sogni.ai",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.socket_url = socket_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._cache: Dict[str, CostEstimate] = {}

    async def close(self) -> None:
        await self.client.aclose()

    def clear(self) -> None:
        self._cache.clear()

    def cached(self, kind: str, params: Dict[str, Any]) -> Optional[CostEstimate]:
        return self._cache.get(f"{kind}:{params_hash(params)}")

    def _remember(self, kind: str, params: Dict[str, Any], estimate: CostEstimate) -> CostEstimate:
        self._cache[f"{kind}:{params_hash(params)}"] = estimate
        return estimate

    async def estimate_image(self, backend: GenerationBackend, params: Dict[str, Any]) -> Optional[CostEstimate]:
        """
        Estimate an image batch through the backend.

        Args:
            backend: Connected generation backend
            params: Must include `model` and `imageCount`; other fields
                fall back to the standard defaults

        Returns:
            CostEstimate, or None when required params are missing
        """
        if not params.get("model") or not params.get("imageCount"):
            return None

        estimate_params = {
            "network": params.get("network") or IMAGE_ESTIMATE_DEFAULTS["network"],
            "model": params["model"],
            "imageCount": params["imageCount"],
            "previewCount": params.get("previewCount", IMAGE_ESTIMATE_DEFAULTS["previewCount"]),
            "stepCount": params.get("stepCount", IMAGE_ESTIMATE_DEFAULTS["stepCount"]),
            "scheduler": params.get("scheduler") or IMAGE_ESTIMATE_DEFAULTS["scheduler"],
            "guidance": params.get("guidance", IMAGE_ESTIMATE_DEFAULTS["guidance"]),
            "contextImages": params.get("contextImages", IMAGE_ESTIMATE_DEFAULTS["contextImages"]),
            "cnEnabled": params.get("cnEnabled", IMAGE_ESTIMATE_DEFAULTS["cnEnabled"]),
            "guideImage": params.get("guideImage", IMAGE_ESTIMATE_DEFAULTS["guideImage"]),
            "denoiseStrength": params.get("denoiseStrength"),
            "tokenType": params.get("tokenType") or "spark",
        }
        return await self._backend_estimate("image", backend, estimate_params)

    async def estimate_camera_angle(
        self,
        backend: GenerationBackend,
        width: int = 1024,
        height: int = 1024,
        job_count: int = 1,
        token_type: str = "spark",
    ) -> CostEstimate:
        estimate_params = {
            "network": "fast",
            "model": CAMERA_ANGLE_MODEL,
            "imageCount": job_count,
            "previewCount": 10,
            "stepCount": CAMERA_ANGLE_DEFAULTS["steps"],
            "scheduler": "simple",
            "guidance": CAMERA_ANGLE_DEFAULTS["guidance"],
            "contextImages": 1,
            "cnEnabled": False,
            "guideImage": False,
            "tokenType": token_type,
        }
        # Size does not change the quote but distinguishes cache entries
        cache_params = dict(estimate_params, width=width, height=height)
        cached = self.cached("camera-angle", cache_params)
        if cached is not None:
            return cached
        estimate = await self._backend_estimate("camera-angle-raw", backend, estimate_params)
        return self._remember("camera-angle", cache_params, estimate)

    async def _backend_estimate(self, kind: str, backend: GenerationBackend, estimate_params: Dict[str, Any]) -> CostEstimate:
        cached = self.cached(kind, estimate_params)
        if cached is not None:
            return cached

        result = await backend.estimate_cost(estimate_params)
        estimate = CostEstimate(
            cost=parse_cost((result or {}).get("token")),
            cost_in_usd=parse_cost((result or {}).get("usd")),
        )
        logger.debug(f"{kind} estimate for {estimate_params.get('model')}: {estimate.formatted}")
        return self._remember(kind, estimate_params, estimate)

    async def estimate_video(
        self,
        image_width: Optional[int],
        image_height: Optional[int],
        resolution: str = "480p",
        quality: str = "fast",
        frames: Optional[int] = None,
        fps: int = VIDEO_CONFIG["defaultFps"],
        duration: float = VIDEO_CONFIG["defaultDuration"],
        job_count: int = 1,
        token_type: str = "spark",
    ) -> Optional[CostEstimate]:
        """Quote a video job. Returns None until the source size is known."""
        if not image_width or not image_height:
            return None
        preset = get_video_quality_config(quality)

        width, height = calculate_video_dimensions(image_width, image_height, resolution)
        frames = frames if frames is not None else calculate_video_frames(duration)
        params = {
            "tokenType": token_type,
            "modelId": preset["model"],
            "width": width,
            "height": height,
            "frames": frames,
            "fps": fps,
            "steps": preset["steps"],
            "jobCount": job_count,
        }
        cached = self.cached("video", params)
        if cached is not None:
            return cached

        url = (
            f"{self.socket_url}/api/v1/job-video/estimate/{token_type}/{quote(preset['model'], safe='')}"
            f"/{width}/{height}/{frames}/{fps}/{preset['steps']}/{job_count}"
        )
        estimate = await self._fetch_quote(url, token_type, "video")
        return self._remember("video", params, estimate)

    async def estimate_audio(
        self,
        model_id: Optional[str],
        duration: float,
        steps: int,
        audio_count: int = 1,
        token_type: str = "spark",
    ) -> Optional[CostEstimate]:
        if not model_id:
            return None
        params = {
            "tokenType": token_type,
            "modelId": model_id,
            "duration": duration,
            "steps": steps,
            "audioCount": audio_count,
        }
        cached = self.cached("audio", params)
        if cached is not None:
            return cached

        url = (
            f"{self.socket_url}/api/v1/job-audio/estimate/{token_type}/{quote(model_id, safe='')}"
            f"/{duration:g}/{steps}/{audio_count}"
        )
        estimate = await self._fetch_quote(url, token_type, "audio")
        return self._remember("audio", params, estimate)

    async def _fetch_quote(self, url: str, token_type: str, kind: str) -> CostEstimate:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise EstimateError(
                f"Failed to get {kind} cost estimate: {e.response.reason_phrase}",
                code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise EstimateError(f"Failed to get {kind} cost estimate: {e}") from e

        project = ((data or {}).get("quote") or {}).get("project") or {}
        token_cost = project.get("costInSpark") if token_type == "spark" else project.get("costInSogni")
        return CostEstimate(cost=parse_cost(token_cost), cost_in_usd=parse_cost(project.get("costInUSD")))
