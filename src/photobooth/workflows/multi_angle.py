"""Re-render a portrait from other camera angles with the Multiple Angles LoRA."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from ..errors import (
    INSUFFICIENT_FUNDS_CODE,
    GenerationError,
    InsufficientFundsError,
    PhotoboothError,
    is_insufficient_funds,
)
from ..generation.backend import GenerationBackend
from ..generation.runner import normalize_progress
from .camera_angles import (
    CAMERA_ANGLE_DEFAULTS,
    CAMERA_ANGLE_LORA,
    CAMERA_ANGLE_MODEL,
    MAX_ANGLES,
    AngleSlot,
    CameraAngleConfig,
    build_camera_angle_prompt,
)
from .items import AngleGenerationItem, generatable_slots
from .media import load_image_bytes

logger = logging.getLogger(__name__)

CAMERA_ANGLE_TIMEOUT_SECONDS = 2 * 60
MAX_SEED = 2147483647
INSUFFICIENT_CREDITS_MESSAGE = "Insufficient credits"

# Result URLs embed the project ID: .../{PROJECT_ID}/complete-...
RESULT_URL_PROJECT_RE = re.compile(r"/([A-F0-9-]{36})/complete-", re.IGNORECASE)

UpdateCallback = Callable[[Dict[str, Any]], None]


def build_camera_angle_project(
    image_bytes: bytes,
    config: CameraAngleConfig,
    width: int,
    height: int,
    lora_strength: float = CAMERA_ANGLE_LORA["defaultStrength"],
    token_type: str = "spark",
    seed: Optional[int] = None,
    output_format: str = "jpg",
) -> Dict[str, Any]:
    return {
        "type": "image",
        "modelId": CAMERA_ANGLE_MODEL,
        "positivePrompt": build_camera_angle_prompt(config.azimuth, config.elevation, config.distance),
        "negativePrompt": "",
        "numberOfMedia": 1,
        "steps": CAMERA_ANGLE_DEFAULTS["steps"],
        "guidance": CAMERA_ANGLE_DEFAULTS["guidance"],
        "seed": seed if seed is not None else random.randrange(MAX_SEED),
        "sizePreset": "custom",
        "width": width,
        "height": height,
        "contextImages": [image_bytes],
        "tokenType": token_type,
        "loras": list(CAMERA_ANGLE_LORA["loras"]),
        "loraStrengths": [lora_strength],
        "sampler": CAMERA_ANGLE_DEFAULTS["sampler"],
        "scheduler": CAMERA_ANGLE_DEFAULTS["scheduler"],
        "outputFormat": output_format,
    }


def queue_status(position: int) -> str:
    return "Next in line" if position == 1 else f"Queue #{position}"


def _raise_for_failure(error: Dict[str, Any]) -> None:
    message = error.get("message") or "Generation failed"
    code = error.get("code")
    failure = GenerationError(message, code=code)
    if is_insufficient_funds(failure):
        raise InsufficientFundsError(INSUFFICIENT_CREDITS_MESSAGE, code=INSUFFICIENT_FUNDS_CODE)
    raise failure


async def _follow_project(
    backend: GenerationBackend,
    project_id: str,
    on_update: Optional[UpdateCallback],
) -> str:
    def notify(**fields) -> None:
        if on_update is not None:
            on_update(fields)

    async for event in backend.stream_events(project_id):
        if event.get("projectId") and event["projectId"] != project_id:
            continue

        event_type = event.get("type")
        if event_type == "started":
            notify(status="Processing", workerName=event.get("workerName"))
        elif event_type == "progress":
            progress = normalize_progress(event.get("progress"))
            if progress is not None:
                notify(progress=math.floor(progress * 100), status="Processing")
        elif event_type == "eta" and event.get("eta") is not None:
            notify(eta=event["eta"])
        elif event_type == "queued" and event.get("queuePosition") is not None:
            notify(status=queue_status(event["queuePosition"]))
        elif event_type == "jobCompleted":
            url = event.get("resultUrl")
            match = RESULT_URL_PROJECT_RE.search(url or "")
            if match and match.group(1).lower() != project_id.lower():
                continue
            if url:
                return url
        elif event_type == "jobFailed":
            _raise_for_failure(event.get("error") or {})
        elif event_type == "completed":
            urls = [u for u in (event.get("imageUrls") or []) if u]
            if urls:
                return urls[0]
            raise GenerationError("Generation completed but no image URL received")
        elif event_type == "failed":
            _raise_for_failure(event)

    raise GenerationError("Generation ended without a result")


async def generate_camera_angle(
    backend: GenerationBackend,
    image_bytes: bytes,
    config: CameraAngleConfig,
    width: int,
    height: int,
    lora_strength: float = CAMERA_ANGLE_LORA["defaultStrength"],
    token_type: str = "spark",
    on_update: Optional[UpdateCallback] = None,
    timeout: float = CAMERA_ANGLE_TIMEOUT_SECONDS,
) -> str:
    """
    Render one camera angle and return the result URL.

    Args:
        backend: Connected generation backend
        image_bytes: Source image
        config: Azimuth/elevation/distance to render
        width: Output width
        height: Output height
        lora_strength: Multiple Angles LoRA strength
        token_type: spark or sogni
        on_update: Receives dicts with progress/status/eta/workerName
        timeout: Seconds before giving up

    Raises:
        InsufficientFundsError: The account is out of credits
        GenerationError: The project failed, timed out or returned nothing
    """
    params = build_camera_angle_project(image_bytes, config, width, height, lora_strength, token_type)
    try:
        project_id = await backend.create_project(params)
    except PhotoboothError as e:
        if is_insufficient_funds(e):
            raise InsufficientFundsError(INSUFFICIENT_CREDITS_MESSAGE, code=INSUFFICIENT_FUNDS_CODE) from e
        raise

    logger.info(f"Camera angle project {project_id}: {params['positivePrompt']}")
    try:
        return await asyncio.wait_for(_follow_project(backend, project_id, on_update), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise GenerationError("Camera angle generation timed out") from e


async def generate_multiple_angles(
    backend: GenerationBackend,
    source_image_url: str,
    slots: Sequence[AngleSlot],
    width: int,
    height: int,
    items: Optional[List[AngleGenerationItem]] = None,
    lora_strength: float = CAMERA_ANGLE_LORA["defaultStrength"],
    token_type: str = "spark",
    http_client: Optional[httpx.AsyncClient] = None,
    on_out_of_credits: Optional[Callable[[], None]] = None,
    timeout: float = CAMERA_ANGLE_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """
    Render every non-original slot concurrently from one source image.

    `items`, when given, must come from `create_angle_generation_items` for
    the same slots; their state is updated as projects progress.

    Returns:
        {"success", "urls", "failedIndices", "errors"} where indices refer
        to the generatable (non-original) slots
    """
    targets = generatable_slots(slots)
    if len(slots) > MAX_ANGLES:
        raise ValueError(f"At most {MAX_ANGLES} angles are supported")

    try:
        image_bytes = await load_image_bytes(source_image_url, http_client)
    except PhotoboothError as e:
        message = e.message or "Failed to load source image"
        logger.error(f"Failed to load source image: {message}")
        for item in items or []:
            item.mark_failed(message)
        return {
            "success": False,
            "urls": [],
            "failedIndices": list(range(len(targets))),
            "errors": {i: message for i in range(len(targets))},
        }

    urls: List[Optional[str]] = [None] * len(targets)
    errors: Dict[int, str] = {}
    out_of_credits_reported = False

    async def run_one(index: int, slot: AngleSlot) -> None:
        nonlocal out_of_credits_reported
        item = items[index] if items else None
        if item is not None:
            item.mark_started()

        def on_update(update: Dict[str, Any]) -> None:
            if item is not None and "progress" in update:
                item.update_progress(update["progress"], update.get("workerName"))
            elif item is not None and update.get("workerName"):
                item.worker_name = update["workerName"]

        try:
            url = await generate_camera_angle(
                backend, image_bytes, slot.config, width, height,
                lora_strength=lora_strength,
                token_type=token_type,
                on_update=on_update,
                timeout=timeout,
            )
        except PhotoboothError as e:
            errors[index] = e.message
            if item is not None:
                item.mark_failed(e.message)
            if isinstance(e, InsufficientFundsError) and not out_of_credits_reported:
                out_of_credits_reported = True
                if on_out_of_credits is not None:
                    on_out_of_credits()
            return

        urls[index] = url
        if item is not None:
            item.mark_complete(url)

    await asyncio.gather(*(run_one(i, slot) for i, slot in enumerate(targets)))

    failed = sorted(errors)
    return {
        "success": not failed,
        "urls": [url for url in urls if url],
        "failedIndices": failed,
        "errors": errors,
    }
