"""360 orbit videos: angle images joined by looped video transitions.

The workflow runs in four steps:
- configure-angles: pick a preset or edit angle slots
- review-angles: generate and regenerate the angle images
- review-transitions: generate one video per neighbouring angle pair
- final-video: stitch the transitions (done client-side)
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
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
from .camera_angles import AngleSlot, create_slots_from_preset
from .items import (
    AngleGenerationItem,
    TransitionItem,
    READY,
    build_transitions,
    create_angle_generation_items,
)
from .media import load_image_bytes
from .multi_angle import MAX_SEED, INSUFFICIENT_CREDITS_MESSAGE, queue_status
from .video_settings import VIDEO_MODELS, calculate_video_dimensions, calculate_video_frames

logger = logging.getLogger(__name__)

CAMERA360_STEPS = ("configure-angles", "review-angles", "review-transitions", "final-video")

MAX_ATTEMPTS = 3
TRANSITION_TIMEOUT_SECONDS = 15 * 60
TRANSITION_FPS = 32

DEFAULT_360_TRANSITION_PROMPT = "smooth camera orbit around subject, consistent lighting, cinematic motion"

DEFAULT_360_NEGATIVE_PROMPT = (
    "色调艳丽，过曝，静态，细节模糊不清，字幕，风格，作品，画作，画面，静止，整体发灰，最差质量，"
    "低质量，JPEG压缩残留，丑陋的，残缺的，多余的手指，画得不好的手部，画得不好的脸部，畸形的，毁容的，"
    "形态畸形的肢体，手指融合，静止不动的画面，杂乱的背景，三条腿，背景人很多，倒着走"
)

TRANSITION_QUALITY_PRESETS: Dict[str, dict] = {
    "fast": {"model": VIDEO_MODELS["speed"], "steps": 4, "shift": 5.0, "guidance": 1.0, "label": "Fast"},
    "balanced": {"model": VIDEO_MODELS["speed"], "steps": 8, "shift": 5.0, "guidance": 1.0, "label": "Balanced"},
    "quality": {"model": VIDEO_MODELS["quality"], "steps": 20, "shift": 8.0, "guidance": 4.0, "label": "High Quality"},
    "pro": {"model": VIDEO_MODELS["quality"], "steps": 30, "shift": 8.0, "guidance": 4.0, "label": "Pro"},
}

DEFAULT_CAMERA360_SETTINGS = {
    "transitionPrompt": DEFAULT_360_TRANSITION_PROMPT,
    "negativePrompt": DEFAULT_360_NEGATIVE_PROMPT,
    "resolution": "480p",
    "quality": "balanced",
    "duration": 1.5,
    "musicPresetId": None,
    "musicStartOffset": 0,
}

UpdateCallback = Callable[[Dict[str, Any]], None]


def is_non_retryable(error: BaseException) -> bool:
    """Billing and auth failures will fail the same way on every attempt."""
    message = str(error).lower()
    return (
        is_insufficient_funds(error)
        or "credits" in message
        or "balance" in message
        or "unauthorized" in message
        or "forbidden" in message
    )


def build_transition_project(
    from_image: bytes,
    to_image: bytes,
    prompt: str,
    negative_prompt: str = DEFAULT_360_NEGATIVE_PROMPT,
    resolution: str = "480p",
    quality: str = "balanced",
    duration: float = 1.5,
    source_width: int = 1024,
    source_height: int = 1024,
    token_type: str = "spark",
    seed: Optional[int] = None,
) -> Dict[str, Any]:
    preset = TRANSITION_QUALITY_PRESETS.get(quality)
    if preset is None:
        raise ValueError(f"Invalid quality preset: {quality}")
    width, height = calculate_video_dimensions(source_width, source_height, resolution)

    return {
        "type": "video",
        "modelId": preset["model"],
        "positivePrompt": prompt,
        "negativePrompt": negative_prompt,
        "stylePrompt": "",
        "sizePreset": "custom",
        "width": width,
        "height": height,
        "steps": preset["steps"],
        "shift": preset["shift"],
        "guidance": preset["guidance"],
        "frames": calculate_video_frames(duration),
        "fps": TRANSITION_FPS,
        "numberOfMedia": 1,
        "numberOfPreviews": 3,
        "sampler": "euler",
        "scheduler": "simple",
        "disableNSFWFilter": True,
        "outputFormat": "mp4",
        "tokenType": token_type,
        "seed": seed if seed is not None else random.randrange(MAX_SEED),
        "referenceImage": from_image,
        "referenceImageEnd": to_image,
    }


def _event_progress(event: Dict[str, Any]) -> Optional[int]:
    step, step_count = event.get("step"), event.get("stepCount")
    if step is not None and step_count:
        return math.floor(step / step_count * 100)
    progress = normalize_progress(event.get("progress"))
    if progress is None:
        return None
    return math.floor(progress * 100)


async def _follow_transition(
    backend: GenerationBackend,
    project_id: str,
    on_update: Optional[UpdateCallback],
) -> Dict[str, Any]:
    def notify(**fields) -> None:
        if on_update is not None:
            on_update(fields)

    job_id = None
    async for event in backend.stream_events(project_id):
        event_type = event.get("type")
        job_id = event.get("jobId") or job_id

        if event_type == "started":
            notify(status="Processing", workerName=event.get("workerName"))
        elif event_type == "queued" and event.get("queuePosition") is not None:
            notify(status=queue_status(event["queuePosition"]))
        elif event_type == "progress":
            progress = _event_progress(event)
            if progress is not None:
                notify(progress=progress, workerName=event.get("workerName"))
        elif event_type == "eta" and event.get("eta") is not None:
            notify(eta=event["eta"])
        elif event_type in ("jobCompleted", "completed"):
            urls = event.get("videoUrls") or event.get("imageUrls") or []
            video_url = event.get("resultUrl") or event.get("result") or (urls[0] if urls else None)
            if not video_url:
                raise GenerationError("Generation completed but no video URL received")
            return {"videoUrl": video_url, "sdkProjectId": project_id, "sdkJobId": job_id}
        elif event_type == "jobFailed":
            error = event.get("error") or {}
            raise GenerationError(error.get("message") or "Video generation failed", code=error.get("code"))
        elif event_type == "failed":
            raise GenerationError(event.get("message") or "Video generation failed", code=event.get("code"))

    raise GenerationError("Generation ended without a video")


async def _transition_attempt(
    backend: GenerationBackend,
    params: Dict[str, Any],
    on_update: Optional[UpdateCallback],
    timeout: float,
) -> Dict[str, Any]:
    project_id = await backend.create_project(params)
    logger.info(f"Transition project {project_id} submitted ({params['width']}x{params['height']}, {params['frames']} frames)")
    try:
        return await asyncio.wait_for(_follow_transition(backend, project_id, on_update), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise GenerationError(f"Video project timeout after {int(timeout // 60)} minutes") from e


async def generate_transition(
    backend: GenerationBackend,
    from_image_url: str,
    to_image_url: str,
    prompt: str = DEFAULT_360_TRANSITION_PROMPT,
    negative_prompt: str = DEFAULT_360_NEGATIVE_PROMPT,
    resolution: str = "480p",
    quality: str = "balanced",
    duration: float = 1.5,
    source_width: int = 1024,
    source_height: int = 1024,
    token_type: str = "spark",
    on_update: Optional[UpdateCallback] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    max_attempts: int = MAX_ATTEMPTS,
    timeout: float = TRANSITION_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """
    Generate a video that moves the camera from one angle image to the next.

    Failed attempts are retried up to `max_attempts` times unless the error
    is a billing or authorization failure.

    Returns:
        {"videoUrl", "sdkProjectId", "sdkJobId"}

    Raises:
        InsufficientFundsError: The account is out of credits
        PhotoboothError: The last attempt failed
    """
    from_image = await load_image_bytes(from_image_url, http_client)
    to_image = await load_image_bytes(to_image_url, http_client)
    params = build_transition_project(
        from_image, to_image, prompt, negative_prompt, resolution, quality, duration,
        source_width, source_height, token_type,
    )

    last_error: Optional[PhotoboothError] = None
    for attempt in range(1, max_attempts + 1):
        if attempt > 1 and on_update is not None:
            on_update({"progress": 0})
        try:
            return await _transition_attempt(backend, params, on_update, timeout)
        except PhotoboothError as e:
            last_error = e
            if is_non_retryable(e):
                logger.error(f"Transition failed, not retrying: {e.message}")
                break
            logger.warning(f"Transition attempt {attempt}/{max_attempts} failed: {e.message}")

    if is_insufficient_funds(last_error):
        raise InsufficientFundsError(INSUFFICIENT_CREDITS_MESSAGE, code=INSUFFICIENT_FUNDS_CODE) from last_error
    raise last_error


async def generate_multiple_transitions(
    backend: GenerationBackend,
    transitions: Sequence[TransitionItem],
    angle_image_urls: Sequence[Optional[str]],
    settings: Optional[Dict[str, Any]] = None,
    source_width: int = 1024,
    source_height: int = 1024,
    token_type: str = "spark",
    http_client: Optional[httpx.AsyncClient] = None,
    on_out_of_credits: Optional[Callable[[], None]] = None,
    on_all_complete: Optional[Callable[[], None]] = None,
    max_attempts: int = MAX_ATTEMPTS,
    timeout: float = TRANSITION_TIMEOUT_SECONDS,
) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    Submit every transition at once and update the items as they finish.

    Returns:
        Mapping of transition ID to its result, or None when it failed
    """
    settings = {**DEFAULT_CAMERA360_SETTINGS, **(settings or {})}
    results: Dict[str, Optional[Dict[str, Any]]] = {}
    out_of_credits_reported = False
    logger.info(f"Starting {len(transitions)} transitions")

    async def run_one(transition: TransitionItem) -> None:
        nonlocal out_of_credits_reported
        transition.mark_started()

        from_url = angle_image_urls[transition.from_index] if transition.from_index < len(angle_image_urls) else None
        to_url = angle_image_urls[transition.to_index] if transition.to_index < len(angle_image_urls) else None
        if not from_url or not to_url:
            results[transition.id] = None
            transition.mark_failed("Missing angle images for transition")
            return

        def on_update(update: Dict[str, Any]) -> None:
            if "progress" in update:
                transition.update_progress(update["progress"], update.get("workerName"))
            elif update.get("workerName"):
                transition.worker_name = update["workerName"]

        try:
            result = await generate_transition(
                backend, from_url, to_url,
                prompt=settings["transitionPrompt"],
                negative_prompt=settings["negativePrompt"],
                resolution=settings["resolution"],
                quality=settings["quality"],
                duration=settings["duration"],
                source_width=source_width,
                source_height=source_height,
                token_type=token_type,
                on_update=on_update,
                http_client=http_client,
                max_attempts=max_attempts,
                timeout=timeout,
            )
        except PhotoboothError as e:
            results[transition.id] = None
            transition.mark_failed(e.message)
            if isinstance(e, InsufficientFundsError) and not out_of_credits_reported:
                out_of_credits_reported = True
                if on_out_of_credits is not None:
                    on_out_of_credits()
            return

        results[transition.id] = result
        transition.mark_complete(result["videoUrl"])

    await asyncio.gather(*(run_one(t) for t in transitions))
    if on_all_complete is not None:
        on_all_complete()
    return results


class Camera360Workflow:
    """State of one 360 session, from angle configuration to final video."""

    def __init__(self, source_image_url: str, preset_key: str = "zoom-out-360", settings: Optional[dict] = None):
        self.source_image_url = source_image_url
        self.settings = {**DEFAULT_CAMERA360_SETTINGS, **(settings or {})}
        self.step = CAMERA360_STEPS[0]
        self.slots: List[AngleSlot] = create_slots_from_preset(preset_key)
        self.angle_items: List[AngleGenerationItem] = []
        self.transitions: List[TransitionItem] = []
        self.final_video_url: Optional[str] = None

    def set_slots(self, slots: Sequence[AngleSlot]) -> None:
        self.slots = list(slots)
        self.angle_items = []
        self.transitions = []

    def prepare_angles(self) -> List[AngleGenerationItem]:
        self.angle_items = create_angle_generation_items(self.slots, self.source_image_url)
        self.step = "review-angles"
        return self.angle_items

    def angle_image_urls(self) -> List[Optional[str]]:
        """One URL per slot in order; original slots use the source image."""
        generated = iter(self.angle_items)
        urls: List[Optional[str]] = []
        for slot in self.slots:
            if slot.is_original:
                urls.append(self.source_image_url)
            else:
                item = next(generated, None)
                urls.append(item.result_url if item else None)
        return urls

    def angles_ready(self) -> bool:
        return bool(self.angle_items) and all(item.status == READY for item in self.angle_items)

    def prepare_transitions(self) -> List[TransitionItem]:
        if not self.angles_ready():
            raise ValueError("All angles must be ready before generating transitions")
        self.transitions = build_transitions(len(self.slots))
        self.step = "review-transitions"
        return self.transitions

    def transitions_ready(self) -> bool:
        return bool(self.transitions) and all(t.status == READY for t in self.transitions)

    def transition_video_urls(self) -> List[str]:
        return [t.result_url for t in self.transitions if t.result_url]

    def finish(self, final_video_url: Optional[str] = None) -> None:
        if not self.transitions_ready():
            raise ValueError("All transitions must be ready before the final video")
        self.final_video_url = final_video_url
        self.step = "final-video"

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "settings": self.settings,
            "slots": [
                {"id": s.id, **s.config.to_dict(), "isOriginal": s.is_original} for s in self.slots
            ],
            "angleItems": [item.to_dict() for item in self.angle_items],
            "transitions": [t.to_dict() for t in self.transitions],
            "finalVideoUrl": self.final_video_url,
        }
