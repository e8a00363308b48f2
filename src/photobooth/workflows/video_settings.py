"""Video model catalogs, quality presets and dimension/frame math."""

import math
from typing import Dict, Tuple

VIDEO_MODELS = {
    "speed": "wan_v2.2-14b-fp8_i2v_lightx2v",
    "quality": "wan_v2.2-14b-fp8_i2v",
}

S2V_MODELS = {
    "speed": "wan_v2.2-14b-fp8_s2v_lightx2v",
    "quality": "wan_v2.2-14b-fp8_s2v",
}

ANIMATE_MOVE_MODELS = {"speed": "wan_v2.2-14b-fp8_animate-move_lightx2v"}
ANIMATE_REPLACE_MODELS = {"speed": "wan_v2.2-14b-fp8_animate-replace_lightx2v"}

VIDEO_QUALITY_PRESETS: Dict[str, dict] = {
    "fast": {"model": VIDEO_MODELS["speed"], "steps": 4, "label": "Fast",
             "description": "Quick generation (~12-20s)"},
    "balanced": {"model": VIDEO_MODELS["speed"], "steps": 8, "label": "Balanced",
                 "description": "Good balance of speed and quality (~25-40s)"},
    "quality": {"model": VIDEO_MODELS["quality"], "steps": 20, "label": "High Quality",
                "description": "Higher quality, slower (~3-4 min)"},
    "pro": {"model": VIDEO_MODELS["quality"], "steps": 30, "label": "Pro",
            "description": "Maximum quality (~6-9 min)"},
}

S2V_QUALITY_PRESETS: Dict[str, dict] = {
    "fast": {"model": S2V_MODELS["speed"], "steps": 4, "label": "Fast", "guidance": 1.0,
             "shift": 8.0, "sampler": "uni_pc", "scheduler": "simple"},
    "balanced": {"model": S2V_MODELS["speed"], "steps": 8, "label": "Balanced", "guidance": 1.0,
                 "shift": 8.0, "sampler": "uni_pc", "scheduler": "simple"},
    "quality": {"model": S2V_MODELS["quality"], "steps": 20, "label": "High Quality", "guidance": 6.0,
                "shift": 8.0, "sampler": "uni_pc", "scheduler": "simple"},
    "pro": {"model": S2V_MODELS["quality"], "steps": 30, "label": "Pro", "guidance": 6.0,
            "shift": 8.0, "sampler": "uni_pc", "scheduler": "simple"},
}

ANIMATE_MOVE_QUALITY_PRESETS: Dict[str, dict] = {
    "fast": {"model": ANIMATE_MOVE_MODELS["speed"], "steps": 6, "label": "Fast", "guidance": 1.0,
             "shift": 8.0, "sampler": "euler", "scheduler": "simple"},
    "balanced": {"model": ANIMATE_MOVE_MODELS["speed"], "steps": 8, "label": "Balanced", "guidance": 1.0,
                 "shift": 8.0, "sampler": "euler", "scheduler": "simple"},
}

ANIMATE_REPLACE_QUALITY_PRESETS: Dict[str, dict] = {
    "fast": {"model": ANIMATE_REPLACE_MODELS["speed"], "steps": 6, "label": "Fast", "guidance": 1.0,
             "shift": 8.0, "sampler": "euler", "scheduler": "simple"},
    "balanced": {"model": ANIMATE_REPLACE_MODELS["speed"], "steps": 8, "label": "Balanced", "guidance": 1.0,
                 "shift": 8.0, "sampler": "euler", "scheduler": "simple"},
}

VIDEO_RESOLUTIONS: Dict[str, dict] = {
    "480p": {"maxDimension": 480, "label": "480p"},
    "580p": {"maxDimension": 580, "label": "580p"},
    "720p": {"maxDimension": 720, "label": "720p"},
}

VIDEO_CONFIG = {
    "defaultFrames": 81,
    "fpsOptions": (16, 32),
    "defaultFps": 32,
    "minDuration": 1,
    "maxDuration": 8,
    "durationStep": 0.5,
    "defaultDuration": 5,
    "minFrames": 17,
    "maxFrames": 129,
    "dimensionDivisor": 16,
}

DEFAULT_VIDEO_SETTINGS = {
    "resolution": "480p",
    "quality": "fast",
    "frames": 81,
    "fps": 32,
    "duration": 5,
}

# WAN 2.2 generates at 16fps; higher output rates are interpolated
WAN22_BASE_FPS = 16


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_video_dimensions(image_width: int, image_height: int, resolution: str = "480p") -> Tuple[int, int]:
    """
    Scale a source image to the video resolution.

    The shorter side becomes the resolution target; both sides are
    multiples of 16.

    Returns:
        (width, height)
    """
    if resolution not in VIDEO_RESOLUTIONS:
        raise ValueError(f"Unknown video resolution: {resolution}")

    divisor = VIDEO_CONFIG["dimensionDivisor"]
    target = round_half_up(VIDEO_RESOLUTIONS[resolution]["maxDimension"] / divisor) * divisor

    if image_width <= image_height:
        height = round_half_up((image_height * target / image_width) / divisor) * divisor
        return target, height

    width = round_half_up((image_width * target / image_height) / divisor) * divisor
    return width, target


def get_video_quality_config(quality: str) -> dict:
    if quality not in VIDEO_QUALITY_PRESETS:
        raise ValueError(f"Invalid quality preset: {quality}")
    return VIDEO_QUALITY_PRESETS[quality]


def calculate_video_frames(duration: float = VIDEO_CONFIG["defaultDuration"]) -> int:
    return int(WAN22_BASE_FPS * duration + 1)


def calculate_video_duration(
    frames: int = VIDEO_CONFIG["defaultFrames"],
    fps: int = VIDEO_CONFIG["defaultFps"],
) -> int:
    return round_half_up((frames - 1) / fps)


def format_video_duration(seconds: float) -> str:
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"
