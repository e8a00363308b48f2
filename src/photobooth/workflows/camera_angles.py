"""Camera pose catalog for the Multiple Angles LoRA.

96 pose combinations: 8 azimuths x 4 elevations x 3 distances.
Multi-angle mode renders up to 16 poses from one source image.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Dict, List, Optional

CAMERA_ANGLE_MODEL = "qwen_image_edit_2511_fp8_lightning"

CAMERA_ANGLE_LORA = {
    "loras": ["multiple_angles"],
    "defaultStrength": 0.9,
}

CAMERA_ANGLE_DEFAULTS = {
    "steps": 5,
    "guidance": 1,
    "sampler": "euler",
    "scheduler": "simple",
}

MAX_ANGLES = 16

# Labels describe the direction the face points in the generated image
AZIMUTHS: List[dict] = [
    {"key": "front", "label": "Front", "prompt": "front view", "angle": 0},
    {"key": "front-right", "label": "Front Right", "prompt": "front-right quarter view", "angle": 45},
    {"key": "right", "label": "Right", "prompt": "right side view", "angle": 90},
    {"key": "back-right", "label": "Back Right", "prompt": "back-right quarter view", "angle": 135},
    {"key": "back", "label": "Back", "prompt": "back view", "angle": 180},
    {"key": "back-left", "label": "Back Left", "prompt": "back-left quarter view", "angle": 225},
    {"key": "left", "label": "Left", "prompt": "left side view", "angle": 270},
    {"key": "front-left", "label": "Front Left", "prompt": "front-left quarter view", "angle": 315},
]

ELEVATIONS: List[dict] = [
    {"key": "low-angle", "label": "Low Angle", "prompt": "low-angle shot", "angle": -30},
    {"key": "eye-level", "label": "Eye Level", "prompt": "eye-level shot", "angle": 0},
    {"key": "elevated", "label": "Elevated", "prompt": "elevated shot", "angle": 30},
    {"key": "high-angle", "label": "High Angle", "prompt": "high-angle shot", "angle": 60},
]

DISTANCES: List[dict] = [
    {"key": "close-up", "label": "Close-up", "prompt": "close-up", "scale": 0.6},
    {"key": "medium", "label": "Medium", "prompt": "medium shot", "scale": 1.0},
    {"key": "wide", "label": "Wide", "prompt": "wide shot", "scale": 1.8},
]

CAMERA_PRESETS: List[dict] = [
    {"key": "portrait-34", "label": "3/4 Portrait", "description": "Classic portrait angle",
     "azimuth": "front-right", "elevation": "eye-level", "distance": "medium"},
    {"key": "profile", "label": "Profile", "description": "Side profile view",
     "azimuth": "right", "elevation": "eye-level", "distance": "medium"},
    {"key": "hero", "label": "Hero Shot", "description": "Low angle, powerful pose",
     "azimuth": "front", "elevation": "low-angle", "distance": "medium"},
    {"key": "overhead", "label": "Overhead", "description": "Bird's eye view",
     "azimuth": "front", "elevation": "high-angle", "distance": "wide"},
    {"key": "closeup", "label": "Close-up", "description": "Intimate detail shot",
     "azimuth": "front", "elevation": "eye-level", "distance": "close-up"},
    {"key": "back-34", "label": "Over Shoulder", "description": "Back quarter view",
     "azimuth": "back-right", "elevation": "elevated", "distance": "medium"},
]

# Each preset starts with the original image, followed by generated angles
MULTI_ANGLE_PRESETS: List[dict] = [
    {
        "key": "simple-zoom-out",
        "label": "Simple Zoom Out",
        "description": "Original + zoomed out view",
        "angles": [
            {"azimuth": "front", "elevation": "eye-level", "distance": "close-up", "isOriginal": True},
            {"azimuth": "front", "elevation": "eye-level", "distance": "wide"},
        ],
    },
    {
        "key": "zoom-out-360",
        "label": "Zoom Out 360",
        "description": "Original + 4 angles - 360° rotation",
        "angles": [
            {"azimuth": "front", "elevation": "eye-level", "distance": "close-up", "isOriginal": True},
            {"azimuth": "right", "elevation": "eye-level", "distance": "close-up"},
            {"azimuth": "back", "elevation": "eye-level", "distance": "close-up"},
            {"azimuth": "left", "elevation": "eye-level", "distance": "close-up"},
            {"azimuth": "front", "elevation": "low-angle", "distance": "wide"},
        ],
    },
    {
        "key": "zoom-montage",
        "label": "Zoom Montage",
        "description": "Original + 6 dynamic angles",
        "angles": [
            {"azimuth": "front", "elevation": "eye-level", "distance": "close-up", "isOriginal": True},
            {"azimuth": "front-right", "elevation": "elevated", "distance": "medium"},
            {"azimuth": "right", "elevation": "eye-level", "distance": "wide"},
            {"azimuth": "back", "elevation": "high-angle", "distance": "medium"},
            {"azimuth": "back-left", "elevation": "low-angle", "distance": "close-up"},
            {"azimuth": "left", "elevation": "eye-level", "distance": "medium"},
            {"azimuth": "front", "elevation": "eye-level", "distance": "wide"},
        ],
    },
    {
        "key": "portrait-trio",
        "label": "Portrait Trio",
        "description": "Original + 3 classic portraits",
        "angles": [
            {"azimuth": "front", "elevation": "eye-level", "distance": "medium", "isOriginal": True},
            {"azimuth": "front-right", "elevation": "eye-level", "distance": "medium"},
            {"azimuth": "front-left", "elevation": "eye-level", "distance": "medium"},
            {"azimuth": "front", "elevation": "elevated", "distance": "medium"},
        ],
    },
]

_AZIMUTH_BY_KEY: Dict[str, dict] = {a["key"]: a for a in AZIMUTHS}
_ELEVATION_BY_KEY: Dict[str, dict] = {e["key"]: e for e in ELEVATIONS}
_DISTANCE_BY_KEY: Dict[str, dict] = {d["key"]: d for d in DISTANCES}

_slot_counter = itertools.count(1)


@dataclass
class CameraAngleConfig:
    azimuth: str = "front"
    elevation: str = "eye-level"
    distance: str = "medium"

    def to_dict(self) -> dict:
        return {"azimuth": self.azimuth, "elevation": self.elevation, "distance": self.distance}


@dataclass
class AngleSlot:
    """One position in a multi-angle set."""
    id: str
    azimuth: str
    elevation: str
    distance: str
    is_original: bool = False

    @property
    def config(self) -> CameraAngleConfig:
        return CameraAngleConfig(self.azimuth, self.elevation, self.distance)


def get_azimuth_config(key: str) -> dict:
    return _AZIMUTH_BY_KEY.get(key, AZIMUTHS[0])


def get_elevation_config(key: str) -> dict:
    return _ELEVATION_BY_KEY.get(key, ELEVATIONS[1])


def get_distance_config(key: str) -> dict:
    return _DISTANCE_BY_KEY.get(key, DISTANCES[1])


def build_camera_angle_prompt(azimuth: str, elevation: str, distance: str) -> str:
    """Prompt with the LoRA activation keyword: `<sks> {azimuth} {elevation} {distance}`."""
    return (
        f"<sks> {get_azimuth_config(azimuth)['prompt']} "
        f"{get_elevation_config(elevation)['prompt']} "
        f"{get_distance_config(distance)['prompt']}"
    )


def get_camera_preset(preset_key: str) -> Optional[CameraAngleConfig]:
    for preset in CAMERA_PRESETS:
        if preset["key"] == preset_key:
            return CameraAngleConfig(preset["azimuth"], preset["elevation"], preset["distance"])
    return None


def get_total_camera_angle_combinations() -> int:
    return len(AZIMUTHS) * len(ELEVATIONS) * len(DISTANCES)


def is_valid_camera_angle_config(config: CameraAngleConfig) -> bool:
    return (
        config.azimuth in _AZIMUTH_BY_KEY
        and config.elevation in _ELEVATION_BY_KEY
        and config.distance in _DISTANCE_BY_KEY
    )


def get_camera_angle_label(config: CameraAngleConfig) -> str:
    return (
        f"{get_azimuth_config(config.azimuth)['label']}, "
        f"{get_elevation_config(config.elevation)['label']}, "
        f"{get_distance_config(config.distance)['label']}"
    )


def create_slots_from_preset(preset_key: str) -> List[AngleSlot]:
    """Expand a multi-angle preset into slots; unknown keys give an empty list."""
    for preset in MULTI_ANGLE_PRESETS:
        if preset["key"] == preset_key:
            return [
                AngleSlot(
                    id=f"slot-{next(_slot_counter)}",
                    azimuth=angle["azimuth"],
                    elevation=angle["elevation"],
                    distance=angle["distance"],
                    is_original=angle.get("isOriginal", False),
                )
                for angle in preset["angles"]
            ]
    return []
