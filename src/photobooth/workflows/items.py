"""Per-item progress state for angle and transition generation.

Each item moves pending -> generating -> ready | failed, and keeps every
successful result in `version_history` so a regenerate never loses the
previous output.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Sequence

from .camera_angles import AngleSlot, CameraAngleConfig

PENDING = "pending"
GENERATING = "generating"
READY = "ready"
FAILED = "failed"

_id_counter = itertools.count(1)


def generate_id(prefix: str) -> str:
    return f"{prefix}-{next(_id_counter)}-{int(time.time() * 1000)}"


@dataclass
class GenerationItem:
    id: str
    status: str = PENDING
    progress: float = 0
    error: Optional[str] = None
    worker_name: Optional[str] = None
    version_history: List[str] = field(default_factory=list)
    selected_version: int = 0

    @property
    def result_url(self) -> Optional[str]:
        if not self.version_history:
            return None
        return self.version_history[self.selected_version]

    def mark_started(self) -> None:
        self.status = GENERATING
        self.progress = 0
        self.error = None

    def update_progress(self, progress: float, worker_name: Optional[str] = None) -> None:
        self.progress = progress
        if worker_name:
            self.worker_name = worker_name

    def mark_complete(self, url: str) -> None:
        self.status = READY
        self.progress = 100
        self.error = None
        self.version_history.append(url)
        self.selected_version = len(self.version_history) - 1

    def mark_failed(self, error: str) -> None:
        self.status = FAILED
        self.progress = 0
        self.error = error

    def reset_for_regeneration(self) -> None:
        self.status = PENDING
        self.progress = 0
        self.error = None

    def select_version(self, index: int) -> None:
        if not 0 <= index < len(self.version_history):
            raise IndexError(f"No version {index} for item {self.id}")
        self.selected_version = index

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AngleGenerationItem(GenerationItem):
    index: int = 0
    slot_id: str = ""
    source_image_url: Optional[str] = None
    angle_config: CameraAngleConfig = field(default_factory=CameraAngleConfig)


@dataclass
class TransitionItem(GenerationItem):
    from_index: int = 0
    to_index: int = 0


def generatable_slots(slots: Sequence[AngleSlot]) -> List[AngleSlot]:
    """Original slots reuse the source image and are never generated."""
    return [slot for slot in slots if not slot.is_original]


def create_angle_generation_items(
    slots: Sequence[AngleSlot],
    source_image_url: Optional[str] = None,
) -> List[AngleGenerationItem]:
    """One pending item per generatable slot, indexed in that order."""
    return [
        AngleGenerationItem(
            id=generate_id("angle"),
            index=index,
            slot_id=slot.id,
            source_image_url=source_image_url,
            angle_config=slot.config,
        )
        for index, slot in enumerate(generatable_slots(slots))
    ]


def build_transitions(angle_count: int) -> List[TransitionItem]:
    """N angles -> N transitions; the last one loops back to the first."""
    if angle_count < 2:
        return []
    return [
        TransitionItem(id=generate_id("trans"), from_index=i, to_index=(i + 1) % angle_count)
        for i in range(angle_count)
    ]
