"""Tests for the camera pose catalog, video math, item state and media loading."""

import httpx
import pytest

from photobooth.errors import GenerationError
from photobooth.workflows.camera_angles import (
    AZIMUTHS,
    DISTANCES,
    ELEVATIONS,
    CameraAngleConfig,
    build_camera_angle_prompt,
    create_slots_from_preset,
    get_camera_angle_label,
    get_camera_preset,
    get_total_camera_angle_combinations,
    is_valid_camera_angle_config,
)
from photobooth.workflows.items import (
    FAILED,
    GENERATING,
    PENDING,
    READY,
    GenerationItem,
    build_transitions,
    create_angle_generation_items,
)
from photobooth.workflows.media import load_image_bytes
from photobooth.workflows.video_settings import (
    calculate_video_dimensions,
    calculate_video_duration,
    calculate_video_frames,
    format_video_duration,
    get_video_quality_config,
)


# =============================================================================
# Video Settings
# =============================================================================

class TestVideoSettings:

    def test_portrait_dimensions(self):
        assert calculate_video_dimensions(1024, 1536, "480p") == (480, 720)

    def test_landscape_dimensions_round_to_16(self):
        assert calculate_video_dimensions(1920, 1080) == (848, 480)

    def test_square_dimensions(self):
        assert calculate_video_dimensions(1024, 1024, "720p") == (720, 720)

    def test_unknown_resolution(self):
        with pytest.raises(ValueError):
            calculate_video_dimensions(1024, 1024, "4k")

    def test_frames_and_duration(self):
        assert calculate_video_frames(5) == 81
        assert calculate_video_frames(1.5) == 25
        assert calculate_video_duration(81, 32) == 3
        assert format_video_duration(125) == "2:05"
        assert format_video_duration(9) == "0:09"

    def test_quality_presets(self):
        assert get_video_quality_config("fast")["steps"] == 4
        with pytest.raises(ValueError):
            get_video_quality_config("ultra")


# =============================================================================
# Camera Angles
# =============================================================================

class TestCameraAngles:

    def test_catalog_size(self):
        assert len(AZIMUTHS) == 8
        assert len(ELEVATIONS) == 4
        assert len(DISTANCES) == 3
        assert get_total_camera_angle_combinations() == 96

    def test_prompt_uses_activation_keyword(self):
        assert build_camera_angle_prompt("front", "eye-level", "medium") == (
            "<sks> front view eye-level shot medium shot"
        )

    def test_unknown_keys_fall_back(self):
        assert build_camera_angle_prompt("sideways", "space", "far") == (
            "<sks> front view eye-level shot medium shot"
        )

    def test_presets(self):
        profile = get_camera_preset("profile")
        assert profile == CameraAngleConfig("right", "eye-level", "medium")
        assert get_camera_preset("missing") is None

    def test_validation_and_label(self):
        assert is_valid_camera_angle_config(CameraAngleConfig("back", "high-angle", "wide"))
        assert not is_valid_camera_angle_config(CameraAngleConfig("up", "eye-level", "wide"))
        assert get_camera_angle_label(CameraAngleConfig("left", "low-angle", "close-up")) == (
            "Left, Low Angle, Close-up"
        )

    def test_slots_from_preset(self):
        slots = create_slots_from_preset("zoom-out-360")
        assert len(slots) == 5
        assert slots[0].is_original
        assert not any(slot.is_original for slot in slots[1:])
        assert len({slot.id for slot in slots}) == 5
        assert create_slots_from_preset("nope") == []


# =============================================================================
# Generation Items
# =============================================================================

class TestGenerationItem:

    def test_lifecycle(self):
        item = GenerationItem(id="a")
        assert item.status == PENDING
        assert item.result_url is None

        item.mark_started()
        assert item.status == GENERATING
        item.update_progress(40, "worker-1")
        assert item.progress == 40
        assert item.worker_name == "worker-1"

        item.mark_complete("https://cdn/1.jpg")
        assert item.status == READY
        assert item.progress == 100
        assert item.result_url == "https://cdn/1.jpg"

    def test_regeneration_keeps_versions(self):
        item = GenerationItem(id="a")
        item.mark_complete("https://cdn/1.jpg")
        item.reset_for_regeneration()
        assert item.status == PENDING
        item.mark_started()
        item.mark_failed("boom")
        assert item.status == FAILED
        assert item.error == "boom"
        assert item.result_url == "https://cdn/1.jpg"

        item.mark_complete("https://cdn/2.jpg")
        assert item.version_history == ["https://cdn/1.jpg", "https://cdn/2.jpg"]
        assert item.result_url == "https://cdn/2.jpg"

        item.select_version(0)
        assert item.result_url == "https://cdn/1.jpg"
        with pytest.raises(IndexError):
            item.select_version(5)

    def test_to_dict(self):
        data = GenerationItem(id="a").to_dict()
        assert data["id"] == "a"
        assert data["status"] == PENDING
        assert data["version_history"] == []


class TestItemBuilders:

    def test_angle_items_skip_original(self):
        slots = create_slots_from_preset("zoom-out-360")
        items = create_angle_generation_items(slots, "https://cdn/source.jpg")
        assert len(items) == 4
        assert [item.index for item in items] == [0, 1, 2, 3]
        assert items[0].slot_id == slots[1].id
        assert items[0].angle_config == slots[1].config
        assert items[0].source_image_url == "https://cdn/source.jpg"

    def test_transitions_loop_back(self):
        transitions = build_transitions(4)
        assert [(t.from_index, t.to_index) for t in transitions] == [(0, 1), (1, 2), (2, 3), (3, 0)]
        assert build_transitions(1) == []


# =============================================================================
# Media Loading
# =============================================================================

class TestLoadImageBytes:

    async def test_data_url(self):
        assert await load_image_bytes("data:image/png;base64,aGVsbG8=") == b"hello"

    async def test_bare_base64(self):
        assert await load_image_bytes("aGVsbG8=") == b"hello"

    async def test_http_url(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"image-bytes"))
        async with httpx.AsyncClient(transport=transport) as client:
            assert await load_image_bytes("https://cdn.example.com/a.jpg", client) == b"image-bytes"

    async def test_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(GenerationError, match="Failed to fetch image"):
                await load_image_bytes("https://cdn.example.com/missing.jpg", client)

    async def test_invalid_data(self):
        with pytest.raises(GenerationError):
            await load_image_bytes("not base64!!")
        with pytest.raises(GenerationError):
            await load_image_bytes("")
