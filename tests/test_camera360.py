"""Tests for 360 orbit transitions and the workflow state machine."""

import pytest

from photobooth.errors import GenerationError, InsufficientFundsError
from photobooth.workflows.camera360 import (
    Camera360Workflow,
    build_transition_project,
    generate_multiple_transitions,
    generate_transition,
    is_non_retryable,
)
from photobooth.workflows.items import FAILED, READY, build_transitions

from tests.conftest import FakeBackend

IMAGE = "data:image/png;base64,aGVsbG8="


def failed(message="Worker crashed"):
    return {"type": "failed", "message": message}


def video(url):
    return {"type": "completed", "videoUrls": [url]}


class TestTransitionProject:

    def test_builds_video_project(self):
        params = build_transition_project(b"a", b"b", "orbit", duration=1.5, source_width=1024, source_height=1536)
        assert params["type"] == "video"
        assert params["steps"] == 8
        assert params["frames"] == 25
        assert params["fps"] == 32
        assert (params["width"], params["height"]) == (480, 720)
        assert params["referenceImage"] == b"a"
        assert params["referenceImageEnd"] == b"b"

    def test_unknown_quality(self):
        with pytest.raises(ValueError):
            build_transition_project(b"a", b"b", "orbit", quality="ultra")

    def test_non_retryable(self):
        assert is_non_retryable(InsufficientFundsError("Insufficient credits"))
        assert is_non_retryable(GenerationError("401 Unauthorized"))
        assert not is_non_retryable(GenerationError("Worker crashed"))


class TestGenerateTransition:

    async def test_reports_progress_and_returns_video(self):
        backend = FakeBackend()
        backend.script(
            {"type": "started", "workerName": "gpu-2"},
            {"type": "progress", "step": 5, "stepCount": 10},
            {"type": "jobCompleted", "jobId": "job-9", "resultUrl": "https://cdn/t.mp4"},
        )
        updates = []
        result = await generate_transition(backend, IMAGE, IMAGE, on_update=updates.append)
        assert result == {"videoUrl": "https://cdn/t.mp4", "sdkProjectId": "remote-1", "sdkJobId": "job-9"}
        assert {"progress": 50, "workerName": None} in updates

    async def test_retries_until_success(self):
        backend = FakeBackend()
        backend.script(failed())
        backend.script(failed())
        backend.script(video("https://cdn/third.mp4"))
        result = await generate_transition(backend, IMAGE, IMAGE)
        assert result["videoUrl"] == "https://cdn/third.mp4"
        assert len(backend.created) == 3

    async def test_raises_last_error(self):
        backend = FakeBackend()
        for attempt in range(3):
            backend.script(failed(f"Worker crashed {attempt}"))
        with pytest.raises(GenerationError, match="Worker crashed 2"):
            await generate_transition(backend, IMAGE, IMAGE)

    async def test_out_of_credits_is_not_retried(self):
        backend = FakeBackend()
        backend.script(failed("Insufficient funds"))
        with pytest.raises(InsufficientFundsError):
            await generate_transition(backend, IMAGE, IMAGE)
        assert len(backend.created) == 1


class TestGenerateMultipleTransitions:

    async def test_missing_angle_fails_that_transition(self):
        backend = FakeBackend()
        transitions = build_transitions(3)
        results = await generate_multiple_transitions(
            backend, transitions, [IMAGE, None, IMAGE], max_attempts=1,
        )
        assert [t.status for t in transitions] == [FAILED, FAILED, READY]
        assert results[transitions[0].id] is None
        assert results[transitions[2].id]["videoUrl"].endswith("complete-0.png")
        assert transitions[0].error == "Missing angle images for transition"

    async def test_out_of_credits_reported_once(self):
        backend = FakeBackend()
        backend.script(failed("Insufficient funds"))
        backend.script(failed("Insufficient funds"))
        transitions = build_transitions(2)
        calls, done = [], []
        await generate_multiple_transitions(
            backend, transitions, [IMAGE, IMAGE],
            on_out_of_credits=lambda: calls.append(1),
            on_all_complete=lambda: done.append(1),
        )
        assert calls == [1]
        assert done == [1]
        assert all(t.status == FAILED for t in transitions)


class TestCamera360Workflow:

    def test_transitions_need_ready_angles(self):
        workflow = Camera360Workflow(IMAGE)
        workflow.prepare_angles()
        with pytest.raises(ValueError):
            workflow.prepare_transitions()

    async def test_full_flow(self):
        workflow = Camera360Workflow(IMAGE, settings={"quality": "fast"})
        assert workflow.step == "configure-angles"

        items = workflow.prepare_angles()
        assert len(items) == 4
        assert workflow.step == "review-angles"
        for item in items:
            item.mark_complete(IMAGE)
        assert workflow.angles_ready()
        assert workflow.angle_image_urls() == [IMAGE] * 5

        transitions = workflow.prepare_transitions()
        assert len(transitions) == 5
        assert workflow.step == "review-transitions"

        backend = FakeBackend()
        await generate_multiple_transitions(
            backend, transitions, workflow.angle_image_urls(), settings=workflow.settings,
        )
        assert all(params["steps"] == 4 for params in backend.created)
        assert workflow.transitions_ready()
        assert len(workflow.transition_video_urls()) == 5

        workflow.finish("https://cdn/final.mp4")
        data = workflow.to_dict()
        assert data["step"] == "final-video"
        assert data["finalVideoUrl"] == "https://cdn/final.mp4"
        assert data["slots"][0]["isOriginal"]
        assert len(data["transitions"]) == 5

    def test_finish_needs_transitions(self):
        workflow = Camera360Workflow(IMAGE)
        with pytest.raises(ValueError):
            workflow.finish()

    def test_set_slots_resets_items(self):
        workflow = Camera360Workflow(IMAGE)
        workflow.prepare_angles()
        workflow.set_slots(workflow.slots[:3])
        assert workflow.angle_items == []
        assert len(workflow.slots) == 3
