"""Tests for background generation and event forwarding."""

import asyncio

from photobooth.errors import InsufficientFundsError
from photobooth.generation.progress import ProgressHub
from photobooth.generation.runner import GenerationRunner, ProgressThrottle, normalize_progress

from tests.conftest import FakeBackend, HoldingBackend


def drain(queue: asyncio.Queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


async def run_project(backend: FakeBackend, params=None):
    hub = ProgressHub()
    runner = GenerationRunner(hub, clock=lambda: 0.0)
    local_id = runner.new_project_id()
    queue = hub.subscribe(local_id)
    await runner.run(local_id, backend, params or {"modelId": "flux"})
    return runner, local_id, drain(queue)


class TestNormalizeProgress:

    def test_scales(self):
        assert normalize_progress(0.25) == 0.25
        assert normalize_progress(50) == 0.5
        assert normalize_progress(None) is None
        assert normalize_progress("bad") is None


class TestProgressThrottle:

    def test_drops_fast_updates_but_keeps_edges(self):
        now = [0.0]
        throttle = ProgressThrottle(interval=0.5, clock=lambda: now[0])
        assert throttle.allow(0.1)
        now[0] = 0.1
        assert not throttle.allow(0.2)
        assert throttle.allow(1)
        now[0] = 0.7
        assert throttle.allow(0.3)


class TestGenerationRunner:

    def test_project_ids_are_unique(self):
        runner = GenerationRunner(ProgressHub())
        ids = {runner.new_project_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("project-") for i in ids)

    async def test_forwards_events_and_completes(self):
        backend = FakeBackend()
        backend.script(
            {"type": "queued", "queuePosition": 2},
            {"type": "started", "jobId": "job-1", "workerName": "gpu-7"},
            {"type": "progress", "jobId": "job-1", "progress": 40},
            {"type": "completed", "imageUrls": ["https://cdn/a.png", ""]},
        )

        runner, local_id, events = await run_project(backend)

        assert [e["type"] for e in events] == ["queued", "started", "progress", "complete"]
        assert events[0]["workerName"] == "unknown"
        assert events[1]["workerName"] == "gpu-7"
        assert events[2]["progress"] == 0.4
        assert all(e["projectId"] == local_id for e in events)
        assert events[-1]["sogniProjectId"] == "remote-1"
        assert events[-1]["result"] == {"imageUrls": ["https://cdn/a.png"]}
        assert runner.remote_ids == {}
        assert runner.backend_for(local_id) is None

    async def test_empty_results_are_an_error(self):
        backend = FakeBackend()
        backend.script({"type": "completed", "imageUrls": []})

        _, _, events = await run_project(backend)

        assert events[-1]["type"] == "error"
        assert events[-1]["message"] == "Generation completed but no images were produced"

    async def test_failed_event(self):
        backend = FakeBackend()
        backend.script({"type": "failed", "message": "NSFW filtered", "code": 9})

        _, _, events = await run_project(backend)

        assert events == [{
            "type": "error",
            "projectId": events[0]["projectId"],
            "message": "NSFW filtered",
            "details": {"code": 9},
        }]

    async def test_create_failure_publishes_error(self):
        backend = FakeBackend()
        backend.create_error = InsufficientFundsError("Insufficient credits", code=4024)

        _, _, events = await run_project(backend)

        assert events[-1]["type"] == "error"
        assert events[-1]["message"] == "Insufficient credits"
        assert events[-1]["details"] == {"code": 4024}

    async def test_cancel_notifies_subscribers(self):
        hub = ProgressHub()
        runner = GenerationRunner(hub)
        backend = FakeBackend()
        runner.remote_ids["project-1"] = "remote-9"
        queue = hub.subscribe("project-1")

        await runner.cancel("project-1", backend)

        assert backend.cancelled == ["remote-9"]
        assert drain(queue) == [{"type": "cancelled", "projectId": "project-1"}]

    async def test_start_runs_in_background(self):
        hub = ProgressHub()
        runner = GenerationRunner(hub)
        backend = FakeBackend()

        local_id = runner.start(backend, {"modelId": "flux"})
        queue = hub.subscribe(local_id)
        for _ in range(20):
            await asyncio.sleep(0)

        assert drain(queue)[-1]["type"] == "complete"
        await runner.shutdown()


async def wait_until(condition, attempts: int = 200):
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class TestProjectLifecycle:

    async def test_finished_projects_leave_no_state(self):
        hub = ProgressHub(backlog_ttl=0.2)
        runner = GenerationRunner(hub)
        backend = FakeBackend()

        for _ in range(5):
            runner.start(backend, {"modelId": "flux"})
        await wait_until(lambda: not runner.tasks)

        assert runner.remote_ids == {}
        assert runner.backends == {}
        assert hub.backlog_size() == 5

        await asyncio.sleep(0.3)
        assert hub.backlog_size() == 0

    async def test_cancel_stops_running_task(self):
        hub = ProgressHub()
        runner = GenerationRunner(hub)
        backend = HoldingBackend()

        local_id = runner.start(backend, {"modelId": "flux"})
        queue = hub.subscribe(local_id)
        await wait_until(lambda: not queue.empty())

        assert await runner.cancel(local_id, backend) == local_id
        backend.release.set()
        await wait_until(lambda: not runner.tasks)
        for _ in range(10):
            await asyncio.sleep(0)

        assert [e["type"] for e in drain(queue)] == ["queued", "cancelled"]
        assert backend.cancelled == ["remote-1"]
        assert runner.remote_ids == {}

    async def test_cancel_by_remote_id_reaches_local_subscribers(self):
        hub = ProgressHub()
        runner = GenerationRunner(hub)
        backend = HoldingBackend()

        local_id = runner.start(backend, {"modelId": "flux"})
        queue = hub.subscribe(local_id)
        await wait_until(lambda: not queue.empty())
        assert runner.backend_for("remote-1") is backend

        assert await runner.cancel("remote-1", backend) == "remote-1"
        await wait_until(lambda: not runner.tasks)

        events = drain(queue)
        assert events[-1] == {"type": "cancelled", "projectId": local_id}
        assert backend.cancelled == ["remote-1"]
