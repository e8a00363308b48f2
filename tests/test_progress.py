"""Tests for the SSE progress hub."""

import asyncio
import json

from photobooth.generation.progress import HEARTBEAT_FRAME, ProgressHub, format_sse


def decode(frame: str) -> dict:
    assert frame.startswith("data: ")
    return json.loads(frame[len("data: "):].strip())


async def collect(stream, limit: int = 20):
    frames = []
    async for frame in stream:
        frames.append(frame)
        if len(frames) >= limit:
            break
    return frames


class TestProgressHub:

    def test_format_sse(self):
        assert format_sse({"type": "x"}) == 'data: {"type": "x"}\n\n'

    async def test_backlog_replayed_to_first_subscriber(self):
        hub = ProgressHub()
        assert hub.publish("project-1", {"type": "progress", "progress": 0.5}) == 0
        hub.publish("project-1", {"type": "complete", "projectId": "project-1"})

        frames = await collect(hub.stream("project-1"))

        events = [decode(f) for f in frames]
        assert [e["type"] for e in events] == ["connected", "progress", "complete"]
        assert not hub.has_subscribers("project-1")

    async def test_stream_ends_on_error(self):
        hub = ProgressHub(heartbeat_interval=0.01)
        hub.publish("p", {"type": "error", "message": "boom"})
        frames = await collect(hub.stream("p"))
        assert decode(frames[-1])["type"] == "error"

    async def test_heartbeat_and_timeout(self):
        hub = ProgressHub(heartbeat_interval=0.01, max_connection_seconds=0.05)
        frames = await collect(hub.stream("quiet"), limit=50)

        assert HEARTBEAT_FRAME in frames
        assert decode(frames[-1]) == {"type": "timeout", "projectId": "quiet"}

    async def test_publish_reaches_live_subscribers(self):
        hub = ProgressHub()
        queue = hub.subscribe("p")
        assert hub.publish("p", {"type": "progress"}) == 1
        assert queue.get_nowait() == {"type": "progress"}
        hub.unsubscribe("p", queue)
        assert not hub.has_subscribers("p")

    async def test_idle_callback_after_last_subscriber(self):
        calls = []

        async def on_idle():
            calls.append(True)

        hub = ProgressHub(on_idle=on_idle, cleanup_delay=0.01)
        queue = hub.subscribe("p")
        hub.unsubscribe("p", queue)
        await asyncio.sleep(0.05)

        assert calls == [True]

    async def test_new_subscriber_cancels_idle_callback(self):
        calls = []

        async def on_idle():
            calls.append(True)

        hub = ProgressHub(on_idle=on_idle, cleanup_delay=0.05)
        queue = hub.subscribe("a")
        hub.unsubscribe("a", queue)
        hub.subscribe("b")
        await asyncio.sleep(0.1)

        assert calls == []
        await hub.close()


class TestBacklogExpiry:

    async def test_finished_backlog_expires(self):
        hub = ProgressHub(backlog_ttl=0.01)
        hub.publish("p", {"type": "progress", "progress": 0.5})
        hub.publish("p", {"type": "complete", "projectId": "p"})
        assert hub.backlog_size() == 1

        await asyncio.sleep(0.05)

        assert hub.backlog_size() == 0

    async def test_unfinished_backlog_is_kept(self):
        hub = ProgressHub(backlog_ttl=0.01)
        hub.publish("p", {"type": "progress", "progress": 0.5})

        await asyncio.sleep(0.05)

        assert hub.backlog_size() == 1

    async def test_subscriber_takes_backlog_before_expiry(self):
        hub = ProgressHub(backlog_ttl=0.01)
        hub.publish("p", {"type": "cancelled", "projectId": "p"})
        queue = hub.subscribe("p")

        await asyncio.sleep(0.05)

        assert queue.get_nowait() == {"type": "cancelled", "projectId": "p"}
        assert hub.backlog_size() == 0
