"""Server-Sent Events fan-out of generation progress."""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict, deque
from typing import AsyncIterator, Awaitable, Callable, Deque, Dict, Optional, Set

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 3.0
MAX_CONNECTION_SECONDS = 10 * 60
CLEANUP_DELAY_SECONDS = 30.0
BACKLOG_LIMIT = 100
# Finished projects nobody subscribed to are kept this long for late subscribers
BACKLOG_TTL_SECONDS = 60.0

# Events that end a progress stream
FINAL_EVENT_TYPES = ("complete", "error", "cancelled")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Content-Encoding": "identity",
    "X-Accel-Buffering": "no",
}

HEARTBEAT_FRAME = ":\n\n"


def format_sse(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


class ProgressHub:
    """Routes project events to every SSE subscriber of that project.

    Events published before anyone subscribes are kept in a short backlog
    and replayed to the first subscriber.
    When the last subscriber of the last project leaves, `on_idle` runs after
    a grace period unless a new subscriber arrives first.
    """

    def __init__(
        self,
        on_idle: Optional[Callable[[], Awaitable[None]]] = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        max_connection_seconds: float = MAX_CONNECTION_SECONDS,
        cleanup_delay: float = CLEANUP_DELAY_SECONDS,
        backlog_ttl: float = BACKLOG_TTL_SECONDS,
    ):
        self.on_idle = on_idle
        self.heartbeat_interval = heartbeat_interval
        self.max_connection_seconds = max_connection_seconds
        self.cleanup_delay = cleanup_delay
        self.backlog_ttl = backlog_ttl
        self.subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._backlog: Dict[str, Deque[dict]] = {}
        self._backlog_expiry: Dict[str, asyncio.TimerHandle] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def subscribe(self, project_id: str) -> asyncio.Queue:
        self._cancel_cleanup()
        queue: asyncio.Queue = asyncio.Queue()
        for event in self._backlog.pop(project_id, ()):
            queue.put_nowait(event)
        self._cancel_expiry(project_id)
        self.subscribers[project_id].add(queue)
        logger.debug(f"SSE subscriber added for {project_id} ({len(self.subscribers[project_id])} total)")
        return queue

    def unsubscribe(self, project_id: str, queue: asyncio.Queue) -> None:
        queues = self.subscribers.get(project_id)
        if queues is not None:
            queues.discard(queue)
            if not queues:
                del self.subscribers[project_id]

        if not self.subscribers and self.on_idle is not None:
            self._schedule_cleanup()

    def publish(self, project_id: str, event: dict) -> int:
        """Deliver an event; returns the number of subscribers reached."""
        queues = self.subscribers.get(project_id)
        if not queues:
            backlog = self._backlog.setdefault(project_id, deque(maxlen=BACKLOG_LIMIT))
            backlog.append(event)
            if event.get("type") in FINAL_EVENT_TYPES:
                self._expire_backlog(project_id)
            return 0
        for queue in queues:
            queue.put_nowait(event)
        return len(queues)

    def discard_backlog(self, project_id: str) -> None:
        self._backlog.pop(project_id, None)
        self._cancel_expiry(project_id)

    def backlog_size(self) -> int:
        """Number of projects with buffered events."""
        return len(self._backlog)

    def _expire_backlog(self, project_id: str) -> None:
        self._cancel_expiry(project_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._backlog_expiry[project_id] = loop.call_later(self.backlog_ttl, self.discard_backlog, project_id)

    def _cancel_expiry(self, project_id: str) -> None:
        handle = self._backlog_expiry.pop(project_id, None)
        if handle is not None:
            handle.cancel()

    def has_subscribers(self, project_id: str) -> bool:
        return bool(self.subscribers.get(project_id))

    async def stream(self, project_id: str) -> AsyncIterator[str]:
        """
        Produce SSE frames for one project.

        Sends a `connected` event first, heartbeats while idle, stops after a
        final event, and gives up with a `timeout` event after the maximum
        connection time.
        """
        queue = self.subscribe(project_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_connection_seconds
        try:
            yield format_sse({"type": "connected", "projectId": project_id})
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.info(f"SSE connection for {project_id} reached max duration")
                    yield format_sse({"type": "timeout", "projectId": project_id})
                    return
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=min(self.heartbeat_interval, remaining))
                except asyncio.TimeoutError:
                    yield HEARTBEAT_FRAME
                    continue

                yield format_sse(event)
                if event.get("type") in FINAL_EVENT_TYPES:
                    return
        finally:
            self.unsubscribe(project_id, queue)

    def _schedule_cleanup(self) -> None:
        self._cancel_cleanup()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cleanup_task = loop.create_task(self._delayed_cleanup())

    def _cancel_cleanup(self) -> None:
        if self._cleanup_task is not None and not self._cleanup_task.done():
            self._cleanup_task.cancel()
        self._cleanup_task = None

    async def _delayed_cleanup(self) -> None:
        await asyncio.sleep(self.cleanup_delay)
        if self.subscribers:
            return
        logger.info("No active SSE subscribers, cleaning up generation clients")
        try:
            await self.on_idle()
        except Exception:
            logger.exception("Idle cleanup failed")

    async def close(self) -> None:
        self._cancel_cleanup()
        for project_id in list(self._backlog_expiry):
            self._cancel_expiry(project_id)
        self._backlog.clear()
