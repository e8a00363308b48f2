"""Runs generation projects in the background and forwards their events."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from ..errors import PhotoboothError
from .backend import GenerationBackend
from .progress import ProgressHub

logger = logging.getLogger(__name__)

PROGRESS_THROTTLE_SECONDS = 0.5


def normalize_progress(value: Any) -> Optional[float]:
    """Progress arrives as 0..1 or 0..100; always return 0..1."""
    if value is None:
        return None
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return None
    return progress / 100 if progress > 1 else progress


class ProgressThrottle:
    """Drops progress updates that arrive too quickly, except 0 and 1."""

    def __init__(self, interval: float = PROGRESS_THROTTLE_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.clock = clock
        self._last_sent: Optional[float] = None

    def allow(self, progress: Optional[float]) -> bool:
        now = self.clock()
        if progress in (0, 1) or self._last_sent is None or now - self._last_sent >= self.interval:
            self._last_sent = now
            return True
        return False


class GenerationRunner:
    """Starts projects and publishes their progress to the `ProgressHub`.

    Projects are identified towards the browser by a local ID
    (`project-{ms}`); the backend's own ID is reported as `sogniProjectId`.
    """

    def __init__(self, hub: ProgressHub, clock: Callable[[], float] = time.monotonic):
        self.hub = hub
        self.clock = clock
        self.remote_ids: Dict[str, str] = {}
        self.backends: Dict[str, GenerationBackend] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        self._last_stamp = 0

    def new_project_id(self) -> str:
        # Millisecond stamps, bumped when two requests land in the same ms
        stamp = int(time.time() * 1000)
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return f"project-{stamp}"

    def start(self, backend: GenerationBackend, params: Dict[str, Any]) -> str:
        """Schedule the project and return its local ID immediately."""
        local_id = self.new_project_id()
        self.backends[local_id] = backend
        task = asyncio.get_running_loop().create_task(self.run(local_id, backend, params))
        self.tasks[local_id] = task
        task.add_done_callback(lambda _task: self.tasks.pop(local_id, None))
        logger.info(f"Generation {local_id} started in background")
        return local_id

    async def run(self, local_id: str, backend: GenerationBackend, params: Dict[str, Any]) -> None:
        throttle = ProgressThrottle(clock=self.clock)
        remote_id: Optional[str] = None
        try:
            remote_id = await backend.create_project(params)
            self.remote_ids[local_id] = remote_id

            async for event in backend.stream_events(remote_id):
                event_type = event.get("type")
                if event_type == "completed":
                    self._publish_result(local_id, remote_id, event)
                    return
                if event_type == "failed":
                    self._publish_failure(local_id, event.get("message"), event.get("code"))
                    return

                forwarded = self.forward_event(local_id, event)
                if event_type == "progress" and not throttle.allow(forwarded.get("progress")):
                    continue
                self.hub.publish(local_id, forwarded)

        except PhotoboothError as e:
            logger.error(f"Generation {local_id} failed: {e}")
            self._publish_failure(local_id, e.message, e.code)
        except asyncio.CancelledError:
            logger.info(f"Generation task {local_id} cancelled")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in generation {local_id}")
            self._publish_failure(local_id, str(e) or None, None)
        finally:
            self.backends.pop(local_id, None)
            self.remote_ids.pop(local_id, None)

    def forward_event(self, local_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        forwarded = dict(event)
        forwarded["projectId"] = local_id
        forwarded["jobId"] = event.get("jobId")
        forwarded["workerName"] = event.get("workerName") or "unknown"
        if "progress" in event:
            forwarded["progress"] = normalize_progress(event.get("progress"))
        return forwarded

    def _publish_result(self, local_id: str, remote_id: str, event: Dict[str, Any]) -> None:
        image_urls = [url for url in (event.get("imageUrls") or []) if url]
        if not image_urls:
            logger.error(f"Generation {local_id} completed without result URLs")
            self.hub.publish(local_id, {
                "type": "error",
                "projectId": local_id,
                "sogniProjectId": remote_id,
                "message": "Generation completed but no images were produced",
                "details": "The server received empty result URLs from Sogni",
            })
            return

        logger.info(f"Generation {local_id} completed with {len(image_urls)} image(s)")
        self.hub.publish(local_id, {
            "type": "complete",
            "projectId": local_id,
            "sogniProjectId": remote_id,
            "result": {"imageUrls": image_urls},
        })

    def _publish_failure(self, local_id: str, message: Optional[str], code: Any) -> None:
        self.hub.publish(local_id, {
            "type": "error",
            "projectId": local_id,
            "message": message or "Image generation failed",
            "details": {"code": code} if code is not None else None,
        })

    def resolve_remote_id(self, project_id: str) -> str:
        return self.remote_ids.get(project_id, project_id)

    def resolve_local_id(self, project_id: str) -> str:
        for local_id, remote_id in self.remote_ids.items():
            if remote_id == project_id:
                return local_id
        return project_id

    def backend_for(self, project_id: str) -> Optional[GenerationBackend]:
        """Backend running a still-active project, if any."""
        return self.backends.get(self.resolve_local_id(project_id))

    async def cancel(self, project_id: str, backend: GenerationBackend) -> str:
        """
        Cancel by local or remote ID and notify subscribers.

        The background task is stopped first, so nothing the backend reports
        after the cancel reaches the subscribers.
        """
        local_id = self.resolve_local_id(project_id)
        remote_id = self.resolve_remote_id(local_id)
        task = self.tasks.get(local_id)
        if task is not None and not task.done():
            task.cancel()

        await backend.cancel_project(remote_id)
        logger.info(f"Generation {local_id} cancelled (remote {remote_id})")
        self.hub.publish(local_id, {"type": "cancelled", "projectId": local_id})
        return project_id

    async def shutdown(self) -> None:
        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
