"""Shared pytest fixtures for the photobooth test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from photobooth.audio import AudioTranscoder
from photobooth.config import Settings
from photobooth.costs import CostEstimator
from photobooth.errors import GenerationError
from photobooth.generation.backend import GenerationBackend
from photobooth.redis_store import RedisStore
from photobooth.server import create_app


# =============================================================================
# Fakes
# =============================================================================

class FakeBackend(GenerationBackend):
    """In-memory generation backend.

    Each created project replays the events queued with `script()`; when
    nothing is scripted, a project completes with one image URL.
    """

    def __init__(self, app_id: Optional[str] = None):
        self.app_id = app_id
        self._connected = False
        self.connect_calls = 0
        self.disconnect_calls: List[bool] = []
        self.created: List[Dict[str, Any]] = []
        self.cancelled: List[str] = []
        self.scripts: List[List[dict]] = []
        self.create_error: Optional[Exception] = None
        self.connect_error: Optional[Exception] = None
        self.estimate = {"token": "12.5", "usd": "0.05"}
        self._events: Dict[str, List[dict]] = {}

    def script(self, *events: dict) -> None:
        self.scripts.append(list(events))

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error
        self._connected = True

    async def disconnect(self, logout: bool = False) -> None:
        self.disconnect_calls.append(logout)
        self._connected = False

    async def get_client_info(self) -> dict:
        return {"connected": self._connected, "appId": self.app_id, "network": "fast"}

    async def create_project(self, params: Dict[str, Any]) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(params)
        project_id = f"remote-{len(self.created)}"
        if self.scripts:
            self._events[project_id] = self.scripts.pop(0)
        else:
            self._events[project_id] = [
                {"type": "completed", "imageUrls": [f"https://cdn.example.com/{project_id}/complete-0.png"]},
            ]
        return project_id

    async def stream_events(self, project_id: str) -> AsyncIterator[dict]:
        for event in self._events.get(project_id, []):
            await asyncio.sleep(0)
            if isinstance(event, Exception):
                raise event
            yield {"projectId": project_id, **event}
        if not self._events.get(project_id):
            raise GenerationError("Event stream ended before project finished")

    async def cancel_project(self, project_id: str) -> None:
        self.cancelled.append(project_id)

    async def estimate_cost(self, params: Dict[str, Any]) -> dict:
        return self.estimate


class HoldingBackend(FakeBackend):
    """Reports the job as queued, then waits for `release` before failing it."""

    def __init__(self, app_id: Optional[str] = None):
        super().__init__(app_id)
        self.release = asyncio.Event()

    async def stream_events(self, project_id: str) -> AsyncIterator[dict]:
        yield {"projectId": project_id, "type": "queued", "queuePosition": 1}
        await self.release.wait()
        yield {"projectId": project_id, "type": "failed", "message": "Job aborted"}


class BackendPool:
    """Backend factory that hands out (and remembers) FakeBackends."""

    def __init__(self):
        self.backends: List[FakeBackend] = []

    def __call__(self, client_app_id: Optional[str]) -> FakeBackend:
        backend = FakeBackend(client_app_id)
        self.backends.append(backend)
        return backend

    @property
    def last(self) -> FakeBackend:
        return self.backends[-1]


def quote_transport(calls: Optional[List[str]] = None) -> httpx.MockTransport:
    """Mock for the REST estimate endpoints on the socket host."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request.url.path)
        return httpx.Response(
            200,
            json={"quote": {"project": {"costInSpark": "3.25", "costInSogni": "6.5", "costInUSD": "0.013"}}},
        )

    return httpx.MockTransport(handler)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    static_dir = tmp_path / "static"
    static_dir.mkdir()
    return Settings(
        environment="test",
        sogni_env="local",
        client_origin="http://localhost:5173",
        cookie_domain="localhost",
        admin_key="secret-admin-key",
        uploads_dir=tmp_path / "uploads",
        static_dir_override=static_dir,
    )


@pytest.fixture
def redis_client():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def store(settings: Settings, redis_client) -> RedisStore:
    return RedisStore(settings, client=redis_client)


@pytest.fixture
def offline_store(settings: Settings) -> RedisStore:
    """A store that never connected, as when Redis is down."""
    return RedisStore(settings)


@pytest.fixture
def backend_pool() -> BackendPool:
    return BackendPool()


@pytest.fixture
def transcoder(settings: Settings) -> AudioTranscoder:
    return AudioTranscoder(settings.audio_temp_dir)


@pytest.fixture
def app(settings, redis_client, backend_pool, transcoder):
    return create_app(
        settings=settings,
        redis_client=redis_client,
        backend_factory=backend_pool,
        transcoder=transcoder,
        cost_estimator=CostEstimator(transport=quote_transport()),
        idle_check_interval=None,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
