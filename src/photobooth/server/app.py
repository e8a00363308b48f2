"""FastAPI application factory: builds the services and mounts every router."""

import asyncio
import logging
from typing import Optional

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..analytics import AnalyticsService
from ..analytics.routes import router as analytics_router
from ..audio import AudioTranscoder
from ..audio.routes import router as audio_router
from ..config import ALLOWED_ORIGINS, Settings, is_allowed_origin
from ..contest import ContestService, ContestStore
from ..contest.routes import router as contest_router
from ..costs import CostEstimator
from ..costs.routes import router as costs_router
from ..generation import (
    GenerationRunner,
    HostedGenerationClient,
    ProgressHub,
    RecentRequestCache,
    SessionChannels,
    SessionRegistry,
)
from ..generation.routes import router as generation_router
from ..generation.sessions import BackendFactory
from ..metrics import MetricsService
from ..metrics import router as metrics_router
from ..prompts import PromptCatalog
from ..prompts.routes import router as prompts_router
from ..redis_store import RedisStore
from ..share import ShareStore
from ..share.routes import router as share_router
from .pages import router as pages_router

logger = logging.getLogger(__name__)

IDLE_CHECK_INTERVAL_SECONDS = 5 * 60

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "Cookie", "X-Client-App-ID", "Accept"]


def default_backend_factory(settings: Settings) -> BackendFactory:
    """Each session gets its own hosted client, keyed by the browser's app ID."""

    def factory(client_app_id: Optional[str]) -> HostedGenerationClient:
        return HostedGenerationClient(
            api_url=settings.sogni_api_url,
            app_id=client_app_id or settings.sogni_app_id,
            username=settings.sogni_username,
            password=settings.sogni_password,
        )

    return factory


async def _check_idle_forever(sessions: SessionRegistry, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        remaining = await sessions.check_idle_connections()
        logger.debug(f"Idle connection check: {remaining} active")


def create_app(
    settings: Optional[Settings] = None,
    redis_client: Optional[aioredis.Redis] = None,
    backend_factory: Optional[BackendFactory] = None,
    transcoder: Optional[AudioTranscoder] = None,
    cost_estimator: Optional[CostEstimator] = None,
    prompts: Optional[PromptCatalog] = None,
    idle_check_interval: Optional[float] = IDLE_CHECK_INTERVAL_SECONDS,
) -> FastAPI:
    """
    Create the photobooth API.

    Args:
        settings: Runtime settings (default: read from the environment)
        redis_client: Pre-built Redis client, e.g. fakeredis in tests
        backend_factory: Builds a generation backend per session
        transcoder: Audio transcoder (default: ffmpeg under uploads/audio-temp)
        cost_estimator: Cost estimator (default: talks to the socket host)
        prompts: Style prompt catalog (default: packaged prompts.json)
        idle_check_interval: Seconds between idle-client sweeps, None to disable

    Returns:
        Configured FastAPI app
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Photobooth API",
        description="Generation proxy, analytics, contest and sharing backend",
        version=__version__,
    )

    store = RedisStore(settings, client=redis_client)
    metrics = MetricsService(store)
    sessions = SessionRegistry(backend_factory or default_backend_factory(settings))

    async def release_idle_clients() -> None:
        await sessions.cleanup(logout=False)

    hub = ProgressHub(on_idle=release_idle_clients)

    app.state.settings = settings
    app.state.store = store
    app.state.metrics = metrics
    app.state.analytics = AnalyticsService(store)
    app.state.contest = ContestService(settings, ContestStore(store, metrics))
    app.state.shares = ShareStore(store)
    app.state.sessions = sessions
    app.state.progress = hub
    app.state.runner = GenerationRunner(hub)
    app.state.channels = SessionChannels()
    app.state.disconnect_dedupe = RecentRequestCache()
    app.state.background_tasks = set()
    app.state.costs = cost_estimator or CostEstimator(socket_url=settings.sogni_socket_url)
    app.state.transcoder = transcoder or AudioTranscoder(settings.audio_temp_dir)
    app.state.prompts = prompts or PromptCatalog.load()
    app.state.idle_checker = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_origin_regex=r"https?://.*",
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=["Set-Cookie"],
    )

    @app.middleware("http")
    async def log_unknown_origins(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin and not is_allowed_origin(origin):
            logger.warning(f"CORS request from unlisted origin: {origin}")
        return await call_next(request)

    @app.on_event("startup")
    async def startup():
        logger.info(f"Starting photobooth API ({settings.environment})")
        logger.info(f"Serving static files from: {settings.static_dir}")

        if await store.connect():
            logger.info("Redis ready")
        else:
            logger.warning("Redis not available, metrics and analytics are disabled")

        app.state.transcoder.ensure_temp_dir()
        app.state.transcoder.start_sweeper()

        if idle_check_interval:
            app.state.idle_checker = asyncio.create_task(_check_idle_forever(sessions, idle_check_interval))

    @app.on_event("shutdown")
    async def shutdown():
        logger.info("Shutting down photobooth API")
        if app.state.idle_checker is not None:
            app.state.idle_checker.cancel()
        await app.state.runner.shutdown()
        await hub.close()
        await sessions.cleanup(logout=True, include_session_clients=True)
        await app.state.costs.close()
        await app.state.contest.close()
        await app.state.transcoder.stop_sweeper()
        await store.close()

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Server error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/health")
    @app.get("/api/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "message": "Server is running", "environment": settings.environment}

    app.include_router(generation_router, prefix="/sogni", tags=["generation"])
    app.include_router(generation_router, prefix="/api/sogni", tags=["generation"])
    app.include_router(metrics_router, prefix="/api/metrics", tags=["metrics"])
    app.include_router(analytics_router, prefix="/api/analytics", tags=["analytics"])
    app.include_router(contest_router, prefix="/api/contest", tags=["contest"])
    app.include_router(share_router, prefix="/api/mobile-share", tags=["share"])
    app.include_router(share_router, prefix="/mobile-share", tags=["share"])
    app.include_router(audio_router, prefix="/api/audio", tags=["audio"])
    app.include_router(costs_router, prefix="/api/costs", tags=["costs"])
    app.include_router(prompts_router, prefix="/api/prompts", tags=["prompts"])

    # Catch-all SPA route must be registered last
    app.include_router(pages_router)

    return app
