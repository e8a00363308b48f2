"""Proxy endpoints for the browser: status, generation, progress, teardown.

Mounted at both /sogni and /api/sogni.
"""

import asyncio
import base64
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ..config import Settings
from ..errors import classify_backend_error
from .channels import SessionChannels
from .progress import SSE_HEADERS, ProgressHub
from .runner import GenerationRunner
from .sessions import RecentRequestCache, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter()

SESSION_COOKIE = "sogni_session_id"
SESSION_MAX_AGE = 30 * 24 * 60 * 60

# 1x1 transparent GIF returned to navigator.sendBeacon / <img> disconnects
TRANSPARENT_GIF = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

NO_STORE_HEADERS = {
    "Connection": "close",
    "Cache-Control": "no-store, no-cache",
}


def ensure_session_id(request: Request, response: Response, settings: Settings) -> str:
    """Return the session ID cookie, issuing a new one when absent."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        return session_id

    session_id = f"sid-{uuid.uuid4()}"
    origin = request.headers.get("origin", "")
    same_site = "none" if origin.startswith("https:") else "lax"
    secure = (
        request.url.scheme == "https"
        or request.headers.get("x-forwarded-proto") == "https"
        or settings.is_production
        or origin.startswith("https:")
        or same_site == "none"
    )
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        path="/",
        samesite=same_site,
        secure=secure,
        domain=settings.cookie_domain if settings.cookie_domain != "localhost" else None,
    )
    logger.info(f"Issued new session {session_id}")
    return session_id


def get_client_app_id(request: Request, body: Optional[dict] = None) -> Optional[str]:
    """Header first, then body, then query string."""
    return (
        request.headers.get("x-client-app-id")
        or (body or {}).get("clientAppId")
        or request.query_params.get("clientAppId")
    )


def _sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _hub(request: Request) -> ProgressHub:
    return request.app.state.progress


def _runner(request: Request) -> GenerationRunner:
    return request.app.state.runner


@router.get("/status")
async def status(request: Request, response: Response):
    """Connect (or reuse) the session's client and report account info."""
    settings: Settings = request.app.state.settings
    session_id = ensure_session_id(request, response, settings)
    client_app_id = get_client_app_id(request)

    try:
        backend = await _sessions(request).get_session_client(session_id, client_app_id)
        info = await backend.get_client_info()
    except Exception as e:
        status_code, message = classify_backend_error(e)
        logger.error(f"Status check failed for {session_id}: {e}")
        raise HTTPException(status_code=status_code, detail=message)

    return {**info, "sessionId": session_id}


@router.get("/progress/{project_id}")
async def progress(project_id: str, request: Request):
    """Stream progress events for a project as Server-Sent Events."""
    logger.info(f"SSE connection opened for {project_id}")
    return StreamingResponse(
        _hub(request).stream(project_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/cancel/{project_id}")
async def cancel(project_id: str, request: Request, response: Response):
    settings: Settings = request.app.state.settings
    runner = _runner(request)

    try:
        backend = runner.backend_for(project_id)
        if backend is None:
            session_id = ensure_session_id(request, response, settings)
            backend = await _sessions(request).get_session_client(session_id, get_client_app_id(request))
        await runner.cancel(project_id, backend)
    except Exception:
        logger.exception(f"Failed to cancel project {project_id}")
        raise HTTPException(status_code=500, detail="Failed to cancel project")

    return {"status": "cancelled", "projectId": project_id}


@router.post("/generate")
async def generate(request: Request, response: Response, body: Dict[str, Any] = Body(...)):
    """
    Start an image generation project.

    The request returns immediately; progress and results arrive over
    GET /progress/{projectId}.
    """
    settings: Settings = request.app.state.settings
    session_id = ensure_session_id(request, response, settings)
    client_app_id = get_client_app_id(request, body)
    params = {k: v for k, v in body.items() if k != "clientAppId"}

    try:
        backend = await _sessions(request).get_session_client(session_id, client_app_id)
        project_id = _runner(request).start(backend, params)
    except Exception:
        logger.exception("Failed to initiate image generation")
        raise HTTPException(status_code=500, detail="Failed to initiate image generation")

    return {
        "status": "processing",
        "projectId": project_id,
        "message": "Image generation request received and processing started.",
    }


@router.post("/estimate")
async def estimate(request: Request, response: Response, body: Dict[str, Any] = Body(...)):
    """Image cost estimate through the session's client (cached)."""
    settings: Settings = request.app.state.settings
    session_id = ensure_session_id(request, response, settings)

    try:
        backend = await _sessions(request).get_session_client(session_id, get_client_app_id(request, body))
        result = await request.app.state.costs.estimate_image(backend, body)
    except Exception as e:
        status_code, message = classify_backend_error(e)
        logger.error(f"Cost estimate failed: {e}")
        raise HTTPException(status_code=status_code, detail=message)

    if result is None:
        raise HTTPException(status_code=400, detail="model and imageCount are required")
    return result.to_dict()


@router.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("/admin/cleanup")
async def admin_cleanup(
    request: Request,
    key: Optional[str] = Query(None),
    body: Optional[Dict[str, Any]] = Body(None),
):
    settings: Settings = request.app.state.settings
    provided = key or (body or {}).get("key")
    if not settings.admin_key or provided != settings.admin_key:
        raise HTTPException(status_code=401, detail="Unauthorized")

    sessions = _sessions(request)
    await sessions.cleanup(logout=True, include_session_clients=True)
    remaining = await sessions.check_idle_connections()
    logger.warning(f"Admin cleanup finished, {remaining} connection(s) remaining")
    return {
        "status": "success",
        "message": "All connections cleaned up",
        "remainingConnections": remaining,
    }


def _dedupe_disconnect(request: Request, session_id: str, client_app_id: Optional[str]) -> bool:
    dedupe: RecentRequestCache = request.app.state.disconnect_dedupe
    key = dedupe.make_key(session_id, client_app_id, request.method)
    return dedupe.check_and_add(key)


@router.post("/disconnect")
async def disconnect(request: Request):
    """Tear down the session's client when the page unloads."""
    settings: Settings = request.app.state.settings
    response = JSONResponse({"success": True}, headers=NO_STORE_HEADERS)
    session_id = ensure_session_id(request, response, settings)
    client_app_id = get_client_app_id(request)

    if _dedupe_disconnect(request, session_id, client_app_id):
        return JSONResponse({"success": True, "cached": True}, headers=NO_STORE_HEADERS)

    sessions = _sessions(request)
    if sessions.has_client(session_id, client_app_id):
        await sessions.disconnect_session_client(session_id, client_app_id)
    else:
        logger.debug(f"Disconnect for {session_id}: no active client")
    return response


@router.get("/disconnect")
async def disconnect_beacon(request: Request):
    """Beacon variant: queue the disconnect and answer with a tracking pixel."""
    settings: Settings = request.app.state.settings
    response = Response(content=TRANSPARENT_GIF, media_type="image/gif", headers=NO_STORE_HEADERS)
    session_id = ensure_session_id(request, response, settings)
    client_app_id = get_client_app_id(request)

    if not _dedupe_disconnect(request, session_id, client_app_id):
        sessions = _sessions(request)
        if sessions.has_client(session_id, client_app_id):
            task = asyncio.get_running_loop().create_task(
                sessions.disconnect_session_client(session_id, client_app_id)
            )
            request.app.state.background_tasks.add(task)
            task.add_done_callback(request.app.state.background_tasks.discard)
    return response


@router.post("/channels/{channel}")
async def publish_channel(channel: str, request: Request, response: Response, body: Dict[str, Any] = Body(...)):
    """Broadcast a message to the other tabs of this browser session."""
    settings: Settings = request.app.state.settings
    session_id = ensure_session_id(request, response, settings)
    if not body.get("type"):
        raise HTTPException(status_code=400, detail="type is required")

    channels: SessionChannels = request.app.state.channels
    delivered = channels.publish(session_id, channel, body, sender_tab=body.get("tabId"))
    return {"success": True, "delivered": delivered}


@router.get("/channels/{channel}/events")
async def channel_events(channel: str, request: Request, tabId: Optional[str] = None):
    settings: Settings = request.app.state.settings
    cookie_holder = Response()
    session_id = ensure_session_id(request, cookie_holder, settings)
    tab_id = tabId or f"tab-{uuid.uuid4().hex[:8]}"

    channels: SessionChannels = request.app.state.channels
    response = StreamingResponse(
        channels.stream(session_id, channel, tab_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
    for cookie in cookie_holder.headers.getlist("set-cookie"):
        response.headers.append("set-cookie", cookie)
    return response
