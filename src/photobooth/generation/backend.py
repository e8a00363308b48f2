"""Client for the hosted generation service.

The generation models and the worker network live behind the vendor's
service. This module is the only place that speaks its wire protocol:
- REST calls for sessions, projects, cancellation and estimates
- a newline-delimited JSON event stream per project

Everything else in the package talks to the `GenerationBackend` interface,
which keeps the routes and workflows testable with an in-memory fake.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..errors import (
    INSUFFICIENT_FUNDS_CODE,
    BackendAuthError,
    BackendTimeoutError,
    BackendUnavailableError,
    GenerationError,
    InsufficientFundsError,
    PhotoboothError,
)

logger = logging.getLogger(__name__)

# Project-level events after which no further events arrive
TERMINAL_EVENTS = ("completed", "failed")


class GenerationBackend(ABC):
    """Operations the photobooth needs from the generation SDK."""

    supports_video: bool = True

    @abstractmethod
    async def connect(self) -> None:
        """Authenticate and open the session."""

    @abstractmethod
    async def disconnect(self, logout: bool = False) -> None:
        """Close the session, optionally logging out of the account."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether `connect()` has succeeded and not been undone."""

    @abstractmethod
    async def get_client_info(self) -> dict:
        """Account and network information for the status endpoint."""

    @abstractmethod
    async def create_project(self, params: Dict[str, Any]) -> str:
        """Submit a project and return the remote project ID."""

    @abstractmethod
    def stream_events(self, project_id: str) -> AsyncIterator[dict]:
        """Yield job/project events until a terminal event is received."""

    @abstractmethod
    async def cancel_project(self, project_id: str) -> None:
        """Cancel a running project."""

    @abstractmethod
    async def estimate_cost(self, params: Dict[str, Any]) -> dict:
        """Return a cost quote with `token` and `usd` fields."""

    async def health_check(self) -> bool:
        return self.connected


def _encode_value(value: Any) -> Any:
    """Make project params JSON-safe; raw media travels as base64."""
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("utf-8")
    if isinstance(value, dict):
        return {k: _encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    return value


class HostedGenerationClient(GenerationBackend):
    """httpx client for the hosted generation service."""

    def __init__(
        self,
        api_url: str,
        app_id: str,
        username: str,
        password: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            api_url: Base URL of the generation service
            app_id: Application ID identifying this client instance
            username: Account username
            password: Account password
            timeout: Request timeout in seconds (event streams are unbounded)
            transport: Optional httpx transport, used by tests
        """
        self.api_url = api_url.rstrip("/")
        self.app_id = app_id
        self.username = username
        self.password = password
        self.client = httpx.AsyncClient(base_url=self.api_url, timeout=timeout, transport=transport)
        self._token: Optional[str] = None

        logger.info(f"HostedGenerationClient initialized: appId={app_id}, url={self.api_url}")

    @property
    def connected(self) -> bool:
        return self._token is not None

    def _headers(self) -> Dict[str, str]:
        headers = {"X-App-Id": self.app_id}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.ConnectError as e:
            raise BackendUnavailableError(f"ECONNREFUSED: {e}") from e
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(f"Request timeout: {e}") from e

        if response.status_code in (401, 403):
            raise BackendAuthError("Invalid credentials", code=response.status_code)

        payload: dict = {}
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = {}

        if response.is_error:
            error = payload.get("error") if isinstance(payload.get("error"), dict) else payload
            message = error.get("message") or response.reason_phrase or "Request failed"
            code = error.get("code")
            if code == INSUFFICIENT_FUNDS_CODE or response.status_code == 402:
                raise InsufficientFundsError(message, code=code or INSUFFICIENT_FUNDS_CODE)
            raise PhotoboothError(message, code=code or response.status_code)

        return payload

    async def connect(self) -> None:
        if self.connected:
            return
        data = await self._request(
            "POST",
            "/v1/session",
            json={"appId": self.app_id, "username": self.username, "password": self.password},
        )
        self._token = data.get("token")
        if not self._token:
            raise BackendAuthError("Invalid credentials")
        logger.info(f"Connected to generation service as {self.username} ({self.app_id})")

    async def disconnect(self, logout: bool = False) -> None:
        if not self.connected:
            await self.client.aclose()
            return
        try:
            if logout:
                await self._request("DELETE", "/v1/session")
        except PhotoboothError as e:
            logger.warning(f"Logout failed for {self.app_id}: {e}")
        finally:
            self._token = None
            await self.client.aclose()
        logger.info(f"Disconnected generation client {self.app_id} (logout={logout})")

    async def get_client_info(self) -> dict:
        data = await self._request("GET", "/v1/account")
        return {
            "connected": self.connected,
            "appId": self.app_id,
            "network": data.get("network"),
            "account": data.get("account", data),
        }

    async def create_project(self, params: Dict[str, Any]) -> str:
        data = await self._request("POST", "/v1/projects", json=_encode_value(params))
        project_id = data.get("id") or data.get("projectId")
        if not project_id:
            raise GenerationError("Failed to create project")
        logger.info(f"Created project {project_id} ({params.get('type', 'image')}, model={params.get('modelId')})")
        return project_id

    async def stream_events(self, project_id: str) -> AsyncIterator[dict]:
        try:
            async with self.client.stream(
                "GET",
                f"/v1/projects/{project_id}/events",
                headers=self._headers(),
                timeout=None,
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        event = json.loads(line)
                    except ValueError:
                        logger.warning(f"Skipping malformed event for {project_id}: {line[:200]}")
                        continue
                    event.setdefault("projectId", project_id)
                    yield event
                    if event.get("type") in TERMINAL_EVENTS:
                        return
        except httpx.ConnectError as e:
            raise BackendUnavailableError(f"ECONNREFUSED: {e}") from e
        except httpx.HTTPStatusError as e:
            raise GenerationError(f"Event stream failed: {e.response.status_code}") from e

        raise GenerationError("Event stream ended before project finished")

    async def cancel_project(self, project_id: str) -> None:
        await self._request("POST", f"/v1/projects/{project_id}/cancel")
        logger.info(f"Cancelled project {project_id}")

    async def estimate_cost(self, params: Dict[str, Any]) -> dict:
        return await self._request("POST", "/v1/projects/estimate", json=_encode_value(params))

    async def health_check(self) -> bool:
        try:
            response = await self.client.get("/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Health check failed: {e}")
            return False
