"""Per-session generation clients and request de-duplication."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from ..errors import PhotoboothError
from .backend import GenerationBackend

logger = logging.getLogger(__name__)

IDLE_TIMEOUT_SECONDS = 30 * 60

BackendFactory = Callable[[Optional[str]], GenerationBackend]


@dataclass
class SessionClient:
    """A connected backend client owned by one browser session."""
    session_id: str
    client_app_id: Optional[str]
    backend: GenerationBackend
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_used = time.monotonic()


class SessionRegistry:
    """Keeps one backend client per browser session.

    Clients are also indexed by the client app ID the browser reports, so a
    disconnect beacon from a closing tab can find the right instance.
    """

    def __init__(
        self,
        factory: BackendFactory,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.session_clients: Dict[str, SessionClient] = {}
        self.active_connections: Dict[str, SessionClient] = {}
        self._lock = asyncio.Lock()

    async def get_session_client(self, session_id: str, client_app_id: Optional[str] = None) -> GenerationBackend:
        """Return the session's connected client, creating it on first use."""
        async with self._lock:
            entry = self.session_clients.get(session_id)
            if entry is not None and entry.backend.connected:
                entry.last_used = self.clock()
                if client_app_id and client_app_id not in self.active_connections:
                    self.active_connections[client_app_id] = entry
                return entry.backend

            candidates = (entry, self.active_connections.get(client_app_id or ""))
            stale = {id(e): e for e in candidates if e is not None and not e.backend.connected}
            for old in stale.values():
                logger.info(f"Replacing disconnected client for session {old.session_id}")
                self._forget(old)
                await self._safe_disconnect(old, logout=False)

            logger.info(f"Creating generation client for session {session_id} (appId={client_app_id})")
            backend = self.factory(client_app_id)
            await backend.connect()

            now = self.clock()
            entry = SessionClient(
                session_id=session_id,
                client_app_id=client_app_id,
                backend=backend,
                created_at=now,
                last_used=now,
            )
            self.session_clients[session_id] = entry
            if client_app_id:
                self.active_connections[client_app_id] = entry
            return backend

    def has_client(self, session_id: str, client_app_id: Optional[str] = None) -> bool:
        if client_app_id and client_app_id in self.active_connections:
            return True
        entry = self.session_clients.get(session_id)
        return entry is not None and entry.backend.connected

    async def disconnect_session_client(self, session_id: str, client_app_id: Optional[str] = None) -> bool:
        """Disconnect the client for this session. Returns False if none existed."""
        entry = None
        if client_app_id:
            entry = self.active_connections.get(client_app_id)
        if entry is None:
            entry = self.session_clients.get(session_id)
        if entry is None:
            return False

        self._forget(entry)
        await self._safe_disconnect(entry, logout=False)
        logger.info(f"Disconnected session {entry.session_id} (appId={entry.client_app_id})")
        return True

    async def cleanup(self, logout: bool = False, include_session_clients: bool = True) -> int:
        """Disconnect active connections (and session clients). Returns how many were closed."""
        entries = {id(e): e for e in self.active_connections.values()}
        if include_session_clients:
            entries.update({id(e): e for e in self.session_clients.values()})

        for entry in entries.values():
            self._forget(entry)
            await self._safe_disconnect(entry, logout=logout)

        if entries:
            logger.info(f"Cleaned up {len(entries)} generation client(s) (logout={logout})")
        return len(entries)

    async def check_idle_connections(self) -> int:
        """Disconnect clients idle longer than the timeout; return how many remain."""
        now = self.clock()
        idle = [e for e in list(self.session_clients.values()) if now - e.last_used > self.idle_timeout]
        for entry in idle:
            logger.info(f"Closing idle client for session {entry.session_id}")
            self._forget(entry)
            await self._safe_disconnect(entry, logout=False)
        return self.active_connection_count()

    def active_connection_count(self) -> int:
        entries = {id(e) for e in self.session_clients.values()}
        entries.update(id(e) for e in self.active_connections.values())
        return len(entries)

    def _forget(self, entry: SessionClient) -> None:
        if self.session_clients.get(entry.session_id) is entry:
            del self.session_clients[entry.session_id]
        for app_id, other in list(self.active_connections.items()):
            if other is entry:
                del self.active_connections[app_id]

    async def _safe_disconnect(self, entry: SessionClient, logout: bool) -> None:
        try:
            await entry.backend.disconnect(logout=logout)
        except (PhotoboothError, OSError) as e:
            logger.warning(f"Error disconnecting client for session {entry.session_id}: {e}")


class RecentRequestCache:
    """Remembers request keys for a short TTL to drop duplicates."""

    def __init__(self, ttl: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._seen: Dict[str, float] = {}

    @staticmethod
    def make_key(session_id: str, client_app_id: Optional[str], method: str) -> str:
        return f"{session_id}:{client_app_id or 'no-client-id'}:{method.upper()}"

    def check_and_add(self, key: str) -> bool:
        """Return True if the key was seen within the TTL; otherwise record it."""
        now = self.clock()
        self._seen = {k: t for k, t in self._seen.items() if now - t < self.ttl}
        if key in self._seen:
            return True
        self._seen[key] = now
        return False
