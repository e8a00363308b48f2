"""Cross-tab notifications scoped to a browser session.

Tabs of the same browser share the session cookie. Each tab listens on a
named channel over SSE and any tab (or the server) can publish to it, e.g.
`spark-purchase-complete` after a checkout finishes in another tab.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import AsyncIterator, Dict, Optional, Tuple

from .progress import HEARTBEAT_FRAME, HEARTBEAT_INTERVAL, format_sse

logger = logging.getLogger(__name__)

SESSION_CHANNEL = "session"

ChannelKey = Tuple[str, str]


class SessionChannels:
    """Named per-session broadcast channels."""

    def __init__(self, heartbeat_interval: float = HEARTBEAT_INTERVAL):
        self.heartbeat_interval = heartbeat_interval
        self._listeners: Dict[ChannelKey, Dict[str, asyncio.Queue]] = defaultdict(dict)

    def listeners(self, session_id: str, channel: str) -> Dict[str, asyncio.Queue]:
        return self._listeners.get((session_id, channel), {})

    def publish(self, session_id: str, channel: str, message: dict, sender_tab: Optional[str] = None) -> int:
        """Deliver a message to every tab on the channel except the sender."""
        delivered = 0
        for tab_id, queue in self.listeners(session_id, channel).items():
            if tab_id == sender_tab:
                continue
            queue.put_nowait(message)
            delivered += 1
        logger.debug(f"Channel {channel} message {message.get('type')} delivered to {delivered} tab(s)")
        return delivered

    def join(self, session_id: str, channel: str, tab_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        key = (session_id, channel)
        self._listeners[key][tab_id] = queue
        if channel == SESSION_CHANNEL:
            self.publish(session_id, channel, {"type": "tab-opened", "tabId": tab_id}, sender_tab=tab_id)
        return queue

    def leave(self, session_id: str, channel: str, tab_id: str) -> None:
        key = (session_id, channel)
        tabs = self._listeners.get(key)
        if tabs is None:
            return
        tabs.pop(tab_id, None)
        if not tabs:
            del self._listeners[key]

    async def stream(self, session_id: str, channel: str, tab_id: str) -> AsyncIterator[str]:
        queue = self.join(session_id, channel, tab_id)
        try:
            yield format_sse({"type": "connected", "channel": channel, "tabId": tab_id})
            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_interval)
                except asyncio.TimeoutError:
                    yield HEARTBEAT_FRAME
                    continue
                yield format_sse(message)
        finally:
            self.leave(session_id, channel, tab_id)
