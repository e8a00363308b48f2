"""Tests for per-session client bookkeeping."""

from photobooth.generation.sessions import RecentRequestCache, SessionRegistry

from tests.conftest import BackendPool


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSessionRegistry:

    async def test_reuses_connected_client(self):
        pool = BackendPool()
        registry = SessionRegistry(pool)

        first = await registry.get_session_client("sid-1", "app-1")
        second = await registry.get_session_client("sid-1", "app-1")

        assert first is second
        assert len(pool.backends) == 1
        assert first.connect_calls == 1
        assert registry.has_client("sid-1")

    async def test_new_client_after_disconnect(self):
        pool = BackendPool()
        registry = SessionRegistry(pool)

        first = await registry.get_session_client("sid-1", "app-1")
        assert await registry.disconnect_session_client("sid-1", "app-1")
        second = await registry.get_session_client("sid-1", "app-1")

        assert first is not second
        assert first.disconnect_calls == [False]

    async def test_dropped_client_is_closed_when_replaced(self):
        pool = BackendPool()
        registry = SessionRegistry(pool)

        first = await registry.get_session_client("sid-1", "app-1")
        first._connected = False
        second = await registry.get_session_client("sid-1", "app-1")

        assert first is not second
        assert first.disconnect_calls == [False]
        assert registry.active_connections["app-1"].backend is second
        assert registry.session_clients["sid-1"].backend is second
        assert registry.active_connection_count() == 1

    async def test_disconnect_unknown_session(self):
        registry = SessionRegistry(BackendPool())
        assert not await registry.disconnect_session_client("sid-missing")

    async def test_cleanup_logs_out_everyone(self):
        pool = BackendPool()
        registry = SessionRegistry(pool)
        await registry.get_session_client("sid-1", "app-1")
        await registry.get_session_client("sid-2", None)

        closed = await registry.cleanup(logout=True, include_session_clients=True)

        assert closed == 2
        assert registry.active_connection_count() == 0
        assert all(b.disconnect_calls == [True] for b in pool.backends)

    async def test_cleanup_active_connections_only(self):
        pool = BackendPool()
        registry = SessionRegistry(pool)
        await registry.get_session_client("sid-1", "app-1")
        await registry.get_session_client("sid-2", None)

        closed = await registry.cleanup(logout=False, include_session_clients=False)

        assert closed == 1
        assert registry.has_client("sid-2")
        assert not registry.has_client("sid-1", "app-1")

    async def test_idle_clients_are_closed(self):
        clock = FakeClock()
        pool = BackendPool()
        registry = SessionRegistry(pool, idle_timeout=60, clock=clock)
        await registry.get_session_client("sid-old", None)
        clock.now += 30
        await registry.get_session_client("sid-new", None)
        clock.now += 45

        remaining = await registry.check_idle_connections()

        assert remaining == 1
        assert not registry.has_client("sid-old")
        assert registry.has_client("sid-new")


class TestRecentRequestCache:

    def test_duplicates_within_ttl(self):
        clock = FakeClock()
        cache = RecentRequestCache(ttl=3.0, clock=clock)
        key = cache.make_key("sid-1", None, "post")

        assert key == "sid-1:no-client-id:POST"
        assert cache.check_and_add(key) is False
        assert cache.check_and_add(key) is True

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = RecentRequestCache(ttl=3.0, clock=clock)
        cache.check_and_add("k")
        clock.now += 3.5
        assert cache.check_and_add("k") is False
