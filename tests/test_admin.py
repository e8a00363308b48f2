"""Tests for the analytics maintenance commands."""

import pytest

from photobooth.admin import cleanup_random_mix, migrate_analytics, migrated_key


class TestMigratedKey:

    @pytest.mark.parametrize("key,expected", [
        ("metrics:today:2025-10-01:batch_generated", "analytics:daily:2025-10-01:batch_generated:total"),
        ("metrics:lifetime:photos_taken", "analytics:lifetime:photos_taken:total"),
        ("metrics:something", None),
        ("metrics:today:2025-10-01", None),
    ])
    def test_mapping(self, key, expected):
        assert migrated_key(key) == expected


class TestMigrateAnalytics:

    async def test_copies_counters_and_keeps_existing(self, redis_client):
        await redis_client.set("metrics:today:2025-10-01:batch_generated", 5)
        await redis_client.set("metrics:lifetime:batch_generated", 10)
        await redis_client.set("metrics:lifetime:photos_taken", 7)
        await redis_client.set("analytics:lifetime:photos_taken:total", 99)
        await redis_client.set("metrics:unrelated", 1)

        assert await migrate_analytics(redis_client) == 2

        assert await redis_client.get("analytics:daily:2025-10-01:batch_generated:total") == "5"
        assert await redis_client.get("analytics:lifetime:batch_generated:total") == "10"
        assert await redis_client.get("analytics:lifetime:photos_taken:total") == "99"

    async def test_nothing_to_migrate(self, redis_client):
        assert await migrate_analytics(redis_client) == 0


class TestCleanupRandomMix:

    async def test_removes_leaderboard_entries_and_keys(self, redis_client):
        leaderboard = "analytics:leaderboard:downloads:lifetime"
        await redis_client.zadd(leaderboard, {"randomMix": 3, "anime": 2})
        await redis_client.set("analytics:prompt:randomMix:downloads:lifetime", 3)
        await redis_client.set("cache:randomMix", 1)

        assert await cleanup_random_mix(redis_client) == 2

        assert await redis_client.zrange(leaderboard, 0, -1) == ["anime"]
        assert not await redis_client.exists("analytics:prompt:randomMix:downloads:lifetime")
        assert await redis_client.exists("cache:randomMix")

    async def test_nothing_to_clean(self, redis_client):
        assert await cleanup_random_mix(redis_client) == 0
