"""
Unit tests for utils/cache.py

Run with: pytest tests/test_cache.py -v
"""

import asyncio

import pytest

from conftest import FakeClock
from utils.cache import CacheKeys, CacheRegistry, CacheSettings, CacheStore


@pytest.fixture
def store(clock):
    return CacheStore(prefix="test", default_ttl=60, max_size=3, clock=clock)


class TestCacheStoreBasics:
    """Test set/get/expiry behaviour."""

    def test_set_and_get(self, store):
        """Test a stored value is returned before expiry."""
        store.set("a", {"value": 1})
        assert store.get("a") == {"value": 1}
        assert store.has("a")

    def test_missing_key_returns_default(self, store):
        """Test missing keys return the default and count as misses."""
        assert store.get("missing") is None
        assert store.get("missing", default="fallback") == "fallback"
        assert store.misses == 2
        assert store.hits == 0

    def test_expired_entry_is_deleted_on_read(self, store, clock):
        """Test an entry past its expiry is a miss and is removed."""
        store.set("a", 1, ttl_seconds=10)
        clock.advance(10)
        assert store.get("a") == 1  # expiry is inclusive of the boundary

        clock.advance(1)
        assert store.get("a") is None
        assert len(store) == 0

    def test_default_ttl_applies(self, store, clock):
        """Test set() without a TTL uses the store default."""
        store.set("a", 1)
        clock.advance(59)
        assert store.get("a") == 1
        clock.advance(2)
        assert store.get("a") is None

    def test_hit_and_miss_accounting(self, store):
        """Test stats() reports hits, misses and hit rate."""
        store.set("a", 1)
        store.get("a")
        store.get("a")
        store.get("b")

        stats = store.stats()
        assert stats["size"] == 1
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)

    def test_falsy_values_are_cached(self, store):
        """Test empty lists and zero are real cached values."""
        store.set("empty", [])
        store.set("zero", 0)
        assert store.get("empty", default="missing") == []
        assert store.get("zero", default="missing") == 0

    def test_delete(self, store):
        """Test delete() reports whether the key existed."""
        store.set("a", 1)
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.get("a") is None

    def test_clear_resets_counters(self, store):
        """Test clear() removes entries and resets statistics."""
        store.set("a", 1)
        store.get("a")
        store.get("b")
        store.clear()

        assert len(store) == 0
        assert store.stats() == {"size": 0, "hits": 0, "misses": 0, "hit_rate": 0}


class TestEviction:
    """Test capacity-based eviction."""

    def test_evicts_soonest_expiry_when_full(self, store):
        """Test inserting a new key into a full store evicts the entry closest to expiry."""
        store.set("long", 1, ttl_seconds=300)
        store.set("short", 2, ttl_seconds=5)
        store.set("medium", 3, ttl_seconds=60)

        store.set("new", 4, ttl_seconds=60)

        assert len(store) == 3
        assert store.get("short") is None
        assert store.get("long") == 1
        assert store.get("new") == 4

    def test_overwrite_existing_key_does_not_evict(self, store):
        """Test updating an existing key in a full store keeps every entry."""
        store.set("a", 1, ttl_seconds=5)
        store.set("b", 2, ttl_seconds=10)
        store.set("c", 3, ttl_seconds=15)

        store.set("a", 10, ttl_seconds=20)

        assert len(store) == 3
        assert store.get("a") == 10
        assert store.get("b") == 2


class TestInvalidatePattern:
    """Test glob invalidation over prefixed keys."""

    def test_star_matches_any_run(self, clock):
        """Test '*' matches any run of characters."""
        store = CacheStore(prefix="report", clock=clock)
        store.set("standup:42", 1)
        store.set("standup:42:WEB", 2)
        store.set("overview:42", 3)

        removed = store.invalidate_pattern("report:standup:*")

        assert removed == 2
        assert store.get("overview:42") == 3

    def test_question_mark_matches_single_character(self, clock):
        """Test '?' matches exactly one character."""
        store = CacheStore(prefix="issue", clock=clock)
        store.set("issue:WEB-1", 1)
        store.set("issue:WEB-12", 2)

        assert store.invalidate_pattern("issue:issue:WEB-?") == 1
        assert store.get("issue:WEB-12") == 2

    def test_pattern_is_anchored_and_literal(self, clock):
        """Test regex metacharacters are literal and the match covers the whole key."""
        store = CacheStore(prefix="p", clock=clock)
        store.set("a.b", 1)
        store.set("axb", 2)
        store.set("a.b.c", 3)

        assert store.invalidate_pattern("p:a.b") == 1
        assert store.get("axb") == 2
        assert store.get("a.b.c") == 3

    def test_pattern_matches_full_prefixed_key(self, clock):
        """Test patterns are matched against the prefixed key."""
        store = CacheStore(prefix="sprint", clock=clock)
        store.set("42", 1)

        assert store.invalidate_pattern("42") == 0
        assert store.invalidate_pattern("sprint:4?") == 1


class TestGetOrSet:
    """Test the async read-through helper."""

    def test_calls_factory_once_then_serves_cache(self, store):
        """Test a second call within the TTL is served from cache."""
        calls = []

        async def factory():
            calls.append(1)
            return "value"

        async def scenario():
            first = await store.get_or_set("k", factory)
            second = await store.get_or_set("k", factory)
            return first, second

        assert asyncio.run(scenario()) == ("value", "value")
        assert len(calls) == 1

    def test_refetches_after_expiry(self, store, clock):
        """Test the factory runs again once the entry has expired."""
        calls = []

        async def factory():
            calls.append(1)
            return len(calls)

        async def scenario():
            first = await store.get_or_set("k", factory, ttl_seconds=10)
            clock.advance(11)
            second = await store.get_or_set("k", factory, ttl_seconds=10)
            return first, second

        assert asyncio.run(scenario()) == (1, 2)

    def test_concurrent_misses_share_one_factory_call(self, store):
        """Test simultaneous misses for one key are coalesced."""
        calls = []

        async def scenario():
            release = asyncio.Event()

            async def factory():
                calls.append(1)
                await release.wait()
                return "shared"

            first = asyncio.create_task(store.get_or_set("k", factory))
            second = asyncio.create_task(store.get_or_set("k", factory))
            await asyncio.sleep(0)
            release.set()
            return await asyncio.gather(first, second)

        assert asyncio.run(scenario()) == ["shared", "shared"]
        assert len(calls) == 1

    def test_failure_is_not_cached_and_reaches_waiters(self, store):
        """Test a failing factory caches nothing and every waiter sees the error."""

        async def scenario():
            release = asyncio.Event()

            async def failing():
                await release.wait()
                raise RuntimeError("upstream down")

            first = asyncio.create_task(store.get_or_set("k", failing))
            second = asyncio.create_task(store.get_or_set("k", failing))
            await asyncio.sleep(0)
            release.set()
            results = await asyncio.gather(first, second, return_exceptions=True)

            async def recovered():
                return "ok"

            return results, await store.get_or_set("k", recovered)

        results, value = asyncio.run(scenario())
        assert all(isinstance(r, RuntimeError) for r in results)
        assert value == "ok"

    def test_cancelled_caller_does_not_cancel_waiters(self, store):
        """Test cancelling the caller that started the fetch leaves it running for the others."""
        calls = []

        async def scenario():
            release = asyncio.Event()

            async def factory():
                calls.append(1)
                await release.wait()
                return "shared"

            first = asyncio.create_task(store.get_or_set("k", factory))
            await asyncio.sleep(0)
            second = asyncio.create_task(store.get_or_set("k", factory))
            await asyncio.sleep(0)
            first.cancel()
            await asyncio.gather(first, return_exceptions=True)
            release.set()
            return first, await second

        first, value = asyncio.run(scenario())
        assert first.cancelled()
        assert value == "shared"
        assert store.get("k") == "shared"
        assert len(calls) == 1


class TestCleanup:
    """Test proactive expiry sweeps."""

    def test_cleanup_removes_only_expired(self, store, clock):
        """Test cleanup() removes expired entries and keeps live ones."""
        store.set("old", 1, ttl_seconds=5)
        store.set("fresh", 2, ttl_seconds=100)
        clock.advance(10)

        assert store.cleanup() == 1
        assert len(store) == 1

    def test_background_sweep_runs_until_stopped(self):
        """Test start_cleanup() sweeps periodically and stop() cancels it."""
        clock = FakeClock()
        store = CacheStore(prefix="t", default_ttl=1, cleanup_interval=0.01, clock=clock)

        async def scenario():
            store.set("a", 1)
            clock.advance(5)
            store.start_cleanup()
            await asyncio.sleep(0.05)
            size = len(store)
            await store.stop()
            return size

        assert asyncio.run(scenario()) == 0
        assert store._cleanup_task is None

    def test_destroy_stops_and_clears(self, store):
        """Test destroy() leaves an empty, stopped store."""

        async def scenario():
            store.set("a", 1)
            store.start_cleanup()
            await store.destroy()

        asyncio.run(scenario())
        assert len(store) == 0


class TestCacheKeys:
    """Test cache key builders."""

    def test_sprint_keys(self):
        assert CacheKeys.sprint(42) == "sprint:42"
        assert CacheKeys.sprint_issues(7) == "sprint-issues:7"
        assert CacheKeys.issue("WEB-1") == "issue:WEB-1"

    def test_user_key_is_case_insensitive(self):
        assert CacheKeys.user_by_email("Alice@Example.com") == "user:email:alice@example.com"

    def test_standup_key_includes_every_build_parameter(self):
        """Test reports with different thresholds never share a cache entry."""
        assert CacheKeys.standup_report(42) == "standup:42:stale-2"
        assert CacheKeys.standup_report(42, "WEB", 3) == "standup:42:WEB:stale-3"
        assert CacheKeys.standup_report(42, None, 2, False) == "standup:42:stale-2:no-unassigned"


class TestCacheRegistry:
    """Test the named store registry."""

    def test_stores_use_configured_ttls_and_prefixes(self, clock):
        settings = CacheSettings(sprint_ttl=600, issue_ttl=300, report_ttl=120, metadata_ttl=1800)
        registry = CacheRegistry(settings, clock=clock)

        assert registry.sprint.default_ttl == 600
        assert registry.report.default_ttl == 120
        assert {name: s.prefix for name, s in registry.stores().items()} == {
            "sprint": "sprint",
            "issue": "issue",
            "report": "report",
            "metadata": "metadata",
        }

    def test_invalidation_never_crosses_stores(self, clock):
        """Test the same logical key in two stores is independent."""
        registry = CacheRegistry(clock=clock)
        registry.sprint.set("42", "sprint")
        registry.report.set("42", "report")

        registry.report.invalidate_pattern("report:*")

        assert registry.sprint.get("42") == "sprint"
        assert registry.report.get("42") is None

    def test_clear_all_and_stats(self, clock):
        registry = CacheRegistry(clock=clock)
        registry.issue.set("a", 1)
        registry.metadata.set("b", 2)

        assert registry.stats()["issue"]["size"] == 1
        registry.clear_all()
        assert all(stats["size"] == 0 for stats in registry.stats().values())
