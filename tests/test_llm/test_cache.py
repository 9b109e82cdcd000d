"""
Tests for the ResponseCache and its row stores.

Covers key normalization, model separation, the 24h TTL, upserts, the
kill switch, purge, stats and store-failure degradation.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from llm_gateway.config.schema import CacheSettings
from llm_gateway.exceptions import CacheStoreError
from llm_gateway.llm.cache import ResponseCache
from llm_gateway.llm.cache_store import (
    CacheEntry,
    CacheStore,
    InMemoryCacheStore,
    SQLiteCacheStore,
    create_cache_store,
)

T0 = 1_700_000_000.0
MINUTE = 60
HOUR = 3600


class FakeClock:
    """Settable clock."""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        yield InMemoryCacheStore()
    else:
        sqlite_store = SQLiteCacheStore(":memory:")
        yield sqlite_store
        sqlite_store.close()


@pytest.fixture
def cache(store, clock):
    return ResponseCache(store, ttl_seconds=24 * HOUR, clock=clock)


# ===========================================================================
# Keys
# ===========================================================================

class TestKeys:
    """Deterministic, normalized keys."""

    def test_normalization_shares_key(self):
        assert ResponseCache.make_key("Hello", "m") == ResponseCache.make_key("  hello   ", "m")

    def test_model_changes_key(self):
        assert ResponseCache.make_key("Hello", "m1") != ResponseCache.make_key("Hello", "m2")

    def test_fixed_length(self):
        assert len(ResponseCache.make_key("x" * 10_000, "m")) == 64


# ===========================================================================
# get / put
# ===========================================================================

class TestGetPut:
    """Round trips through both store backends."""

    def test_normalization_insensitive_hit(self, cache):
        cache.put("Hello", "modelX", "Hi there")
        assert cache.get("hello   ", "modelX") == "Hi there"

    def test_different_model_misses(self, cache):
        cache.put("Hello", "modelX", "Hi there")
        assert cache.get("Hello", "modelY") is None

    def test_miss_on_empty(self, cache):
        assert cache.get("anything", "m") is None

    def test_upsert_overwrites(self, cache, store, clock):
        cache.put("Hello", "m", "first")
        clock.now += HOUR
        cache.put("HELLO", "m", "second")

        assert cache.get("hello", "m") == "second"
        assert store.count() == 1
        entry = store.get(ResponseCache.make_key("hello", "m"), "m")
        assert entry.created_at == T0 + HOUR


class TestTTL:
    """Entries live for 24 hours; expiry is lazy."""

    def test_hit_just_before_expiry(self, cache, clock):
        cache.put("Hello", "m", "Hi")
        clock.now = T0 + 23 * HOUR + 59 * MINUTE
        assert cache.get("Hello", "m") == "Hi"

    def test_miss_just_after_expiry(self, cache, clock):
        cache.put("Hello", "m", "Hi")
        clock.now = T0 + 24 * HOUR + 1 * MINUTE
        assert cache.get("Hello", "m") is None

    def test_expired_rows_stay_until_purged(self, cache, store, clock):
        cache.put("Hello", "m", "Hi")
        clock.now = T0 + 25 * HOUR
        assert cache.get("Hello", "m") is None
        assert store.count() == 1

        assert cache.purge_expired() == 1
        assert store.count() == 0

    def test_purge_with_max_age(self, cache, store, clock):
        cache.put("old", "m", "1")
        clock.now = T0 + 8 * 24 * HOUR
        cache.put("new", "m", "2")

        assert cache.purge_expired(max_age_seconds=7 * 24 * HOUR) == 1
        assert cache.get("new", "m") == "2"

    def test_purge_with_zero_max_age_removes_everything_older(self, cache, store, clock):
        cache.put("a", "m", "r")
        clock.now = T0 + 10

        assert cache.purge_expired(0) == 1
        assert store.count() == 0

    def test_clear(self, cache, store):
        cache.put("a", "m", "1")
        cache.put("b", "m", "2")
        assert cache.clear() == 2
        assert store.count() == 0


class TestDisabled:
    """Kill switch makes get/put no-ops."""

    def test_disabled_cache(self, store, clock):
        cache = ResponseCache(store, enabled=False, clock=clock)
        cache.put("Hello", "m", "Hi")
        assert store.count() == 0
        assert cache.get("Hello", "m") is None


class TestStoreFailures:
    """Store errors never propagate."""

    @pytest.fixture
    def broken_store(self):
        store = MagicMock(spec=CacheStore)
        store.get.side_effect = CacheStoreError("db down", operation="get")
        store.upsert.side_effect = CacheStoreError("db down", operation="upsert")
        return store

    def test_read_failure_is_a_miss(self, broken_store):
        cache = ResponseCache(broken_store)
        assert cache.get("Hello", "m") is None
        assert cache.get_stats()["errors"] == 1

    def test_write_failure_is_swallowed(self, broken_store):
        cache = ResponseCache(broken_store)
        cache.put("Hello", "m", "Hi")
        assert cache.get_stats()["stores"] == 0
        assert cache.get_stats()["errors"] == 1

    def test_closed_sqlite_store(self):
        store = SQLiteCacheStore(":memory:")
        store.close()
        cache = ResponseCache(store)
        cache.put("Hello", "m", "Hi")
        assert cache.get("Hello", "m") is None


class TestStats:
    """Hit/miss accounting."""

    def test_counts(self, cache):
        cache.put("q", "m", "a")
        cache.get("q", "m")
        cache.get("other", "m")

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["stores"] == 1
        assert stats["hit_rate"] == 0.5


# ===========================================================================
# Stores
# ===========================================================================

class TestSQLiteCacheStore:
    """SQLite-specific behaviour."""

    def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "cache.db")
        store = SQLiteCacheStore(path)
        store.upsert(CacheEntry("k", "Hello", "Hi", "m", T0))
        store.close()

        reopened = SQLiteCacheStore(path)
        entry = reopened.get("k", "m")
        reopened.close()
        assert entry == CacheEntry("k", "Hello", "Hi", "m", T0)

    def test_same_key_different_model_are_separate_rows(self):
        store = SQLiteCacheStore()
        store.upsert(CacheEntry("k", "Hello", "one", "m1", T0))
        store.upsert(CacheEntry("k", "Hello", "two", "m2", T0))
        assert store.count() == 2
        assert store.get("k", "m2").response == "two"

    def test_unopenable_path_raises(self, tmp_path):
        with pytest.raises(CacheStoreError):
            SQLiteCacheStore(str(tmp_path / "missing-dir" / "cache.db"))


class TestCreateCacheStore:
    """Factory picks the configured backend."""

    def test_memory(self):
        assert isinstance(create_cache_store(CacheSettings(backend="memory")), InMemoryCacheStore)

    def test_sqlite(self, tmp_path):
        store = create_cache_store(
            CacheSettings(backend="sqlite", sqlite_path=str(tmp_path / "c.db"))
        )
        assert isinstance(store, SQLiteCacheStore)
        store.close()
