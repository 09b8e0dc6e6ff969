"""Tests for the verdict cache and its stores."""

import logging

import pytest

from mathequiv.cache import CacheEntry, MemoryStore, ResultCache, SqliteStore, fingerprint
from mathequiv.config import SEVEN_DAYS, EquivalenceConfig, Region
from mathequiv.errors import ConfigurationError


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResultCache(clock=clock, ttl_seconds=60)


VERDICT = {"equivalent": True, "method": "fast-canonical"}


class TestCacheEntry:

    def test_expiry_is_inclusive(self):
        entry = CacheEntry({}, expires_at=10.0)
        assert not entry.is_expired(9.9)
        assert entry.is_expired(10.0)

    def test_created_at_defaults_to_zero(self):
        assert CacheEntry({}, 10.0).created_at == 0.0


class TestMemoryStore:
    """Tests for the in-memory LRU store."""

    @pytest.mark.asyncio
    async def test_set_get(self):
        store = MemoryStore()
        await store.set("k", CacheEntry(VERDICT, 5.0))
        assert (await store.get("k")).value == VERDICT
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_least_recently_used_evicted(self):
        store = MemoryStore(max_entries=2)
        await store.set("a", CacheEntry({}, 1.0))
        await store.set("b", CacheEntry({}, 1.0))
        await store.get("a")
        await store.set("c", CacheEntry({}, 1.0))
        assert len(store) == 2
        assert await store.get("b") is None
        assert await store.get("a") is not None

    @pytest.mark.asyncio
    async def test_prefix_operations(self):
        store = MemoryStore()
        for key in ("s1:a", "s1:b", "s2:a"):
            await store.set(key, CacheEntry({}, 1.0))
        assert sorted(k for k, _ in await store.items("s1:")) == ["s1:a", "s1:b"]
        assert await store.delete_prefix("s1:") == 2
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_delete(self):
        store = MemoryStore()
        await store.set("k", CacheEntry({}, 1.0))
        assert await store.delete("k")
        assert not await store.delete("k")

    def test_bad_size(self):
        with pytest.raises(ConfigurationError):
            MemoryStore(max_entries=0)


class TestSqliteStore:
    """Tests for the SQLite store."""

    @pytest.fixture
    def store(self, tmp_path):
        return SqliteStore(tmp_path / "verdicts.db")

    @pytest.mark.asyncio
    async def test_set_get(self, store):
        await store.set("k", CacheEntry(VERDICT, 5.0))
        entry = await store.get("k")
        assert entry == CacheEntry(VERDICT, 5.0)
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_replace(self, store):
        await store.set("k", CacheEntry({"n": 1}, 5.0))
        await store.set("k", CacheEntry({"n": 2}, 6.0))
        assert (await store.get("k")).value == {"n": 2}

    @pytest.mark.asyncio
    async def test_created_at_stored(self, store):
        await store.set("k", CacheEntry(VERDICT, 5.0, created_at=2.5))
        assert (await store.get("k")).created_at == 2.5
        [(key, entry)] = await store.items("k")
        assert entry.created_at == 2.5

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "shared.db"
        await SqliteStore(path).set("k", CacheEntry(VERDICT, 5.0))
        assert (await SqliteStore(path).get("k")).value == VERDICT

    @pytest.mark.asyncio
    async def test_prefix_is_literal(self, store):
        """Wildcard characters in a prefix match only themselves."""
        await store.set("a_b:1", CacheEntry({}, 1.0))
        await store.set("axb:1", CacheEntry({}, 1.0))
        assert [k for k, _ in await store.items("a_b:")] == ["a_b:1"]
        assert await store.delete_prefix("a_b:") == 1
        assert await store.get("axb:1") is not None

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set("k", CacheEntry({}, 1.0))
        assert await store.delete("k")
        assert not await store.delete("k")


class TestFingerprint:
    """Tests for cache keys."""

    def test_stable(self):
        config = EquivalenceConfig()
        key = fingerprint("x", "y", config)
        assert key == fingerprint("x", "y", EquivalenceConfig())
        assert len(key) == 64

    def test_config_changes_key(self):
        base = fingerprint("1,000", "1000", EquivalenceConfig())
        assert base != fingerprint("1,000", "1000", EquivalenceConfig(region=Region.EU))
        assert base != fingerprint("1,000", "1000", EquivalenceConfig(float_tolerance=1e-3))

    def test_order_matters(self):
        config = EquivalenceConfig()
        assert fingerprint("x", "y", config) != fingerprint("y", "x", config)

    def test_engine_tag(self):
        config = EquivalenceConfig()
        assert fingerprint("x", "y", config, "a") != fingerprint("x", "y", config, "b")


class TestResultCache:
    """Tests for ResultCache."""

    def test_defaults(self):
        cache = ResultCache()
        assert cache.ttl_seconds == SEVEN_DAYS
        assert isinstance(cache.store, MemoryStore)

    @pytest.mark.parametrize("kwargs", [
        {"ttl_seconds": -1},
        {"scope": ""},
        {"scope": "a:b"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            ResultCache(**kwargs)

    @pytest.mark.asyncio
    async def test_put_get(self, cache):
        await cache.put("k", VERDICT)
        assert await cache.get("k") == VERDICT
        assert await cache.get("other") is None
        assert cache.stats() == {"scope": "default", "hits": 1, "misses": 1, "hit_rate": 0.5}

    @pytest.mark.asyncio
    async def test_entry_times(self, cache, clock):
        await cache.put("k", VERDICT)
        entry = await cache.store.get("default:k")
        assert entry.created_at == 1000.0
        assert entry.expires_at == 1060.0

    @pytest.mark.asyncio
    async def test_expiry(self, cache, clock):
        await cache.put("k", VERDICT)
        clock.now += 59
        assert await cache.get("k") == VERDICT
        clock.now += 1
        assert await cache.get("k") is None
        assert await cache.store.get("default:k") is None

    @pytest.mark.asyncio
    async def test_ttl_override(self, cache, clock):
        await cache.put("k", VERDICT, ttl_seconds=5)
        clock.now += 5
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_zero_ttl(self, clock):
        cache = ResultCache(clock=clock, ttl_seconds=0)
        await cache.put("k", VERDICT)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_stored_value_is_a_copy(self, cache):
        value = dict(VERDICT)
        await cache.put("k", value)
        value["equivalent"] = False
        assert (await cache.get("k"))["equivalent"] is True

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.put("k", VERDICT)
        assert await cache.delete("k")
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_scopes_share_a_store(self, clock):
        """clear() only removes entries in its own scope."""
        store = MemoryStore()
        grading = ResultCache(store, scope="grading", clock=clock)
        practice = ResultCache(store, scope="practice", clock=clock)
        await grading.put("k", {"n": 1})
        await practice.put("k", {"n": 2})
        assert await grading.get("k") == {"n": 1}
        assert await grading.clear() == 1
        assert await grading.get("k") is None
        assert await practice.get("k") == {"n": 2}

    @pytest.mark.asyncio
    async def test_evict_expired(self, cache, clock, caplog):
        await cache.put("old", VERDICT, ttl_seconds=10)
        await cache.put("new", VERDICT, ttl_seconds=100)
        clock.now += 50
        with caplog.at_level(logging.INFO, logger="mathequiv.cache"):
            assert await cache.evict_expired() == 1
        assert any(getattr(r, "removed", None) == 1 for r in caplog.records)
        assert await cache.get("new") == VERDICT

    @pytest.mark.asyncio
    async def test_sqlite_backed(self, tmp_path, clock):
        cache = ResultCache(SqliteStore(tmp_path / "cache.db"), scope="grading", clock=clock)
        await cache.put("k", VERDICT)
        assert await cache.get("k") == VERDICT
        clock.now += SEVEN_DAYS
        assert await cache.get("k") is None
