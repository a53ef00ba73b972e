# tests/test_cache.py
import pytest

from app.memory.cache import MapSummaryKey, TTLCache


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestTTLCache:

    def test_get_returns_stored_value(self, clock):
        cache = TTLCache(max_entries=2, ttl_seconds=10, clock=clock)

        cache.set("a", "value")

        assert cache.get("a") == "value"
        assert "a" in cache
        assert cache.get("missing") is None

    def test_entries_expire(self, clock):
        cache = TTLCache(max_entries=2, ttl_seconds=10, clock=clock)
        cache.set("a", "value")

        clock.now = 10.0
        assert cache.get("a") == "value"

        clock.now = 10.5
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self, clock):
        cache = TTLCache(max_entries=2, ttl_seconds=100, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "b" not in cache
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_overwrite_refreshes_expiry(self, clock):
        cache = TTLCache(max_entries=2, ttl_seconds=10, clock=clock)
        cache.set("a", 1)

        clock.now = 8.0
        cache.set("a", 2)

        clock.now = 15.0
        assert cache.get("a") == 2

    def test_clear(self, clock):
        cache = TTLCache(max_entries=2, ttl_seconds=10, clock=clock)
        cache.set("a", 1)

        cache.clear()

        assert len(cache) == 0

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            TTLCache(max_entries=0, ttl_seconds=10)


class TestMapSummaryKey:

    def test_keys_differ_by_model_and_excerpt_length(self):
        base = MapSummaryKey(model="m1", per_chunk_chars=1800, chunk_id="doc:0")

        assert base == MapSummaryKey("m1", 1800, "doc:0")
        assert base != MapSummaryKey("m2", 1800, "doc:0")
        assert base != MapSummaryKey("m1", 900, "doc:0")

    def test_cache_keyed_by_map_summary_key(self, clock):
        cache = TTLCache(max_entries=4, ttl_seconds=10, clock=clock)

        cache.set(MapSummaryKey("m1", 1800, "doc:0"), "summary")

        assert cache.get(MapSummaryKey("m1", 1800, "doc:0")) == "summary"
        assert cache.get(MapSummaryKey("m2", 1800, "doc:0")) is None
