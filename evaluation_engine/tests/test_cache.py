import threading

import pytest

from evaluation_engine.services.cache import MISS, TTLCache, get_cache, make_key, ttl_for
from evaluation_engine.tests.fakes import FakeClock


class TestTTLCache:
    def test_get_after_set_within_ttl_returns_value(self):
        clock = FakeClock()
        cache = TTLCache("dashboard", 20, clock=clock)
        cache.set("composite:7:0102", 82.86)

        clock.advance(19.9)
        assert cache.get("composite:7:0102") == 82.86

    def test_entry_expires_lazily_on_read(self):
        clock = FakeClock()
        cache = TTLCache("dashboard", 20, clock=clock)
        cache.set("k", "v")

        clock.advance(20)
        assert cache.get("k") is MISS
        assert cache.stats()["current_size"] == 0

    def test_expired_value_is_recomputed_from_source(self):
        clock = FakeClock()
        cache = TTLCache("dashboard", 20, clock=clock)
        source = {"calls": 0}

        def compute():
            source["calls"] += 1
            return 60.0

        first = cache.get_or_compute("participation:7", compute)
        assert cache.get_or_compute("participation:7", compute) == first
        assert source["calls"] == 1

        clock.advance(21)
        assert cache.get_or_compute("participation:7", compute) == first
        assert source["calls"] == 2

    def test_none_is_cached_and_distinct_from_miss(self):
        cache = TTLCache("dashboard", 20, clock=FakeClock())
        cache.set("channel_score:7:PEER:0102", None)
        assert cache.get("channel_score:7:PEER:0102") is None
        assert cache.get("other") is MISS
        assert not MISS

    def test_failed_compute_caches_nothing(self):
        cache = TTLCache("dashboard", 20, clock=FakeClock())

        def boom():
            raise RuntimeError("store down")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", boom)
        assert cache.get("k") is MISS

    def test_invalidate_prefix_only_touches_matching_keys(self):
        cache = TTLCache("dashboard", 20, clock=FakeClock())
        cache.set("composite:7:a", 1)
        cache.set("composite:70:a", 2)
        cache.set("participation:7", 3)

        assert cache.invalidate_prefix("composite:7:") == 1
        assert cache.get("composite:70:a") == 2
        assert cache.get("participation:7") == 3

    def test_stats_count_hits_and_misses(self):
        cache = TTLCache("lookup", 300, clock=FakeClock())
        cache.get("a")
        cache.set("a", 1)
        cache.get("a")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate_percent"] == 50.0

    def test_concurrent_set_and_get_are_safe(self):
        cache = TTLCache("dashboard", 20, clock=FakeClock())
        errors = []

        def worker(n):
            try:
                for i in range(200):
                    cache.set(f"k{i % 10}", n)
                    cache.get(f"k{i % 10}")
            except Exception as exc:   # pragma: no cover
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert cache.stats()["current_size"] == 10


class TestCacheRegistry:
    def test_make_key_joins_parts(self):
        assert make_key("composite", 7, "0102030405") == "composite:7:0102030405"
        assert make_key("career_results", 7, None) == "career_results:7:"

    def test_ttl_classes_come_from_settings(self, settings):
        settings.EVALUATION_ENGINE = {"CACHE_TTL_SECONDS": {"dashboard": 5, "lookup": 600}}
        assert ttl_for("dashboard") == 5
        assert ttl_for("lookup") == 600

    def test_get_cache_returns_one_instance_per_class(self):
        assert get_cache("dashboard") is get_cache("dashboard")
        assert get_cache("dashboard") is not get_cache("lookup")
        assert get_cache("lookup").ttl_seconds == 300
