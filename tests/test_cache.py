from narramorph.utils.cache import LRUCache, TTLCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_lru_evicts_least_recently_used() -> None:
    cache = LRUCache(2)
    cache.put("a", 1)
    cache.put("b", 2)
    assert cache.get("a") == 1
    cache.put("c", 3)

    assert "b" not in cache
    assert "a" in cache and "c" in cache
    assert len(cache) == 2


def test_lru_stats_track_hits_and_misses() -> None:
    cache = LRUCache(0)
    assert cache.capacity == 1
    assert cache.get("missing", "fallback") == "fallback"
    cache.put("k", False)
    assert cache.get("k") is False

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5

    cache.clear()
    assert cache.stats()["size"] == 0
    assert cache.stats()["hits"] == 0


def test_ttl_entries_expire() -> None:
    clock = _Clock()
    cache = TTLCache(4, 10, clock=clock)
    cache.put("a", 1)

    clock.now = 10
    assert cache.get("a") == 1
    clock.now = 10.5
    assert cache.get("a") is None
    assert len(cache) == 0


def test_ttl_purge_expired() -> None:
    clock = _Clock()
    cache = TTLCache(4, 5, clock=clock)
    cache.put("a", 1)
    clock.now = 3
    cache.put("b", 2)
    clock.now = 7

    assert cache.purge_expired() == 1
    assert "b" in cache


def test_ttl_eviction_skips_kept_keys() -> None:
    cache = TTLCache(2, 60, clock=_Clock(), keep=lambda key: key == "pinned")
    cache.put("pinned", 1)
    cache.put("b", 2)
    cache.put("c", 3)

    assert "pinned" in cache
    assert "b" not in cache
    assert "c" in cache


def test_ttl_eviction_falls_back_when_everything_is_kept() -> None:
    cache = TTLCache(1, 60, clock=_Clock(), keep=lambda key: True)
    cache.put("a", 1)
    cache.put("b", 2)

    assert "a" not in cache
    assert cache.get("b") == 2
