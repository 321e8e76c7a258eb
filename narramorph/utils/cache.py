from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable, Hashable
from threading import Lock
from typing import Any

from narramorph.utils.time import monotonic_s

_MISSING = object()


class LRUCache:
    def __init__(self, capacity: int) -> None:
        self.capacity = max(1, int(capacity))
        self._lock = Lock()
        self._data: OrderedDict[Hashable, Any] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            value = self._data.get(key, _MISSING)
            if value is _MISSING:
                self.misses += 1
                return default
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = value
            while len(self._data) > self.capacity:
                self._data.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def stats(self) -> dict:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "size": len(self._data),
                "capacity": self.capacity,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": 0.0 if lookups <= 0 else round(float(self.hits) / float(lookups), 4),
            }


class TTLCache(LRUCache):
    """LRU cache whose entries also expire after ``ttl_s`` seconds.

    When full, eviction walks from the least recently used end and skips keys
    for which ``keep`` returns True; only if every entry is kept does the
    oldest one go.
    """

    def __init__(
        self,
        capacity: int,
        ttl_s: float,
        *,
        clock: Callable[[], float] = monotonic_s,
        keep: Callable[[Hashable], bool] | None = None,
    ) -> None:
        super().__init__(capacity)
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self.keep = keep

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key, _MISSING)
            if entry is _MISSING:
                self.misses += 1
                return default
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_s:
                del self._data[key]
                self.misses += 1
                return default
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = (now, value)
            while len(self._data) > self.capacity:
                self._evict_one(protect=key)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired(self._clock())

    def _purge_expired(self, now: float) -> int:
        expired = [key for key, (stored_at, _) in self._data.items() if now - stored_at > self.ttl_s]
        for key in expired:
            del self._data[key]
        return len(expired)

    def _evict_one(self, *, protect: Hashable) -> None:
        for key in self._data:
            if key == protect:
                continue
            if self.keep is not None and self.keep(key):
                continue
            del self._data[key]
            return
        for key in self._data:
            if key != protect:
                del self._data[key]
                return
