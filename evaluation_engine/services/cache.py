"""
Time-boxed read-through cache shared by every read in the engine.

One TTLCache per TTL class ("dashboard" aggregates, "lookup" names...).
Expiry is lazy: an entry older than the TTL is dropped when it is read,
there is no background sweep. The cache only bounds load on the stores,
a miss always recomputes the same value from source.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Tuple

from django.conf import settings

logger = logging.getLogger(__name__)


class _Miss:
    def __repr__(self):
        return "MISS"

    def __bool__(self):
        return False


MISS = _Miss()

DASHBOARD = "dashboard"
LOOKUP = "lookup"

DEFAULT_TTLS = {DASHBOARD: 20, LOOKUP: 300}


def make_key(*parts: Any) -> str:
    """Composite string key, e.g. make_key("composite", 7, "0102") -> "composite:7:0102"."""
    return ":".join("" if p is None else str(p) for p in parts)


class TTLCache:
    """
    Thread-safe map of key -> (stored_at, value) with a single fixed TTL.

    Args:
        name: TTL class name, used in logs and stats
        ttl_seconds: lifetime of every entry
        clock: monotonic time source (injectable for tests)
    """

    def __init__(self, name: str, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any:
        """Return the cached value, or MISS when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                logger.debug("cache[%s] miss %s", self.name, key)
                return MISS

            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                logger.debug("cache[%s] expired %s", self.name, key)
                return MISS

            self._hits += 1
            logger.debug("cache[%s] hit %s", self.name, key)
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        """
        Read-through helper. `compute` runs outside the lock; two racing
        misses both compute and the last write wins.
        Exceptions from `compute` propagate and nothing is cached.
        """
        value = self.get(key)
        if value is not MISS:
            return value
        value = compute()
        self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "name": self.name,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate_percent": round(self._hits / total * 100, 2) if total else 0.0,
                "current_size": len(self._entries),
            }


_registry: Dict[str, TTLCache] = {}
_registry_lock = threading.Lock()


def ttl_for(ttl_class: str) -> float:
    configured = getattr(settings, "EVALUATION_ENGINE", {}).get("CACHE_TTL_SECONDS", {})
    return configured.get(ttl_class, DEFAULT_TTLS.get(ttl_class, DEFAULT_TTLS[DASHBOARD]))


def get_cache(ttl_class: str) -> TTLCache:
    """Process-wide cache for a TTL class, created on first use."""
    with _registry_lock:
        cache = _registry.get(ttl_class)
        if cache is None:
            cache = TTLCache(ttl_class, ttl_for(ttl_class))
            _registry[ttl_class] = cache
        return cache


def reset_caches() -> None:
    """Drop every registered cache (tests, settings reloads)."""
    with _registry_lock:
        _registry.clear()
