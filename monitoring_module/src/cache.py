"""
Result Cache - Best-effort caches for monitoring results.

Two backends share one interface (get / set / invalidate / clear /
get_or_compute / stats):
- TTLCache: in-process, bounded; the default and the test backend
- RedisCache: shared Redis store for deployments running several engines

Entries expire after their time-to-live; an expired or missing entry is
always a miss, so callers recompute instead of trusting stale data.
"""

import math
import pickle
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple, Union

import redis

from shared.constants import MONITORING_DEFAULTS
from shared.logging import get_logger

logger = get_logger(__name__)


class TTLCache:
    """
    Thread-safe key/value cache with per-entry expiry.

    When full, the entry closest to expiry is evicted first.

    Example:
        >>> cache = TTLCache(default_ttl_seconds=300)
        >>> cache.set("bias_monitoring:realtime:hiring_decision", summary)
        >>> cache.get("bias_monitoring:realtime:hiring_decision")
    """

    def __init__(
        self,
        default_ttl_seconds: float = MONITORING_DEFAULTS["realtime_cache_ttl_seconds"],
        max_entries: int = MONITORING_DEFAULTS["cache_max_entries"],
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store value under key for ttl_seconds (default TTL if omitted)."""
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")

        with self._lock:
            now = self.clock()
            self._purge_expired(now)
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
                logger.debug(f"Evicted cache entry {oldest}")
            self._entries[key] = (now + ttl, value)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            expires_at, value = entry
            if expires_at <= self.clock():
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def get_or_compute(self, key: str, compute: Callable[[], Any], ttl_seconds: Optional[float] = None) -> Any:
        """Return the cached value or compute, store and return a fresh one."""
        value = self.get(key)
        if value is None:
            value = compute()
            self.set(key, value, ttl_seconds)
        return value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self.clock())
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "backend": "memory",
            "entries": len(self),
            "hits": self.hits,
            "misses": self.misses,
            "max_entries": self.max_entries,
        }

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


class RedisCache:
    """
    Redis-backed cache with the TTLCache interface.

    Values are pickled and written with SETEX under a key prefix. Redis
    errors are logged and read as misses; the monitoring result is still
    returned to the caller.

    Example:
        >>> cache = RedisCache.from_url("redis://localhost:6379/0", default_ttl_seconds=300)
        >>> cache.set("bias_monitoring:realtime:hiring_decision", result)
    """

    def __init__(
        self,
        client: redis.Redis,
        default_ttl_seconds: float = MONITORING_DEFAULTS["realtime_cache_ttl_seconds"],
        prefix: str = MONITORING_DEFAULTS["redis_key_prefix"],
    ):
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")

        self.client = client
        self.default_ttl_seconds = default_ttl_seconds
        self.prefix = prefix
        self.hits = 0
        self.misses = 0
        self.errors = 0

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCache":
        return cls(redis.Redis.from_url(url), **kwargs)

    def ping(self) -> bool:
        """True when the server answers."""
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis not available: {e}")
            return False

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")
        try:
            # SETEX takes whole seconds
            self.client.setex(self._key(key), max(1, math.ceil(ttl)), pickle.dumps(value))
        except redis.RedisError as e:
            self.errors += 1
            logger.warning(f"Redis write error for {key}: {e}")

    def get(self, key: str) -> Optional[Any]:
        try:
            payload = self.client.get(self._key(key))
        except redis.RedisError as e:
            self.errors += 1
            self.misses += 1
            logger.warning(f"Redis read error for {key}: {e}")
            return None
        if payload is None:
            self.misses += 1
            return None
        self.hits += 1
        return pickle.loads(payload)

    def get_or_compute(self, key: str, compute: Callable[[], Any], ttl_seconds: Optional[float] = None) -> Any:
        value = self.get(key)
        if value is None:
            value = compute()
            self.set(key, value, ttl_seconds)
        return value

    def invalidate(self, key: str) -> bool:
        try:
            return bool(self.client.delete(self._key(key)))
        except redis.RedisError as e:
            self.errors += 1
            logger.warning(f"Redis delete error for {key}: {e}")
            return False

    def clear(self) -> None:
        """Delete every key under this cache's prefix."""
        try:
            keys = list(self.client.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            self.errors += 1
            logger.warning(f"Redis clear error: {e}")

    def __len__(self) -> int:
        try:
            return sum(1 for _ in self.client.scan_iter(match=f"{self.prefix}*"))
        except redis.RedisError as e:
            logger.warning(f"Redis scan error: {e}")
            return 0

    def stats(self) -> Dict[str, Any]:
        return {
            "backend": "redis",
            "entries": len(self),
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "prefix": self.prefix,
        }


ResultCache = Union[TTLCache, RedisCache]
