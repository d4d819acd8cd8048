"""Read-model cache for calendar listings.

Values are stored as JSON in every backend, so a cached listing is always
handed out as a fresh copy. Keys are ``prefix:part:part``; a mutation drops
a whole prefix at once.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable

from classbook.config import settings
from classbook.core.time_provider import default_time_provider
from classbook.metrics import record_cache_event


logger = logging.getLogger(__name__)

SCHEDULES_PREFIX = 'schedules'
MEMORY_MAX_ENTRIES = 2048


def cache_key(prefix: str, *parts: str | int | None) -> str:
    pieces = [prefix] + [str(part) for part in parts if part is not None and part != '']
    return ':'.join(pieces)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, separators=(',', ':'))


def _loads(raw: str | None) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning('cache_value_undecodable length=%s', len(raw))
        return None


class CacheBackend:
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, raw: str, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError


class MemoryCacheBackend(CacheBackend):
    def __init__(self, max_entries: int = MEMORY_MAX_ENTRIES) -> None:
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._entries: dict[str, tuple[datetime, str]] = {}

    @staticmethod
    def _now() -> datetime:
        return default_time_provider.now()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if self._now() >= expires_at:
                del self._entries[key]
                return None
            return raw

    def _evict_locked(self) -> None:
        now = self._now()
        for key in [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        while len(self._entries) >= self._max_entries:
            oldest = min(self._entries, key=lambda key: self._entries[key][0])
            del self._entries[oldest]

    def set(self, key: str, raw: str, ttl: int) -> None:
        expires_at = self._now() + timedelta(seconds=max(1, int(ttl)))
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._evict_locked()
            self._entries[key] = (expires_at, raw)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)


class RedisCacheBackend(CacheBackend):
    """Shared cache for multi-worker deployments; needs the ``redis`` extra."""

    def __init__(self, redis_url: str) -> None:
        import redis  # type: ignore

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, raw: str, ttl: int) -> None:
        self._client.setex(key, max(1, int(ttl)), raw)

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def delete_prefix(self, prefix: str) -> int:
        removed = 0
        cursor = 0
        while True:
            cursor, keys = self._client.scan(cursor=cursor, match=f'{prefix}*', count=200)
            if keys:
                self._client.delete(*keys)
                removed += len(keys)
            if cursor == 0:
                return removed


class CacheManager:
    def __init__(self, backend: CacheBackend, default_ttl: int | None = None) -> None:
        self.backend = backend
        self.default_ttl = default_ttl if default_ttl is not None else settings.default_cache_ttl

    def get_cached(self, key: str) -> Any | None:
        value = _loads(self.backend.get(key))
        record_cache_event('cache_hit' if value is not None else 'cache_miss')
        return value

    def set_cached(self, key: str, value: Any, ttl: int | None = None) -> None:
        self.backend.set(key, _dumps(value), ttl if ttl is not None else self.default_ttl)

    def get_or_load(
        self,
        key: str,
        loader: Callable[[], Any],
        *,
        ttl: int | None = None,
        bypass: bool = False,
    ) -> Any:
        """Cached value for ``key``; ``bypass`` always reloads and refreshes the entry."""
        if not bypass:
            cached = self.get_cached(key)
            if cached is not None:
                return cached
        value = loader()
        self.set_cached(key, value, ttl)
        return value

    def invalidate(self, key: str) -> None:
        self.backend.delete(key)
        record_cache_event('cache_invalidate')

    def invalidate_prefix(self, prefix: str) -> None:
        removed = self.backend.delete_prefix(prefix)
        record_cache_event('cache_invalidate')
        logger.debug('cache_invalidate_prefix prefix=%s removed=%s', prefix, removed)


def _build_cache_backend() -> CacheBackend:
    if settings.cache_backend == 'redis' and settings.cache_redis_url:
        try:
            return RedisCacheBackend(settings.cache_redis_url)
        except Exception:
            logger.exception('redis_cache_init_failed_falling_back_to_memory')
    return MemoryCacheBackend()


cache = CacheManager(backend=_build_cache_backend())


def invalidate_schedule_views() -> None:
    cache.invalidate_prefix(SCHEDULES_PREFIX)
