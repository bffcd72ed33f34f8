"""Cache-aside support: key derivation, stores and a failure-tolerant facade.

Services talk to :class:`Cache`, which never raises. Stores raise
:class:`errors.CacheError` for backend problems and the facade turns those
into a logged miss or a logged no-op, so a cache outage only costs the
round-trip to the database.
"""

import hashlib
import json
import logging
import time
from typing import Any, Optional, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from errors import CacheError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECS = 3600


def derive_cache_key(prefix: str, filters: dict[str, Any]) -> str:
    """Return ``"{prefix}:{md5}"`` over a canonical JSON dump of ``filters``.

    Keys are sorted at every nesting level, so equal filter sets produce the
    same key regardless of insertion order. MD5 only provides a fixed-length
    name here.
    """
    raw = json.dumps(filters, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.md5(raw.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


class CacheStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_secs: int) -> None: ...

    async def keys(self, prefix: str) -> list[str]: ...

    async def delete(self, keys: list[str]) -> int: ...

    async def close(self) -> None: ...


class MemoryCacheStore:
    """Process-local store with per-key expiry on the monotonic clock."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            key for key, (_, expires_at) in self._entries.items() if expires_at <= now
        ]
        for key in expired:
            del self._entries[key]

    async def set(self, key: str, value: str, ttl_secs: int) -> None:
        self._purge_expired()
        self._entries[key] = (value, self._clock() + ttl_secs)

    async def keys(self, prefix: str) -> list[str]:
        # expired keys are listed too so invalidation reclaims them
        return [key for key in self._entries if key.startswith(prefix)]

    async def delete(self, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    async def close(self) -> None:
        self._entries.clear()


class RedisCacheStore:
    def __init__(self, client: Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except RedisError as exc:
            raise CacheError(f"Redis GET failed for {key}") from exc

    async def set(self, key: str, value: str, ttl_secs: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_secs)
        except RedisError as exc:
            raise CacheError(f"Redis SET failed for {key}") from exc

    async def keys(self, prefix: str) -> list[str]:
        try:
            return [key async for key in self.client.scan_iter(match=f"{prefix}*")]
        except RedisError as exc:
            raise CacheError(f"Redis SCAN failed for {prefix}") from exc

    async def delete(self, keys: list[str]) -> int:
        if not keys:
            return 0
        try:
            # one multi-key DEL is applied atomically by the server
            return int(await self.client.delete(*keys))
        except RedisError as exc:
            raise CacheError("Redis DEL failed") from exc

    async def close(self) -> None:
        await self.client.aclose()


class Cache:
    def __init__(self, store: CacheStore, ttl_secs: int = DEFAULT_TTL_SECS) -> None:
        self.store = store
        self.ttl_secs = ttl_secs

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.store.get(key)
        except CacheError as exc:
            logger.warning(f"cache_get_failed: key={key} error={exc}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"cache_get_corrupt: key={key}")
            return None

    async def set(self, key: str, value: Any, ttl_secs: Optional[int] = None) -> None:
        payload = json.dumps(value, default=str)
        ttl = self.ttl_secs if ttl_secs is None else ttl_secs
        try:
            await self.store.set(key, payload, ttl)
        except CacheError as exc:
            logger.warning(f"cache_set_failed: key={key} error={exc}")

    async def invalidate(self, prefix: str) -> int:
        """Delete every key under ``prefix:``. Returns how many were removed."""
        try:
            keys = await self.store.keys(f"{prefix}:")
            if not keys:
                return 0
            removed = await self.store.delete(keys)
        except CacheError as exc:
            logger.warning(f"cache_invalidate_failed: prefix={prefix} error={exc}")
            return 0
        logger.info(f"cache_invalidate: prefix={prefix} removed={removed}")
        return removed

    async def close(self) -> None:
        try:
            await self.store.close()
        except CacheError as exc:
            logger.warning(f"cache_close_failed: error={exc}")


def build_cache(redis_url: str, ttl_secs: int = DEFAULT_TTL_SECS) -> Cache:
    if redis_url:
        return Cache(RedisCacheStore.from_url(redis_url), ttl_secs)
    return Cache(MemoryCacheStore(), ttl_secs)
