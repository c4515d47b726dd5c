"""
Freshness cache for computed responses.

Values are JSON documents stored under explicit keys with a mandatory expiry.
Redis is an accelerator only: any Redis failure degrades to a miss or a no-op,
and the durable store remains the source of truth.
"""
from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Optional, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError

from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_LOOKUPS

logger = get_logger(__name__)

TTL = Union[int, Callable[[Any], int]]


def _check_ttl(ttl: int) -> int:
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
        raise ValueError(f"Cache TTL must be a positive number of seconds, got {ttl!r}")
    return ttl


class ResponseCache:
    """JSON get/set over Redis with swallow-and-log error semantics."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except (RedisError, OSError) as exc:
            CACHE_LOOKUPS.labels(result="error").inc()
            logger.warning("cache_get_failed", key=key, error=str(exc))
            return None
        if raw is None:
            CACHE_LOOKUPS.labels(result="miss").inc()
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            CACHE_LOOKUPS.labels(result="error").inc()
            logger.warning("cache_entry_corrupt", key=key)
            return None
        CACHE_LOOKUPS.labels(result="hit").inc()
        return value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        ttl = _check_ttl(ttl)
        try:
            await self._client.set(key, json.dumps(value, default=str), ex=ttl)
        except (RedisError, OSError) as exc:
            logger.warning("cache_set_failed", key=key, error=str(exc))

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as exc:
            logger.warning("cache_delete_failed", key=key, error=str(exc))

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the number removed."""
        removed = 0
        try:
            async for key in self._client.scan_iter(match=pattern, count=200):
                removed += await self._client.delete(key)
        except (RedisError, OSError) as exc:
            logger.warning("cache_delete_pattern_failed", pattern=pattern, error=str(exc))
        return removed

    async def cache_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[Any]],
        ttl: TTL,
    ) -> Any:
        """
        Return the cached value for key, or compute, store and return it.

        ttl is either a fixed number of seconds or a function of the computed
        value (e.g. a window chosen from the match statuses in the payload).
        An exception from compute_fn propagates and nothing is written.
        """
        if not callable(ttl):
            _check_ttl(ttl)

        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await compute_fn()
        seconds = ttl(value) if callable(ttl) else ttl
        await self.set(key, value, seconds)
        return value
