"""
Redis connection manager for Matchday.
Provides the async connection pool, key namespaces and provider quota counters.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
MATCHES_DATE_KEY = "matches:date:{day}"
MATCHES_TODAY_KEY = "matches:today:{day}"
MATCH_DETAIL_KEY = "match:{match_id}:detail"
MATCH_STATS_KEY = "match:{match_id}:statistics"
LEAGUE_FIXTURES_KEY = "league:{league_id}:fixtures:{round}"
LEAGUE_STANDINGS_KEY = "league:{league_id}:standings"
LEAGUES_KEY = "leagues:all"
QUOTA_KEY = "quota:provider:{provider}:{day}"

QUOTA_WINDOW_S = 2 * 24 * 60 * 60


def key_for(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        # Verify
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    # ── Quota tracking ──────────────────────────────────────────────────
    @staticmethod
    def _quota_day(day: date | None = None) -> str:
        return (day or datetime.now(timezone.utc).date()).isoformat()

    async def increment_quota(self, provider: str, day: date | None = None) -> int:
        """Count one upstream request against the provider's daily quota."""
        key = key_for(QUOTA_KEY, provider=provider, day=self._quota_day(day))
        pipe = self.client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, QUOTA_WINDOW_S)
        results = await pipe.execute()
        return int(results[0])

    async def get_quota_usage(self, provider: str, day: date | None = None) -> int:
        key = key_for(QUOTA_KEY, provider=provider, day=self._quota_day(day))
        val = await self.client.get(key)
        return int(val) if val else 0
