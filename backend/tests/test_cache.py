"""Tests for the freshness cache: hit/miss, no write on failure, Redis errors degrade."""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.utils.cache import ResponseCache

from conftest import FakeRedis


@pytest.mark.asyncio
async def test_miss_computes_and_stores(fake_redis: FakeRedis, cache: ResponseCache) -> None:
    compute = AsyncMock(return_value={"matches": [1, 2]})

    value = await cache.cache_or_compute("matches:date:2025-08-16", compute, 60)

    assert value == {"matches": [1, 2]}
    compute.assert_awaited_once()
    assert json.loads(fake_redis.store["matches:date:2025-08-16"]) == {"matches": [1, 2]}
    assert fake_redis.ttls["matches:date:2025-08-16"] == 60


@pytest.mark.asyncio
async def test_hit_skips_compute(fake_redis: FakeRedis, cache: ResponseCache) -> None:
    fake_redis.store["leagues:all"] = json.dumps({"leagues": []})
    compute = AsyncMock()

    assert await cache.cache_or_compute("leagues:all", compute, 60) == {"leagues": []}
    compute.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_compute_writes_nothing(fake_redis: FakeRedis, cache: ResponseCache) -> None:
    compute = AsyncMock(side_effect=RuntimeError("store down"))

    with pytest.raises(RuntimeError, match="store down"):
        await cache.cache_or_compute("match:1:detail", compute, 60)
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_ttl_can_depend_on_value(fake_redis: FakeRedis, cache: ResponseCache) -> None:
    compute = AsyncMock(return_value={"status": "LIVE"})

    await cache.cache_or_compute(
        "match:1:detail", compute, lambda v: 30 if v["status"] == "LIVE" else 3600
    )
    assert fake_redis.ttls["match:1:detail"] == 30


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl", [0, -5, True, 1.5])
async def test_invalid_ttl_is_rejected_before_compute(cache: ResponseCache, ttl) -> None:
    compute = AsyncMock(return_value={})
    with pytest.raises(ValueError):
        await cache.cache_or_compute("k", compute, ttl)
    compute.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_errors_degrade_to_compute() -> None:
    client = MagicMock()
    client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
    client.set = AsyncMock(side_effect=RedisConnectionError("refused"))
    cache = ResponseCache(client)
    compute = AsyncMock(return_value={"ok": True})

    assert await cache.cache_or_compute("k", compute, 60) == {"ok": True}
    compute.assert_awaited_once()
    client.set.assert_awaited_once()


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss(fake_redis: FakeRedis, cache: ResponseCache) -> None:
    fake_redis.store["k"] = "{not json"
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_delete_pattern(fake_redis: FakeRedis, cache: ResponseCache) -> None:
    for key in ("league:39:fixtures:all", "league:39:standings", "league:390:standings", "leagues:all"):
        fake_redis.store[key] = "{}"

    removed = await cache.delete_pattern("league:39:*")

    assert removed == 2
    assert sorted(fake_redis.store) == ["league:390:standings", "leagues:all"]
