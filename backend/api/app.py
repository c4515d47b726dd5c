"""
FastAPI application factory for the Matchday API service.

Creates the app with:
- REST routes (matches, leagues, admin)
- Middleware stack and error envelope
- Health, readiness and status endpoints
- Lifespan management: Redis, database, upstream client and the
  read service are built once at startup and closed on shutdown
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Union

from fastapi import FastAPI
from sqlalchemy import text

from shared.config import get_settings
from shared.leagues import LeagueRegistry
from shared.models.orm import ApiCallLogORM
from shared.utils.cache import ResponseCache
from shared.utils.database import DatabaseManager
from shared.utils.http_client import ApiCall, CallRecorder
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import PROVIDER_QUOTA_USED, start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_db, get_redis, init_dependencies, reset_dependencies
from api.middleware import setup_middleware
from api.routes.admin import router as admin_router
from api.routes.leagues import router as leagues_router
from api.routes.matches import router as matches_router
from ingest.api_football import PROVIDER_NAME, ApiFootballClient
from sync.engine import SyncEngine
from sync.reads import ReadService

logger = get_logger(__name__)

# Retry connection on startup (Redis/DB may come up after the API container)
_CONNECT_RETRY_ATTEMPTS = 10
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn, name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


def api_call_recorder(db: DatabaseManager) -> CallRecorder:
    """Persist every upstream request to api_call_logs."""

    async def record(call: ApiCall) -> None:
        async with db.write_session() as session:
            session.add(
                ApiCallLogORM(
                    endpoint=call.endpoint,
                    method=call.method,
                    status_code=call.status_code,
                    latency_ms=call.latency_ms,
                    error=call.error,
                )
            )

    return record


async def _probe(redis: RedisManager, db: DatabaseManager) -> tuple[bool, bool]:
    redis_ok = False
    db_ok = False
    try:
        redis_ok = await redis.ping()
    except Exception as exc:
        logger.warning("redis_probe_failed", error=str(exc))
    try:
        async with db.read_session() as session:
            await session.execute(text("SELECT 1"))
        db_ok = True
    except Exception as exc:
        logger.warning("database_probe_failed", error=str(exc))
    return redis_ok, db_ok


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without DB/Redis."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging("api", settings=settings)
    start_metrics_server(settings=settings)

    redis = RedisManager(settings)
    db = DatabaseManager(settings)
    await _connect_with_retry(redis.connect, "Redis")
    await _connect_with_retry(db.connect, "Database")
    if db.dialect_name == "sqlite":
        await db.create_schema()

    client = ApiFootballClient.from_settings(
        settings, redis=redis, on_call=api_call_recorder(db)
    )
    await client.start()
    cache = ResponseCache(redis.client)
    leagues = LeagueRegistry(settings=settings)
    engine = SyncEngine(db, client, leagues, cache=cache, settings=settings)
    init_dependencies(redis, db, ReadService(db, engine, client, cache=cache, settings=settings))

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        leagues=len(leagues),
    )

    yield

    reset_dependencies()
    await client.close()
    await db.disconnect()
    await redis.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without DB/Redis."""
    settings = get_settings()

    app = FastAPI(
        title="Matchday API",
        description="Football fixtures, results and standings",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app, settings)

    app.include_router(matches_router)
    app.include_router(leagues_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> Dict[str, Union[str, bool]]:
        """Readiness probe: checks Redis and the database."""
        redis_ok, db_ok = await _probe(get_redis(), get_db())
        return {
            "status": "ok" if (redis_ok and db_ok) else "degraded",
            "redis": redis_ok,
            "database": db_ok,
        }

    @app.get("/v1/status", tags=["system"])
    async def system_status() -> dict[str, Any]:
        """Service health plus today's upstream quota usage."""
        redis = get_redis()
        redis_ok, db_ok = await _probe(redis, get_db())

        used: int | None = None
        if redis_ok:
            try:
                used = await redis.get_quota_usage(PROVIDER_NAME)
                PROVIDER_QUOTA_USED.labels(provider=PROVIDER_NAME).set(used)
            except Exception as exc:
                logger.warning("quota_read_failed", error=str(exc))

        limit = settings.api_football_daily_quota
        return {
            "status": "ok" if (redis_ok and db_ok) else "degraded",
            "services": {"redis": redis_ok, "database": db_ok},
            "providers": {
                PROVIDER_NAME: {
                    "quota_day": datetime.now(timezone.utc).date().isoformat(),
                    "quota_used": used,
                    "quota_limit": limit,
                    "quota_remaining": max(limit - used, 0) if used is not None else None,
                    "key_configured": bool(settings.api_football_key),
                }
            },
        }

    return app


app = create_app()
