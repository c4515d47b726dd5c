"""
Dependency injection for the API service.
Provides the database, Redis, read service and admin guard to route handlers.
"""
from __future__ import annotations

import secrets

from fastapi import Depends, Header, HTTPException

from shared.config import Settings, get_settings
from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from sync.reads import ReadService

# Module-level singletons, initialized at startup
_redis: RedisManager | None = None
_db: DatabaseManager | None = None
_reader: ReadService | None = None


def init_dependencies(redis: RedisManager, db: DatabaseManager, reader: ReadService) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _redis, _db, _reader
    _redis = redis
    _db = db
    _reader = reader


def reset_dependencies() -> None:
    global _redis, _db, _reader
    _redis = None
    _db = None
    _reader = None


def get_redis() -> RedisManager:
    """FastAPI dependency: returns the shared RedisManager."""
    if _redis is None:
        raise RuntimeError("RedisManager not initialized; call init_dependencies first")
    return _redis


def get_db() -> DatabaseManager:
    """FastAPI dependency: returns the shared DatabaseManager."""
    if _db is None:
        raise RuntimeError("DatabaseManager not initialized; call init_dependencies first")
    return _db


def get_reader() -> ReadService:
    """FastAPI dependency: returns the shared ReadService."""
    if _reader is None:
        raise RuntimeError("ReadService not initialized; call init_dependencies first")
    return _reader


def require_admin(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Static bearer key guard for operator endpoints. Disabled entirely when no key is configured."""
    expected = settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=401, detail="Admin API is disabled")
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid or missing admin key")
