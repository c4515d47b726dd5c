"""
Match REST endpoints.

GET /v1/matches?date=YYYY-MM-DD       Matches of a local calendar day.
GET /v1/matches/today                 Today's matches, synced before serving.
GET /v1/matches/{id}                  Match detail with goals and cards.
GET /v1/matches/{id}/statistics       Provider team statistics.

A match id is either the stored UUID or the provider fixture id.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

from api.dependencies import get_reader
from sync.policy import local_today
from sync.reads import ReadService

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/matches", tags=["matches"])


@router.get("")
async def matches_by_date(
    day: Optional[date] = Query(default=None, alias="date"),
    reader: ReadService = Depends(get_reader),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Matches kicking off on a local day (defaults to today)."""
    if day is None:
        day = local_today(datetime.now(timezone.utc), settings.timezone_offset_hours)
    data = await reader.matches_for_date(day)
    return {"success": True, "data": data["matches"], "date": data["date"], "count": data["count"]}


@router.get("/today")
async def matches_today(reader: ReadService = Depends(get_reader)) -> dict[str, Any]:
    data = await reader.matches_today()
    return {"success": True, "data": data["matches"], "date": data["date"], "count": data["count"]}


@router.get("/{match_id}")
async def match_detail(match_id: str, reader: ReadService = Depends(get_reader)) -> dict[str, Any]:
    return {"success": True, "data": await reader.match_detail(match_id)}


@router.get("/{match_id}/statistics")
async def match_statistics(
    match_id: str, reader: ReadService = Depends(get_reader)
) -> dict[str, Any]:
    """
    Team statistics from the provider. `data` is null when the provider has
    none yet (e.g. before kickoff). Quota exhaustion surfaces as 429 and
    other provider failures as 503.
    """
    data = await reader.match_statistics(match_id)
    return {"success": True, "data": data["statistics"], "status": data["status"]}
