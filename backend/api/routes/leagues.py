"""
League REST endpoints.

GET /v1/leagues                          List configured leagues.
GET /v1/leagues/{external_id}/fixtures   Fixtures, grouped by round or for one round.
GET /v1/leagues/{external_id}/standings  Computed (or provider) standings table.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from shared.utils.logging import get_logger

from api.dependencies import get_reader
from sync.reads import ReadService

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/leagues", tags=["leagues"])


@router.get("")
async def list_leagues(reader: ReadService = Depends(get_reader)) -> dict[str, Any]:
    data = await reader.list_leagues()
    return {"success": True, "data": data["leagues"]}


@router.get("/{external_id}/fixtures")
async def league_fixtures(
    external_id: int,
    round: Optional[str] = Query(default=None, min_length=1, max_length=100),
    reader: ReadService = Depends(get_reader),
) -> dict[str, Any]:
    """
    Fixtures for a league.

    With `round`, only that round's matches; otherwise every match grouped by
    round label. `available_rounds` is always included for round pickers.
    """
    data = await reader.league_fixtures(external_id, round)
    data = {k: v for k, v in data.items() if k != "statuses"}
    return {"success": True, "data": data}


@router.get("/{external_id}/standings")
async def league_standings(
    external_id: int,
    reader: ReadService = Depends(get_reader),
) -> dict[str, Any]:
    data = await reader.league_standings(external_id)
    return {
        "success": True,
        "data": data["standings"],
        "league": data["league"],
        "groups": data["groups"],
        "source": data["source"],
    }
