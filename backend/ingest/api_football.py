"""
API-Football v3 connector.

Thin typed layer over ProviderHTTPClient: builds the query for each endpoint,
validates the `response` array into payload records and fans id lookups out
in chunks of the provider's per-request cap.
"""
from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Iterable, Optional

import httpx

from shared.config import Settings, get_settings
from shared.models.domain import StandingTeam, TeamStatistics, TeamStatsPair
from shared.utils.http_client import CallRecorder, ProviderError, ProviderHTTPClient
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

from ingest.payloads import (
    Fixture,
    TeamStatisticsPayload,
    UpstreamStandingRow,
    parse_items,
)

logger = get_logger(__name__)

PROVIDER_NAME = "api_football"
FIXTURES_PATH = "/fixtures"
STANDINGS_PATH = "/standings"
STATISTICS_PATH = "/fixtures/statistics"


def chunked(ids: list[int], size: int) -> list[list[int]]:
    return [ids[i:i + size] for i in range(0, len(ids), size)]


class ApiFootballClient:
    """Upstream client for fixtures, standings and match statistics."""

    def __init__(self, http: ProviderHTTPClient, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._http = http
        self._ids_per_request = self._settings.provider_ids_per_request

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        redis: RedisManager | None = None,
        on_call: CallRecorder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ApiFootballClient":
        settings = settings or get_settings()
        headers: dict[str, str] = {}
        if settings.api_football_key:
            headers["x-apisports-key"] = settings.api_football_key
        http = ProviderHTTPClient(
            provider_name=PROVIDER_NAME,
            base_url=settings.api_football_base_url,
            headers=headers,
            settings=settings,
            redis=redis,
            on_call=on_call,
            transport=transport,
        )
        return cls(http, settings)

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def _get_response(self, path: str, params: dict[str, Any]) -> list[Any]:
        body = await self._http.get_json(path, params=params)
        items = body.get("response")
        return items if isinstance(items, list) else []

    # ── Fixtures ────────────────────────────────────────────────────────
    async def fetch_fixtures(self, league_external_id: int, season: int) -> list[Fixture]:
        """All fixtures of one league season (list records, no events)."""
        items = await self._get_response(
            FIXTURES_PATH, {"league": league_external_id, "season": season}
        )
        return parse_items(Fixture, items, FIXTURES_PATH)

    async def fetch_fixtures_by_date(self, day: date) -> list[Fixture]:
        items = await self._get_response(FIXTURES_PATH, {"date": day.isoformat()})
        return parse_items(Fixture, items, FIXTURES_PATH)

    async def fetch_live_fixtures(self) -> list[Fixture]:
        items = await self._get_response(FIXTURES_PATH, {"live": "all"})
        return parse_items(Fixture, items, FIXTURES_PATH)

    async def _fetch_id_chunk(self, ids: list[int]) -> list[Fixture]:
        items = await self._get_response(FIXTURES_PATH, {"ids": "-".join(str(i) for i in ids)})
        return parse_items(Fixture, items, FIXTURES_PATH)

    async def fetch_fixtures_by_ids(self, ids: Iterable[int]) -> list[Fixture]:
        """
        Fixtures with event detail, looked up by id. The provider caps each
        request at a fixed number of ids, so the lookup fans out per chunk.
        Any failed chunk fails the whole call.
        """
        unique = list(dict.fromkeys(ids))
        if not unique:
            return []
        chunks = chunked(unique, self._ids_per_request)
        results = await asyncio.gather(*(self._fetch_id_chunk(c) for c in chunks))
        return [fixture for chunk in results for fixture in chunk]

    async def fetch_fixture_details(self, fixtures: list[Fixture]) -> list[Fixture]:
        """
        Upgrade list records to detailed records where possible.

        Merges by fixture id, preferring the detailed record. A chunk that
        fails keeps its list records so the caller still has scores.
        """
        if not fixtures:
            return []
        ids = list(dict.fromkeys(f.external_id for f in fixtures))
        chunks = chunked(ids, self._ids_per_request)
        results = await asyncio.gather(
            *(self._fetch_id_chunk(c) for c in chunks), return_exceptions=True
        )

        detailed: dict[int, Fixture] = {}
        for chunk, result in zip(chunks, results):
            if isinstance(result, ProviderError):
                logger.warning(
                    "fixture_details_chunk_failed",
                    ids=chunk,
                    error=str(result),
                )
                continue
            if isinstance(result, BaseException):
                raise result
            for fixture in result:
                detailed[fixture.external_id] = fixture

        merged: dict[int, Fixture] = {}
        for fixture in fixtures:
            merged[fixture.external_id] = detailed.get(fixture.external_id, fixture)
        return list(merged.values())

    # ── Standings ───────────────────────────────────────────────────────
    async def fetch_standings(
        self, league_external_id: int, season: int
    ) -> list[list[UpstreamStandingRow]]:
        """Provider standings, one list per group."""
        items = await self._get_response(
            STANDINGS_PATH, {"league": league_external_id, "season": season}
        )
        if not items or not isinstance(items[0], dict):
            return []
        league = items[0].get("league") or {}
        groups = league.get("standings") or []
        parsed = [parse_items(UpstreamStandingRow, group, STANDINGS_PATH) for group in groups]
        return [group for group in parsed if group]

    # ── Statistics ──────────────────────────────────────────────────────
    async def fetch_match_statistics(self, fixture_external_id: int) -> Optional[TeamStatsPair]:
        items = await self._get_response(STATISTICS_PATH, {"fixture": fixture_external_id})
        teams = parse_items(TeamStatisticsPayload, items, STATISTICS_PATH)
        if len(teams) < 2:
            return None
        home, away = teams[0], teams[1]
        return TeamStatsPair(home=_team_statistics(home), away=_team_statistics(away))


def _team_statistics(payload: TeamStatisticsPayload) -> TeamStatistics:
    return TeamStatistics(
        team=StandingTeam(
            external_id=payload.team.id,
            name=payload.team.name,
            logo_url=payload.team.logo,
        ),
        stats={entry.type: entry.value for entry in payload.statistics},
    )
