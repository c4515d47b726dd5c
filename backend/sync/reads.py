"""
Read operations behind the HTTP API.

Each read goes cache -> store -> sync: a cache hit is returned as is, a miss
is computed from the store (refreshing through the sync engine when the
store is missing, sparse or stale) and written back with a window chosen
from the match states in the payload. Provider failures degrade to whatever
the store holds; only unknown entities and invalid input surface as errors.
"""
from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from shared.config import Settings, get_settings
from shared.leagues import LeagueConfig
from shared.models.domain import MatchAnnotation, MatchDetail, MatchSummary, RoundFixtures
from shared.models.orm import MatchORM
from shared.utils.cache import TTL, ResponseCache
from shared.utils.database import DatabaseManager
from shared.utils.http_client import ProviderError
from shared.utils.logging import get_logger
from shared.utils.redis_manager import (
    LEAGUE_FIXTURES_KEY,
    LEAGUE_STANDINGS_KEY,
    LEAGUES_KEY,
    MATCH_DETAIL_KEY,
    MATCH_STATS_KEY,
    MATCHES_DATE_KEY,
    MATCHES_TODAY_KEY,
    key_for,
)

from ingest.api_football import ApiFootballClient
from standings.calculator import compute_standings, standings_from_upstream
from standings.groups import GroupTable
from sync import queries
from sync.engine import SyncEngine
from sync.policy import (
    FreshnessWindows,
    is_match_stale,
    local_day_window,
    local_today,
    ttl_for_matches,
    ttl_for_status,
)

logger = get_logger(__name__)

UNSCHEDULED_ROUND = "Unscheduled"
_NUMBER = re.compile(r"\d+")


class NotFoundError(Exception):
    """The requested league or match does not exist."""


class InvalidRequestError(ValueError):
    """Malformed identifier or parameter."""


def round_sort_key(label: str) -> tuple:
    """Rounds order by the first number in the label, then alphabetically."""
    found = _NUMBER.search(label)
    if found:
        return (0, int(found.group()), label)
    return (1, 0, label)


def group_by_round(matches: Iterable[MatchSummary]) -> list[RoundFixtures]:
    grouped: dict[str, list[MatchSummary]] = {}
    for match in matches:
        grouped.setdefault(match.round or UNSCHEDULED_ROUND, []).append(match)
    return [
        RoundFixtures(round=label, matches=grouped[label])
        for label in sorted(grouped, key=round_sort_key)
    ]


def parse_match_ref(match_id: str) -> tuple[Optional[uuid.UUID], Optional[int]]:
    """A match is addressed by stored UUID or by provider fixture id."""
    ref = match_id.strip()
    if ref.isdigit():
        return None, int(ref)
    try:
        return uuid.UUID(ref), None
    except ValueError:
        raise InvalidRequestError(f"Invalid match id: {match_id!r}") from None


class ReadService:
    def __init__(
        self,
        db: DatabaseManager,
        engine: SyncEngine,
        client: ApiFootballClient,
        cache: ResponseCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._db = db
        self._engine = engine
        self._client = client
        self._cache = cache
        self._windows = FreshnessWindows.from_settings(self._settings)

    # ── Helpers ─────────────────────────────────────────────────────────
    async def _cached(self, key: str, compute_fn: Callable[[], Awaitable[Any]], ttl: TTL) -> Any:
        if self._cache is None:
            return await compute_fn()
        return await self._cache.cache_or_compute(key, compute_fn, ttl)

    def _list_ttl(self, statuses: list[str], ceiling: int) -> int:
        # An empty list may be an upstream outage; keep it briefly.
        if not statuses:
            return self._windows.live_s
        return ttl_for_matches(statuses, ceiling, self._windows)

    def _league(self, league_external_id: int) -> LeagueConfig:
        config = self._engine.leagues.get(league_external_id)
        if config is None:
            raise NotFoundError(f"League {league_external_id} not found")
        return config

    async def _matches_on(self, day: date) -> list[MatchSummary]:
        start, end = local_day_window(day, self._settings.timezone_offset_hours)
        async with self._db.read_session() as session:
            return await queries.matches_between(session, start, end)

    async def _load_detail(self, match_id: str) -> MatchDetail:
        stored_id, external_id = parse_match_ref(match_id)
        async with self._db.read_session() as session:
            detail = await queries.match_detail(
                session, match_id=stored_id, external_id=external_id
            )
        if detail is None:
            raise NotFoundError(f"Match {match_id} not found")
        return detail

    @staticmethod
    def _day_payload(day: date, matches: list[MatchSummary], **extra: Any) -> dict[str, Any]:
        return {
            "date": day.isoformat(),
            "count": len(matches),
            "matches": [m.model_dump(mode="json") for m in matches],
            **extra,
        }

    def _day_ttl(self, payload: dict[str, Any]) -> int:
        return self._list_ttl(
            [m["status"] for m in payload["matches"]], self._settings.cache_ttl_fixtures_s
        )

    # ── Matches by day ──────────────────────────────────────────────────
    async def matches_for_date(self, day: date, now: datetime | None = None) -> dict[str, Any]:
        """
        Store first. An empty day, or one holding a match past its freshness
        window, triggers a day sync and a re-read; if the sync fails the
        stored rows are served as they are.
        """

        async def compute() -> dict[str, Any]:
            current = now or datetime.now(timezone.utc)
            matches = await self._matches_on(day)
            synced = False
            if not matches or any(
                is_match_stale(m.status, m.updated_at, current, self._windows) for m in matches
            ):
                outcome = await self._engine.sync_date(day)
                synced = outcome.synced
                if synced:
                    matches = await self._matches_on(day)
            return self._day_payload(day, matches, synced=synced)

        return await self._cached(key_for(MATCHES_DATE_KEY, day=day.isoformat()), compute, self._day_ttl)

    async def matches_today(self, now: datetime | None = None) -> dict[str, Any]:
        """Sync the local day first, then serve the store (which is the fallback if the sync failed)."""
        now = now or datetime.now(timezone.utc)
        day = local_today(now, self._settings.timezone_offset_hours)

        async def compute() -> dict[str, Any]:
            outcome = await self._engine.sync_date(day)
            matches = await self._matches_on(day)
            return self._day_payload(day, matches, synced=outcome.synced)

        return await self._cached(key_for(MATCHES_TODAY_KEY, day=day.isoformat()), compute, self._day_ttl)

    # ── League views ────────────────────────────────────────────────────
    async def league_fixtures(
        self, league_external_id: int, round_label: str | None = None
    ) -> dict[str, Any]:
        config = self._league(league_external_id)
        key = key_for(LEAGUE_FIXTURES_KEY, league_id=league_external_id, round=round_label or "all")

        async def compute() -> dict[str, Any]:
            await self._engine.ensure_league_fresh(config)
            async with self._db.read_session() as session:
                league = await queries.get_league(session, league_external_id)
                matches = await queries.league_matches(session, league.id)

            rounds = sorted({m.round or UNSCHEDULED_ROUND for m in matches}, key=round_sort_key)
            payload: dict[str, Any] = {
                "league": _league_payload(config, league.season),
                "available_rounds": rounds,
            }
            if round_label is not None:
                selected = [m for m in matches if (m.round or UNSCHEDULED_ROUND) == round_label]
                payload["round"] = round_label
                payload["matches"] = [m.model_dump(mode="json") for m in selected]
                payload["statuses"] = [m.status.value for m in selected]
            else:
                payload["rounds"] = [r.model_dump(mode="json") for r in group_by_round(matches)]
                payload["statuses"] = [m.status.value for m in matches]
            return payload

        def ttl(payload: dict[str, Any]) -> int:
            return self._list_ttl(payload["statuses"], self._settings.cache_ttl_fixtures_s)

        return await self._cached(key, compute, ttl)

    async def league_standings(self, league_external_id: int) -> dict[str, Any]:
        """
        Standings computed from stored matches with the league's group table.
        Falls back to provider standings when nothing countable is stored,
        and to an empty table when the provider has nothing either.
        """
        config = self._league(league_external_id)
        key = key_for(LEAGUE_STANDINGS_KEY, league_id=league_external_id)
        statuses: list[str] = []

        async def compute() -> dict[str, Any]:
            await self._engine.ensure_league_fresh(config)
            async with self._db.read_session() as session:
                league = await queries.get_league(session, league_external_id)
                matches = await queries.league_matches(session, league.id)
            statuses.extend(m.status.value for m in matches)

            groups = GroupTable.from_config(config.zones) if config.zones else None
            rows = compute_standings(matches, groups)
            source = "computed"
            if not rows:
                source = "provider"
                try:
                    upstream = await self._client.fetch_standings(league_external_id, config.season)
                    rows = standings_from_upstream(upstream)
                except ProviderError as exc:
                    logger.warning(
                        "standings_fallback_failed", league=league_external_id, error=str(exc)
                    )
                if not rows:
                    source = "empty"

            labels = sorted({row.group for row in rows if row.group})
            return {
                "league": _league_payload(config, league.season),
                "source": source,
                "groups": labels,
                "standings": [row.model_dump(mode="json") for row in rows],
            }

        def ttl(payload: dict[str, Any]) -> int:
            if payload["source"] == "empty":
                return self._windows.live_s
            return ttl_for_matches(statuses, self._settings.cache_ttl_standings_s, self._windows)

        return await self._cached(key, compute, ttl)

    async def list_leagues(self) -> dict[str, Any]:
        async def compute() -> dict[str, Any]:
            async with self._db.read_session() as session:
                stored = {row.external_id: row for row in await queries.list_leagues(session)}
            items = []
            for config in self._engine.leagues:
                row = stored.get(config.external_id)
                items.append(
                    {
                        **_league_payload(config, row.season if row else None),
                        "slug": config.slug,
                        "short_name": config.short_name,
                        "active": config.active,
                        "broadcasters": list(config.broadcasters),
                        "grouped": config.zones is not None,
                    }
                )
            return {"leagues": items}

        return await self._cached(LEAGUES_KEY, compute, self._settings.cache_ttl_standings_s)

    # ── Single match ────────────────────────────────────────────────────
    async def match_detail(self, match_id: str, now: datetime | None = None) -> dict[str, Any]:
        """
        Stored match with goals and cards. Refreshed first when past its
        freshness window, or when it has been played but only list records
        (which carry no events) have been stored for it.
        """
        parse_match_ref(match_id)

        async def compute() -> dict[str, Any]:
            detail = await self._load_detail(match_id)
            current = now or datetime.now(timezone.utc)
            missing_events = detail.status.is_countable and detail.events_synced_at is None
            if missing_events or is_match_stale(
                detail.status, detail.updated_at, current, self._windows
            ):
                outcome = await self._engine.refresh_match(
                    detail.external_id, detail.league.external_id
                )
                if outcome.synced:
                    detail = await self._load_detail(match_id)
            return detail.model_dump(mode="json")

        def ttl(payload: dict[str, Any]) -> int:
            return ttl_for_status(payload["status"], self._windows)

        return await self._cached(key_for(MATCH_DETAIL_KEY, match_id=match_id), compute, ttl)

    async def match_statistics(self, match_id: str) -> dict[str, Any]:
        """
        Provider statistics for a match. There is no stored copy, so provider
        errors propagate to the caller.
        """
        parse_match_ref(match_id)

        async def compute() -> dict[str, Any]:
            detail = await self._load_detail(match_id)
            stats = await self._client.fetch_match_statistics(detail.external_id)
            return {
                "match_id": str(detail.id),
                "external_id": detail.external_id,
                "status": detail.status.value,
                "statistics": stats.model_dump(mode="json") if stats else None,
            }

        def ttl(payload: dict[str, Any]) -> int:
            if payload["statistics"] is None:
                return self._windows.live_s
            return ttl_for_status(payload["status"], self._windows)

        return await self._cached(key_for(MATCH_STATS_KEY, match_id=match_id), compute, ttl)

    # ── Admin ───────────────────────────────────────────────────────────
    async def upsert_annotations(self, items: list[MatchAnnotation]) -> dict[str, Any]:
        """Set highlight and broadcaster fields by external match id."""
        by_id = {item.external_id: item for item in items}
        updated: list[int] = []
        touched: list[MatchORM] = []
        async with self._db.write_session() as session:
            for match in await queries.matches_by_external_ids(session, by_id):
                item = by_id[match.external_id]
                if "highlight" in item.model_fields_set:
                    match.highlight = item.highlight
                if "broadcasters" in item.model_fields_set:
                    match.broadcasters = item.broadcasters
                updated.append(match.external_id)
                touched.append(match)

        if self._cache is not None:
            for match in touched:
                await self._cache.delete(key_for(MATCH_DETAIL_KEY, match_id=str(match.id)))
                await self._cache.delete(key_for(MATCH_DETAIL_KEY, match_id=match.external_id))

        missing = sorted(set(by_id) - set(updated))
        logger.info("annotations_upserted", updated=len(updated), missing=len(missing))
        return {"updated": sorted(updated), "missing": missing}


def _league_payload(config: LeagueConfig, stored_season: Optional[int]) -> dict[str, Any]:
    return {
        "external_id": config.external_id,
        "name": config.name,
        "country": config.country,
        "season": config.season,
        "stored_season": stored_season,
        "logo_url": config.logo_url,
    }
