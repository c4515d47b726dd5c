"""
Sync engine: decides when local data must be refreshed from the provider and
drives the refresh.

Syncs are lazy, triggered from the read path (or the CLI). Two concurrent
syncs of the same league are tolerated because every write is an idempotent
upsert keyed by external id. Provider failures never escape the engine: they
are logged and reported in the SyncOutcome so readers can fall back to the
store.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import delete, select, update

from shared.config import Settings, get_settings
from shared.leagues import LeagueConfig, LeagueRegistry
from shared.models.domain import as_utc
from shared.models.enums import ResyncReason
from shared.models.orm import CardORM, GoalORM, LeagueORM, MatchORM
from shared.utils.cache import ResponseCache
from shared.utils.database import DatabaseManager
from shared.utils.http_client import ProviderError
from shared.utils.logging import get_logger
from shared.utils.metrics import LEAGUE_SYNCS, SYNC_DURATION
from shared.utils.redis_manager import (
    MATCH_DETAIL_KEY,
    MATCHES_DATE_KEY,
    MATCHES_TODAY_KEY,
    key_for,
)

from ingest.api_football import ApiFootballClient
from ingest.payloads import Fixture
from sync import queries
from sync.policy import (
    LeagueSyncState,
    local_day_window,
    local_today,
    should_resync,
    utc_dates_covering,
)
from sync.reconciler import Reconciler, ReconcileReport, upsert_insert

logger = get_logger(__name__)


@dataclass
class SyncOutcome:
    """Result of one sync attempt; error is set when the provider call failed."""
    target: str
    reason: Optional[ResyncReason] = None
    report: Optional[ReconcileReport] = None
    error: Optional[str] = None
    purged: int = 0
    elapsed_s: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def synced(self) -> bool:
        return self.report is not None and self.error is None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def as_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "reason": self.reason.value if self.reason else None,
            "synced": self.synced,
            "purged": self.purged,
            "error": self.error,
            "elapsed_s": round(self.elapsed_s, 3),
            "report": self.report.as_dict() if self.report else None,
            **self.details,
        }


def league_cache_pattern(league_external_id: int) -> str:
    return f"league:{league_external_id}:*"


class SyncEngine:
    def __init__(
        self,
        db: DatabaseManager,
        client: ApiFootballClient,
        leagues: LeagueRegistry,
        cache: ResponseCache | None = None,
        settings: Settings | None = None,
        reconciler: Reconciler | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._db = db
        self._client = client
        self._leagues = leagues
        self._cache = cache
        self._reconciler = reconciler or Reconciler(db, self._settings)

    @property
    def leagues(self) -> LeagueRegistry:
        return self._leagues

    # ── League rows ─────────────────────────────────────────────────────
    async def ensure_league(self, config: LeagueConfig) -> LeagueORM:
        """
        Upsert the league row from configuration. The stored season is only
        set on insert; a changed season is applied by the drift purge.
        """
        now = datetime.now(timezone.utc)
        async with self._db.write_session() as session:
            stmt = upsert_insert(session, LeagueORM).values(
                id=uuid.uuid4(),
                external_id=config.external_id,
                name=config.name,
                country=config.country,
                season=config.season,
                logo_url=config.logo_url,
                active=config.active,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[LeagueORM.external_id],
                set_={
                    "name": stmt.excluded.name,
                    "country": stmt.excluded.country,
                    "logo_url": stmt.excluded.logo_url,
                    "active": stmt.excluded.active,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)
            league = (
                await session.execute(
                    select(LeagueORM).where(LeagueORM.external_id == config.external_id)
                )
            ).scalar_one()
        return league

    async def _league_ids(self, external_ids: Iterable[int]) -> dict[int, uuid.UUID]:
        ids: dict[int, uuid.UUID] = {}
        for external_id in sorted(set(external_ids)):
            config = self._leagues.get(external_id)
            if config is None:
                continue
            league = await self.ensure_league(config)
            ids[external_id] = league.id
        return ids

    async def purge_league_matches(self, league_id: uuid.UUID, season: int | None = None) -> int:
        """
        Delete every match of a league with its goals and cards, in one
        transaction. When season is given the stored season is updated in the
        same transaction.
        """
        match_ids = select(MatchORM.id).where(MatchORM.league_id == league_id)
        async with self._db.write_session() as session:
            await session.execute(delete(GoalORM).where(GoalORM.match_id.in_(match_ids)))
            await session.execute(delete(CardORM).where(CardORM.match_id.in_(match_ids)))
            result = await session.execute(delete(MatchORM).where(MatchORM.league_id == league_id))
            if season is not None:
                await session.execute(
                    update(LeagueORM)
                    .where(LeagueORM.id == league_id)
                    .values(season=season, updated_at=datetime.now(timezone.utc))
                )
        purged = result.rowcount or 0
        logger.info("league_matches_purged", league_id=str(league_id), purged=purged, season=season)
        return purged

    # ── League sync ─────────────────────────────────────────────────────
    async def resync_league(
        self, config: LeagueConfig, league_id: uuid.UUID | None = None
    ) -> ReconcileReport:
        """Fetch the configured season's fixtures and reconcile them. Provider errors propagate."""
        if league_id is None:
            league_id = (await self.ensure_league(config)).id
        fixtures = await self._client.fetch_fixtures(config.external_id, config.season)
        return await self._reconciler.reconcile(fixtures, {config.external_id: league_id})

    async def ensure_league_fresh(
        self, config: LeagueConfig, now: datetime | None = None
    ) -> SyncOutcome:
        now = now or datetime.now(timezone.utc)
        target = f"league:{config.external_id}"
        league = await self.ensure_league(config)

        async with self._db.read_session() as session:
            count, newest = await queries.league_match_stats(session, league.id)

        state = LeagueSyncState(
            configured_season=config.season,
            stored_season=league.season,
            match_count=count,
            newest_update=newest,
            active=config.active,
        )
        decision = should_resync(
            state,
            now,
            min_matches=self._settings.sync_min_matches,
            stale_after_s=self._settings.sync_stale_after_s,
        )
        outcome = SyncOutcome(target=target, reason=decision.reason)
        if not decision.needs_sync:
            LEAGUE_SYNCS.labels(reason=decision.reason.value, outcome="skipped").inc()
            return outcome

        logger.info(
            "league_resync_started",
            league=config.external_id,
            reason=decision.reason.value,
            stored_season=league.season,
            season=config.season,
            matches=count,
        )
        start = time.perf_counter()
        if decision.purge_first:
            outcome.purged = await self.purge_league_matches(league.id, season=config.season)

        try:
            outcome.report = await self.resync_league(config, league.id)
        except ProviderError as exc:
            outcome.error = str(exc)
            logger.warning(
                "league_resync_failed",
                league=config.external_id,
                reason=decision.reason.value,
                error=str(exc),
            )
        outcome.elapsed_s = time.perf_counter() - start
        SYNC_DURATION.labels(kind="league").observe(outcome.elapsed_s)
        LEAGUE_SYNCS.labels(
            reason=decision.reason.value, outcome="failed" if outcome.failed else "synced"
        ).inc()

        if outcome.purged or outcome.synced:
            await self._invalidate(patterns=[league_cache_pattern(config.external_id)])
        if outcome.synced:
            logger.info(
                "league_resync_completed",
                league=config.external_id,
                **outcome.report.as_dict(),
                elapsed_s=round(outcome.elapsed_s, 3),
            )
        return outcome

    async def sync_all(self, now: datetime | None = None) -> list[SyncOutcome]:
        """ensure_league_fresh for every active configured league, one at a time."""
        outcomes = []
        for config in self._leagues.active():
            outcomes.append(await self.ensure_league_fresh(config, now=now))
        return outcomes

    # ── Day sync ────────────────────────────────────────────────────────
    async def sync_date(self, local_day: date) -> SyncOutcome:
        """
        Pull every configured-league fixture kicking off on a local calendar
        day, with event detail, and reconcile it.
        """
        offset = self._settings.timezone_offset_hours
        target = f"date:{local_day.isoformat()}"
        outcome = SyncOutcome(target=target)
        start_utc, end_utc = local_day_window(local_day, offset)
        start = time.perf_counter()

        try:
            per_day = await asyncio.gather(
                *(self._client.fetch_fixtures_by_date(d) for d in utc_dates_covering(local_day, offset))
            )
            candidates: dict[int, Fixture] = {}
            for fixtures in per_day:
                for fixture in fixtures:
                    if fixture.league_external_id not in self._leagues:
                        continue
                    if not start_utc <= as_utc(fixture.fixture.date) < end_utc:
                        continue
                    candidates[fixture.external_id] = fixture
            detailed = await self._client.fetch_fixture_details(list(candidates.values()))
        except ProviderError as exc:
            outcome.error = str(exc)
            logger.warning("date_sync_failed", day=local_day.isoformat(), error=str(exc))
            return outcome

        league_ids = await self._league_ids(f.league_external_id for f in detailed)
        outcome.report = await self._reconciler.reconcile(detailed, league_ids)
        outcome.elapsed_s = time.perf_counter() - start
        outcome.details["fixtures"] = len(detailed)
        SYNC_DURATION.labels(kind="date").observe(outcome.elapsed_s)

        day = local_day.isoformat()
        await self._invalidate(
            keys=[key_for(MATCHES_DATE_KEY, day=day), key_for(MATCHES_TODAY_KEY, day=day)],
            patterns=[league_cache_pattern(ext) for ext in league_ids],
        )
        logger.info("date_sync_completed", day=day, **outcome.report.as_dict())
        return outcome

    # ── Live sync ───────────────────────────────────────────────────────
    async def sync_live(self) -> SyncOutcome:
        """
        Pull the fixtures in play right now for configured leagues, with
        event detail, and reconcile them. Day views and match details of
        the touched fixtures are invalidated.
        """
        outcome = SyncOutcome(target="live")
        start = time.perf_counter()
        try:
            live = [
                fixture for fixture in await self._client.fetch_live_fixtures()
                if fixture.league_external_id in self._leagues
            ]
            detailed = await self._client.fetch_fixture_details(live)
        except ProviderError as exc:
            outcome.error = str(exc)
            logger.warning("live_sync_failed", error=str(exc))
            return outcome

        league_ids = await self._league_ids(f.league_external_id for f in detailed)
        outcome.report = await self._reconciler.reconcile(detailed, league_ids)
        outcome.elapsed_s = time.perf_counter() - start
        outcome.details["fixtures"] = len(detailed)
        SYNC_DURATION.labels(kind="live").observe(outcome.elapsed_s)

        offset = self._settings.timezone_offset_hours
        days = sorted({local_today(f.fixture.date, offset).isoformat() for f in detailed})
        keys = [
            key_for(template, day=day)
            for day in days
            for template in (MATCHES_DATE_KEY, MATCHES_TODAY_KEY)
        ]
        for fixture in detailed:
            keys.extend(await self._detail_keys(fixture.external_id))
        await self._invalidate(keys=keys, patterns=[league_cache_pattern(ext) for ext in league_ids])
        logger.info("live_sync_completed", fixtures=len(detailed), **outcome.report.as_dict())
        return outcome

    # ── Single match ────────────────────────────────────────────────────
    async def refresh_match(self, match_external_id: int, league_external_id: int) -> SyncOutcome:
        """Re-fetch one fixture with event detail and reconcile it."""
        outcome = SyncOutcome(target=f"match:{match_external_id}")
        config = self._leagues.get(league_external_id)
        if config is None:
            outcome.error = f"League {league_external_id} is not configured"
            return outcome
        try:
            fixtures = await self._client.fetch_fixtures_by_ids([match_external_id])
        except ProviderError as exc:
            outcome.error = str(exc)
            logger.warning("match_refresh_failed", fixture_id=match_external_id, error=str(exc))
            return outcome

        league = await self.ensure_league(config)
        outcome.report = await self._reconciler.reconcile(fixtures, {config.external_id: league.id})
        await self._invalidate(
            keys=await self._detail_keys(match_external_id),
            patterns=[league_cache_pattern(config.external_id)],
        )
        return outcome

    # ── Cache ───────────────────────────────────────────────────────────
    async def _detail_keys(self, match_external_id: int) -> list[str]:
        """Detail cache keys of a match: by external id and, once stored, by UUID."""
        keys = [key_for(MATCH_DETAIL_KEY, match_id=match_external_id)]
        async with self._db.read_session() as session:
            stored_id = await queries.match_id_for(session, match_external_id)
        if stored_id is not None:
            keys.append(key_for(MATCH_DETAIL_KEY, match_id=str(stored_id)))
        return keys

    async def _invalidate(
        self, keys: Iterable[str] = (), patterns: Iterable[str] = ()
    ) -> None:
        if self._cache is None:
            return
        for key in keys:
            await self._cache.delete(key)
        for pattern in patterns:
            await self._cache.delete_pattern(pattern)
