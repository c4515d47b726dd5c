"""
Reconciliation of upstream fixtures into the durable store.

Per fixture, inside one transaction: upsert both teams, upsert the match by
its external id, then (when the payload carried events) replace the match's
goals and cards. Readers see either the previous or the new row, never a
partial one. Fixtures go in sequential batches; fixtures within a batch run
concurrently and fail independently.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import Settings, get_settings
from shared.models.domain import as_utc
from shared.models.enums import MatchStatus
from shared.models.orm import CardORM, GoalORM, MatchORM, TeamORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import FIXTURES_RECONCILED

from ingest.payloads import Fixture, TeamInfo
from ingest.status import CARD_EVENT, GOAL_EVENT, card_type_for, goal_type_for, map_status

logger = get_logger(__name__)


@dataclass
class ReconcileReport:
    processed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def merge(self, other: "ReconcileReport") -> "ReconcileReport":
        self.processed.extend(other.processed)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": len(self.processed),
            "skipped": len(self.skipped),
            "failed": list(self.failed),
        }


def upsert_insert(session: AsyncSession, table: Any):
    """Dialect-specific INSERT supporting ON CONFLICT for the session's engine."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Upsert not supported for dialect {dialect!r}")


def team_code(name: str) -> str:
    return name[:3].upper()


class Reconciler:
    def __init__(
        self,
        db: DatabaseManager,
        settings: Settings | None = None,
        batch_size: int | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._db = db
        self._batch_size = max(1, batch_size or settings.sync_batch_size)

    async def reconcile(
        self,
        fixtures: list[Fixture],
        league_ids: Mapping[int, uuid.UUID],
    ) -> ReconcileReport:
        """
        Write fixtures to the store.

        league_ids maps configured league external ids to stored league ids;
        fixtures of any other league are skipped. Returns which fixtures were
        written, skipped or failed.
        """
        report = ReconcileReport()
        # One write per fixture id; a later duplicate wins
        unique: dict[int, Fixture] = {}
        for fixture in fixtures:
            if fixture.league_external_id not in league_ids:
                report.skipped.append(fixture.external_id)
                continue
            unique[fixture.external_id] = fixture

        pending = list(unique.values())
        for start in range(0, len(pending), self._batch_size):
            batch = pending[start:start + self._batch_size]
            outcomes = await asyncio.gather(
                *(self._reconcile_safe(f, league_ids[f.league_external_id]) for f in batch)
            )
            for fixture, ok in zip(batch, outcomes):
                (report.processed if ok else report.failed).append(fixture.external_id)

        FIXTURES_RECONCILED.labels(outcome="processed").inc(len(report.processed))
        FIXTURES_RECONCILED.labels(outcome="skipped").inc(len(report.skipped))
        FIXTURES_RECONCILED.labels(outcome="failed").inc(len(report.failed))
        if report.failed:
            logger.warning("reconcile_partial_failure", failed=report.failed)
        return report

    async def _reconcile_safe(self, fixture: Fixture, league_id: uuid.UUID) -> bool:
        try:
            await self.reconcile_fixture(fixture, league_id)
            return True
        except Exception as exc:
            logger.error(
                "fixture_reconcile_failed",
                fixture_id=fixture.external_id,
                error=str(exc),
            )
            return False

    async def reconcile_fixture(self, fixture: Fixture, league_id: uuid.UUID) -> uuid.UUID:
        """Teams, then match, then events, in one transaction. Returns the stored match id."""
        now = datetime.now(timezone.utc)
        async with self._db.write_session() as session:
            # Team rows are locked in ascending external id order across all fixtures
            team_ids: dict[int, uuid.UUID] = {}
            for team in sorted((fixture.teams.home, fixture.teams.away), key=lambda t: t.id):
                team_ids[team.id] = await self._upsert_team(session, team, now)
            home_id = team_ids[fixture.teams.home.id]
            away_id = team_ids[fixture.teams.away.id]
            match_id = await self._upsert_match(session, fixture, league_id, home_id, away_id, now)
            if fixture.has_event_detail:
                await self._replace_events(session, fixture, match_id, team_ids, now)
        return match_id

    async def _upsert_team(self, session: AsyncSession, team: TeamInfo, now: datetime) -> uuid.UUID:
        stmt = upsert_insert(session, TeamORM).values(
            id=uuid.uuid4(),
            external_id=team.id,
            name=team.name,
            code=team_code(team.name),
            logo_url=team.logo,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[TeamORM.external_id],
            set_={
                "name": stmt.excluded.name,
                "logo_url": stmt.excluded.logo_url,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(TeamORM.id)
        return (await session.execute(stmt)).scalar_one()

    async def _upsert_match(
        self,
        session: AsyncSession,
        fixture: Fixture,
        league_id: uuid.UUID,
        home_id: uuid.UUID,
        away_id: uuid.UUID,
        now: datetime,
    ) -> uuid.UUID:
        status = map_status(fixture.fixture.status.short)
        not_started = status is MatchStatus.NOT_STARTED
        stmt = upsert_insert(session, MatchORM).values(
            id=uuid.uuid4(),
            external_id=fixture.external_id,
            league_id=league_id,
            season=fixture.league.season,
            home_team_id=home_id,
            away_team_id=away_id,
            kickoff=as_utc(fixture.fixture.date),
            status=status.value,
            home_score=None if not_started else fixture.goals.home,
            away_score=None if not_started else fixture.goals.away,
            elapsed=fixture.fixture.status.elapsed,
            round=fixture.league.round,
            venue=fixture.fixture.venue.name,
            referee=fixture.fixture.referee,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[MatchORM.external_id],
            set_={
                "status": stmt.excluded.status,
                "home_score": stmt.excluded.home_score,
                "away_score": stmt.excluded.away_score,
                "elapsed": stmt.excluded.elapsed,
                "round": stmt.excluded.round,
                "venue": stmt.excluded.venue,
                "referee": stmt.excluded.referee,
                "kickoff": stmt.excluded.kickoff,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(MatchORM.id)
        return (await session.execute(stmt)).scalar_one()

    async def _replace_events(
        self,
        session: AsyncSession,
        fixture: Fixture,
        match_id: uuid.UUID,
        team_ids: Mapping[int, uuid.UUID],
        now: datetime,
    ) -> None:
        await session.execute(delete(GoalORM).where(GoalORM.match_id == match_id))
        await session.execute(delete(CardORM).where(CardORM.match_id == match_id))

        goals: list[dict[str, Any]] = []
        cards: list[dict[str, Any]] = []
        for event in fixture.events:
            team_id = team_ids.get(event.team.id) if event.team.id is not None else None
            if team_id is None:
                continue
            kind = event.type.strip().lower()
            row = {
                "id": uuid.uuid4(),
                "match_id": match_id,
                "team_id": team_id,
                "player_name": event.player.name or "Unknown",
                "minute": event.time.elapsed or 0,
                "extra_minute": event.time.extra,
            }
            if kind == GOAL_EVENT:
                goal_type = goal_type_for(event.detail)
                if goal_type is not None:
                    goals.append({**row, "goal_type": goal_type.value})
            elif kind == CARD_EVENT:
                card_type = card_type_for(event.detail)
                if card_type is not None:
                    cards.append({**row, "card_type": card_type.value})

        if goals:
            await session.execute(GoalORM.__table__.insert(), goals)
        if cards:
            await session.execute(CardORM.__table__.insert(), cards)
        await session.execute(
            update(MatchORM).where(MatchORM.id == match_id).values(events_synced_at=now)
        )
