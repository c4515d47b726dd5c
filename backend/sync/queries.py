"""Store read queries returning domain models."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.models.domain import MatchDetail, MatchSummary, as_utc
from shared.models.orm import LeagueORM, MatchORM


def _summary_query() -> Select[tuple[MatchORM]]:
    return select(MatchORM).options(
        selectinload(MatchORM.league),
        selectinload(MatchORM.home_team),
        selectinload(MatchORM.away_team),
    )


async def get_league(session: AsyncSession, external_id: int) -> Optional[LeagueORM]:
    stmt = select(LeagueORM).where(LeagueORM.external_id == external_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def list_leagues(session: AsyncSession) -> list[LeagueORM]:
    stmt = select(LeagueORM).order_by(LeagueORM.name)
    return list((await session.execute(stmt)).scalars().all())


async def league_match_stats(
    session: AsyncSession, league_id: uuid.UUID
) -> tuple[int, Optional[datetime]]:
    """Stored match count and newest updated_at for one league."""
    stmt = select(func.count(MatchORM.id), func.max(MatchORM.updated_at)).where(
        MatchORM.league_id == league_id
    )
    count, newest = (await session.execute(stmt)).one()
    return int(count or 0), newest


async def matches_between(
    session: AsyncSession,
    start: datetime,
    end: datetime,
    league_ids: Iterable[uuid.UUID] | None = None,
) -> list[MatchSummary]:
    """Matches with kickoff in [start, end), ordered by kickoff."""
    stmt = _summary_query().where(MatchORM.kickoff >= as_utc(start), MatchORM.kickoff < as_utc(end))
    if league_ids is not None:
        stmt = stmt.where(MatchORM.league_id.in_(list(league_ids)))
    stmt = stmt.order_by(MatchORM.kickoff, MatchORM.external_id)
    rows = (await session.execute(stmt)).scalars().all()
    return [MatchSummary.model_validate(row) for row in rows]


async def league_matches(
    session: AsyncSession,
    league_id: uuid.UUID,
    round_label: Optional[str] = None,
) -> list[MatchSummary]:
    stmt = _summary_query().where(MatchORM.league_id == league_id)
    if round_label is not None:
        stmt = stmt.where(MatchORM.round == round_label)
    stmt = stmt.order_by(MatchORM.kickoff, MatchORM.external_id)
    rows = (await session.execute(stmt)).scalars().all()
    return [MatchSummary.model_validate(row) for row in rows]


async def match_detail(
    session: AsyncSession,
    *,
    match_id: uuid.UUID | None = None,
    external_id: int | None = None,
) -> Optional[MatchDetail]:
    """One match with goals and cards, by stored id or by external id."""
    stmt = _summary_query().options(
        selectinload(MatchORM.goals),
        selectinload(MatchORM.cards),
    )
    if match_id is not None:
        stmt = stmt.where(MatchORM.id == match_id)
    elif external_id is not None:
        stmt = stmt.where(MatchORM.external_id == external_id)
    else:
        raise ValueError("match_id or external_id is required")
    row = (await session.execute(stmt)).scalar_one_or_none()
    return MatchDetail.model_validate(row) if row is not None else None


async def matches_by_external_ids(
    session: AsyncSession, external_ids: Iterable[int]
) -> list[MatchORM]:
    ids = list(external_ids)
    if not ids:
        return []
    stmt = select(MatchORM).where(MatchORM.external_id.in_(ids))
    return list((await session.execute(stmt)).scalars().all())


async def match_id_for(session: AsyncSession, external_id: int) -> Optional[uuid.UUID]:
    stmt = select(MatchORM.id).where(MatchORM.external_id == external_id)
    return (await session.execute(stmt)).scalar_one_or_none()
