"""Reconciliation into the SQLite store: idempotent upserts, event replacement, lock order, failure isolation."""
from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from ingest.payloads import Fixture
from shared.models.orm import CardORM, GoalORM, LeagueORM, MatchORM, TeamORM
from shared.utils.database import DatabaseManager
from sync.reconciler import Reconciler, team_code

from conftest import make_event, make_fixture


@pytest.fixture
async def league_id(db: DatabaseManager) -> uuid.UUID:
    async with db.write_session() as session:
        league = LeagueORM(external_id=39, name="Premier League", country="England", season=2025)
        session.add(league)
        await session.flush()
        return league.id


@pytest.fixture
def reconciler(db: DatabaseManager, settings) -> Reconciler:
    return Reconciler(db, settings)


def parse(raw: dict, events: list | None = None) -> Fixture:
    if events is not None:
        raw = {**raw, "events": events}
    return Fixture.model_validate(raw)


async def count(db: DatabaseManager, model) -> int:
    async with db.read_session() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def stored_match(db: DatabaseManager, external_id: int) -> MatchORM:
    async with db.read_session() as session:
        stmt = select(MatchORM).where(MatchORM.external_id == external_id)
        return (await session.execute(stmt)).scalar_one()


def test_team_code() -> None:
    assert team_code("Arsenal") == "ARS"
    assert team_code("Ny") == "NY"


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(db, reconciler: Reconciler, league_id) -> None:
    fixture = parse(make_fixture(1001, goals=(1, 0)))

    first = await reconciler.reconcile([fixture], {39: league_id})
    second = await reconciler.reconcile([fixture], {39: league_id})

    assert first.processed == second.processed == [1001]
    assert await count(db, MatchORM) == 1
    assert await count(db, TeamORM) == 2


@pytest.mark.asyncio
async def test_reconcile_updates_existing_match(db, reconciler: Reconciler, league_id) -> None:
    await reconciler.reconcile(
        [parse(make_fixture(1001, status="1H", goals=(0, 0), elapsed=20))], {39: league_id}
    )
    before = await stored_match(db, 1001)

    await reconciler.reconcile([parse(make_fixture(1001, status="FT", goals=(2, 1)))], {39: league_id})
    after = await stored_match(db, 1001)

    assert after.id == before.id
    assert before.status == "LIVE"
    assert (after.status, after.home_score, after.away_score) == ("FT", 2, 1)
    assert after.updated_at >= before.updated_at


@pytest.mark.asyncio
async def test_not_started_match_has_no_score(db, reconciler: Reconciler, league_id) -> None:
    await reconciler.reconcile([parse(make_fixture(1002, status="NS", goals=(0, 0)))], {39: league_id})

    match = await stored_match(db, 1002)
    assert match.status == "NS"
    assert match.home_score is None and match.away_score is None


@pytest.mark.asyncio
async def test_kickoff_is_stored_in_utc(db, reconciler: Reconciler, league_id) -> None:
    await reconciler.reconcile(
        [parse(make_fixture(1003, kickoff="2025-08-16T21:30:00-03:00"))], {39: league_id}
    )
    match = await stored_match(db, 1003)
    assert (match.kickoff.day, match.kickoff.hour, match.kickoff.minute) == (17, 0, 30)


@pytest.mark.asyncio
async def test_team_names_refresh_but_code_is_kept(db, reconciler: Reconciler, league_id) -> None:
    await reconciler.reconcile([parse(make_fixture(1001, home=(42, "Arsenal")))], {39: league_id})
    await reconciler.reconcile([parse(make_fixture(1001, home=(42, "Arsenal FC")))], {39: league_id})

    async with db.read_session() as session:
        team = (await session.execute(select(TeamORM).where(TeamORM.external_id == 42))).scalar_one()
    assert team.name == "Arsenal FC"
    assert team.code == "ARS"


@pytest.mark.asyncio
async def test_events_are_replaced_wholesale(db, reconciler: Reconciler, league_id) -> None:
    events = [
        make_event(33, "Goal", "Normal Goal", player="B. Fernandes", minute=12),
        make_event(34, "Goal", "Own Goal", player="D. Burn", minute=40),
        make_event(33, "Goal", "Missed Penalty", minute=55),
        make_event(34, "Card", "Yellow Card", player="B. Guimaraes", minute=60),
        make_event(33, "subst", "Substitution 1", minute=70),
        make_event(999, "Goal", "Normal Goal", minute=80),
    ]
    await reconciler.reconcile([parse(make_fixture(1001), events)], {39: league_id})

    async with db.read_session() as session:
        goals = (await session.execute(select(GoalORM).order_by(GoalORM.minute))).scalars().all()
    assert [(g.player_name, g.goal_type) for g in goals] == [
        ("B. Fernandes", "NORMAL"),
        ("D. Burn", "OWN_GOAL"),
    ]
    assert await count(db, CardORM) == 1

    replacement = [make_event(33, "Goal", "Penalty", player="B. Fernandes", minute=90, extra=3)]
    await reconciler.reconcile([parse(make_fixture(1001), replacement)], {39: league_id})

    async with db.read_session() as session:
        goals = (await session.execute(select(GoalORM))).scalars().all()
    assert [(g.goal_type, g.minute, g.extra_minute) for g in goals] == [("PENALTY", 90, 3)]
    assert await count(db, CardORM) == 0


@pytest.mark.asyncio
async def test_list_records_keep_stored_events(db, reconciler: Reconciler, league_id) -> None:
    events = [make_event(33, "Goal", "Normal Goal")]
    await reconciler.reconcile([parse(make_fixture(1001), events)], {39: league_id})

    # A /fixtures list record carries no events array
    await reconciler.reconcile([parse(make_fixture(1001, goals=(1, 0)))], {39: league_id})

    assert await count(db, GoalORM) == 1


@pytest.mark.asyncio
async def test_unknown_league_is_skipped(db, reconciler: Reconciler, league_id) -> None:
    report = await reconciler.reconcile(
        [parse(make_fixture(1001)), parse(make_fixture(2001, league=140))], {39: league_id}
    )
    assert report.processed == [1001]
    assert report.skipped == [2001]
    assert await count(db, MatchORM) == 1


@pytest.mark.asyncio
async def test_failed_fixture_does_not_block_others(db, reconciler: Reconciler, league_id) -> None:
    # Same team on both sides violates the store's check constraint
    broken = parse(make_fixture(1002, home=(50, "Same"), away=(50, "Same")))
    fixtures = [parse(make_fixture(1001)), broken, parse(make_fixture(1003))]

    report = await reconciler.reconcile(fixtures, {39: league_id})

    assert report.processed == [1001, 1003]
    assert report.failed == [1002]
    assert await count(db, MatchORM) == 2
    assert report.as_dict() == {"processed": 2, "skipped": 0, "failed": [1002]}


@pytest.mark.asyncio
async def test_duplicate_fixtures_are_written_once(db, reconciler: Reconciler, league_id) -> None:
    fixtures = [
        parse(make_fixture(1001, goals=(0, 0))),
        parse(make_fixture(1001, goals=(3, 0))),
    ]
    report = await reconciler.reconcile(fixtures, {39: league_id})

    assert report.processed == [1001]
    match = await stored_match(db, 1001)
    assert match.home_score == 3


@pytest.mark.asyncio
async def test_events_synced_at_tracks_event_detail(db, reconciler: Reconciler, league_id) -> None:
    await reconciler.reconcile([parse(make_fixture(1001))], {39: league_id})
    assert (await stored_match(db, 1001)).events_synced_at is None

    await reconciler.reconcile([parse(make_fixture(1001), [])], {39: league_id})
    synced = (await stored_match(db, 1001)).events_synced_at
    assert synced is not None

    # A later list record leaves the marker alone
    await reconciler.reconcile([parse(make_fixture(1001, goals=(2, 0)))], {39: league_id})
    assert (await stored_match(db, 1001)).events_synced_at == synced


@pytest.mark.asyncio
async def test_teams_are_upserted_in_external_id_order(
    reconciler: Reconciler, league_id, monkeypatch
) -> None:
    order: list[list[int]] = []
    upsert_team = reconciler._upsert_team

    async def recording(session, team, now):
        order[-1].append(team.id)
        return await upsert_team(session, team, now)

    monkeypatch.setattr(reconciler, "_upsert_team", recording)
    fixtures = [
        parse(make_fixture(1001, home=(20, "B"), away=(10, "A"))),
        parse(make_fixture(1002, home=(10, "A"), away=(30, "C"))),
        parse(make_fixture(1003, home=(30, "C"), away=(20, "B"))),
    ]
    for fixture in fixtures:
        order.append([])
        await reconciler.reconcile([fixture], {39: league_id})

    assert order == [[10, 20], [10, 30], [20, 30]]
