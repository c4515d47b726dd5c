"""
Shared fixtures: an in-memory SQLite store, a canned API-Football upstream
served through httpx.MockTransport and an in-memory Redis double.
"""
from __future__ import annotations

import fnmatch
from typing import Any, AsyncIterator, Optional

import httpx
import pytest

from shared.config import Settings
from shared.leagues import LeagueConfig, LeagueRegistry
from shared.utils.cache import ResponseCache
from shared.utils.database import DatabaseManager

from ingest.api_football import ApiFootballClient
from sync.engine import SyncEngine
from sync.reads import ReadService

LIVE_CODES = {"1H", "HT", "2H", "ET", "P"}


def make_fixture(
    fixture_id: int,
    *,
    league: int = 39,
    season: int = 2025,
    home: tuple[int, str] = (33, "Manchester United"),
    away: tuple[int, str] = (34, "Newcastle"),
    kickoff: str = "2025-08-16T14:00:00+00:00",
    status: str = "FT",
    goals: tuple[Optional[int], Optional[int]] = (1, 0),
    round: str = "Regular Season - 1",
    elapsed: Optional[int] = None,
) -> dict[str, Any]:
    """One /fixtures list record, shaped like API-Football v3."""
    return {
        "fixture": {
            "id": fixture_id,
            "referee": "M. Oliver",
            "date": kickoff,
            "venue": {"name": "Old Trafford", "city": "Manchester"},
            "status": {"short": status, "elapsed": elapsed},
        },
        "league": {"id": league, "season": season, "name": "Premier League", "round": round},
        "teams": {
            "home": {"id": home[0], "name": home[1], "logo": f"https://logos/{home[0]}.png"},
            "away": {"id": away[0], "name": away[1], "logo": f"https://logos/{away[0]}.png"},
        },
        "goals": {"home": goals[0], "away": goals[1]},
    }


def make_event(
    team_id: int,
    kind: str,
    detail: str,
    player: str = "B. Fernandes",
    minute: int = 10,
    extra: Optional[int] = None,
) -> dict[str, Any]:
    return {
        "time": {"elapsed": minute, "extra": extra},
        "team": {"id": team_id},
        "player": {"id": 1, "name": player},
        "type": kind,
        "detail": detail,
    }


class UpstreamStub:
    """
    Canned API-Football: answers /fixtures (by league, date, ids or live),
    /standings and /fixtures/statistics from in-memory data.
    """

    def __init__(self) -> None:
        self.fixtures: dict[int, dict[str, Any]] = {}
        self.events: dict[int, list[dict[str, Any]]] = {}
        self.standings: list[list[dict[str, Any]]] = []
        self.statistics: dict[int, list[dict[str, Any]]] = {}
        self.fail_status: Optional[int] = None
        self.requests: list[httpx.Request] = []

    def add(self, fixture: dict[str, Any], events: Optional[list[dict[str, Any]]] = None) -> None:
        fixture_id = fixture["fixture"]["id"]
        self.fixtures[fixture_id] = fixture
        if events is not None:
            self.events[fixture_id] = events

    def _detailed(self, fixture: dict[str, Any]) -> dict[str, Any]:
        return {**fixture, "events": self.events.get(fixture["fixture"]["id"], [])}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"errors": [], "response": []})

        params = request.url.params
        path = request.url.path
        items: list[Any] = []
        if path == "/fixtures":
            if "ids" in params:
                wanted = {int(i) for i in params["ids"].split("-")}
                items = [self._detailed(f) for i, f in self.fixtures.items() if i in wanted]
            elif "date" in params:
                items = [f for f in self.fixtures.values() if f["fixture"]["date"][:10] == params["date"]]
            elif "league" in params:
                items = [
                    f for f in self.fixtures.values()
                    if f["league"]["id"] == int(params["league"])
                    and f["league"]["season"] == int(params["season"])
                ]
            elif params.get("live") == "all":
                items = [f for f in self.fixtures.values() if f["fixture"]["status"]["short"] in LIVE_CODES]
        elif path == "/standings":
            if self.standings:
                items = [{"league": {"id": int(params["league"]), "standings": self.standings}}]
        elif path == "/fixtures/statistics":
            items = self.statistics.get(int(params["fixture"]), [])
        return httpx.Response(200, json={"errors": [], "results": len(items), "response": items})

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


class FakeRedis:
    """In-memory stand-in for the redis.asyncio calls ResponseCache makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key


# ── Fixtures ────────────────────────────────────────────────────────────
@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        metrics_enabled=False,
        api_football_key="test-key",
        admin_api_key="secret",
        # StaticPool shares one SQLite connection; keep writes sequential
        sync_batch_size=1,
        timezone_offset_hours=-3,
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncIterator[DatabaseManager]:
    manager = DatabaseManager(settings)
    await manager.connect()
    await manager.create_schema()
    yield manager
    await manager.disconnect()


@pytest.fixture
def premier_league() -> LeagueConfig:
    return LeagueConfig(
        external_id=39,
        slug="premier-league",
        name="Premier League",
        short_name="Premier",
        country="England",
        season=2025,
    )


@pytest.fixture
def registry(premier_league: LeagueConfig, settings: Settings) -> LeagueRegistry:
    return LeagueRegistry(leagues=[premier_league], settings=settings)


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
async def client(settings: Settings, upstream: UpstreamStub) -> AsyncIterator[ApiFootballClient]:
    api = ApiFootballClient.from_settings(settings, transport=httpx.MockTransport(upstream.handler))
    await api.start()
    yield api
    await api.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> ResponseCache:
    return ResponseCache(fake_redis)  # type: ignore[arg-type]


@pytest.fixture
def engine(
    db: DatabaseManager,
    client: ApiFootballClient,
    registry: LeagueRegistry,
    cache: ResponseCache,
    settings: Settings,
) -> SyncEngine:
    return SyncEngine(db, client, registry, cache=cache, settings=settings)


@pytest.fixture
def reader(
    db: DatabaseManager,
    engine: SyncEngine,
    client: ApiFootballClient,
    cache: ResponseCache,
    settings: Settings,
) -> ReadService:
    return ReadService(db, engine, client, cache=cache, settings=settings)
