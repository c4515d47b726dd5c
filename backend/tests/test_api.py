"""API route tests. The read service is replaced by a stub; no DB or Redis is needed."""
from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.dependencies import get_reader, init_dependencies, reset_dependencies
from shared.config import Settings, get_settings
from shared.models.domain import MatchAnnotation
from shared.utils.http_client import ProviderRateLimited, ProviderUnavailable
from sync.reads import InvalidRequestError, NotFoundError


class StubReader:
    """Canned ReadService answers keyed by what the routes ask for."""

    def __init__(self) -> None:
        self.days: list[Any] = []
        self.annotations: list[MatchAnnotation] = []
        self.detail_error: Exception | None = None
        self.stats_error: Exception | None = None

    async def matches_for_date(self, day):
        self.days.append(day)
        return {"date": day.isoformat(), "count": 1, "matches": [{"external_id": 1}], "synced": False}

    async def matches_today(self):
        return {"date": "2025-08-16", "count": 0, "matches": [], "synced": True}

    async def match_detail(self, match_id: str):
        if self.detail_error:
            raise self.detail_error
        return {"external_id": int(match_id), "status": "FT"}

    async def match_statistics(self, match_id: str):
        if self.stats_error:
            raise self.stats_error
        return {"status": "FT", "statistics": None}

    async def list_leagues(self):
        return {"leagues": [{"external_id": 39}]}

    async def league_fixtures(self, external_id: int, round_label=None):
        if external_id != 39:
            raise NotFoundError(f"League {external_id} not found")
        return {"league": {"external_id": 39}, "available_rounds": ["R1"], "rounds": [], "statuses": []}

    async def league_standings(self, external_id: int):
        return {"league": {"external_id": external_id}, "source": "computed", "groups": [], "standings": []}

    async def upsert_annotations(self, items):
        self.annotations.extend(items)
        return {"updated": [i.external_id for i in items], "missing": []}


@pytest.fixture
def reader() -> StubReader:
    return StubReader()


@pytest.fixture
def client(reader: StubReader, settings: Settings) -> TestClient:
    """Test client with lifespan disabled so routes run without DB/Redis."""
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_reader] = lambda: reader
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c


# ── System ──────────────────────────────────────────────────────────────

def test_health_returns_ok(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data.get("status") == "ok"
    assert data.get("service") == "api"
    assert r.headers.get("content-type", "").startswith("application/json")


def test_request_id_is_echoed(client: TestClient) -> None:
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"


def test_ready_and_status_report_degraded_store(client: TestClient) -> None:
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.get_quota_usage = AsyncMock(return_value=7)
    db = MagicMock()
    db.read_session = MagicMock(side_effect=RuntimeError("DatabaseManager not connected."))
    init_dependencies(redis, db, MagicMock())
    try:
        ready = client.get("/ready").json()
        status = client.get("/v1/status").json()
    finally:
        reset_dependencies()

    assert ready == {"status": "degraded", "redis": True, "database": False}
    quota = status["providers"]["api_football"]
    assert quota["quota_used"] == 7
    assert quota["quota_remaining"] == max(get_settings().api_football_daily_quota - 7, 0)


# ── Matches ─────────────────────────────────────────────────────────────

def test_matches_by_date(client: TestClient, reader: StubReader) -> None:
    r = client.get("/v1/matches", params={"date": "2025-08-16"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["data"] == [{"external_id": 1}]
    assert body["date"] == "2025-08-16"
    assert reader.days[0].isoformat() == "2025-08-16"


def test_invalid_date_is_400(client: TestClient) -> None:
    r = client.get("/v1/matches", params={"date": "2025-13-40"})
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert r.json()["error"] == "invalid_request"


def test_today_is_not_a_match_id(client: TestClient) -> None:
    r = client.get("/v1/matches/today")
    assert r.status_code == 200
    assert r.json()["date"] == "2025-08-16"


def test_match_detail_envelope(client: TestClient) -> None:
    r = client.get("/v1/matches/1035037")
    assert r.json() == {"success": True, "data": {"external_id": 1035037, "status": "FT"}}


@pytest.mark.parametrize(
    "error, status, code",
    [
        (NotFoundError("Match 5 not found"), 404, "not_found"),
        (InvalidRequestError("Invalid match id"), 400, "invalid_request"),
    ],
)
def test_match_detail_errors(client: TestClient, reader: StubReader, error, status, code) -> None:
    reader.detail_error = error
    r = client.get("/v1/matches/5")
    assert r.status_code == status
    assert r.json()["success"] is False
    assert r.json()["error"] == code


@pytest.mark.parametrize(
    "error, status",
    [(ProviderRateLimited("quota"), 429), (ProviderUnavailable("down"), 503)],
)
def test_statistics_provider_errors(client: TestClient, reader: StubReader, error, status) -> None:
    reader.stats_error = error
    r = client.get("/v1/matches/5/statistics")
    assert r.status_code == status
    assert r.json()["success"] is False


def test_statistics_without_data(client: TestClient) -> None:
    r = client.get("/v1/matches/5/statistics")
    assert r.json() == {"success": True, "data": None, "status": "FT"}


# ── Leagues ─────────────────────────────────────────────────────────────

def test_list_leagues(client: TestClient) -> None:
    assert client.get("/v1/leagues").json() == {"success": True, "data": [{"external_id": 39}]}


def test_league_fixtures_hide_internal_fields(client: TestClient) -> None:
    body = client.get("/v1/leagues/39/fixtures").json()
    assert body["success"] is True
    assert "statuses" not in body["data"]
    assert body["data"]["available_rounds"] == ["R1"]


def test_unknown_league_is_404(client: TestClient) -> None:
    r = client.get("/v1/leagues/1/fixtures")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_league_standings(client: TestClient) -> None:
    body = client.get("/v1/leagues/128/standings").json()
    assert body["success"] is True
    assert body["source"] == "computed"
    assert body["data"] == []


# ── Admin ───────────────────────────────────────────────────────────────

def test_annotations_require_bearer_key(client: TestClient) -> None:
    payload = {"items": [{"external_id": 7, "highlight": "https://video/7"}]}
    assert client.post("/v1/admin/annotations", json=payload).status_code == 401
    r = client.post(
        "/v1/admin/annotations", json=payload, headers={"Authorization": "Bearer wrong"}
    )
    assert r.status_code == 401
    assert r.json()["error"] == "unauthorized"


def test_annotations_are_applied(client: TestClient, reader: StubReader) -> None:
    r = client.post(
        "/v1/admin/annotations",
        json={"items": [{"external_id": 7, "highlight": "https://video/7"}]},
        headers={"Authorization": "Bearer secret"},
    )
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"updated": [7], "missing": []}}
    assert reader.annotations[0].model_fields_set == {"external_id", "highlight"}


def test_admin_disabled_without_key(reader: StubReader) -> None:
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_reader] = lambda: reader
    app.dependency_overrides[get_settings] = lambda: Settings(admin_api_key="")
    with TestClient(app) as c:
        r = c.post(
            "/v1/admin/annotations",
            json={"items": [{"external_id": 7}]},
            headers={"Authorization": "Bearer "},
        )
    assert r.status_code == 401
