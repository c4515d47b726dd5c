"""
Validated records for API-Football v3 payloads.

Only the fields the sync core reads are modelled; everything else is ignored.
Items that fail validation are dropped one by one so a single malformed
fixture never empties a whole response.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.utils.logging import get_logger

logger = get_logger(__name__)


class Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ── Fixtures ────────────────────────────────────────────────────────────
class FixtureStatus(Payload):
    short: Optional[str] = None
    elapsed: Optional[int] = None


class FixtureVenue(Payload):
    name: Optional[str] = None
    city: Optional[str] = None


class FixtureInfo(Payload):
    id: int
    referee: Optional[str] = None
    date: datetime
    venue: FixtureVenue = Field(default_factory=FixtureVenue)
    status: FixtureStatus = Field(default_factory=FixtureStatus)


class FixtureLeague(Payload):
    id: int
    season: int
    name: str = ""
    round: Optional[str] = None


class TeamInfo(Payload):
    id: int
    name: str
    logo: Optional[str] = None


class FixtureTeams(Payload):
    home: TeamInfo
    away: TeamInfo


class FixtureGoals(Payload):
    home: Optional[int] = None
    away: Optional[int] = None


class EventTime(Payload):
    elapsed: Optional[int] = None
    extra: Optional[int] = None


class EventTeam(Payload):
    id: Optional[int] = None


class EventPlayer(Payload):
    id: Optional[int] = None
    name: Optional[str] = None


class FixtureEvent(Payload):
    time: EventTime = Field(default_factory=EventTime)
    team: EventTeam = Field(default_factory=EventTeam)
    player: EventPlayer = Field(default_factory=EventPlayer)
    type: str = ""
    detail: Optional[str] = None


class Fixture(Payload):
    """One element of the /fixtures response."""
    fixture: FixtureInfo
    league: FixtureLeague
    teams: FixtureTeams
    goals: FixtureGoals = Field(default_factory=FixtureGoals)
    events: list[FixtureEvent] = Field(default_factory=list)

    @property
    def external_id(self) -> int:
        return self.fixture.id

    @property
    def league_external_id(self) -> int:
        return self.league.id

    @property
    def has_event_detail(self) -> bool:
        """True when the payload carried an events array (id lookups do, list queries do not)."""
        return "events" in self.model_fields_set


# ── Standings ───────────────────────────────────────────────────────────
class GoalTotals(Payload):
    scored: int = Field(default=0, alias="for")
    against: int = 0


class StandingRecord(Payload):
    played: int = 0
    win: int = 0
    draw: int = 0
    lose: int = 0
    goals: GoalTotals = Field(default_factory=GoalTotals)


class UpstreamStandingRow(Payload):
    rank: int
    team: TeamInfo
    points: int = 0
    goals_diff: int = Field(default=0, alias="goalsDiff")
    group: Optional[str] = None
    form: Optional[str] = None
    all: StandingRecord = Field(default_factory=StandingRecord)


# ── Statistics ──────────────────────────────────────────────────────────
class StatisticEntry(Payload):
    type: str
    value: Any = None


class TeamStatisticsPayload(Payload):
    team: TeamInfo
    statistics: list[StatisticEntry] = Field(default_factory=list)


M = TypeVar("M", bound=Payload)


def parse_items(model: type[M], items: Any, endpoint: str) -> list[M]:
    """Validate each element of a response list, dropping malformed ones."""
    if not isinstance(items, list):
        return []
    parsed: list[M] = []
    for raw in items:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as exc:
            logger.warning(
                "provider_item_invalid",
                endpoint=endpoint,
                model=model.__name__,
                errors=exc.error_count(),
            )
    return parsed
