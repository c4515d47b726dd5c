"""
Pydantic v2 domain models shared by the sync core and the API.
These are the canonical read-side representations, not ORM models.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from shared.models.enums import CardType, GoalType, MatchStatus


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Reference entities ──────────────────────────────────────────────────
class LeagueRef(DomainModel):
    id: uuid.UUID
    external_id: int
    name: str
    country: str
    season: int
    logo_url: Optional[str] = None


class TeamRef(DomainModel):
    id: uuid.UUID
    external_id: int
    name: str
    code: Optional[str] = None
    logo_url: Optional[str] = None


# ── Match events ────────────────────────────────────────────────────────
class GoalOut(DomainModel):
    team_id: uuid.UUID
    player_name: str
    minute: int
    extra_minute: Optional[int] = None
    goal_type: GoalType = GoalType.NORMAL


class CardOut(DomainModel):
    team_id: uuid.UUID
    player_name: str
    minute: int
    extra_minute: Optional[int] = None
    card_type: CardType


# ── Matches ─────────────────────────────────────────────────────────────
class MatchSummary(DomainModel):
    """List view of a match, enough for fixtures, day views and standings."""
    id: uuid.UUID
    external_id: int
    league: LeagueRef
    season: int
    home_team: TeamRef
    away_team: TeamRef
    kickoff: UtcDatetime
    status: MatchStatus
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    elapsed: Optional[int] = None
    round: Optional[str] = None
    venue: Optional[str] = None
    updated_at: UtcDatetime


class MatchDetail(MatchSummary):
    referee: Optional[str] = None
    highlight: Optional[str] = None
    broadcasters: Optional[list[Any]] = None
    events_synced_at: Optional[UtcDatetime] = None
    goals: list[GoalOut] = Field(default_factory=list)
    cards: list[CardOut] = Field(default_factory=list)


class RoundFixtures(DomainModel):
    round: str
    matches: list[MatchSummary] = Field(default_factory=list)


# ── Standings ───────────────────────────────────────────────────────────
class StandingTeam(DomainModel):
    external_id: int
    name: str
    logo_url: Optional[str] = None


class StandingRow(DomainModel):
    position: int
    group: Optional[str] = None
    team: StandingTeam
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0
    form: list[str] = Field(default_factory=list)


# ── Statistics ──────────────────────────────────────────────────────────
class TeamStatistics(DomainModel):
    team: StandingTeam
    stats: dict[str, Any] = Field(default_factory=dict)


class TeamStatsPair(DomainModel):
    home: TeamStatistics
    away: TeamStatistics


# ── Admin annotations ───────────────────────────────────────────────────
class MatchAnnotation(DomainModel):
    """Editorial fields set by an operator. Omitted fields are left untouched."""
    external_id: int
    highlight: Optional[str] = None
    broadcasters: Optional[list[Any]] = None
