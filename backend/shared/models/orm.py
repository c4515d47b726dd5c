"""
SQLAlchemy 2.0 ORM models for Matchday.
Column types stay portable so the same schema runs on PostgreSQL and SQLite.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class LeagueORM(Base):
    __tablename__ = "leagues"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="World")
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    matches: Mapped[list["MatchORM"]] = relationship(back_populates="league")


class TeamORM(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(10))
    logo_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class MatchORM(Base):
    __tablename__ = "matches"
    __table_args__ = (
        CheckConstraint("home_team_id != away_team_id", name="chk_different_teams"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    league_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    home_team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    away_team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    kickoff: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="NS")
    home_score: Mapped[Optional[int]] = mapped_column(SmallInteger)
    away_score: Mapped[Optional[int]] = mapped_column(SmallInteger)
    elapsed: Mapped[Optional[int]] = mapped_column(SmallInteger)
    round: Mapped[Optional[str]] = mapped_column(String(100))
    venue: Mapped[Optional[str]] = mapped_column(String(200))
    referee: Mapped[Optional[str]] = mapped_column(String(200))
    highlight: Mapped[Optional[str]] = mapped_column(Text)
    broadcasters: Mapped[Optional[list[Any]]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # Null until a payload with event detail has been reconciled
    events_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    league: Mapped["LeagueORM"] = relationship(back_populates="matches")
    home_team: Mapped["TeamORM"] = relationship(foreign_keys=[home_team_id])
    away_team: Mapped["TeamORM"] = relationship(foreign_keys=[away_team_id])
    goals: Mapped[list["GoalORM"]] = relationship(
        back_populates="match", order_by="GoalORM.minute", cascade="all, delete-orphan"
    )
    cards: Mapped[list["CardORM"]] = relationship(
        back_populates="match", order_by="CardORM.minute", cascade="all, delete-orphan"
    )


class GoalORM(Base):
    __tablename__ = "goals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    player_name: Mapped[str] = mapped_column(String(200), nullable=False)
    minute: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    extra_minute: Mapped[Optional[int]] = mapped_column(SmallInteger)
    goal_type: Mapped[str] = mapped_column(String(10), nullable=False, default="NORMAL")

    match: Mapped["MatchORM"] = relationship(back_populates="goals")
    team: Mapped["TeamORM"] = relationship()


class CardORM(Base):
    __tablename__ = "cards"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    player_name: Mapped[str] = mapped_column(String(200), nullable=False)
    minute: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    extra_minute: Mapped[Optional[int]] = mapped_column(SmallInteger)
    card_type: Mapped[str] = mapped_column(String(10), nullable=False)

    match: Mapped["MatchORM"] = relationship(back_populates="cards")
    team: Mapped["TeamORM"] = relationship()


class ApiCallLogORM(Base):
    __tablename__ = "api_call_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    endpoint: Mapped[str] = mapped_column(String(500), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False, default="GET")
    status_code: Mapped[Optional[int]] = mapped_column(Integer)
    latency_ms: Mapped[Optional[int]] = mapped_column(Integer)
    error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
