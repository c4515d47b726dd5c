"""Domain enumerations for the Matchday platform."""
from __future__ import annotations

from enum import Enum


class MatchStatus(str, Enum):
    """Closed set of stored match states."""

    NOT_STARTED = "NS"
    LIVE = "LIVE"
    HALFTIME = "HT"
    FINISHED = "FT"
    AFTER_EXTRA_TIME = "AET"
    PENALTIES = "PEN"
    POSTPONED = "PST"
    CANCELLED = "CANC"
    ABANDONED = "ABD"

    @property
    def is_live(self) -> bool:
        return self in (MatchStatus.LIVE, MatchStatus.HALFTIME)

    @property
    def is_terminal(self) -> bool:
        return self in (
            MatchStatus.FINISHED,
            MatchStatus.AFTER_EXTRA_TIME,
            MatchStatus.PENALTIES,
        )

    @property
    def is_deferred(self) -> bool:
        return self in (
            MatchStatus.POSTPONED,
            MatchStatus.CANCELLED,
            MatchStatus.ABANDONED,
        )

    @property
    def is_countable(self) -> bool:
        """Whether the result contributes to a standings table."""
        return self.is_live or self.is_terminal


class GoalType(str, Enum):
    NORMAL = "NORMAL"
    PENALTY = "PENALTY"
    OWN_GOAL = "OWN_GOAL"


class CardType(str, Enum):
    YELLOW = "YELLOW"
    RED = "RED"


class ResyncReason(str, Enum):
    """Why a league was (or was not) resynchronized."""

    SEASON_DRIFT = "season_drift"
    SPARSE = "sparse"
    STALE = "stale"
    FRESH = "fresh"

    @property
    def needs_sync(self) -> bool:
        return self is not ResyncReason.FRESH
