"""
Mapping of API-Football codes onto the stored enums.

All functions here are total: unknown or missing input falls back to a
default instead of raising.
"""
from __future__ import annotations

from typing import Optional

from shared.models.enums import CardType, GoalType, MatchStatus

_STATUS_MAP: dict[str, MatchStatus] = {
    "TBD": MatchStatus.NOT_STARTED,
    "NS": MatchStatus.NOT_STARTED,
    "1H": MatchStatus.LIVE,
    "HT": MatchStatus.HALFTIME,
    "2H": MatchStatus.LIVE,
    "ET": MatchStatus.LIVE,
    "P": MatchStatus.LIVE,
    "FT": MatchStatus.FINISHED,
    "AET": MatchStatus.AFTER_EXTRA_TIME,
    "PEN": MatchStatus.PENALTIES,
    "PST": MatchStatus.POSTPONED,
    "CANC": MatchStatus.CANCELLED,
    "ABD": MatchStatus.ABANDONED,
    "AWD": MatchStatus.FINISHED,
    "WO": MatchStatus.FINISHED,
}


def map_status(raw: Optional[str]) -> MatchStatus:
    """Map an upstream short status code to MatchStatus. Unknown codes read as not started."""
    if not raw:
        return MatchStatus.NOT_STARTED
    return _STATUS_MAP.get(raw.strip().upper(), MatchStatus.NOT_STARTED)


# ── Events ──────────────────────────────────────────────────────────────
GOAL_EVENT = "goal"
CARD_EVENT = "card"


def goal_type_for(detail: Optional[str]) -> Optional[GoalType]:
    """GoalType for a Goal event detail, or None when the event is not a goal (missed penalty)."""
    d = (detail or "").strip().lower()
    if d == "missed penalty":
        return None
    if d == "own goal":
        return GoalType.OWN_GOAL
    if d == "penalty":
        return GoalType.PENALTY
    return GoalType.NORMAL


def card_type_for(detail: Optional[str]) -> Optional[CardType]:
    d = (detail or "").strip().lower()
    if "red" in d or "second yellow" in d:
        return CardType.RED
    if "yellow" in d:
        return CardType.YELLOW
    return None
