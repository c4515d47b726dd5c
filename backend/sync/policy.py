"""
Freshness policy: when a league must be resynced and how long a response
may be served from cache. Everything here is pure; callers pass `now`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import as_utc
from shared.models.enums import MatchStatus, ResyncReason


@dataclass(frozen=True)
class LeagueSyncState:
    """What the store knows about one league, next to its configured season."""
    configured_season: int
    stored_season: int
    match_count: int
    newest_update: Optional[datetime]
    active: bool = True


@dataclass(frozen=True)
class ResyncDecision:
    reason: ResyncReason

    @property
    def needs_sync(self) -> bool:
        return self.reason.needs_sync

    @property
    def purge_first(self) -> bool:
        return self.reason is ResyncReason.SEASON_DRIFT


def should_resync(
    state: LeagueSyncState,
    now: datetime,
    min_matches: int = 20,
    stale_after_s: int = 300,
) -> ResyncDecision:
    """
    Rules in order, first match wins:
    season drift, fewer than min_matches stored, active and older than
    stale_after_s (or never updated), otherwise fresh.
    """
    if state.configured_season != state.stored_season:
        return ResyncDecision(ResyncReason.SEASON_DRIFT)
    if state.match_count < min_matches:
        return ResyncDecision(ResyncReason.SPARSE)
    if state.active:
        if state.newest_update is None:
            return ResyncDecision(ResyncReason.STALE)
        if as_utc(now) - as_utc(state.newest_update) > timedelta(seconds=stale_after_s):
            return ResyncDecision(ResyncReason.STALE)
    return ResyncDecision(ResyncReason.FRESH)


# ── Freshness windows ───────────────────────────────────────────────────
@dataclass(frozen=True)
class FreshnessWindows:
    live_s: int = 30
    not_started_s: int = 60 * 60
    finished_s: int = 30 * 24 * 60 * 60
    deferred_s: int = 24 * 60 * 60

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FreshnessWindows":
        settings = settings or get_settings()
        return cls(
            live_s=settings.cache_ttl_live_s,
            not_started_s=settings.cache_ttl_not_started_s,
            finished_s=settings.cache_ttl_finished_s,
            deferred_s=settings.cache_ttl_deferred_s,
        )


DEFAULT_WINDOWS = FreshnessWindows()


def ttl_for_status(status: MatchStatus | str, windows: FreshnessWindows = DEFAULT_WINDOWS) -> int:
    status = MatchStatus(status)
    if status.is_live:
        return windows.live_s
    if status.is_terminal:
        return windows.finished_s
    if status.is_deferred:
        return windows.deferred_s
    return windows.not_started_s


def ttl_for_matches(
    statuses: Iterable[MatchStatus | str],
    ceiling: int,
    windows: FreshnessWindows = DEFAULT_WINDOWS,
) -> int:
    """Smallest window among the statuses, never above ceiling. Empty input gets the ceiling."""
    ttl = ceiling
    for status in statuses:
        ttl = min(ttl, ttl_for_status(status, windows))
    return ttl


def is_match_stale(
    status: MatchStatus | str,
    updated_at: Optional[datetime],
    now: datetime,
    windows: FreshnessWindows = DEFAULT_WINDOWS,
) -> bool:
    if updated_at is None:
        return True
    age = as_utc(now) - as_utc(updated_at)
    return age > timedelta(seconds=ttl_for_status(status, windows))


# ── Local day ───────────────────────────────────────────────────────────
def local_today(now: datetime, offset_hours: int) -> date:
    return as_utc(now).astimezone(timezone(timedelta(hours=offset_hours))).date()


def local_day_window(day: date, offset_hours: int) -> tuple[datetime, datetime]:
    """UTC [start, end) covering one calendar day at a fixed UTC offset."""
    tz = timezone(timedelta(hours=offset_hours))
    start = datetime(day.year, day.month, day.day, tzinfo=tz).astimezone(timezone.utc)
    return start, start + timedelta(days=1)


def utc_dates_covering(day: date, offset_hours: int) -> list[date]:
    """UTC calendar dates that overlap the local day (one, or two for non-zero offsets)."""
    start, end = local_day_window(day, offset_hours)
    last = (end - timedelta(microseconds=1)).date()
    return sorted({start.date(), last})
