"""League registry and CLI argument parsing."""
from __future__ import annotations

from datetime import date

import pytest

from shared.config import Settings
from shared.leagues import LEAGUES, LeagueRegistry
from sync.cli import build_parser


def test_registry_holds_configured_leagues() -> None:
    registry = LeagueRegistry(settings=Settings(metrics_enabled=False))
    assert len(registry) == len(LEAGUES) == 9
    assert 128 in registry
    assert registry.get(128).zones is not None
    assert registry.get(99999) is None


def test_season_override_from_settings() -> None:
    settings = Settings(league_season_overrides={128: 2026})
    registry = LeagueRegistry(settings=settings)
    assert registry.get(128).season == 2026
    assert registry.get(39).season == 2025


def test_inactive_leagues_are_excluded_from_active() -> None:
    inactive = LEAGUES[0].model_copy(update={"active": False})
    registry = LeagueRegistry([inactive, LEAGUES[1]], settings=Settings())
    assert [lg.external_id for lg in registry.active()] == [LEAGUES[1].external_id]
    assert registry.ids == {LEAGUES[0].external_id, LEAGUES[1].external_id}


class TestCliParser:

    def test_league_command(self) -> None:
        args = build_parser().parse_args(["league", "128", "--force"])
        assert (args.command, args.league_id, args.force, args.no_cache) == ("league", 128, True, False)

    def test_date_command(self) -> None:
        args = build_parser().parse_args(["--no-cache", "date", "2025-08-16"])
        assert args.day == date(2025, 8, 16)
        assert args.no_cache

    def test_date_defaults_to_today(self) -> None:
        assert build_parser().parse_args(["date"]).day is None

    def test_live_command(self) -> None:
        assert build_parser().parse_args(["live"]).command == "live"

    def test_match_requires_league(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["match", "1035037"])
