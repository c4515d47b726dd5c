"""
League table computation from stored match results.

Pure and deterministic: the same matches always produce the same table,
whatever order they arrive in.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from shared.models.domain import MatchSummary, StandingRow, StandingTeam
from shared.models.enums import MatchStatus

from ingest.payloads import UpstreamStandingRow
from standings.groups import GroupTable

FORM_LENGTH = 5
POINTS_WIN = 3
POINTS_DRAW = 1


@dataclass
class _TeamTally:
    external_id: int
    name: str
    logo_url: Optional[str]
    group: Optional[str]
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    form: list[str] = field(default_factory=list)

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    @property
    def points(self) -> int:
        return self.won * POINTS_WIN + self.drawn * POINTS_DRAW

    def record(self, scored: int, conceded: int) -> None:
        self.played += 1
        self.goals_for += scored
        self.goals_against += conceded
        if scored > conceded:
            self.won += 1
            self.form.append("W")
        elif scored < conceded:
            self.lost += 1
            self.form.append("L")
        else:
            self.drawn += 1
            self.form.append("D")


def compute_standings(
    matches: Iterable[MatchSummary],
    groups: GroupTable | None = None,
    tie_break_by_name: bool = True,
) -> list[StandingRow]:
    """
    Build a standings table from matches.

    Only matches in progress or finished count. Matches are applied in
    kickoff order (external id breaks ties) so the form sequence is stable.
    Without a group table every team lands in one unnamed group.

    Ranking inside a group: points, goal difference, goals for, then team
    name (when tie_break_by_name) and finally team external id.
    """
    countable = [m for m in matches if MatchStatus(m.status).is_countable]
    countable.sort(key=lambda m: (m.kickoff, m.external_id))

    tallies: dict[int, _TeamTally] = {}

    def tally_for(team) -> _TeamTally:
        tally = tallies.get(team.external_id)
        if tally is None:
            tally = _TeamTally(
                external_id=team.external_id,
                name=team.name,
                logo_url=team.logo_url,
                group=groups.group_for(team.name) if groups else None,
            )
            tallies[team.external_id] = tally
        return tally

    for match in countable:
        home = tally_for(match.home_team)
        away = tally_for(match.away_team)
        home_goals = match.home_score or 0
        away_goals = match.away_score or 0
        home.record(home_goals, away_goals)
        away.record(away_goals, home_goals)

    def rank_key(t: _TeamTally) -> tuple:
        return (
            -t.points,
            -t.goal_difference,
            -t.goals_for,
            t.name if tie_break_by_name else "",
            t.external_id,
        )

    by_group: dict[str, list[_TeamTally]] = {}
    for tally in tallies.values():
        by_group.setdefault(tally.group or "", []).append(tally)

    rows: list[StandingRow] = []
    for label in sorted(by_group):
        ranked = sorted(by_group[label], key=rank_key)
        for position, t in enumerate(ranked, start=1):
            rows.append(
                StandingRow(
                    position=position,
                    group=t.group,
                    team=StandingTeam(external_id=t.external_id, name=t.name, logo_url=t.logo_url),
                    played=t.played,
                    won=t.won,
                    drawn=t.drawn,
                    lost=t.lost,
                    goals_for=t.goals_for,
                    goals_against=t.goals_against,
                    goal_difference=t.goal_difference,
                    points=t.points,
                    form=t.form[-FORM_LENGTH:],
                )
            )
    return rows


def standings_from_upstream(groups_of_rows: list[list[UpstreamStandingRow]]) -> list[StandingRow]:
    """Provider standings in the same row shape, keeping the provider's ranks."""
    rows: list[StandingRow] = []
    for group in groups_of_rows:
        for row in group:
            rows.append(
                StandingRow(
                    position=row.rank,
                    group=row.group,
                    team=StandingTeam(
                        external_id=row.team.id, name=row.team.name, logo_url=row.team.logo
                    ),
                    played=row.all.played,
                    won=row.all.win,
                    drawn=row.all.draw,
                    lost=row.all.lose,
                    goals_for=row.all.goals.scored,
                    goals_against=row.all.goals.against,
                    goal_difference=row.goals_diff,
                    points=row.points,
                    form=list(row.form or "")[-FORM_LENGTH:],
                )
            )
    return rows
