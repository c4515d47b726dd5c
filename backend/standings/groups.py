"""
Group (zone) lookup by team name.

Some competitions split one table into zones without the provider saying
which team is where. The lookup is a heuristic over normalized names:
ordered overrides first, then the longest configured name fragment contained
in the team name, then a fallback group.
"""
from __future__ import annotations

import unicodedata

from shared.leagues import ZoneConfig


def normalize_name(name: str) -> str:
    """Lower-case and strip accents: 'Vélez Sarsfield' -> 'velez sarsfield'."""
    decomposed = unicodedata.normalize("NFD", name.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


class GroupTable:
    def __init__(
        self,
        zones: dict[str, tuple[str, ...] | list[str]],
        fallback: str,
        overrides: tuple[tuple[str, str], ...] | list[tuple[str, str]] = (),
    ) -> None:
        self._fallback = fallback
        self._overrides = [(normalize_name(needle), group) for needle, group in overrides]
        keys: dict[str, str] = {}
        for group, names in zones.items():
            for name in names:
                keys.setdefault(normalize_name(name), group)
        # Longest fragment first; equal lengths ordered by fragment for determinism
        self._keys = sorted(keys.items(), key=lambda kv: (-len(kv[0]), kv[0]))

    @classmethod
    def from_config(cls, config: ZoneConfig) -> "GroupTable":
        return cls(zones=config.zones, fallback=config.fallback, overrides=config.overrides)

    @property
    def fallback(self) -> str:
        return self._fallback

    def group_for(self, team_name: str) -> str:
        name = normalize_name(team_name)
        for needle, group in self._overrides:
            if needle in name:
                return group
        for key, group in self._keys:
            if key in name:
                return group
        return self._fallback
