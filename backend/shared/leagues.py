"""
Configured competitions.

The season here is the single source of truth for which competition instance
is current. Bumping it (in this table or through MD_LEAGUE_SEASON_OVERRIDES)
makes the next read of that league purge and resync its matches.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from shared.config import Settings, get_settings


class ZoneConfig(BaseModel):
    """Team-name heuristics splitting one league table into groups."""
    model_config = ConfigDict(frozen=True)

    zones: dict[str, tuple[str, ...]]
    # Checked in order before the zone lists; first contained needle wins.
    overrides: tuple[tuple[str, str], ...] = ()
    fallback: str


class LeagueConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    external_id: int
    slug: str
    name: str
    short_name: str
    country: str
    season: int
    active: bool = True
    logo_url: Optional[str] = None
    broadcasters: tuple[str, ...] = ()
    zones: Optional[ZoneConfig] = None


_ESPN = "https://upload.wikimedia.org/wikipedia/commons/thumb/2/2f/ESPN_wordmark.svg/100px-ESPN_wordmark.svg.png"

ARGENTINA_ZONES = ZoneConfig(
    zones={
        "Zona A": (
            "Boca Juniors", "Independiente", "San Lorenzo", "Deportivo Riestra", "Talleres",
            "Instituto", "Platense", "Velez", "Vélez", "Estudiantes L.P.", "Gimnasia M",
            "Gimnasia y Esgrima", "Lanus", "Lanús", "Newell", "Newell's", "Defensa",
            "Central Cordoba", "Central Córdoba", "Union",
        ),
        "Zona B": (
            "River Plate", "Racing", "Huracan", "Huracán", "Barracas", "Belgrano",
            "Estudiantes de Rio", "Estudiantes de Río", "Argentinos", "Tigre", "Gimnasia L",
            "Gimnasia La Plata", "Independiente Riv", "Banfield", "Rosario Central", "Aldosivi",
            "Atletico Tucuman", "Atlético Tucumán", "Sarmiento",
        ),
    },
    overrides=(
        ("rio cuarto", "Zona B"),
        ("estudiantes", "Zona A"),
        ("gimnasia m", "Zona A"),
    ),
    fallback="Zona B",
)

LEAGUES: tuple[LeagueConfig, ...] = (
    LeagueConfig(
        external_id=2, slug="champions-league", name="UEFA Champions League",
        short_name="Champions", country="Europe", season=2025, broadcasters=(_ESPN,),
    ),
    LeagueConfig(
        external_id=39, slug="premier-league", name="Premier League",
        short_name="Premier", country="England", season=2025, broadcasters=(_ESPN,),
    ),
    LeagueConfig(
        external_id=140, slug="la-liga", name="LaLiga",
        short_name="La Liga", country="Spain", season=2025, broadcasters=(_ESPN,),
    ),
    LeagueConfig(
        external_id=78, slug="bundesliga", name="Bundesliga",
        short_name="Bundesliga", country="Germany", season=2025, broadcasters=(_ESPN,),
    ),
    LeagueConfig(
        external_id=135, slug="serie-a", name="Serie A",
        short_name="Serie A", country="Italy", season=2025, broadcasters=(_ESPN,),
    ),
    LeagueConfig(
        external_id=128, slug="liga-argentina", name="Liga Profesional Argentina",
        short_name="Argentina", country="Argentina", season=2025, broadcasters=(_ESPN,),
        zones=ARGENTINA_ZONES,
    ),
    LeagueConfig(
        external_id=71, slug="brasileirao", name="Campeonato Brasileiro Série A",
        short_name="Brasileirão", country="Brazil", season=2025, broadcasters=(_ESPN,),
    ),
    LeagueConfig(
        external_id=253, slug="mls", name="Major League Soccer",
        short_name="MLS", country="USA", season=2025,
    ),
    LeagueConfig(
        external_id=61, slug="ligue-1", name="Ligue 1",
        short_name="Ligue 1", country="France", season=2025, broadcasters=(_ESPN,),
    ),
)


class LeagueRegistry:
    """Lookup over the configured leagues with deploy-time season overrides applied."""

    def __init__(
        self,
        leagues: tuple[LeagueConfig, ...] | list[LeagueConfig] = LEAGUES,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        overrides = settings.league_season_overrides
        self._by_id: dict[int, LeagueConfig] = {}
        for league in leagues:
            if league.external_id in overrides:
                league = league.model_copy(update={"season": overrides[league.external_id]})
            self._by_id[league.external_id] = league

    def get(self, external_id: int) -> Optional[LeagueConfig]:
        return self._by_id.get(external_id)

    def __contains__(self, external_id: object) -> bool:
        return external_id in self._by_id

    def __iter__(self):
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def active(self) -> list[LeagueConfig]:
        return [league for league in self._by_id.values() if league.active]

    @property
    def ids(self) -> set[int]:
        return set(self._by_id)
