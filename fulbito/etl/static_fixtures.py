"""Static fixture dataset and the live-then-static fixture source.

The static tier only answers for rounds it knows ("fecha14", "fecha15") and
is disabled unless STATIC_FALLBACK_ENABLED is set.
"""

import logging
from typing import Optional

from fulbito.etl.base import Fixture, FixtureProvider, parse_fixture
from fulbito.etl.competitions import CompetitionScope, sort_fechas
from fulbito.state import _incr

logger = logging.getLogger(__name__)


def _row(fixture_id, date, status, home, away, goals=(None, None), elapsed=None, venue=None, round_name=None):
    return {
        "fixture": {
            "id": fixture_id,
            "date": date,
            "status": {"short": status, "elapsed": elapsed},
            "venue": {"name": venue},
        },
        "league": {"round": round_name},
        "teams": {"home": {"name": home}, "away": {"name": away}},
        "goals": {"home": goals[0], "away": goals[1]},
    }


# Liga Profesional sample rounds, kickoffs in UTC
STATIC_ROWS: dict[str, list[dict]] = {
    "fecha14": [
        _row(900101, "2026-02-12T22:00:00+00:00", "FT", "Tigre", "Aldosivi", (3, 1), venue="José Dellagiovanna", round_name="fecha14"),
        _row(900102, "2026-02-12T23:30:00+00:00", "FT", "Argentinos JRS", "River Plate", (2, 4), venue="Diego A. Maradona", round_name="fecha14"),
        _row(900103, "2026-02-13T22:00:00+00:00", "FT", "Defensa y Justicia", "Velez Sarsfield", (0, 0), venue="Norberto Tomaghello", round_name="fecha14"),
        _row(900104, "2026-02-13T23:30:00+00:00", "FT", "Union Santa Fe", "San Lorenzo", (3, 1), venue="15 de Abril", round_name="fecha14"),
        _row(900105, "2026-02-14T21:00:00+00:00", "2H", "Boca Juniors", "Rosario Central", (0, 0), elapsed=62, venue="La Bombonera", round_name="fecha14"),
        _row(900106, "2026-02-15T19:00:00+00:00", "NS", "Platense", "Godoy Cruz", venue="Ciudad de Vicente López", round_name="fecha14"),
        _row(900107, "2026-02-15T21:30:00+00:00", "NS", "Instituto", "Atlético Tucumán", venue="Monumental de Alta Córdoba", round_name="fecha14"),
        _row(900108, "2026-02-16T01:15:00+00:00", "NS", "Racing Club", "Estudiantes", venue="Presidente Perón", round_name="fecha14"),
    ],
    "fecha15": [
        _row(900201, "2026-02-20T20:00:00+00:00", "NS", "River Plate", "Boca Juniors", venue="Monumental", round_name="fecha15"),
        _row(900202, "2026-02-20T22:30:00+00:00", "NS", "Rosario Central", "Talleres", venue="Gigante de Arroyito", round_name="fecha15"),
        _row(900203, "2026-02-21T20:00:00+00:00", "NS", "Velez Sarsfield", "San Lorenzo", venue="José Amalfitani", round_name="fecha15"),
        _row(900204, "2026-02-21T22:30:00+00:00", "NS", "Independiente", "Racing Club", venue="Libertadores de América", round_name="fecha15"),
    ],
}


class StaticFixtureProvider(FixtureProvider):
    """Serves a fixed dataset keyed by round id, regardless of scope."""

    def __init__(self, rows_by_round: Optional[dict[str, list[dict]]] = None):
        rows_by_round = STATIC_ROWS if rows_by_round is None else rows_by_round
        self._fixtures: dict[str, list[Fixture]] = {
            period: sorted((parse_fixture(row) for row in rows), key=lambda f: f.kickoff_at)
            for period, rows in rows_by_round.items()
        }

    def knows(self, period: Optional[str]) -> bool:
        return bool(period) and period in self._fixtures

    async def fetch_fixtures(self, scope: CompetitionScope, period: Optional[str] = None) -> list[Fixture]:
        if not self.knows(period):
            return []
        return list(self._fixtures[period])

    async def fetch_rounds(self, scope: CompetitionScope) -> list[str]:
        return sort_fechas(list(self._fixtures.keys()))


class FallbackFixtureSource(FixtureProvider):
    """
    Two-tier fixture source: live provider first, static dataset second.

    The static tier is consulted only when enabled and only when the live tier
    returned nothing.
    """

    def __init__(self, live: FixtureProvider, static: Optional[StaticFixtureProvider] = None, static_enabled: bool = False):
        self.live = live
        self.static = static or StaticFixtureProvider()
        self.static_enabled = static_enabled

    async def fetch_fixtures(self, scope: CompetitionScope, period: Optional[str] = None) -> list[Fixture]:
        fixtures = await self.live.fetch_fixtures(scope, period)
        if fixtures:
            _incr("fixtures_source_live")
            return fixtures

        if self.static_enabled and self.static.knows(period):
            _incr("fixtures_source_static")
            logger.info(f"[FIXTURES] Live provider empty for {scope.key} {period}, serving static dataset")
            return await self.static.fetch_fixtures(scope, period)

        _incr("fixtures_source_empty")
        return []

    async def fetch_rounds(self, scope: CompetitionScope) -> list[str]:
        rounds = await self.live.fetch_rounds(scope)
        if rounds or not self.static_enabled:
            return rounds
        return await self.static.fetch_rounds(scope)

    # Leagues, standings and health are live-only

    async def fetch_leagues(self, season: str):
        return await self.live.fetch_leagues(season)

    async def fetch_standings(self, scope: CompetitionScope):
        return await self.live.fetch_standings(scope)

    async def probe(self, scope: CompetitionScope, period: Optional[str] = None) -> dict:
        return await self.live.probe(scope, period)

    async def close(self) -> None:
        await self.live.close()
