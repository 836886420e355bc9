"""
Competition period ("fecha") resolution.

Canonical functions for listing the rounds of a competition scope and picking
the round to show by default. Selection order:

1. Round with the most live fixtures (ties: earliest round)
2. Round holding the soonest future kickoff
3. Most recently completed round (latest round with a final fixture)
4. First round

Every selection carries a reason string for logging and telemetry.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from fulbito.etl.base import Fixture, FixtureProvider
from fulbito.etl.competitions import CompetitionScope, filter_rounds_by_stage, sort_fechas
from fulbito.matches.mapping import FINAL, LIVE, UPCOMING, classify_fixture_status
from fulbito.state import _incr

logger = logging.getLogger(__name__)


@dataclass
class RoundInspection:
    """Status summary of one round's fixtures."""

    fecha: str
    index: int
    live_count: int = 0
    next_kickoff: Optional[datetime] = None
    has_final: bool = False


@dataclass
class FechaSelection:
    """Result of selecting the default fecha."""

    fecha: str
    reason: str  # "live", "upcoming", "completed", "first", "empty"


def inspect_round(fecha: str, index: int, fixtures: list[Fixture], now: datetime) -> RoundInspection:
    inspection = RoundInspection(fecha=fecha, index=index)
    for fixture in fixtures:
        status = classify_fixture_status(fixture.status_short)
        if status == LIVE:
            inspection.live_count += 1
        elif status == FINAL:
            inspection.has_final = True
        elif status == UPCOMING and fixture.kickoff_at >= now:
            if inspection.next_kickoff is None or fixture.kickoff_at < inspection.next_kickoff:
                inspection.next_kickoff = fixture.kickoff_at
    return inspection


def select_default_fecha(inspections: list[RoundInspection]) -> FechaSelection:
    """
    Pure selection over already inspected rounds.

    Returns FechaSelection("", "empty") when there are no rounds.
    """
    if not inspections:
        return FechaSelection(fecha="", reason="empty")

    live = [i for i in inspections if i.live_count > 0]
    if live:
        best = min(live, key=lambda i: (-i.live_count, i.index))
        return FechaSelection(fecha=best.fecha, reason="live")

    upcoming = [i for i in inspections if i.next_kickoff is not None]
    if upcoming:
        best = min(upcoming, key=lambda i: (i.next_kickoff, i.index))
        return FechaSelection(fecha=best.fecha, reason="upcoming")

    completed = [i for i in inspections if i.has_final]
    if completed:
        best = max(completed, key=lambda i: i.index)
        return FechaSelection(fecha=best.fecha, reason="completed")

    first = min(inspections, key=lambda i: i.index)
    return FechaSelection(fecha=first.fecha, reason="first")


class PeriodResolver:
    """Lists rounds per scope and resolves the current one through a fixture provider."""

    def __init__(self, provider: FixtureProvider, now: Optional[Callable[[], datetime]] = None):
        self.provider = provider
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def fetch_available_fechas(self, scope: CompetitionScope) -> list[str]:
        """Stage-filtered rounds sorted by round number. Empty on provider failure."""
        rounds = await self.provider.fetch_rounds(scope)
        return sort_fechas(filter_rounds_by_stage(rounds, scope.stage))

    async def resolve_default_fecha_selection(
        self,
        scope: CompetitionScope,
        fechas: Optional[list[str]] = None,
    ) -> FechaSelection:
        fechas = fechas or await self.fetch_available_fechas(scope)
        if not fechas:
            _incr("fecha_reason_empty")
            logger.info(f"[FECHAS] No rounds available for {scope.key}")
            return FechaSelection(fecha="", reason="empty")

        # O(rounds) provider calls; the provider cache absorbs repeats
        fixtures_per_round = await asyncio.gather(
            *(self.provider.fetch_fixtures(scope, fecha) for fecha in fechas)
        )
        now = self._now()
        inspections = [
            inspect_round(fecha, index, fixtures, now)
            for index, (fecha, fixtures) in enumerate(zip(fechas, fixtures_per_round))
        ]

        selection = select_default_fecha(inspections)
        _incr(f"fecha_reason_{selection.reason}")
        logger.info(f"[FECHAS] Default fecha for {scope.key}: '{selection.fecha}' (reason={selection.reason})")
        return selection

    async def resolve_default_fecha(self, scope: CompetitionScope, fechas: Optional[list[str]] = None) -> str:
        """Current round id, or "" when the scope has no rounds."""
        selection = await self.resolve_default_fecha_selection(scope, fechas)
        return selection.fecha
