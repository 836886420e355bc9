"""Fixture aggregation service: provider fetch, presentation mapping and score maps."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fulbito.config import Settings, get_settings
from fulbito.etl.base import Fixture, FixtureProvider
from fulbito.etl.competitions import CompetitionScope
from fulbito.fechas import PeriodResolver
from fulbito.matches.mapping import (
    FixtureDateCard,
    MatchCard,
    UPCOMING,
    fixture_to_match_card,
    map_to_fixture_date_cards,
    map_to_home_upcoming,
    map_to_live_matches,
    map_to_match_cards,
)
from fulbito.scoring import PointsTones, PredictionValue, Score
from fulbito.state import _incr
from fulbito.telemetry import record_score_map_cache
from fulbito.utils.cache import TTLCache

logger = logging.getLogger(__name__)

ScoreMap = dict[str, Score]


def score_map_from_fixtures(fixtures: list[Fixture], tz: str, now: Optional[datetime] = None) -> ScoreMap:
    """fixture id -> Score for every live or final fixture."""
    scores: ScoreMap = {}
    for fixture in fixtures:
        card = fixture_to_match_card(fixture, tz, now)
        if card.score is not None:
            scores[card.id] = card.score
    return scores


class FixtureService:
    """
    Request-facing fixture operations for one deployment.

    The score-map cache is keyed by (league, season, stage, sorted periods).
    Concurrent misses on the same key both compute; the last write wins.
    Reads hand out a fresh dict every time.
    """

    def __init__(
        self,
        provider: FixtureProvider,
        settings: Optional[Settings] = None,
        resolver: Optional[PeriodResolver] = None,
        score_map_cache: Optional[TTLCache] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.provider = provider
        self.settings = settings or get_settings()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.resolver = resolver or PeriodResolver(provider, now=self._now)
        if score_map_cache is None:
            score_map_cache = TTLCache(
                ttl=self.settings.SCORE_MAP_CACHE_TTL_SECONDS,
                max_entries=self.settings.PROVIDER_CACHE_MAX_ENTRIES,
            )
        self.score_map_cache = score_map_cache
        self.tones = PointsTones.from_settings(self.settings)

    @property
    def timezone(self) -> str:
        return self.settings.API_FOOTBALL_TIMEZONE

    # =========================================================================
    # PERIODS
    # =========================================================================

    async def fetch_available_fechas(self, scope: CompetitionScope) -> list[str]:
        return await self.resolver.fetch_available_fechas(scope)

    async def resolve_period(self, scope: CompetitionScope, requested: Optional[str] = None) -> tuple[str, list[str]]:
        """
        Requested period, else the default fecha, else the first available one.

        Returns:
            (period, available fechas). period is "" when the scope has no rounds.
        """
        fechas = await self.fetch_available_fechas(scope)
        if requested:
            return requested, fechas
        period = await self.resolver.resolve_default_fecha(scope, fechas)
        return period or (fechas[0] if fechas else ""), fechas

    # =========================================================================
    # FIXTURES / PROJECTIONS
    # =========================================================================

    async def fetch_fixtures(self, scope: CompetitionScope, period: Optional[str] = None) -> list[Fixture]:
        return await self.provider.fetch_fixtures(scope, period)

    async def match_cards(self, scope: CompetitionScope, period: Optional[str]) -> list[MatchCard]:
        fixtures = await self.fetch_fixtures(scope, period)
        return map_to_match_cards(fixtures, self.timezone, self._now(), limit=self.settings.MATCH_CARDS_LIMIT)

    async def find_match_card(self, scope: CompetitionScope, period: str, match_id: str) -> Optional[MatchCard]:
        """Uncapped lookup of one card in a round."""
        fixtures = await self.fetch_fixtures(scope, period)
        for fixture in fixtures:
            if fixture.id == match_id:
                return fixture_to_match_card(fixture, self.timezone, self._now())
        return None

    async def fixture_date_cards(self, scope: CompetitionScope, period: Optional[str]) -> list[FixtureDateCard]:
        fixtures = await self.fetch_fixtures(scope, period)
        return map_to_fixture_date_cards(fixtures, self.timezone)

    async def live_matches(self, scope: CompetitionScope, period: Optional[str]) -> list[MatchCard]:
        fixtures = await self.fetch_fixtures(scope, period)
        return map_to_live_matches(fixtures, self.timezone, self._now(), limit=self.settings.LIVE_MATCHES_LIMIT)

    async def home_upcoming(self, scope: CompetitionScope, period: Optional[str]) -> list[FixtureDateCard]:
        fixtures = await self.fetch_fixtures(scope, period) if period else []
        return map_to_home_upcoming(fixtures, self.timezone, limit=self.settings.HOME_UPCOMING_LIMIT)

    def count_pending(self, cards: list[MatchCard], predictions: Optional[dict[str, PredictionValue]] = None) -> int:
        """Open upcoming matches still missing a complete prediction."""
        predictions = predictions or {}
        return sum(
            1
            for card in cards
            if card.status == UPCOMING
            and not card.is_locked
            and not (card.id in predictions and predictions[card.id].is_complete)
        )

    # =========================================================================
    # SCORE MAPS
    # =========================================================================

    async def build_score_map(self, scope: CompetitionScope, periods: list[str]) -> ScoreMap:
        """Union of live/final scores over `periods`, cached for SCORE_MAP_CACHE_TTL_SECONDS."""
        cache_key = (scope.league_id, scope.season, scope.stage, tuple(sorted(periods)))
        hit, cached = self.score_map_cache.get(cache_key)
        record_score_map_cache(hit)
        if hit:
            _incr("score_map_cache_hit")
            return dict(cached)

        _incr("score_map_cache_miss")
        fixtures_per_period = await asyncio.gather(
            *(self.provider.fetch_fixtures(scope, period) for period in periods)
        )
        now = self._now()
        scores: ScoreMap = {}
        for fixtures in fixtures_per_period:
            scores.update(score_map_from_fixtures(fixtures, self.timezone, now))

        logger.debug(f"[SCOREMAP] Built {len(scores)} scores for {scope.key} over {len(periods)} periods")
        self.score_map_cache.set(cache_key, scores)
        return dict(scores)

    async def score_maps_for_scopes(self, scopes: list[CompetitionScope]) -> dict[str, ScoreMap]:
        """Score map over all available fechas, per distinct scope key."""
        unique: dict[str, CompetitionScope] = {}
        for scope in scopes:
            unique.setdefault(scope.key, scope)

        async def build(scope: CompetitionScope) -> ScoreMap:
            periods = await self.fetch_available_fechas(scope)
            return await self.build_score_map(scope, periods)

        keys = list(unique.keys())
        maps = await asyncio.gather(*(build(unique[key]) for key in keys))
        return dict(zip(keys, maps))
