"""API-Football fixture provider (supports API-Sports direct and RapidAPI).

Every public fetch degrades to an empty result on failure. Network errors,
timeouts, non-2xx responses, malformed JSON and provider "errors" payloads
are logged and counted, never raised to callers.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import httpx

from fulbito.config import Settings, get_settings
from fulbito.etl.base import (
    Fixture,
    FixtureParseError,
    FixtureProvider,
    StandingRow,
    parse_fixture,
    parse_standings,
)
from fulbito.etl.competitions import (
    CompetitionScope,
    LeagueOption,
    filter_rounds_by_stage,
    parse_league_rows,
    round_number,
)
from fulbito.state import _incr
from fulbito.telemetry import record_provider_error, record_provider_request
from fulbito.utils.cache import TTLCache

logger = logging.getLogger(__name__)

PROVIDER = "api_football"


class APIFootballProvider(FixtureProvider):
    """Async API-Football client with a short-lived in-process response cache."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[TTLCache] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.API_FOOTBALL_BASE_URL.strip().rstrip("/")

        headers = {}
        if self.settings.API_FOOTBALL_KEY.strip():
            headers[self.settings.API_FOOTBALL_KEY_HEADER] = self.settings.API_FOOTBALL_KEY.strip()
        if self.settings.API_FOOTBALL_HOST.strip():
            # RapidAPI
            headers[self.settings.API_FOOTBALL_HOST_HEADER] = self.settings.API_FOOTBALL_HOST.strip()
        self.headers = headers

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            headers=headers,
            timeout=self.settings.API_FOOTBALL_REQUEST_TIMEOUT_SECONDS,
        )
        if cache is None:
            cache = TTLCache(
                ttl=self.settings.PROVIDER_CACHE_TTL_SECONDS,
                max_entries=self.settings.PROVIDER_CACHE_MAX_ENTRIES,
            )
        self.cache = cache
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def configured(self) -> bool:
        return self.settings.provider_configured

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _request(self, path: str, params: dict) -> tuple[int, Optional[dict], Optional[str]]:
        """
        Single GET against the provider.

        Returns:
            (status_code, payload, error_code). status_code is 0 when no
            response was received. payload is None on any failure.
        """
        endpoint = path.strip("/")
        url = f"{self.base_url}{path}"
        start_time = time.time()

        try:
            response = await self.client.get(
                url,
                params=params,
                headers=self.headers,
                timeout=self.settings.API_FOOTBALL_REQUEST_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException as e:
            record_provider_request(PROVIDER, endpoint, 0, (time.time() - start_time) * 1000)
            record_provider_error(PROVIDER, "timeout")
            logger.warning(f"[API_FOOTBALL] Timeout on {endpoint}: {e}")
            return 0, None, "timeout"
        except httpx.HTTPError as e:
            record_provider_request(PROVIDER, endpoint, 0, (time.time() - start_time) * 1000)
            record_provider_error(PROVIDER, "request_error")
            logger.warning(f"[API_FOOTBALL] Request error on {endpoint}: {e}")
            return 0, None, "request_error"

        latency_ms = (time.time() - start_time) * 1000
        record_provider_request(PROVIDER, endpoint, response.status_code, latency_ms)

        if not response.is_success:
            error_code = "http_4xx" if response.status_code < 500 else "http_5xx"
            record_provider_error(PROVIDER, error_code)
            logger.warning(f"[API_FOOTBALL] HTTP {response.status_code} on {endpoint} params={params}")
            return response.status_code, None, error_code

        try:
            payload = response.json()
        except ValueError as e:
            record_provider_error(PROVIDER, "invalid_json")
            logger.error(f"[API_FOOTBALL] Malformed JSON on {endpoint}: {e}")
            return response.status_code, None, "invalid_json"

        if not isinstance(payload, dict):
            record_provider_error(PROVIDER, "invalid_json")
            logger.error(f"[API_FOOTBALL] Unexpected payload type on {endpoint}: {type(payload).__name__}")
            return response.status_code, None, "invalid_json"

        if payload.get("errors"):
            record_provider_error(PROVIDER, "api_error")
            logger.error(f"[API_FOOTBALL] API error on {endpoint}: {payload['errors']}")
            return response.status_code, None, "api_error"

        return response.status_code, payload, None

    async def _get_json(self, path: str, params: dict) -> Optional[dict]:
        """Cached GET. Only successful payloads are cached."""
        if not self.configured:
            return None

        cache_key = (path, tuple(sorted((k, str(v)) for k, v in params.items())))
        hit, cached = self.cache.get(cache_key)
        if hit:
            return cached

        _, payload, _ = await self._request(path, params)
        if payload is not None:
            self.cache.set(cache_key, payload)
        return payload

    # =========================================================================
    # FIXTURES
    # =========================================================================

    def _base_params(self, scope: CompetitionScope) -> dict:
        return {
            "league": scope.league_id,
            "season": scope.season,
            "timezone": self.settings.API_FOOTBALL_TIMEZONE,
        }

    def _window_params(self) -> dict:
        """from/to date window anchored on today in the competition timezone."""
        tz = ZoneInfo(self.settings.API_FOOTBALL_TIMEZONE)
        today = self._now().astimezone(tz).date()
        start = today + timedelta(days=self.settings.FIXTURE_WINDOW_FROM_DAYS)
        end = today + timedelta(days=self.settings.FIXTURE_WINDOW_TO_DAYS)
        return {"from": start.isoformat(), "to": end.isoformat()}

    async def _query_fixtures(self, scope: CompetitionScope, extra: dict) -> list[Fixture]:
        payload = await self._get_json(
            self.settings.API_FOOTBALL_FIXTURES_PATH,
            {**self._base_params(scope), **extra},
        )
        if payload is None:
            return []

        rows = payload.get("response")
        if not isinstance(rows, list):
            logger.warning(f"[API_FOOTBALL] fixtures payload without response list for {scope.key}")
            return []

        fixtures = []
        for row in rows:
            try:
                fixtures.append(parse_fixture(row))
            except FixtureParseError as e:
                _incr("fixture_parse_errors")
                logger.warning(f"[API_FOOTBALL] Skipping fixture row for {scope.key}: {e.reason}")
        return fixtures

    def resolve_round_name(self, period: str) -> str:
        """Map legacy period ids ("fecha14") to provider round names when configured."""
        return self.settings.round_overrides.get(period, period)

    async def fetch_fixtures(self, scope: CompetitionScope, period: Optional[str] = None) -> list[Fixture]:
        if not self.configured:
            return []

        if not period:
            fixtures = await self._query_fixtures(scope, self._window_params())
            return sorted(fixtures, key=lambda f: f.kickoff_at)

        round_name = self.resolve_round_name(period)
        fixtures = await self._query_fixtures(scope, {"round": round_name})

        number = round_number(period)
        if not fixtures and number:
            # "Fecha 5" vs "1st Phase - 5": retry rounds sharing the same number
            rounds = filter_rounds_by_stage(await self.fetch_rounds(scope), scope.stage)
            candidates = [r for r in rounds if r != round_name and round_number(r) == number]
            for candidate in candidates:
                fixtures = await self._query_fixtures(scope, {"round": candidate})
                if fixtures:
                    _incr("fixtures_round_fallback")
                    logger.info(f"[API_FOOTBALL] Round '{period}' resolved to '{candidate}' for {scope.key}")
                    break

        return sorted(fixtures, key=lambda f: f.kickoff_at)

    async def fetch_rounds(self, scope: CompetitionScope) -> list[str]:
        payload = await self._get_json(
            self.settings.API_FOOTBALL_FIXTURE_ROUNDS_PATH,
            {"league": scope.league_id, "season": scope.season},
        )
        if payload is None:
            return []

        values = payload.get("response")
        if not isinstance(values, list):
            return []

        rounds = []
        for value in values:
            if isinstance(value, str) and value.strip() and value.strip() not in rounds:
                rounds.append(value.strip())
        return rounds

    # =========================================================================
    # LEAGUES / STANDINGS
    # =========================================================================

    async def fetch_leagues(self, season: str) -> list[LeagueOption]:
        payload = await self._get_json(self.settings.API_FOOTBALL_LEAGUES_PATH, {"season": season})
        if payload is None:
            return []
        rows = payload.get("response")
        if not isinstance(rows, list):
            return []
        return parse_league_rows(rows, season, self.settings.allowed_league_ids, now=self._now())

    async def fetch_standings(self, scope: CompetitionScope) -> list[StandingRow]:
        payload = await self._get_json(
            self.settings.API_FOOTBALL_STANDINGS_PATH,
            {"league": scope.league_id, "season": scope.season},
        )
        if payload is None:
            return []
        return parse_standings(payload)

    # =========================================================================
    # HEALTH
    # =========================================================================

    async def probe(self, scope: CompetitionScope, period: Optional[str] = None) -> dict:
        """Uncached fixtures request reporting reachability for the health endpoint."""
        if not self.configured:
            return {
                "ok": False,
                "configured": False,
                "status_code": 0,
                "fixtures": 0,
                "latency_ms": 0,
                "error": "provider_not_configured",
            }

        params = {**self._base_params(scope)}
        params.update({"round": self.resolve_round_name(period)} if period else self._window_params())

        start_time = time.time()
        status_code, payload, error_code = await self._request(self.settings.API_FOOTBALL_FIXTURES_PATH, params)
        latency_ms = round((time.time() - start_time) * 1000)

        rows = (payload or {}).get("response")
        return {
            "ok": payload is not None,
            "configured": True,
            "status_code": status_code,
            "fixtures": len(rows) if isinstance(rows, list) else 0,
            "latency_ms": latency_ms,
            "error": error_code,
        }

