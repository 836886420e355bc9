"""Application configuration using Pydantic Settings."""

from datetime import datetime
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Record store (PocketBase)
    POCKETBASE_URL: str = ""
    POCKETBASE_TIMEOUT_SECONDS: float = 10.0

    # Session cookie (signed, wraps uid + delegated record-store token)
    SESSION_SECRET: str = ""
    SESSION_COOKIE_NAME: str = "fulbito_session"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 7

    # API-Football (API-Sports direct or RapidAPI)
    API_FOOTBALL_BASE_URL: str = ""
    API_FOOTBALL_KEY: str = ""
    API_FOOTBALL_KEY_HEADER: str = "x-apisports-key"
    API_FOOTBALL_HOST: str = ""  # Only set for RapidAPI
    API_FOOTBALL_HOST_HEADER: str = "x-rapidapi-host"
    API_FOOTBALL_FIXTURES_PATH: str = "/fixtures"
    API_FOOTBALL_FIXTURE_ROUNDS_PATH: str = "/fixtures/rounds"
    API_FOOTBALL_LEAGUES_PATH: str = "/leagues"
    API_FOOTBALL_STANDINGS_PATH: str = "/standings"
    API_FOOTBALL_DEFAULT_LEAGUE_ID: int = 128  # Liga Profesional Argentina
    API_FOOTBALL_DEFAULT_SEASON: str = ""  # Empty = current year
    API_FOOTBALL_TIMEZONE: str = "America/Argentina/Buenos_Aires"
    API_FOOTBALL_ALLOWED_LEAGUES: str = "128,39"
    # Legacy period ids mapped to provider round names: "fecha14=Regular Season - 14,..."
    API_FOOTBALL_ROUND_OVERRIDES: str = ""
    API_FOOTBALL_REQUEST_TIMEOUT_SECONDS: float = 8.0

    # Date window used when no round is requested (days relative to today)
    FIXTURE_WINDOW_FROM_DAYS: int = -2
    FIXTURE_WINDOW_TO_DAYS: int = 2

    # Caches
    PROVIDER_CACHE_TTL_SECONDS: float = 60.0
    PROVIDER_CACHE_MAX_ENTRIES: int = 512
    SCORE_MAP_CACHE_TTL_SECONDS: float = 120.0

    # Presentation caps
    MATCH_CARDS_LIMIT: int = 24
    LIVE_MATCHES_LIMIT: int = 6
    HOME_UPCOMING_LIMIT: int = 3
    RECENT_ACTIVITY_LIMIT: int = 3

    # Point badge tones (UI only)
    POINTS_TONE_EXACT: str = "positive"
    POINTS_TONE_OUTCOME: str = "warning"
    POINTS_TONE_MISS: str = "danger"
    POINTS_TONE_FINAL: str = "neutral"

    # Predictions
    PREDICTION_MAX_GOALS: int = 20
    PREDICTION_WRITE_RATE_LIMIT: str = "120/10 minutes"

    # Static fallback dataset when the provider returns nothing
    STATIC_FALLBACK_ENABLED: bool = False

    # Ops
    HEALTHCHECK_TOKEN: str = ""
    METRICS_BEARER_TOKEN: str = ""
    LOG_LEVEL: str = "INFO"

    # Error tracking (disabled when SENTRY_DSN is empty)
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.05

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def default_season(self) -> str:
        return self.API_FOOTBALL_DEFAULT_SEASON.strip() or str(datetime.now().year)

    @property
    def provider_configured(self) -> bool:
        return bool(self.API_FOOTBALL_BASE_URL.strip() and self.API_FOOTBALL_KEY.strip())

    @property
    def allowed_league_ids(self) -> set[int]:
        """Parse API_FOOTBALL_ALLOWED_LEAGUES ("128,39") into a set of ids."""
        ids = set()
        for part in self.API_FOOTBALL_ALLOWED_LEAGUES.split(","):
            part = part.strip()
            if part.isdigit() and int(part) > 0:
                ids.add(int(part))
        return ids or {128, 39}

    @property
    def round_overrides(self) -> dict[str, str]:
        """Parse API_FOOTBALL_ROUND_OVERRIDES ("fecha14=Regular Season - 14")."""
        overrides = {}
        for entry in self.API_FOOTBALL_ROUND_OVERRIDES.split(","):
            if "=" not in entry:
                continue
            period, round_name = entry.split("=", 1)
            if period.strip() and round_name.strip():
                overrides[period.strip()] = round_name.strip()
        return overrides


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
