"""Fulbito prode API - FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from fulbito.config import get_settings
from fulbito.etl.api_football import APIFootballProvider
from fulbito.etl.static_fixtures import FallbackFixtureSource
from fulbito.matches.service import FixtureService
from fulbito.records.pocketbase import PocketBaseClient, RecordRepository
from fulbito.routes.api import router as api_router
from fulbito.routes.core import router as core_router
from fulbito.security import limiter
from fulbito.telemetry.sentry import init_sentry

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Only activates if SENTRY_DSN is set in environment
init_sentry(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared upstream clients and services; close them on shutdown."""
    logger.info("Starting Fulbito API...")

    provider = APIFootballProvider(settings=settings)
    if not provider.configured:
        logger.warning("[STARTUP] API_FOOTBALL_BASE_URL/API_FOOTBALL_KEY not set - fixtures will be empty")

    fixture_source = FallbackFixtureSource(provider, static_enabled=settings.STATIC_FALLBACK_ENABLED)
    record_store = PocketBaseClient(settings=settings)
    if not record_store.configured:
        logger.warning("[STARTUP] POCKETBASE_URL not set - record store calls will fail")

    app.state.fixture_source = fixture_source
    app.state.fixture_service = FixtureService(fixture_source, settings=settings)
    app.state.record_store = record_store
    app.state.repository = RecordRepository(record_store)

    try:
        yield
    finally:
        logger.info("Shutting down...")
        await fixture_source.close()
        await record_store.close()


app = FastAPI(
    title="Fulbito",
    description="Prode (football predictions) API for private groups",
    version="0.1.0",
    lifespan=lifespan,
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include routers
app.include_router(core_router)
app.include_router(api_router)
