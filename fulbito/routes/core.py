"""Core routes: health, readiness, telemetry, metrics.

Auth per-endpoint:
- /health: public, rate limited
- /health/ready: Bearer HEALTHCHECK_TOKEN (when set)
- /telemetry, /metrics: Bearer METRICS_BEARER_TOKEN (when set)
"""

import asyncio

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from fulbito.config import Settings, get_settings
from fulbito.dependencies import get_provider, get_record_store
from fulbito.etl.competitions import CompetitionScope, default_stage_for
from fulbito.etl.static_fixtures import FallbackFixtureSource
from fulbito.records.pocketbase import PocketBaseClient
from fulbito.security import check_bearer, limiter
from fulbito.state import get_telemetry_snapshot
from fulbito.telemetry import get_metrics_text

router = APIRouter(tags=["core"])


class HealthResponse(BaseModel):
    status: str
    provider_configured: bool
    record_store_configured: bool


def _rate(part: int, total: int) -> float:
    return round(part / total, 3) if total > 0 else 0


@router.get("/health", response_model=HealthResponse)
@limiter.limit("120/minute")
async def health_check(request: Request, settings: Settings = Depends(get_settings)):
    """Liveness. Does not touch upstreams."""
    return HealthResponse(
        status="ok",
        provider_configured=settings.provider_configured,
        record_store_configured=bool(settings.POCKETBASE_URL.strip()),
    )


@router.get("/health/ready")
async def readiness_check(
    authorization: str = Header(None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
    provider: FallbackFixtureSource = Depends(get_provider),
    record_store: PocketBaseClient = Depends(get_record_store),
):
    """Probe the record store and the fixtures provider. 503 unless both answer."""
    reason = check_bearer(authorization, settings.HEALTHCHECK_TOKEN)
    if reason:
        raise HTTPException(status_code=401, detail=reason)

    league_id = settings.API_FOOTBALL_DEFAULT_LEAGUE_ID
    scope = CompetitionScope(league_id=league_id, season=settings.default_season, stage=default_stage_for(league_id))
    record_store_report, provider_report = await asyncio.gather(record_store.probe(), provider.probe(scope))

    ready = record_store_report["ok"] and provider_report["ok"]
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "degraded",
            "record_store": record_store_report,
            "provider": provider_report,
        },
    )


@router.get("/telemetry")
async def get_telemetry(
    authorization: str = Header(None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
):
    """
    Aggregated in-process counters with derived rates.

    No high-cardinality labels. Counters reset on restart; for history, scrape
    /metrics instead.
    """
    reason = check_bearer(authorization, settings.METRICS_BEARER_TOKEN)
    if reason:
        raise HTTPException(status_code=401, detail="Telemetry access requires valid token.")

    t = get_telemetry_snapshot()

    cache_total = t["score_map_cache_hit"] + t["score_map_cache_miss"]
    source_total = t["fixtures_source_live"] + t["fixtures_source_static"] + t["fixtures_source_empty"]

    return {
        "score_map_cache": {
            "hit": t["score_map_cache_hit"],
            "miss": t["score_map_cache_miss"],
            "hit_rate": _rate(t["score_map_cache_hit"], cache_total),
        },
        "fixtures_source": {
            "live": t["fixtures_source_live"],
            "static": t["fixtures_source_static"],
            "empty": t["fixtures_source_empty"],
            "round_fallback": t["fixtures_round_fallback"],
            "live_rate": _rate(t["fixtures_source_live"], source_total),
        },
        "default_fecha_reason": {
            reason_key: t[f"fecha_reason_{reason_key}"]
            for reason_key in ("live", "upcoming", "completed", "first", "empty")
        },
        "fixture_parse_errors": t["fixture_parse_errors"],
        "prediction_upserts": t["prediction_upserts"],
    }


@router.get("/metrics")
async def prometheus_metrics(
    authorization: str = Header(None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
):
    """
    Prometheus metrics endpoint.

    Exposes provider requests/errors/latency, record-store requests and
    score-map cache results. Requires a Bearer token when METRICS_BEARER_TOKEN
    is set.
    """
    reason = check_bearer(authorization, settings.METRICS_BEARER_TOKEN)
    if reason:
        return PlainTextResponse(
            content=f"# Unauthorized: {reason}\n",
            status_code=401,
            media_type="text/plain",
        )

    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
