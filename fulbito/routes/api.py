"""Prode API routes: home, leaderboard, profile, pronosticos, fixture, fechas, leagues.

Auth per-endpoint:
- /api/health/provider: public
- everything else: signed session cookie (401 otherwise)

GET endpoints that take ?groupId= fall back to the caller's first group when
the id is missing or not one of theirs.
"""

import asyncio
import logging
import math
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from fulbito.aggregates.service import (
    GLOBAL_PERIOD,
    STATS,
    POSICIONES,
    build_fixture_maps,
    build_group_standings,
    build_group_stats,
    build_profile_stats,
    build_recent_activity,
    format_period_label,
    join_events,
    leaderboard_rows,
    prediction_events,
    score_user_predictions,
    user_predictions,
)
from fulbito.config import Settings, get_settings
from fulbito.dependencies import get_fixture_service, get_provider, get_repository
from fulbito.etl.competitions import GENERAL, CompetitionScope, default_stage_for, format_round_label, parse_stage
from fulbito.etl.static_fixtures import FallbackFixtureSource
from fulbito.matches.mapping import LIVE, UPCOMING, apply_predictions
from fulbito.matches.service import FixtureService
from fulbito.records.models import Membership
from fulbito.records.pocketbase import RecordRepository, RecordStoreError
from fulbito.scoring import PredictionValue
from fulbito.security import SessionData, limiter, prediction_write_limit, require_session, session_rate_limit_key
from fulbito.state import _incr

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["prode"])

NO_FECHAS_LABEL = "Sin fechas disponibles"
LEADERBOARD_RULES_HINT = (
    "PocketBase rules are blocking group-wide leaderboard reads. Update predictions "
    "list/view rules to allow active group members to read group predictions."
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def select_membership(memberships: list[Membership], group_id: Optional[str]) -> Membership:
    if group_id:
        for membership in memberships:
            if membership.group.id == group_id:
                return membership
    return memberships[0]


def record_store_http_error(e: RecordStoreError) -> HTTPException:
    """Auth failures pass through; everything else is an upstream failure."""
    if e.status == 401:
        return HTTPException(status_code=401, detail="Unauthorized")
    return HTTPException(status_code=502, detail=f"Record store error: {e.message}")


async def _memberships(repository: RecordRepository, session: SessionData) -> list[Membership]:
    try:
        return await repository.list_groups_for_user(session.user_id, session.record_token)
    except RecordStoreError as e:
        raise record_store_http_error(e) from e


def _prediction_map(records) -> dict[str, PredictionValue]:
    return {r.fixture_id: PredictionValue(home=r.home, away=r.away) for r in records}


# =============================================================================
# PROVIDER HEALTH / LEAGUES / FECHAS
# =============================================================================


@router.get("/health/provider")
async def provider_health(
    period: Optional[str] = Query(None),
    provider: FallbackFixtureSource = Depends(get_provider),
    settings: Settings = Depends(get_settings),
):
    """Live provider reachability. 503 when unconfigured or failing."""
    league_id = settings.API_FOOTBALL_DEFAULT_LEAGUE_ID
    scope = CompetitionScope(league_id=league_id, season=settings.default_season, stage=default_stage_for(league_id))
    report = await provider.probe(scope, (period or "").strip() or None)

    status_code = 200 if report["configured"] and report["ok"] else 503
    return JSONResponse(
        status_code=status_code,
        content={"provider": "api-football", "timestamp": _now_iso(), **report},
    )


@router.get("/leagues")
async def get_leagues(
    season: Optional[str] = Query(None),
    session: SessionData = Depends(require_session),
    provider: FallbackFixtureSource = Depends(get_provider),
    settings: Settings = Depends(get_settings),
):
    leagues = await provider.fetch_leagues((season or "").strip() or settings.default_season)
    return {"leagues": [asdict(league) for league in leagues], "updated_at": _now_iso()}


@router.get("/fechas")
async def get_fechas(
    league_id: Optional[str] = Query(None, alias="leagueId"),
    season: Optional[str] = Query(None),
    competition_stage: Optional[str] = Query(None, alias="competitionStage"),
    session: SessionData = Depends(require_session),
    service: FixtureService = Depends(get_fixture_service),
    settings: Settings = Depends(get_settings),
):
    clean_league = (league_id or "").strip()
    if not clean_league.isdigit() or int(clean_league) <= 0:
        raise HTTPException(status_code=400, detail="leagueId is required")

    scope = CompetitionScope(
        league_id=int(clean_league),
        season=(season or "").strip() or settings.default_season,
        stage=parse_stage(competition_stage) or GENERAL,
    )
    fechas = await service.fetch_available_fechas(scope)
    default_fecha = await service.resolver.resolve_default_fecha(scope, fechas)

    return {
        "league_id": scope.league_id,
        "season": scope.season,
        "fechas": [{"id": fecha, "label": format_round_label(fecha)} for fecha in fechas],
        "default_fecha": default_fecha,
        "updated_at": _now_iso(),
    }


# =============================================================================
# FIXTURE
# =============================================================================


@router.get("/fixture")
async def get_fixture(
    group_id: Optional[str] = Query(None, alias="groupId"),
    period: Optional[str] = Query(None),
    session: SessionData = Depends(require_session),
    service: FixtureService = Depends(get_fixture_service),
    repository: RecordRepository = Depends(get_repository),
):
    memberships = await _memberships(repository, session)
    if not memberships:
        return {"period": "", "period_label": NO_FECHAS_LABEL, "cards": [], "updated_at": _now_iso()}

    selected = select_membership(memberships, group_id)
    resolved, _ = await service.resolve_period(selected.group.scope, (period or "").strip() or None)
    if not resolved:
        return {"period": "", "period_label": NO_FECHAS_LABEL, "cards": [], "updated_at": _now_iso()}

    cards = await service.fixture_date_cards(selected.group.scope, resolved)
    return {
        "period": resolved,
        "period_label": format_round_label(resolved),
        "cards": [card.to_dict() for card in cards],
        "updated_at": _now_iso(),
    }


# =============================================================================
# PRONOSTICOS
# =============================================================================


class PredictionWriteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_id: Optional[str] = Field(None, alias="groupId")
    period: Optional[str] = None
    match_id: Optional[str] = Field(None, alias="matchId")
    home: Optional[Any] = None
    away: Optional[Any] = None


def clamp_goals(value: Any, max_goals: int) -> Optional[int]:
    """Finite numbers are truncated and clamped to 0..max_goals. Anything else is None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return max(0, min(max_goals, int(value)))


@router.get("/pronosticos")
async def get_pronosticos(
    group_id: Optional[str] = Query(None, alias="groupId"),
    period: Optional[str] = Query(None),
    session: SessionData = Depends(require_session),
    service: FixtureService = Depends(get_fixture_service),
    repository: RecordRepository = Depends(get_repository),
):
    memberships = await _memberships(repository, session)
    if not memberships:
        raise HTTPException(status_code=409, detail="No active groups")

    selected = select_membership(memberships, group_id)
    scope = selected.group.scope
    resolved, _ = await service.resolve_period(scope, (period or "").strip() or None)
    if not resolved:
        return {
            "period": "",
            "period_label": NO_FECHAS_LABEL,
            "matches": [],
            "predictions": {},
            "updated_at": _now_iso(),
        }

    try:
        cards, records = await asyncio.gather(
            service.match_cards(scope, resolved),
            repository.list_predictions_for_scope(session.user_id, selected.group.id, resolved, session.record_token),
        )
    except RecordStoreError as e:
        raise record_store_http_error(e) from e

    predictions = _prediction_map(records)
    return {
        "period": resolved,
        "period_label": format_round_label(resolved),
        "matches": [card.to_dict() for card in apply_predictions(cards, predictions, service.tones)],
        "predictions": {fixture_id: asdict(value) for fixture_id, value in predictions.items()},
        "updated_at": _now_iso(),
    }


@router.post("/pronosticos")
@limiter.limit(prediction_write_limit, key_func=session_rate_limit_key)
async def post_pronostico(
    request: Request,
    session: SessionData = Depends(require_session),
    service: FixtureService = Depends(get_fixture_service),
    repository: RecordRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """
    Upsert the caller's prediction for one upcoming match.

    Body: PredictionWriteRequest ({groupId, period, matchId, home, away}).

    400: unreadable body, missing ids, or match not upcoming in that round
    403: caller is not an active member of the group
    409: kickoff already passed
    429: write rate limit
    """
    try:
        payload = PredictionWriteRequest.model_validate(await request.json())
    except ValueError as e:
        # Covers malformed JSON and pydantic ValidationError
        raise HTTPException(status_code=400, detail="Invalid payload") from e

    group_id = (payload.group_id or "").strip()
    period = (payload.period or "").strip()
    match_id = (payload.match_id or "").strip()
    if not group_id or not period or not match_id:
        raise HTTPException(status_code=400, detail="groupId, period and matchId are required.")

    try:
        if not await repository.is_active_group_member(session.user_id, group_id, session.record_token):
            raise HTTPException(status_code=403, detail="Forbidden")
        memberships = await repository.list_groups_for_user(session.user_id, session.record_token)
    except RecordStoreError as e:
        raise record_store_http_error(e) from e

    selected = next((m for m in memberships if m.group.id == group_id), None)
    if selected is None:
        raise HTTPException(status_code=403, detail="Forbidden")

    card = await service.find_match_card(selected.group.scope, period, match_id)
    if card is None or card.status != UPCOMING:
        raise HTTPException(status_code=400, detail="Invalid upcoming match id.")
    if card.is_locked:
        raise HTTPException(status_code=409, detail="Prediction window closed for this match.")

    home = clamp_goals(payload.home, settings.PREDICTION_MAX_GOALS)
    away = clamp_goals(payload.away, settings.PREDICTION_MAX_GOALS)

    try:
        await repository.upsert_prediction(
            user_id=session.user_id,
            group_id=group_id,
            fixture_id=match_id,
            period=period,
            home=home,
            away=away,
            auth_token=session.record_token,
        )
    except RecordStoreError as e:
        raise record_store_http_error(e) from e

    _incr("prediction_upserts")
    return {"ok": True, "prediction": {"home": home, "away": away}, "updated_at": _now_iso()}


# =============================================================================
# HOME
# =============================================================================


@router.get("/home")
async def get_home(
    group_id: Optional[str] = Query(None, alias="groupId"),
    session: SessionData = Depends(require_session),
    service: FixtureService = Depends(get_fixture_service),
    repository: RecordRepository = Depends(get_repository),
):
    """Group cards with the caller's rank per group, plus the selected group's next fixtures and live matches."""
    memberships = await _memberships(repository, session)
    if not memberships:
        return {
            "group_cards": [],
            "live_cards": [],
            "live_matches": [],
            "summary": None,
            "updated_at": _now_iso(),
        }

    selected = select_membership(memberships, group_id)
    scope = selected.group.scope
    group_ids = [m.group.id for m in memberships]
    token = session.record_token

    period, _ = await service.resolve_period(scope)

    try:
        (
            live_cards,
            live_matches,
            match_cards,
            my_records,
            members_by_group,
            predictions_by_group,
            score_maps,
        ) = await asyncio.gather(
            service.home_upcoming(scope, period),
            service.live_matches(scope, period) if period else asyncio.sleep(0, result=[]),
            service.match_cards(scope, period) if period else asyncio.sleep(0, result=[]),
            repository.list_predictions_for_scope(session.user_id, selected.group.id, period, token)
            if period
            else asyncio.sleep(0, result=[]),
            repository.list_group_members_for_groups(group_ids, token),
            repository.list_group_predictions_for_groups(group_ids, token),
            service.score_maps_for_scopes([m.group.scope for m in memberships]),
        )
    except RecordStoreError as e:
        raise record_store_http_error(e) from e

    group_cards = []
    my_row_in_selected = None
    for membership in memberships:
        group = membership.group
        members = members_by_group.get(group.id, [])
        standings = build_group_standings(
            members,
            predictions_by_group.get(group.id, []),
            score_maps.get(group.scope.key, {}),
        )
        my_row = next((row for row in standings if row.user_id == session.user_id), None)
        if group.id == selected.group.id:
            my_row_in_selected = my_row
        group_cards.append(
            {
                "id": group.id,
                "title": group.name,
                "subtitle": f"TEMP {group.season} · {len(members)} JUG",
                "rank": f"#{my_row.rank}" if my_row else "--",
                "points": str(my_row.points) if my_row else "0",
                "primary": group.id == selected.group.id,
            }
        )
    # Stable visual order regardless of the active group
    group_cards.sort(key=lambda card: (card["title"].casefold(), card["id"]))

    pending = service.count_pending(match_cards, _prediction_map(my_records))

    return {
        "group_cards": group_cards,
        "live_cards": [card.to_dict() for card in live_cards],
        "live_matches": [card.to_dict() for card in live_matches],
        "summary": {
            "pending_predictions": pending,
            "live_matches": sum(1 for card in match_cards if card.status == LIVE),
            "my_rank": my_row_in_selected.rank if my_row_in_selected else None,
            "my_points": my_row_in_selected.points if my_row_in_selected else 0,
        },
        "updated_at": _now_iso(),
    }


# =============================================================================
# LEADERBOARD
# =============================================================================


@router.get("/leaderboard")
async def get_leaderboard(
    group_id: Optional[str] = Query(None, alias="groupId"),
    mode: Optional[str] = Query(None),
    period: Optional[str] = Query(None),
    session: SessionData = Depends(require_session),
    service: FixtureService = Depends(get_fixture_service),
    provider: FallbackFixtureSource = Depends(get_provider),
    repository: RecordRepository = Depends(get_repository),
):
    """
    Group ranking.

    mode=posiciones: points, scored predictions, exact/win-draw/miss record
    mode=stats:      efficiency % and exact hits, plus group_stats
    period=global (default) accumulates every fecha of the group's competition.
    """
    mode = STATS if mode == STATS else POSICIONES
    period = (period or "").strip() or GLOBAL_PERIOD

    memberships = await _memberships(repository, session)
    if not memberships:
        return {
            "group_label": "Sin grupo activo",
            "mode": mode,
            "period": period,
            "period_label": format_period_label(period),
            "rows": [],
            "group_stats": None,
            "updated_at": _now_iso(),
        }

    selected = select_membership(memberships, group_id)
    group = selected.group
    scope = group.scope

    all_fechas = await service.fetch_available_fechas(scope)
    periods = all_fechas if period == GLOBAL_PERIOD else [period]

    try:
        members, predictions, score_map = await asyncio.gather(
            repository.list_group_members(group.id, session.record_token),
            repository.list_group_predictions(
                group.id,
                session.record_token,
                period=None if period == GLOBAL_PERIOD else period,
            ),
            service.build_score_map(scope, periods),
        )
    except RecordStoreError as e:
        if e.status == 403:
            logger.warning(f"[RECORDS] Leaderboard read blocked by collection rules for group {group.id}")
            raise HTTPException(status_code=409, detail=LEADERBOARD_RULES_HINT) from e
        raise record_store_http_error(e) from e

    standings = build_group_standings(members, predictions, score_map)

    group_stats = None
    if mode == STATS:
        standings_rows = await provider.fetch_standings(scope)
        group_stats = asdict(build_group_stats(members, predictions, score_map, periods, standings_rows))

    return {
        "group_label": group.name,
        "mode": mode,
        "period": period,
        "period_label": format_period_label(period),
        "rows": [asdict(row) for row in leaderboard_rows(standings, mode)],
        "group_stats": group_stats,
        "updated_at": _now_iso(),
    }


# =============================================================================
# PROFILE
# =============================================================================


@router.get("/profile")
async def get_profile(
    session: SessionData = Depends(require_session),
    service: FixtureService = Depends(get_fixture_service),
    repository: RecordRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """Cross-group totals and the three most recent activity items."""
    memberships = await _memberships(repository, session)
    if not memberships:
        return {
            "stats": {"total_points": 0, "accuracy_pct": 0, "groups": 0},
            "recent_activity": [],
            "updated_at": _now_iso(),
        }

    try:
        predictions_by_group = await repository.list_group_predictions_for_groups(
            [m.group.id for m in memberships], session.record_token
        )
    except RecordStoreError as e:
        raise record_store_http_error(e) from e

    mine = user_predictions(predictions_by_group, session.user_id)

    scope_key_by_group = {m.group.id: m.group.scope.key for m in memberships}
    scopes: dict[str, CompetitionScope] = {}
    periods_by_scope: dict[str, list[str]] = {}
    for prediction in mine:
        membership = next((m for m in memberships if m.group.id == prediction.group_id), None)
        if membership is None:
            continue
        key = membership.group.scope.key
        scopes.setdefault(key, membership.group.scope)
        periods = periods_by_scope.setdefault(key, [])
        if prediction.period not in periods:
            periods.append(prediction.period)

    requests = [(key, period) for key, periods in periods_by_scope.items() for period in periods]
    fixtures_per_request = await asyncio.gather(
        *(service.fetch_fixtures(scopes[key], period) for key, period in requests)
    )

    score_maps: dict[str, dict] = {key: {} for key in scopes}
    labels: dict[str, dict] = {key: {} for key in scopes}
    for (key, _), fixtures in zip(requests, fixtures_per_request):
        maps = build_fixture_maps(fixtures)
        score_maps[key].update(maps.scores)
        labels[key].update(maps.labels)

    stats = build_profile_stats(mine, score_maps, scope_key_by_group, len(memberships))
    activity = build_recent_activity(
        prediction_events(score_user_predictions(mine, score_maps, scope_key_by_group), labels, scope_key_by_group),
        join_events(memberships),
        limit=settings.RECENT_ACTIVITY_LIMIT,
    )

    return {
        "stats": asdict(stats),
        "recent_activity": [asdict(item) for item in activity],
        "updated_at": _now_iso(),
    }
