"""
Ranking aggregation over memberships, stored predictions and resolved scores.

Everything here is pure: callers fetch members, predictions and score maps
(fan-out) and fold them with these functions. Output ordering is total and
deterministic, so repeated calls on the same input are identical.

Incomplete predictions (null home or away) and predictions whose fixture has
no resolvable score are excluded, never counted as misses.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fulbito.etl.base import Fixture, StandingRow
from fulbito.etl.competitions import format_round_label
from fulbito.etl.name_normalization import normalize_ascii
from fulbito.records.models import GroupMember, Membership, PredictionRecord
from fulbito.scoring import SCORE_RULES, Score, calculate_points

ScoreMap = dict[str, Score]

POSICIONES = "posiciones"
STATS = "stats"
GLOBAL_PERIOD = "global"


def _name_key(name: str) -> str:
    return normalize_ascii(name or "").casefold()


def format_period_label(period: str) -> str:
    if period == GLOBAL_PERIOD:
        return "Global acumulado"
    return format_round_label(period)


# =============================================================================
# GROUP STANDINGS
# =============================================================================


@dataclass
class RankedRow:
    user_id: str
    name: str
    rank: int = 0
    points: int = 0
    exact: int = 0
    win_draw: int = 0
    miss: int = 0
    scored: int = 0

    @property
    def record(self) -> str:
        return f"{self.exact}/{self.win_draw}/{self.miss}"


def _tally(row: RankedRow, points: int) -> None:
    row.points += points
    row.scored += 1
    if points == SCORE_RULES["exact"]:
        row.exact += 1
    elif points == SCORE_RULES["outcome"]:
        row.win_draw += 1
    else:
        row.miss += 1


def build_group_standings(
    members: list[GroupMember],
    predictions: list[PredictionRecord],
    score_map: ScoreMap,
) -> list[RankedRow]:
    """
    Point-ranked standings for one group.

    Sort: points desc, exact desc, name asc, user id asc. Ranks are 1-based
    sorted positions. Predictions from non-members are ignored.
    """
    rows: dict[str, RankedRow] = {}
    for member in members:
        rows.setdefault(member.user_id, RankedRow(user_id=member.user_id, name=member.name))

    for prediction in predictions:
        if not prediction.is_complete:
            continue
        score = score_map.get(prediction.fixture_id)
        row = rows.get(prediction.user_id)
        if score is None or row is None:
            continue
        _tally(row, calculate_points(prediction, score))

    ordered = sorted(
        rows.values(),
        key=lambda r: (-r.points, -r.exact, _name_key(r.name), r.user_id),
    )
    for index, row in enumerate(ordered):
        row.rank = index + 1
    return ordered


@dataclass
class LeaderboardRow:
    rank: int
    user_id: str
    name: str
    predictions: int
    record: str
    points: int
    highlight: bool = False


def leaderboard_rows(standings: list[RankedRow], mode: str = POSICIONES) -> list[LeaderboardRow]:
    """
    Project standings into leaderboard rows.

    posiciones: points and scored-prediction count.
    stats:      efficiency % (points over max possible) and exact hits.
    Rows are re-sorted on the projected values; the leader is highlighted.
    """
    rows = []
    for entry in standings:
        if mode == STATS:
            efficiency = round(entry.points / (entry.scored * 3) * 100) if entry.scored > 0 else 0
            points, predictions = efficiency, entry.exact
        else:
            points, predictions = entry.points, entry.scored
        rows.append(
            LeaderboardRow(
                rank=0,
                user_id=entry.user_id,
                name=entry.name,
                predictions=predictions,
                record=entry.record,
                points=points,
            )
        )

    rows.sort(key=lambda r: (-r.points, -r.predictions, _name_key(r.name), r.user_id))
    for index, row in enumerate(rows):
        row.rank = index + 1
        row.highlight = index == 0
    return rows


# =============================================================================
# GROUP STATS (leaderboard stats mode)
# =============================================================================


@dataclass
class BestFecha:
    period: str
    period_label: str
    user_id: str
    user_name: str
    points: int


@dataclass
class WorldBenchmark:
    league_name: str
    leader_points: int
    group_total_points: int
    average_member_points: float
    ratio_vs_leader_pct: int


@dataclass
class GroupStats:
    member_count: int
    scored_predictions: int
    correct_predictions: int
    exact_predictions: int
    result_predictions: int
    miss_predictions: int
    accuracy_pct: int
    total_points: int
    average_member_points: float
    best_fecha: Optional[BestFecha] = None
    world_benchmark: Optional[WorldBenchmark] = None


def find_best_fecha(
    members: list[GroupMember],
    predictions: list[PredictionRecord],
    score_map: ScoreMap,
    fechas: list[str],
) -> Optional[BestFecha]:
    """
    Highest single-fecha total by one member.

    Ties go to the earlier fecha, then to the member listed first. None when
    nobody scored a point.
    """
    names = {m.user_id: m.name for m in members}
    member_order = {m.user_id: index for index, m in enumerate(members)}
    fecha_order = {fecha: index for index, fecha in enumerate(fechas)}

    totals: dict[tuple[str, str], int] = {}
    for prediction in predictions:
        if not prediction.is_complete or prediction.user_id not in names or not prediction.period:
            continue
        score = score_map.get(prediction.fixture_id)
        if score is None:
            continue
        key = (prediction.period, prediction.user_id)
        totals[key] = totals.get(key, 0) + calculate_points(prediction, score)

    candidates = [(key, points) for key, points in totals.items() if points > 0]
    if not candidates:
        return None

    (period, user_id), points = min(
        candidates,
        key=lambda item: (
            -item[1],
            fecha_order.get(item[0][0], len(fecha_order)),
            item[0][0],
            member_order[item[0][1]],
        ),
    )
    return BestFecha(
        period=period,
        period_label=format_round_label(period),
        user_id=user_id,
        user_name=names[user_id],
        points=points,
    )


def build_world_benchmark(
    standings_rows: list[StandingRow],
    group_total_points: int,
    average_member_points: float,
) -> Optional[WorldBenchmark]:
    """Compare the group's average against the real league leader's points."""
    if not standings_rows:
        return None
    leader = min(standings_rows, key=lambda r: r.rank)
    ratio = round(average_member_points / leader.points * 100) if leader.points > 0 else 0
    return WorldBenchmark(
        league_name=leader.league_name or "",
        leader_points=leader.points,
        group_total_points=group_total_points,
        average_member_points=average_member_points,
        ratio_vs_leader_pct=ratio,
    )


def build_group_stats(
    members: list[GroupMember],
    predictions: list[PredictionRecord],
    score_map: ScoreMap,
    fechas: list[str],
    standings_rows: Optional[list[StandingRow]] = None,
) -> GroupStats:
    standings = build_group_standings(members, predictions, score_map)

    scored = sum(r.scored for r in standings)
    exact = sum(r.exact for r in standings)
    result = sum(r.win_draw for r in standings)
    miss = sum(r.miss for r in standings)
    total_points = sum(r.points for r in standings)
    member_count = len(standings)
    average = round(total_points / member_count, 1) if member_count else 0.0

    return GroupStats(
        member_count=member_count,
        scored_predictions=scored,
        correct_predictions=exact + result,
        exact_predictions=exact,
        result_predictions=result,
        miss_predictions=miss,
        accuracy_pct=round((exact + result) / scored * 100) if scored else 0,
        total_points=total_points,
        average_member_points=average,
        best_fecha=find_best_fecha(members, predictions, score_map, fechas),
        world_benchmark=build_world_benchmark(standings_rows or [], total_points, average),
    )


# =============================================================================
# PROFILE
# =============================================================================


@dataclass
class ProfileStats:
    total_points: int
    accuracy_pct: int
    groups: int


@dataclass
class ScoredPrediction:
    prediction: PredictionRecord
    points: Optional[int]  # None when the fixture has no resolvable score


@dataclass
class FixtureMaps:
    """Per-scope lookup tables built from raw fixtures."""

    scores: ScoreMap
    labels: dict[str, str]


def build_fixture_maps(fixtures: list[Fixture]) -> FixtureMaps:
    """Scores for fixtures reporting both goals, "Home vs Away" labels for all."""
    scores: ScoreMap = {}
    labels: dict[str, str] = {}
    for fixture in fixtures:
        labels[fixture.id] = f"{fixture.home_name} vs {fixture.away_name}"
        if fixture.home_goals is not None and fixture.away_goals is not None:
            scores[fixture.id] = Score(home=fixture.home_goals, away=fixture.away_goals)
    return FixtureMaps(scores=scores, labels=labels)


def user_predictions(predictions_by_group: dict[str, list[PredictionRecord]], user_id: str) -> list[PredictionRecord]:
    """The user's complete, period-tagged predictions across groups."""
    result = []
    for predictions in predictions_by_group.values():
        for prediction in predictions:
            if prediction.user_id == user_id and prediction.is_complete and prediction.period:
                result.append(prediction)
    return result


def score_user_predictions(
    predictions: list[PredictionRecord],
    score_maps_by_scope: dict[str, ScoreMap],
    scope_key_by_group: dict[str, str],
) -> list[ScoredPrediction]:
    scored = []
    for prediction in predictions:
        score_map = score_maps_by_scope.get(scope_key_by_group.get(prediction.group_id, ""), {})
        score = score_map.get(prediction.fixture_id) if prediction.is_complete else None
        points = calculate_points(prediction, score) if score is not None else None
        scored.append(ScoredPrediction(prediction=prediction, points=points))
    return scored


def build_profile_stats(
    predictions: list[PredictionRecord],
    score_maps_by_scope: dict[str, ScoreMap],
    scope_key_by_group: dict[str, str],
    group_count: int,
) -> ProfileStats:
    """
    Cross-group totals for one user.

    accuracy_pct = round(100 * correct / scored); 0 when nothing was scored.
    """
    scored = [
        s for s in score_user_predictions(predictions, score_maps_by_scope, scope_key_by_group)
        if s.points is not None
    ]
    correct = sum(1 for s in scored if s.points > 0)
    return ProfileStats(
        total_points=sum(s.points for s in scored),
        accuracy_pct=round(100 * correct / len(scored)) if scored else 0,
        groups=group_count,
    )


# =============================================================================
# RECENT ACTIVITY
# =============================================================================


@dataclass
class ActivityItem:
    id: str
    type: str  # "prediction" | "group_join"
    label: str
    occurred_at: Optional[str]
    points: Optional[int] = None


def _timestamp(value: Optional[str]) -> float:
    """Epoch seconds, or -inf for missing/unparseable values so they sort last."""
    if not value:
        return float("-inf")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return float("-inf")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def prediction_events(
    scored_predictions: list[ScoredPrediction],
    labels_by_scope: dict[str, dict[str, str]],
    scope_key_by_group: dict[str, str],
) -> list[ActivityItem]:
    events = []
    for entry in scored_predictions:
        prediction = entry.prediction
        labels = labels_by_scope.get(scope_key_by_group.get(prediction.group_id, ""), {})
        fixture_label = labels.get(prediction.fixture_id) or prediction.fixture_id
        events.append(
            ActivityItem(
                id=f"pred:{prediction.group_id}:{prediction.fixture_id}:{prediction.submitted_at or ''}",
                type="prediction",
                label=f"Pronóstico: {fixture_label}",
                occurred_at=prediction.submitted_at,
                points=entry.points,
            )
        )
    return events


def join_events(memberships: list[Membership]) -> list[ActivityItem]:
    return [
        ActivityItem(
            id=f"join:{m.group.id}",
            type="group_join",
            label=f"Te uniste a {m.group.name}",
            occurred_at=m.joined_at,
        )
        for m in memberships
    ]


def build_recent_activity(
    prediction_items: list[ActivityItem],
    join_items: list[ActivityItem],
    limit: int = 3,
) -> list[ActivityItem]:
    """Newest first across both feeds, fixed small window."""
    merged = prediction_items + join_items
    merged.sort(key=lambda item: _timestamp(item.occurred_at), reverse=True)
    return merged[:limit]
