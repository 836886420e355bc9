"""
Fixture classification and presentation mapping.

Three projections of the same fixture list:
- match cards (pronosticos list, live digest)
- date-grouped fixture rows (fixture screen, home upcoming)
- live digest (live cards only)

All date math happens in the competition timezone.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fulbito.etl.base import Fixture
from fulbito.etl.name_normalization import format_team_code
from fulbito.scoring import DEFAULT_TONES, PointsTones, PredictionValue, Score, calculate_points, points_tone

DEFAULT_TIMEZONE = "America/Argentina/Buenos_Aires"

LIVE_STATUS_SHORT = frozenset({"1H", "HT", "2H", "ET", "BT", "P", "INT", "LIVE"})
FINAL_STATUS_SHORT = frozenset({"FT", "AET", "PEN", "AWD", "WO"})

LIVE = "live"
UPCOMING = "upcoming"
FINAL = "final"

STATUS_ORDER = {LIVE: 0, UPCOMING: 1, FINAL: 2}

MATCH_CARDS_LIMIT = 24
LIVE_MATCHES_LIMIT = 6
HOME_UPCOMING_LIMIT = 3

WEEKDAYS_ES = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
MONTHS_ES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


def classify_fixture_status(status_short: Optional[str]) -> str:
    """Map a provider status code to live / final / upcoming. Unknown codes are upcoming."""
    code = (status_short or "").strip().upper()
    if code in LIVE_STATUS_SHORT:
        return LIVE
    if code in FINAL_STATUS_SHORT:
        return FINAL
    return UPCOMING


def to_progress(elapsed: Optional[int]) -> int:
    """Live progress bar percentage, floor 8. Unknown minute shows half-way."""
    if elapsed is None:
        return 50
    progress = round(elapsed / 90 * 100)
    return max(8, min(100, progress))


# =============================================================================
# DTOs
# =============================================================================


@dataclass
class TeamRef:
    code: str
    name: str
    logo_url: Optional[str] = None


@dataclass
class MatchCard:
    """
    Presentation projection of one fixture.

    `score` is set iff status is live or final. `progress` only when live.
    """

    id: str
    status: str
    home_team: TeamRef
    away_team: TeamRef
    label: str
    kickoff_at: datetime
    venue: Optional[str] = None
    score: Optional[Score] = None
    progress: Optional[int] = None
    prediction: Optional[PredictionValue] = None
    points: Optional[int] = None
    points_tone: Optional[str] = None
    is_locked: bool = False

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "status": self.status,
            "home_team": asdict(self.home_team),
            "away_team": asdict(self.away_team),
            "meta": {"label": self.label, "venue": self.venue},
            "kickoff_at": self.kickoff_at.isoformat(),
            "is_locked": self.is_locked,
        }
        if self.score is not None:
            data["score"] = asdict(self.score)
        if self.progress is not None:
            data["progress"] = self.progress
        if self.prediction is not None:
            data["prediction"] = asdict(self.prediction)
        if self.points is not None:
            data["points"] = {"value": self.points, "tone": self.points_tone}
        return data


@dataclass
class FixtureRow:
    home: str
    away: str
    score_label: str
    tone: str  # "live" | "final" | "upcoming"
    kickoff_at: str
    home_logo_url: Optional[str] = None
    away_logo_url: Optional[str] = None
    venue: Optional[str] = None
    status_detail: Optional[str] = None


@dataclass
class FixtureDateCard:
    date_label: str
    ymd: str
    accent: str = "default"
    rows: list[FixtureRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# LABELS
# =============================================================================


def _local(value: datetime, tz: str) -> datetime:
    return value.astimezone(ZoneInfo(tz))


def format_kickoff_label(kickoff_at: datetime, tz: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> str:
    """
    Upcoming match label relative to today in `tz`.

    Examples:
        "POR JUGAR · HOY 17:00"
        "POR JUGAR · MAÑANA 19:30"
        "POR JUGAR · 21/02 20:00"
    """
    now_local = _local(now or datetime.now(timezone.utc), tz)
    kickoff_local = _local(kickoff_at, tz)
    time_label = kickoff_local.strftime("%H:%M")

    if kickoff_local.date() == now_local.date():
        return f"POR JUGAR · HOY {time_label}"
    if kickoff_local.date() == now_local.date() + timedelta(days=1):
        return f"POR JUGAR · MAÑANA {time_label}"
    return f"POR JUGAR · {kickoff_local.strftime('%d/%m')} {time_label}"


def format_live_label(fixture: Fixture) -> str:
    elapsed = fixture.elapsed if fixture.elapsed is not None else 0
    second_half = fixture.status_short in ("2H", "ET") or elapsed > 45
    return f"EN VIVO · {elapsed}' {'ST' if second_half else 'PT'}"


def format_date_label(kickoff_at: datetime, tz: str = DEFAULT_TIMEZONE) -> str:
    """Spanish day header, e.g. "Sábado, 14 de Febrero"."""
    local = _local(kickoff_at, tz)
    weekday = WEEKDAYS_ES[local.weekday()].capitalize()
    month = MONTHS_ES[local.month - 1].capitalize()
    return f"{weekday}, {local.day} de {month}"


def _score_or_zero(fixture: Fixture) -> Score:
    return Score(
        home=fixture.home_goals if fixture.home_goals is not None else 0,
        away=fixture.away_goals if fixture.away_goals is not None else 0,
    )


# =============================================================================
# MATCH CARDS
# =============================================================================


def fixture_to_match_card(fixture: Fixture, tz: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> MatchCard:
    now = now or datetime.now(timezone.utc)
    status = classify_fixture_status(fixture.status_short)

    if status == LIVE:
        label = format_live_label(fixture)
    elif status == FINAL:
        label = "FINALIZADO"
    else:
        label = format_kickoff_label(fixture.kickoff_at, tz, now)

    return MatchCard(
        id=fixture.id,
        status=status,
        home_team=TeamRef(code=format_team_code(fixture.home_name), name=fixture.home_name, logo_url=fixture.home_logo_url),
        away_team=TeamRef(code=format_team_code(fixture.away_name), name=fixture.away_name, logo_url=fixture.away_logo_url),
        label=label,
        kickoff_at=fixture.kickoff_at,
        venue=fixture.venue,
        score=_score_or_zero(fixture) if status != UPCOMING else None,
        progress=to_progress(fixture.elapsed) if status == LIVE else None,
        # Provider may still report NS after the scheduled kickoff
        is_locked=status == UPCOMING and fixture.kickoff_at <= now,
    )


def map_to_match_cards(
    fixtures: list[Fixture],
    tz: str = DEFAULT_TIMEZONE,
    now: Optional[datetime] = None,
    limit: int = MATCH_CARDS_LIMIT,
) -> list[MatchCard]:
    """Live first, then upcoming, then final. Kickoff order within each status."""
    now = now or datetime.now(timezone.utc)
    ordered = sorted(fixtures, key=lambda f: f.kickoff_at)
    cards = [fixture_to_match_card(f, tz, now) for f in ordered]
    cards.sort(key=lambda card: STATUS_ORDER[card.status])
    return cards[:limit]


def map_to_live_matches(
    fixtures: list[Fixture],
    tz: str = DEFAULT_TIMEZONE,
    now: Optional[datetime] = None,
    limit: int = LIVE_MATCHES_LIMIT,
) -> list[MatchCard]:
    return [card for card in map_to_match_cards(fixtures, tz, now) if card.status == LIVE][:limit]


def apply_predictions(
    cards: list[MatchCard],
    predictions: dict[str, PredictionValue],
    tones: PointsTones = DEFAULT_TONES,
) -> list[MatchCard]:
    """
    Attach the caller's predictions and computed points to copies of `cards`.

    A half-filled prediction shows the missing side as 0. Points are only
    computed when the card has a score.
    """
    result = []
    for card in cards:
        stored = predictions.get(card.id)
        updated = replace(card)
        if stored is not None and (stored.home is not None or stored.away is not None):
            updated.prediction = PredictionValue(
                home=stored.home if stored.home is not None else 0,
                away=stored.away if stored.away is not None else 0,
            )
        if updated.score is not None and updated.prediction is not None:
            updated.points = calculate_points(updated.prediction, updated.score)
            updated.points_tone = points_tone(updated.points, updated.status, tones)
        result.append(updated)
    return result


# =============================================================================
# FIXTURE DATE CARDS
# =============================================================================


def _fixture_row(fixture: Fixture, tz: str) -> FixtureRow:
    status = classify_fixture_status(fixture.status_short)
    if status == LIVE:
        score = _score_or_zero(fixture)
        score_label = f"EN VIVO · {score.home} - {score.away}"
    elif status == FINAL:
        score = _score_or_zero(fixture)
        score_label = f"FINAL · {score.home} - {score.away}"
    else:
        score_label = f"POR JUGAR · {_local(fixture.kickoff_at, tz).strftime('%H:%M')}"

    return FixtureRow(
        home=fixture.home_name,
        away=fixture.away_name,
        score_label=score_label,
        tone=status,
        kickoff_at=fixture.kickoff_at.isoformat(),
        home_logo_url=fixture.home_logo_url,
        away_logo_url=fixture.away_logo_url,
        venue=fixture.venue,
        status_detail=fixture.status_long,
    )


def map_to_fixture_date_cards(fixtures: list[Fixture], tz: str = DEFAULT_TIMEZONE) -> list[FixtureDateCard]:
    """Group fixtures by local calendar date, ascending. Rows keep input order."""
    grouped: dict[str, FixtureDateCard] = {}
    for fixture in fixtures:
        ymd = _local(fixture.kickoff_at, tz).date().isoformat()
        if ymd not in grouped:
            grouped[ymd] = FixtureDateCard(date_label=format_date_label(fixture.kickoff_at, tz), ymd=ymd)
        grouped[ymd].rows.append(_fixture_row(fixture, tz))

    cards = [grouped[ymd] for ymd in sorted(grouped)]
    for card in cards:
        card.accent = LIVE if any(row.tone == LIVE for row in card.rows) else "default"
    return cards


def map_to_home_upcoming(
    fixtures: list[Fixture],
    tz: str = DEFAULT_TIMEZONE,
    limit: int = HOME_UPCOMING_LIMIT,
) -> list[FixtureDateCard]:
    """Next non-final fixtures by kickoff, as date cards."""
    pending = [
        f for f in sorted(fixtures, key=lambda f: f.kickoff_at)
        if classify_fixture_status(f.status_short) != FINAL
    ]
    return map_to_fixture_date_cards(pending[:limit], tz)
