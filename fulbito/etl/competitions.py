"""Competition scopes, stages and round (fecha) helpers for API-Football."""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fulbito.etl.name_normalization import normalize_ascii

APERTURA = "apertura"
CLAUSURA = "clausura"
GENERAL = "general"
STAGES = (APERTURA, CLAUSURA, GENERAL)

# Upcoming seasons further out than this are hidden from the league picker
UPCOMING_LEAGUE_HORIZON = timedelta(days=90)


@dataclass
class Competition:
    """Competition configuration."""

    league_id: int
    name: str
    split_stages: bool = False  # Season played as Apertura + Clausura

    @property
    def default_stage(self) -> str:
        return APERTURA if self.split_stages else GENERAL


LIGA_PROFESIONAL = Competition(
    league_id=128,
    name="Liga Profesional",
    split_stages=True,
)

PREMIER_LEAGUE = Competition(
    league_id=39,
    name="Premier League",
)

COMPETITIONS: dict[int, Competition] = {
    c.league_id: c for c in (LIGA_PROFESIONAL, PREMIER_LEAGUE)
}


def default_stage_for(league_id: int) -> str:
    competition = COMPETITIONS.get(league_id)
    return competition.default_stage if competition else GENERAL


@dataclass(frozen=True)
class CompetitionScope:
    """(league, season, stage) triple identifying one tournament instance."""

    league_id: int
    season: str
    stage: str = GENERAL

    @property
    def key(self) -> str:
        return f"{self.league_id}:{self.season}:{self.stage or GENERAL}"


def parse_stage(value: Optional[str]) -> Optional[str]:
    """Return a known stage or None."""
    clean = (value or "").strip().lower()
    return clean if clean in STAGES else None


def normalize_season(value: Optional[str], default: Optional[str] = None) -> str:
    """Extract the 4-digit year ("2026|apertura" -> "2026")."""
    source = (value or "").strip()
    match = re.search(r"\d{4}", source)
    if match:
        return match.group(0)
    return source or default or str(datetime.now().year)


def detect_competition_stage(name: str) -> str:
    normalized = normalize_ascii((name or "").lower())
    if APERTURA in normalized:
        return APERTURA
    if CLAUSURA in normalized:
        return CLAUSURA
    return GENERAL


def competition_label(stage: str) -> str:
    if stage == APERTURA:
        return "Apertura"
    if stage == CLAUSURA:
        return "Clausura"
    return "General"


def encode_season_with_stage(season: str, stage: Optional[str] = None) -> str:
    """Groups persist season and stage in one field: "2026|apertura"."""
    if not stage or stage == GENERAL:
        return season
    return f"{season}|{stage}"


def decode_season_with_stage(raw: Optional[str], league_id: int, default_season: str) -> tuple[str, str]:
    """
    Inverse of encode_season_with_stage.

    A bare season falls back to the league's default stage, so legacy groups on
    a split league resolve to the Apertura.
    """
    season_raw, _, stage_raw = (raw or "").partition("|")
    stage = stage_raw if stage_raw in (APERTURA, CLAUSURA) else default_stage_for(league_id)
    return season_raw.strip() or default_season, stage


# =============================================================================
# ROUNDS (FECHAS)
# =============================================================================


def round_number(value: str) -> Optional[str]:
    """First integer found in a round id ("Regular Season - 14" -> "14")."""
    match = re.search(r"(\d+)", value or "")
    return match.group(1) if match else None


def sort_fechas(rounds: list[str]) -> list[str]:
    """Sort by embedded round number, then alphabetically. Unnumbered rounds go last."""

    def sort_key(value: str):
        number = round_number(value)
        return (int(number) if number is not None else float("inf"), value)

    return sorted(rounds, key=sort_key)


def filter_rounds_by_stage(rounds: list[str], stage: Optional[str]) -> list[str]:
    """
    Keep the rounds belonging to a stage.

    1. Drop rounds naming the opposite stage
    2. If nothing remains, keep rounds naming this stage
    3. If still nothing, keep everything
    """
    if not stage or stage == GENERAL:
        return list(rounds)

    opposite = CLAUSURA if stage == APERTURA else APERTURA

    without_opposite = [r for r in rounds if opposite not in normalize_ascii(r.lower())]
    if without_opposite:
        return without_opposite

    with_stage = [r for r in rounds if stage in normalize_ascii(r.lower())]
    return with_stage or list(rounds)


def format_round_label(period: str) -> str:
    """
    Beautify an opaque provider round id for display.

    Examples:
        "fecha14"             -> "Fecha 14"
        "Regular Season - 7"  -> "Fecha 7"
        "1st Phase - 3"       -> "1st Phase - 3"
    """
    clean = (period or "").strip()
    if not clean:
        return clean

    normalized = normalize_ascii(clean.lower())
    number = round_number(clean)
    if number and normalized.startswith("fecha"):
        return f"Fecha {number}"

    markers = ("regular season", APERTURA, CLAUSURA, "round")
    if number and any(marker in normalized for marker in markers):
        return f"Fecha {number}"

    return clean


# =============================================================================
# LEAGUES
# =============================================================================


@dataclass
class LeagueOption:
    """A selectable competition for group creation."""

    id: int
    name: str
    season: str
    competition_key: str
    competition_name: str
    competition_stage: str
    status: str  # "ongoing" | "upcoming"
    country: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


@dataclass
class _SeasonStatus:
    status: str  # "ongoing" | "upcoming" | "expired"
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


def _parse_date(value) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _object(value) -> dict:
    return value if isinstance(value, dict) else {}


def parse_season_status(season_node: Optional[dict], now: datetime) -> _SeasonStatus:
    season_node = season_node or {}
    starts_at = _parse_date(season_node.get("start"))
    ends_at = _parse_date(season_node.get("end"))

    if season_node.get("current") is True:
        return _SeasonStatus("ongoing", starts_at, ends_at)
    if starts_at and starts_at > now:
        return _SeasonStatus("upcoming", starts_at, ends_at)
    if ends_at and ends_at >= now:
        return _SeasonStatus("ongoing", starts_at, ends_at)
    return _SeasonStatus("expired", starts_at, ends_at)


def should_keep_league(status: str, starts_at: Optional[datetime], now: datetime) -> bool:
    if status == "ongoing":
        return True
    if status != "upcoming" or starts_at is None:
        return False
    return starts_at - now <= UPCOMING_LEAGUE_HORIZON


def parse_league_rows(
    rows: list,
    season: str,
    allowed_ids: set[int],
    now: Optional[datetime] = None,
) -> list[LeagueOption]:
    """
    Convert provider /leagues rows into LeagueOptions.

    Split-stage leagues (Liga Profesional) listed as a single "general" league
    are expanded into Apertura (ongoing) + Clausura (upcoming) options.
    """
    now = now or datetime.now(timezone.utc)
    options: dict[str, LeagueOption] = {}

    for row in rows:
        if not isinstance(row, dict):
            continue
        league_node = _object(row.get("league"))
        country_node = _object(row.get("country"))
        country = country_node.get("name")
        seasons = row.get("seasons")
        seasons_node = [s for s in seasons if isinstance(s, dict)] if isinstance(seasons, list) else []

        league_id = league_node.get("id")
        name = league_node.get("name")
        if isinstance(league_id, bool) or not isinstance(league_id, int) or not isinstance(name, str) or not name:
            continue
        if allowed_ids and league_id not in allowed_ids:
            continue

        season_node = next((s for s in seasons_node if str(s.get("year", "")) == season), None)
        if season_node is None:
            season_node = next((s for s in seasons_node if s.get("current") is True), None)
        parsed = parse_season_status(season_node, now)

        stage = detect_competition_stage(name)
        base = LeagueOption(
            id=league_id,
            name=name if stage == GENERAL else f"Liga Profesional {competition_label(stage)}",
            season=season,
            competition_key=f"{league_id}-{season}-{stage}",
            competition_name=competition_label(stage),
            competition_stage=stage,
            status="upcoming" if parsed.status == "expired" else parsed.status,
            country=country if isinstance(country, str) and country else None,
            starts_at=parsed.starts_at,
            ends_at=parsed.ends_at,
        )

        competition = COMPETITIONS.get(league_id)
        if stage == GENERAL and competition is not None and competition.split_stages:
            for split_stage, split_status in ((APERTURA, "ongoing"), (CLAUSURA, "upcoming")):
                key = f"{league_id}-{season}-{split_stage}"
                if key in options or not should_keep_league(split_status, base.starts_at, now):
                    continue
                options[key] = LeagueOption(
                    id=league_id,
                    name=f"Liga Profesional {competition_label(split_stage)}",
                    season=season,
                    competition_key=key,
                    competition_name=competition_label(split_stage),
                    competition_stage=split_stage,
                    status=split_status,
                    country=base.country,
                    starts_at=base.starts_at,
                    ends_at=base.ends_at,
                )
            continue

        if not should_keep_league(parsed.status, parsed.starts_at, now):
            continue
        options.setdefault(base.competition_key, base)

    return sorted(options.values(), key=lambda o: (o.status, o.country or "", o.name))
