"""Typed fixture DTOs, payload parsing and the abstract fixture provider."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fulbito.etl.competitions import CompetitionScope


class FixtureParseError(ValueError):
    """Raised when a provider row cannot be turned into a Fixture."""

    def __init__(self, reason: str, row=None):
        super().__init__(reason)
        self.reason = reason
        self.row = row


@dataclass(frozen=True)
class Fixture:
    """Data transfer object for one provider fixture."""

    id: str
    kickoff_at: datetime  # tz-aware
    status_short: str
    home_name: str
    away_name: str
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    elapsed: Optional[int] = None  # Current minute for live matches
    status_long: Optional[str] = None
    venue: Optional[str] = None
    home_logo_url: Optional[str] = None
    away_logo_url: Optional[str] = None
    round: Optional[str] = None  # fixture.league.round (e.g., "Regular Season - 14")


@dataclass
class StandingRow:
    """One row of the provider league table."""

    rank: int
    team_name: str
    points: int
    league_name: Optional[str] = None


def _read_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _node(parent, key: str) -> dict:
    """Nested payload object, or {} when missing or not an object."""
    value = parent.get(key) if isinstance(parent, dict) else None
    return value if isinstance(value, dict) else {}


def _list(parent, key: str) -> list:
    value = parent.get(key) if isinstance(parent, dict) else None
    return value if isinstance(value, list) else []


def _read_str(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_kickoff(value) -> datetime:
    """Parse an ISO-8601 kickoff. Naive timestamps are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        raise FixtureParseError("missing kickoff date")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise FixtureParseError(f"invalid kickoff date: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_fixture(row) -> Fixture:
    """
    Validate one API-Football /fixtures row into a Fixture.

    Raises:
        FixtureParseError: row is not an object or has no usable kickoff.
    """
    if not isinstance(row, dict):
        raise FixtureParseError("fixture row is not an object", row)

    if not isinstance(row.get("fixture"), dict):
        raise FixtureParseError("fixture node is not an object", row)

    fixture_node = row["fixture"]
    teams_node = _node(row, "teams")
    goals_node = _node(row, "goals")
    league_node = _node(row, "league")
    status_node = _node(fixture_node, "status")
    venue_node = _node(fixture_node, "venue")
    home_node = _node(teams_node, "home")
    away_node = _node(teams_node, "away")

    try:
        kickoff_at = parse_kickoff(fixture_node.get("date"))
    except FixtureParseError as e:
        raise FixtureParseError(e.reason, row) from e

    home_name = _read_str(home_node.get("name")) or "HOME"
    away_name = _read_str(away_node.get("name")) or "AWAY"

    raw_id = fixture_node.get("id")
    if _read_int(raw_id) is not None:
        fixture_id = str(_read_int(raw_id))
    elif _read_str(raw_id):
        fixture_id = _read_str(raw_id)
    else:
        # Stable synthetic id when the provider omits one
        fixture_id = f"{home_name}-{away_name}-{kickoff_at.isoformat()}"

    return Fixture(
        id=fixture_id,
        kickoff_at=kickoff_at,
        status_short=(_read_str(status_node.get("short")) or "NS").upper(),
        status_long=_read_str(status_node.get("long")),
        elapsed=_read_int(status_node.get("elapsed")),
        venue=_read_str(venue_node.get("name")),
        home_name=home_name,
        away_name=away_name,
        home_logo_url=_read_str(home_node.get("logo")),
        away_logo_url=_read_str(away_node.get("logo")),
        home_goals=_read_int(goals_node.get("home")),
        away_goals=_read_int(goals_node.get("away")),
        round=_read_str(league_node.get("round")),
    )


def parse_standings(payload) -> list[StandingRow]:
    """Flatten /standings response groups into rows. Malformed rows are skipped."""
    rows: list[StandingRow] = []
    if not isinstance(payload, dict):
        return rows

    for entry in _list(payload, "response"):
        league_node = _node(entry, "league")
        league_name = _read_str(league_node.get("name"))
        for group in _list(league_node, "standings"):
            if not isinstance(group, list):
                continue
            for row in group:
                if not isinstance(row, dict):
                    continue
                rank = _read_int(row.get("rank"))
                points = _read_int(row.get("points"))
                team_name = _read_str(_node(row, "team").get("name"))
                if rank is None or points is None or not team_name:
                    continue
                rows.append(StandingRow(rank=rank, team_name=team_name, points=points, league_name=league_name))

    rows.sort(key=lambda r: (r.rank, -r.points))
    return rows


class FixtureProvider(ABC):
    """Abstract base class for fixture sources."""

    @abstractmethod
    async def fetch_fixtures(self, scope: CompetitionScope, period: Optional[str] = None) -> list[Fixture]:
        """
        Fetch fixtures for a competition scope.

        Args:
            scope: League, season and stage.
            period: Provider round id. None means a date window around today.

        Returns:
            Fixtures sorted by kickoff. Empty on any failure.
        """
        pass

    @abstractmethod
    async def fetch_rounds(self, scope: CompetitionScope) -> list[str]:
        """Raw provider round ids for a scope. Empty on any failure."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
