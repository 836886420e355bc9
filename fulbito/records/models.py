"""Record store DTOs (groups, memberships, predictions)."""

from dataclasses import dataclass
from typing import Optional

from fulbito.etl.competitions import CompetitionScope, competition_label


@dataclass
class Group:
    id: str
    name: str
    league_id: int
    season: str
    competition_stage: str
    slug: Optional[str] = None

    @property
    def scope(self) -> CompetitionScope:
        return CompetitionScope(league_id=self.league_id, season=self.season, stage=self.competition_stage)

    @property
    def competition_key(self) -> str:
        return f"{self.league_id}-{self.season}-{self.competition_stage}"

    @property
    def competition_name(self) -> str:
        return competition_label(self.competition_stage)


@dataclass
class GroupMember:
    user_id: str
    name: str
    role: str = "member"  # "owner" | "admin" | "member"
    joined_at: Optional[str] = None


@dataclass
class Membership:
    """A user's active membership joined with its group."""

    group: Group
    role: str
    joined_at: Optional[str] = None


@dataclass
class PredictionRecord:
    user_id: str
    group_id: str
    fixture_id: str
    period: str
    home: Optional[int]
    away: Optional[int]
    submitted_at: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.home is not None and self.away is not None
