"""Shared fixtures: isolated settings, fixture factory, fake provider and repository."""

from datetime import datetime, timezone
from typing import Optional

import pytest

from fulbito.config import Settings
from fulbito.etl.base import Fixture, FixtureProvider, StandingRow
from fulbito.records.models import Group, GroupMember, Membership, PredictionRecord
from fulbito.records.pocketbase import RecordStoreError

NOW = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)


def build_fixture(
    fixture_id: str,
    kickoff: str = "2026-02-15T20:00:00+00:00",
    status: str = "NS",
    home: str = "Boca Juniors",
    away: str = "River Plate",
    home_goals: Optional[int] = None,
    away_goals: Optional[int] = None,
    elapsed: Optional[int] = None,
    round_name: Optional[str] = None,
) -> Fixture:
    return Fixture(
        id=fixture_id,
        kickoff_at=datetime.fromisoformat(kickoff),
        status_short=status,
        home_name=home,
        away_name=away,
        home_goals=home_goals,
        away_goals=away_goals,
        elapsed=elapsed,
        round=round_name,
    )


class FakeProvider(FixtureProvider):
    """In-memory provider: fixtures per round id, plus canned standings/leagues/probe."""

    def __init__(self, fixtures_by_round: Optional[dict] = None, rounds: Optional[list] = None):
        self.fixtures_by_round = fixtures_by_round or {}
        self.rounds = list(self.fixtures_by_round.keys()) if rounds is None else rounds
        self.standings: list[StandingRow] = []
        self.leagues: list = []
        self.probe_report = {
            "ok": True,
            "configured": True,
            "status_code": 200,
            "fixtures": 0,
            "latency_ms": 1,
            "error": None,
        }
        self.fetch_calls: list = []

    async def fetch_fixtures(self, scope, period=None):
        self.fetch_calls.append((scope.key, period))
        return list(self.fixtures_by_round.get(period, []))

    async def fetch_rounds(self, scope):
        return list(self.rounds)

    async def fetch_leagues(self, season):
        return list(self.leagues)

    async def fetch_standings(self, scope):
        return list(self.standings)

    async def probe(self, scope, period=None):
        return dict(self.probe_report)


class FakeRepository:
    """RecordRepository stand-in keyed by group id."""

    def __init__(self):
        self.memberships: list[Membership] = []
        self.members: dict[str, list[GroupMember]] = {}
        self.predictions: dict[str, list[PredictionRecord]] = {}
        self.active_groups: Optional[set] = None
        self.predictions_error: Optional[RecordStoreError] = None
        self.upserts: list[dict] = []

    async def list_groups_for_user(self, user_id, auth_token):
        return list(self.memberships)

    async def is_active_group_member(self, user_id, group_id, auth_token):
        if self.active_groups is not None:
            return group_id in self.active_groups
        return any(m.group.id == group_id for m in self.memberships)

    async def list_group_members(self, group_id, auth_token):
        return list(self.members.get(group_id, []))

    async def list_group_members_for_groups(self, group_ids, auth_token):
        return {group_id: list(self.members.get(group_id, [])) for group_id in group_ids}

    async def list_group_predictions(self, group_id, auth_token, period=None):
        if self.predictions_error is not None:
            raise self.predictions_error
        return [p for p in self.predictions.get(group_id, []) if not period or p.period == period]

    async def list_group_predictions_for_groups(self, group_ids, auth_token, period=None):
        if self.predictions_error is not None:
            raise self.predictions_error
        return {group_id: list(self.predictions.get(group_id, [])) for group_id in group_ids}

    async def list_predictions_for_scope(self, user_id, group_id, period, auth_token):
        return [
            p for p in self.predictions.get(group_id, [])
            if p.user_id == user_id and p.period == period
        ]

    async def upsert_prediction(self, user_id, group_id, fixture_id, period, home, away, auth_token):
        self.upserts.append(
            {
                "user_id": user_id,
                "group_id": group_id,
                "fixture_id": fixture_id,
                "period": period,
                "home": home,
                "away": away,
            }
        )
        return PredictionRecord(
            user_id=user_id, group_id=group_id, fixture_id=fixture_id, period=period, home=home, away=away
        )


def build_membership(group_id: str, name: str, joined_at: Optional[str] = None, season: str = "2026") -> Membership:
    return Membership(
        group=Group(id=group_id, name=name, league_id=128, season=season, competition_stage="apertura"),
        role="member",
        joined_at=joined_at,
    )


@pytest.fixture
def settings():
    """Settings isolated from the process environment and any .env file."""
    return Settings(
        _env_file=None,
        API_FOOTBALL_BASE_URL="https://provider.test",
        API_FOOTBALL_KEY="test-key",
        API_FOOTBALL_DEFAULT_SEASON="2026",
        POCKETBASE_URL="https://records.test",
        SESSION_SECRET="test-secret",
        HEALTHCHECK_TOKEN="",
        METRICS_BEARER_TOKEN="",
    )


@pytest.fixture
def make_fixture():
    return build_fixture


@pytest.fixture
def now():
    return NOW
