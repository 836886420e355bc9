"""HTTP tests for the core and prode routers with in-memory upstreams."""

import pytest
from fastapi.testclient import TestClient

from conftest import NOW, FakeProvider, FakeRepository, build_fixture, build_membership
from fulbito.config import get_settings
from fulbito.dependencies import get_fixture_service, get_provider, get_record_store, get_repository
from fulbito.etl.base import StandingRow
from fulbito.etl.competitions import LeagueOption
from fulbito.main import app
from fulbito.matches.service import FixtureService
from fulbito.records.models import GroupMember, PredictionRecord
from fulbito.records.pocketbase import RecordStoreError
from fulbito.security import mint_session_token


class FakeRecordStore:
    def __init__(self, ok=True):
        self.ok = ok

    async def probe(self):
        return {"configured": True, "ok": self.ok, "status_code": 200 if self.ok else 503, "latency_ms": 1, "error": None}


def _round_one():
    return [
        build_fixture("fx-final", kickoff="2026-02-13T20:00:00+00:00", status="FT", home_goals=2, away_goals=1),
        build_fixture("fx-live", kickoff="2026-02-14T11:00:00+00:00", status="2H", home_goals=1, away_goals=0, elapsed=70),
        build_fixture("fx-locked", kickoff="2026-02-14T11:30:00+00:00"),
        build_fixture("fx-next", kickoff="2026-02-15T20:00:00+00:00", home="Racing Club", away="Independiente"),
        build_fixture("fx-next2", kickoff="2026-02-16T20:00:00+00:00", home="Talleres", away="Belgrano"),
    ]


def _pred(user_id, fixture_id, home, away, period="fecha1", group_id="g1", submitted_at=None):
    return PredictionRecord(
        user_id=user_id,
        group_id=group_id,
        fixture_id=fixture_id,
        period=period,
        home=home,
        away=away,
        submitted_at=submitted_at,
    )


@pytest.fixture
def provider():
    return FakeProvider(
        {
            "fecha1": _round_one(),
            "fecha2": [build_fixture("fx-later", kickoff="2026-02-22T20:00:00+00:00")],
        }
    )


@pytest.fixture
def repository():
    repo = FakeRepository()
    repo.memberships = [build_membership("g1", "Los Galácticos", joined_at="2026-01-10T12:00:00Z")]
    repo.members = {"g1": [GroupMember("u1", "Ana"), GroupMember("u2", "Bruno")]}
    repo.predictions = {
        "g1": [
            _pred("u1", "fx-final", 2, 1),
            _pred("u1", "fx-live", 1, 0),
            _pred("u1", "fx-next", 1, 1),
            _pred("u2", "fx-final", 1, 0),
        ]
    }
    return repo


@pytest.fixture
def record_store():
    return FakeRecordStore()


@pytest.fixture
def client(settings, provider, repository, record_store):
    service = FixtureService(provider, settings=settings, now=lambda: NOW)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_fixture_service] = lambda: service
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_record_store] = lambda: record_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def authed(client, settings):
    client.cookies.set(settings.SESSION_COOKIE_NAME, mint_session_token("u1", "pb-token", settings))
    return client


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------


class TestCoreRoutes:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "provider_configured": True, "record_store_configured": True}

    def test_ready_requires_token_when_configured(self, client, settings):
        settings.HEALTHCHECK_TOKEN = "ready-token"
        assert client.get("/health/ready").status_code == 401
        response = client.get("/health/ready", headers={"Authorization": "Bearer ready-token"})
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_ready_degraded(self, client, record_store):
        record_store.ok = False
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_telemetry(self, client, settings):
        settings.METRICS_BEARER_TOKEN = "ops"
        assert client.get("/telemetry").status_code == 401

        response = client.get("/telemetry", headers={"Authorization": "Bearer ops"})
        body = response.json()
        assert response.status_code == 200
        assert set(body) == {
            "score_map_cache",
            "fixtures_source",
            "default_fecha_reason",
            "fixture_parse_errors",
            "prediction_upserts",
        }
        assert set(body["default_fecha_reason"]) == {"live", "upcoming", "completed", "first", "empty"}

    def test_metrics_auth(self, client, settings):
        assert client.get("/metrics").status_code == 200

        settings.METRICS_BEARER_TOKEN = "ops"
        response = client.get("/metrics", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.text == "# Unauthorized: Invalid token\n"


# ---------------------------------------------------------------------------
# Provider health / leagues / fechas / fixture
# ---------------------------------------------------------------------------


class TestCatalogRoutes:

    def test_provider_health_is_public(self, client):
        response = client.get("/api/health/provider")
        assert response.status_code == 200
        assert response.json()["provider"] == "api-football"

    def test_provider_health_down(self, client, provider):
        provider.probe_report["ok"] = False
        assert client.get("/api/health/provider").status_code == 503

    def test_requires_session(self, client):
        for path in ("/api/leagues", "/api/fechas?leagueId=128", "/api/fixture", "/api/home", "/api/profile"):
            assert client.get(path).status_code == 401, path

    def test_leagues(self, authed, provider):
        provider.leagues = [
            LeagueOption(
                id=128,
                name="Liga Profesional",
                season="2026",
                competition_key="128-2026-apertura",
                competition_name="Apertura",
                competition_stage="apertura",
                status="ongoing",
            )
        ]
        response = authed.get("/api/leagues")
        assert response.status_code == 200
        assert response.json()["leagues"][0]["competition_key"] == "128-2026-apertura"

    def test_fechas(self, authed):
        response = authed.get("/api/fechas", params={"leagueId": "128", "season": "2026", "competitionStage": "apertura"})
        body = response.json()
        assert response.status_code == 200
        assert body["fechas"] == [{"id": "fecha1", "label": "Fecha 1"}, {"id": "fecha2", "label": "Fecha 2"}]
        assert body["default_fecha"] == "fecha1"

    @pytest.mark.parametrize("league_id", [None, "", "abc", "0"])
    def test_fechas_bad_league(self, authed, league_id):
        params = {} if league_id is None else {"leagueId": league_id}
        assert authed.get("/api/fechas", params=params).status_code == 400

    def test_fixture_cards(self, authed):
        body = authed.get("/api/fixture").json()
        assert body["period"] == "fecha1"
        assert body["period_label"] == "Fecha 1"
        assert [card["ymd"] for card in body["cards"]] == ["2026-02-13", "2026-02-14", "2026-02-15", "2026-02-16"]
        assert body["cards"][1]["accent"] == "live"

    def test_fixture_no_groups(self, authed, repository):
        repository.memberships = []
        body = authed.get("/api/fixture").json()
        assert body["cards"] == []
        assert body["period"] == ""


# ---------------------------------------------------------------------------
# Pronosticos
# ---------------------------------------------------------------------------


class TestPronosticos:

    def test_get(self, authed):
        response = authed.get("/api/pronosticos", params={"groupId": "g1"})
        body = response.json()
        matches = {m["id"]: m for m in body["matches"]}

        assert response.status_code == 200
        assert body["period"] == "fecha1"
        assert [m["status"] for m in body["matches"]] == ["live", "upcoming", "upcoming", "upcoming", "final"]
        assert matches["fx-final"]["points"]["value"] == 3
        assert matches["fx-locked"]["is_locked"] is True
        assert body["predictions"]["fx-next"] == {"home": 1, "away": 1}

    def test_get_no_groups(self, authed, repository):
        repository.memberships = []
        assert authed.get("/api/pronosticos").status_code == 409

    def _post(self, client, **body):
        payload = {"groupId": "g1", "period": "fecha1", "matchId": "fx-next2", "home": 1, "away": 0}
        payload.update(body)
        return client.post("/api/pronosticos", json=payload)

    def test_post_requires_session(self, client):
        assert self._post(client).status_code == 401

    def test_post_clamps_and_upserts(self, authed, repository):
        response = self._post(authed, home=25, away="x")
        assert response.status_code == 200
        assert response.json()["prediction"] == {"home": 20, "away": None}
        assert repository.upserts[-1] == {
            "user_id": "u1",
            "group_id": "g1",
            "fixture_id": "fx-next2",
            "period": "fecha1",
            "home": 20,
            "away": None,
        }

    def test_post_truncates_floats(self, authed):
        response = self._post(authed, home=2.7, away=-3)
        assert response.json()["prediction"] == {"home": 2, "away": 0}

    @pytest.mark.parametrize("token", [b"NaN", b"Infinity", b"-Infinity"])
    def test_post_non_finite_goals_stored_as_null(self, authed, repository, token):
        content = b'{"groupId":"g1","period":"fecha1","matchId":"fx-next2","home":' + token + b',"away":0}'
        response = authed.post("/api/pronosticos", content=content, headers={"content-type": "application/json"})
        assert response.status_code == 200
        assert response.json()["prediction"] == {"home": None, "away": 0}
        assert repository.upserts[-1]["home"] is None

    def test_post_missing_ids(self, authed):
        assert self._post(authed, matchId="").status_code == 400

    def test_post_invalid_body(self, authed):
        response = authed.post("/api/pronosticos", content=b"not json", headers={"content-type": "application/json"})
        assert response.status_code == 400
        assert authed.post("/api/pronosticos", json=[1, 2]).status_code == 400

    def test_post_not_member(self, authed, repository):
        assert self._post(authed, groupId="g9").status_code == 403
        assert repository.upserts == []

    def test_post_member_without_group_record(self, authed, repository):
        repository.active_groups = {"g1", "g2"}
        assert self._post(authed, groupId="g2").status_code == 403

    def test_post_final_match_rejected(self, authed):
        assert self._post(authed, matchId="fx-final").status_code == 400
        assert self._post(authed, matchId="missing").status_code == 400

    def test_post_after_kickoff_locked(self, authed):
        assert self._post(authed, matchId="fx-locked").status_code == 409


# ---------------------------------------------------------------------------
# Home / leaderboard / profile
# ---------------------------------------------------------------------------


class TestHome:

    def test_home(self, authed):
        body = authed.get("/api/home").json()

        assert body["group_cards"] == [
            {
                "id": "g1",
                "title": "Los Galácticos",
                "subtitle": "TEMP 2026 · 2 JUG",
                "rank": "#1",
                "points": "6",
                "primary": True,
            }
        ]
        assert body["summary"] == {"pending_predictions": 1, "live_matches": 1, "my_rank": 1, "my_points": 6}
        assert [card["ymd"] for card in body["live_cards"]] == ["2026-02-14", "2026-02-15"]
        assert [match["id"] for match in body["live_matches"]] == ["fx-live"]
        assert body["live_matches"][0]["status"] == "live"

    def test_home_no_groups(self, authed, repository):
        repository.memberships = []
        body = authed.get("/api/home").json()
        assert body["group_cards"] == []
        assert body["summary"] is None
        assert body["live_matches"] == []


class TestLeaderboard:

    def test_posiciones(self, authed):
        body = authed.get("/api/leaderboard").json()
        assert body["group_label"] == "Los Galácticos"
        assert body["mode"] == "posiciones"
        assert body["period_label"] == "Global acumulado"
        assert [(r["name"], r["points"], r["predictions"], r["highlight"]) for r in body["rows"]] == [
            ("Ana", 6, 2, True),
            ("Bruno", 1, 1, False),
        ]
        assert body["group_stats"] is None

    def test_stats(self, authed, provider):
        provider.standings = [StandingRow(rank=1, team_name="Boca Juniors", points=50, league_name="Liga Test")]
        body = authed.get("/api/leaderboard", params={"mode": "stats"}).json()

        assert body["rows"][0]["points"] == 100
        stats = body["group_stats"]
        assert stats["member_count"] == 2
        assert stats["best_fecha"]["period"] == "fecha1"
        assert stats["best_fecha"]["user_name"] == "Ana"
        assert stats["best_fecha"]["points"] == 6
        assert stats["world_benchmark"]["leader_points"] == 50

    def test_single_period(self, authed):
        body = authed.get("/api/leaderboard", params={"period": "fecha2"}).json()
        assert body["period_label"] == "Fecha 2"
        assert all(row["points"] == 0 for row in body["rows"])

    def test_rules_block_maps_to_409(self, authed, repository):
        repository.predictions_error = RecordStoreError(403, "Only admins can perform this action.")
        response = authed.get("/api/leaderboard")
        assert response.status_code == 409
        assert "PocketBase rules" in response.json()["detail"]

    def test_other_record_store_errors_map_to_502(self, authed, repository):
        repository.predictions_error = RecordStoreError(500, "boom")
        assert authed.get("/api/leaderboard").status_code == 502

    def test_no_groups(self, authed, repository):
        repository.memberships = []
        body = authed.get("/api/leaderboard").json()
        assert body["group_label"] == "Sin grupo activo"
        assert body["rows"] == []


class TestProfile:

    def test_profile(self, authed, provider, repository):
        provider.fixtures_by_round["fecha1"] = [
            build_fixture("fx-1", status="FT", home="Boca", away="River", home_goals=1, away_goals=0),
            build_fixture("fx-2", status="FT", home="Racing", away="Independiente", home_goals=2, away_goals=1),
        ]
        repository.memberships = [
            build_membership("g1", "Los Galácticos", joined_at="2026-01-10T12:00:00Z"),
            build_membership("g2", "Los Titanes", joined_at="2026-01-09T12:00:00Z"),
        ]
        repository.predictions = {
            "g1": [_pred("u1", "fx-1", 1, 0, submitted_at="2026-02-17T10:00:00Z")],
            "g2": [
                _pred("u1", "fx-2", 0, 0, group_id="g2", submitted_at="2026-02-16T10:00:00Z"),
                _pred("u2", "fx-3", 1, 1, group_id="g2", submitted_at="2026-02-18T10:00:00Z"),
            ],
        }

        body = authed.get("/api/profile").json()

        assert body["stats"] == {"total_points": 3, "accuracy_pct": 50, "groups": 2}
        assert [item["label"] for item in body["recent_activity"]] == [
            "Pronóstico: Boca vs River",
            "Pronóstico: Racing vs Independiente",
            "Te uniste a Los Galácticos",
        ]

    def test_profile_no_groups(self, authed, repository):
        repository.memberships = []
        body = authed.get("/api/profile").json()
        assert body["stats"] == {"total_points": 0, "accuracy_pct": 0, "groups": 0}
