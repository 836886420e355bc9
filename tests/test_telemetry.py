"""Tests for Sentry event redaction, Prometheus output and in-process counters."""

from fulbito.state import _incr, get_telemetry_snapshot
from fulbito.telemetry import get_metrics_text, record_provider_request, record_score_map_cache
from fulbito.telemetry.sentry import REDACTED, init_sentry, redact_event


class TestRedactEvent:

    def test_headers_and_cookies(self):
        event = {
            "request": {
                "headers": {"Cookie": "fulbito_session=abc", "x-apisports-key": "k", "Accept": "application/json"},
                "cookies": {"fulbito_session": "abc"},
            }
        }
        request = redact_event(event)["request"]
        assert request["headers"]["Cookie"] == REDACTED
        assert request["headers"]["x-apisports-key"] == REDACTED
        assert request["headers"]["Accept"] == "application/json"
        assert request["cookies"] == REDACTED

    def test_query_secrets_and_body(self):
        event = {"request": {"query_string": "groupId=g1&token=abc&key=xyz", "data": {"home": 2}}}
        request = redact_event(event)["request"]
        assert request["query_string"] == f"groupId=g1&token={REDACTED}&key={REDACTED}"
        assert "data" not in request

    def test_event_without_request(self):
        assert redact_event({"message": "boom"}) == {"message": "boom"}


class TestInitSentry:

    def test_disabled_without_dsn(self, settings):
        settings.SENTRY_DSN = ""
        assert init_sentry(settings) is False


class TestMetrics:

    def test_metrics_text_contains_series(self):
        record_provider_request("api_football", "fixtures", 200, 12.5)
        record_score_map_cache(True)
        content, content_type = get_metrics_text()
        assert "fulbito_provider_requests_total" in content
        assert 'fulbito_score_map_cache_total{result="hit"}' in content
        assert content_type.startswith("text/plain")


class TestCounters:

    def test_increment_and_snapshot_copy(self):
        before = get_telemetry_snapshot()["prediction_upserts"]
        _incr("prediction_upserts")
        snapshot = get_telemetry_snapshot()
        snapshot["prediction_upserts"] = -1
        assert get_telemetry_snapshot()["prediction_upserts"] == before + 1
