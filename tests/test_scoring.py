"""Unit tests for prediction scoring and point badge tones."""

import pytest

from fulbito.scoring import (
    DEFAULT_TONES,
    PointsTones,
    PredictionValue,
    Score,
    calculate_points,
    points_tone,
)


class TestCalculatePoints:

    @pytest.mark.parametrize(
        "prediction, score, expected",
        [
            ((2, 1), (2, 1), 3),
            ((0, 0), (0, 0), 3),
            ((3, 1), (1, 0), 1),
            ((1, 1), (0, 0), 1),
            ((0, 2), (1, 3), 1),
            ((0, 2), (2, 0), 0),
            ((1, 1), (2, 1), 0),
            ((2, 0), (1, 1), 0),
        ],
    )
    def test_rules(self, prediction, score, expected):
        assert calculate_points(PredictionValue(*prediction), Score(*score)) == expected

    def test_accepts_any_object_with_home_away(self):
        """Stored prediction records score the same way as PredictionValue."""

        class Record:
            home = 4
            away = 2

        assert calculate_points(Record(), Score(4, 2)) == 3
        assert calculate_points(Record(), Score(1, 0)) == 1

    def test_matching_score_is_always_exact(self):
        for home in range(4):
            for away in range(4):
                exact = calculate_points(PredictionValue(home, away), Score(home, away))
                assert exact == 3


class TestPredictionValue:

    def test_complete_requires_both_sides(self):
        assert PredictionValue(1, 0).is_complete
        assert not PredictionValue(1, None).is_complete
        assert not PredictionValue(None, 2).is_complete
        assert not PredictionValue().is_complete

    def test_zero_counts_as_filled(self):
        assert PredictionValue(0, 0).is_complete


class TestPointsTone:

    def test_final_is_neutral_regardless_of_points(self):
        assert points_tone(3, "final") == "neutral"
        assert points_tone(0, "final") == "neutral"

    def test_live_tones(self):
        assert points_tone(3, "live") == "positive"
        assert points_tone(1, "live") == "warning"
        assert points_tone(0, "live") == "danger"

    def test_custom_tones(self):
        tones = PointsTones(exact="green", outcome="amber", miss="red", final="grey")
        assert points_tone(3, "live", tones) == "green"
        assert points_tone(1, "live", tones) == "amber"
        assert points_tone(0, "live", tones) == "red"
        assert points_tone(3, "final", tones) == "grey"

    def test_from_settings(self, settings):
        settings.POINTS_TONE_EXACT = "ok"
        assert PointsTones.from_settings(settings).exact == "ok"
        assert DEFAULT_TONES.exact == "positive"
