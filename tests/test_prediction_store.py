"""Unit tests for the scoped in-memory prediction store."""

import pytest

from fulbito.etl.competitions import APERTURA, CLAUSURA, CompetitionScope
from fulbito.predictions.store import ScopedPredictionStore, validate_prediction
from fulbito.scoring import PredictionValue

APERTURA_SCOPE = CompetitionScope(128, "2026", APERTURA)
CLAUSURA_SCOPE = CompetitionScope(128, "2026", CLAUSURA)


class TestValidatePrediction:

    def test_accepts_non_negative_ints_and_none(self):
        assert validate_prediction(PredictionValue(0, 5)) == PredictionValue(0, 5)
        assert validate_prediction(PredictionValue(None, 2)) == PredictionValue(None, 2)

    @pytest.mark.parametrize("bad", [-1, 1.5, "2", True])
    def test_rejects_invalid_sides(self, bad):
        with pytest.raises(ValueError):
            validate_prediction(PredictionValue(bad, 0))


class TestScopedPredictionStore:

    def test_ensure_default_is_idempotent(self):
        store = ScopedPredictionStore()
        store.ensure_default("fecha1", APERTURA_SCOPE, "m1", PredictionValue(1, 0))
        store.ensure_default("fecha1", APERTURA_SCOPE, "m1", PredictionValue(3, 3))
        assert store.get_predictions("fecha1", APERTURA_SCOPE) == {"m1": PredictionValue(1, 0)}

    def test_ensure_default_empty_value(self):
        store = ScopedPredictionStore()
        store.ensure_default("fecha1", APERTURA_SCOPE, "m1")
        assert store.get_predictions("fecha1", APERTURA_SCOPE)["m1"] == PredictionValue()

    def test_set_overwrites(self):
        store = ScopedPredictionStore()
        store.ensure_default("fecha1", APERTURA_SCOPE, "m1", PredictionValue(1, 0))
        store.set_prediction("fecha1", APERTURA_SCOPE, "m1", PredictionValue(2, 2))
        assert store.get_predictions("fecha1", APERTURA_SCOPE)["m1"] == PredictionValue(2, 2)

    def test_invalid_set_leaves_state_unchanged(self):
        store = ScopedPredictionStore()
        store.set_prediction("fecha1", APERTURA_SCOPE, "m1", PredictionValue(1, 0))
        with pytest.raises(ValueError):
            store.set_prediction("fecha1", APERTURA_SCOPE, "m1", PredictionValue(-3, 0))
        assert store.get_predictions("fecha1", APERTURA_SCOPE)["m1"] == PredictionValue(1, 0)

    def test_scopes_isolated(self):
        store = ScopedPredictionStore()
        store.set_prediction("fecha1", APERTURA_SCOPE, "m1", PredictionValue(1, 0))
        assert store.get_predictions("fecha1", CLAUSURA_SCOPE) == {}
        assert store.get_predictions("fecha2", APERTURA_SCOPE) == {}

    def test_reads_are_copies(self):
        store = ScopedPredictionStore()
        store.set_prediction("fecha1", APERTURA_SCOPE, "m1", PredictionValue(1, 0))

        snapshot = store.get_predictions("fecha1", APERTURA_SCOPE)
        snapshot["m2"] = PredictionValue(9, 9)
        clone = store.clone_predictions("fecha1", APERTURA_SCOPE)
        clone.pop("m1")

        assert store.get_predictions("fecha1", APERTURA_SCOPE) == {"m1": PredictionValue(1, 0)}

    def test_clear(self):
        store = ScopedPredictionStore()
        store.set_prediction("fecha1", APERTURA_SCOPE, "m1", PredictionValue(1, 0))
        store.clear()
        assert store.get_predictions("fecha1", APERTURA_SCOPE) == {}
