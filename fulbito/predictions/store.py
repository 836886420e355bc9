"""
In-memory prediction store scoped by (round, competition scope).

Non-durable and single-process. The record store is the system of record;
this store backs local/demo flows and tests. No locking: concurrent writers
follow last-write-wins.
"""

import copy
from typing import Optional

from fulbito.etl.competitions import CompetitionScope
from fulbito.scoring import PredictionValue

PredictionsByMatch = dict[str, PredictionValue]


def validate_prediction(value: PredictionValue) -> PredictionValue:
    """
    Raises:
        ValueError: a side is not None and not a non-negative int.
    """
    for side in (value.home, value.away):
        if side is None:
            continue
        if isinstance(side, bool) or not isinstance(side, int) or side < 0:
            raise ValueError(f"Prediction goals must be non-negative integers, got {side!r}")
    return value


class ScopedPredictionStore:
    """(round, scope) -> fixture id -> PredictionValue."""

    def __init__(self):
        self._entries: dict[tuple[str, str], PredictionsByMatch] = {}

    def _bucket(self, period: str, scope: CompetitionScope) -> PredictionsByMatch:
        return self._entries.setdefault((period, scope.key), {})

    def ensure_default(
        self,
        period: str,
        scope: CompetitionScope,
        fixture_id: str,
        initial: Optional[PredictionValue] = None,
    ) -> None:
        """Seed an entry unless one exists. Idempotent."""
        bucket = self._bucket(period, scope)
        if fixture_id in bucket:
            return
        bucket[fixture_id] = validate_prediction(initial or PredictionValue())

    def set_prediction(self, period: str, scope: CompetitionScope, fixture_id: str, value: PredictionValue) -> None:
        """Unconditional overwrite."""
        self._bucket(period, scope)[fixture_id] = validate_prediction(value)

    def get_predictions(self, period: str, scope: CompetitionScope) -> PredictionsByMatch:
        """Deep copy of the bucket; callers cannot mutate store state."""
        return copy.deepcopy(self._entries.get((period, scope.key), {}))

    def clone_predictions(self, period: str, scope: CompetitionScope) -> PredictionsByMatch:
        return {
            fixture_id: PredictionValue(home=value.home, away=value.away)
            for fixture_id, value in self._entries.get((period, scope.key), {}).items()
        }

    def clear(self) -> None:
        self._entries.clear()
