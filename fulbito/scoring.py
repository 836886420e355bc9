"""
Prediction scoring.

Rules (fixed, basis of every ranking):
- exact score            -> 3
- right winner or draw   -> 1
- anything else          -> 0

Callers exclude incomplete predictions (null home or away) before scoring.
"""

from dataclasses import dataclass
from typing import Optional

from fulbito.config import Settings

SCORE_RULES = {
    "exact": 3,
    "outcome": 1,
    "miss": 0,
}


@dataclass(frozen=True)
class Score:
    """Authoritative result for a fixture (final or current)."""

    home: int
    away: int


@dataclass(frozen=True)
class PredictionValue:
    """A user's guess. Either side may be None while the guess is incomplete."""

    home: Optional[int] = None
    away: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.home is not None and self.away is not None


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def calculate_points(prediction, score) -> int:
    """
    Points for one prediction against one score.

    Both arguments only need integer `home` / `away` attributes.

    Examples:
        (2,1) vs (2,1) -> 3
        (3,1) vs (1,0) -> 1
        (1,1) vs (0,0) -> 1
        (0,2) vs (2,0) -> 0
    """
    if prediction.home == score.home and prediction.away == score.away:
        return SCORE_RULES["exact"]

    if _sign(prediction.home - prediction.away) == _sign(score.home - score.away):
        return SCORE_RULES["outcome"]

    return SCORE_RULES["miss"]


# =============================================================================
# TONES (UI badge sentiment, configuration only)
# =============================================================================


@dataclass(frozen=True)
class PointsTones:
    exact: str = "positive"
    outcome: str = "warning"
    miss: str = "danger"
    final: str = "neutral"

    @classmethod
    def from_settings(cls, settings: Settings) -> "PointsTones":
        return cls(
            exact=settings.POINTS_TONE_EXACT,
            outcome=settings.POINTS_TONE_OUTCOME,
            miss=settings.POINTS_TONE_MISS,
            final=settings.POINTS_TONE_FINAL,
        )


DEFAULT_TONES = PointsTones()


def points_tone(points: int, status: str, tones: PointsTones = DEFAULT_TONES) -> str:
    """Badge tone for a points value. Settled (final) matches are always neutral."""
    if status == "final":
        return tones.final
    if points == SCORE_RULES["exact"]:
        return tones.exact
    if points == SCORE_RULES["outcome"]:
        return tones.outcome
    return tones.miss
