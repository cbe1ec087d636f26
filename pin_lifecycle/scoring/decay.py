"""
Exponential time decay and event weights: the primitive all scoring uses.

Score formula
-------------
    score = Σ weight_i · decay(days_ago_i, half_life)
    decay(d, h) = 0.5 ** (d / h)      (1.0 for d <= 0)

Event weights (fixed)
---------------------
    endorsement  +1.0
    renewal      +0.6
    downvote     -0.3
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from pin_lifecycle.taxonomy.pin_taxonomy import ScoreEventType

EVENT_WEIGHTS: dict[ScoreEventType, float] = {
    ScoreEventType.ENDORSEMENT: 1.0,
    ScoreEventType.RENEWAL:     0.6,
    ScoreEventType.DOWNVOTE:   -0.3,
}


class WeightedEvent(Protocol):
    """Anything with a signed ``weight`` and an age in ``days_ago``."""

    weight: float
    days_ago: float


def decay(days_ago: float, half_life_days: float) -> float:
    """Return the decay factor for an event ``days_ago`` days old.

    Args:
        days_ago:       Age of the event in days. ``<= 0`` means "now".
        half_life_days: Days after which the factor halves; must be > 0.

    Returns:
        Factor in (0, 1].

    Raises:
        ValueError: If ``half_life_days`` is not positive.
    """
    if half_life_days <= 0:
        raise ValueError(f"half_life_days must be > 0, got {half_life_days}.")
    if days_ago <= 0:
        return 1.0
    return 0.5 ** (days_ago / half_life_days)


def get_event_weight(event_type: ScoreEventType | str) -> float:
    """Return the fixed weight for an event type (0.0 for unknown types)."""
    try:
        return EVENT_WEIGHTS[ScoreEventType(event_type)]
    except ValueError:
        return 0.0


def compute_score(events: Iterable[WeightedEvent], half_life_days: float) -> float:
    """Sum decayed event weights. An empty event list scores 0."""
    return float(sum(e.weight * decay(e.days_ago, half_life_days) for e in events))
