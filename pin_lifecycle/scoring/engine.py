"""
Per-pin score synthesis, percentile ranking and forecasting.

Pins persist summary counters, not an interaction ledger, so the engine
synthesizes a proxy event list from those counters and feeds it through
``decay.compute_score``:

    1. creation          endorsement at ``timestamp``        (if inside the trending window)
    2. last endorsement  endorsement at ``lastEndorsedAt``   (if distinct from creation
                                                             and inside the window)
    3. renewals          up to 3 renewal events when ``recentEndorsements > 1``,
                         spaced 2 days apart walking forward from creation
    4. downvote          one downvote event ~7 days after creation when ``downvotes > 0``

Events older than ``trending_window_days`` are dropped, so the score is a
short-horizon "heat" signal; long-term standing is captured by the
Classics tier instead.

Every function is pure: given the same pin, config and ``now`` it returns
the same result and never mutates its input.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pin_lifecycle.config import LifecycleConfig
from pin_lifecycle.models.pin import Pin, ScoreEvent
from pin_lifecycle.scoring.decay import compute_score, decay, get_event_weight
from pin_lifecycle.taxonomy.pin_taxonomy import ScoreEventType
from pin_lifecycle.utils.time_utils import days_ago, days_before, utcnow

MAX_SYNTHESIZED_RENEWALS = 3
RENEWAL_SPACING_DAYS = 2
DOWNVOTE_OFFSET_DAYS = 7

# |scoreChange| above this is reported as rising / falling.
TREND_CHANGE_THRESHOLD = 0.1

TREND_RISING = "rising"
TREND_FALLING = "falling"
TREND_STABLE = "stable"


@dataclass(frozen=True)
class ScoreCalculation:
    """Result of scoring one pin.

    Attributes:
        current_score:   Freshly computed score.
        previous_score:  Score stored on the pin before this calculation (0 if none).
        change:          ``current_score - previous_score``.
        events:          Synthesized events the score was computed from.
        last_calculated: ``now`` used for the calculation.
    """

    current_score:   float
    previous_score:  float
    change:          float
    events:          list[ScoreEvent] = field(default_factory=list)
    last_calculated: Optional[datetime] = None


@dataclass(frozen=True)
class ScoreInsights:
    """Where a pin stands relative to its population."""

    percentile:  int
    is_trending: bool
    trend:       str
    rank:        int
    total_pins:  int


# ── Event synthesis ───────────────────────────────────────────────────────────


def synthesize_events(
    pin: Pin,
    config: LifecycleConfig,
    now: datetime,
) -> list[ScoreEvent]:
    """Build the proxy event list for ``pin`` from its summary counters."""
    window = config.trending_window_days
    events: list[ScoreEvent] = []
    age = days_ago(pin.timestamp, now)

    if age <= window:
        events.append(_event(ScoreEventType.ENDORSEMENT, pin.timestamp, age))

    if pin.last_endorsed_at is not None and pin.last_endorsed_at != pin.timestamp:
        since_endorsed = days_ago(pin.last_endorsed_at, now)
        if since_endorsed <= window:
            events.append(
                _event(ScoreEventType.ENDORSEMENT, pin.last_endorsed_at, since_endorsed)
            )

    recent = pin.recent_endorsements or 0
    if recent > 1:
        for i in range(min(recent - 1, MAX_SYNTHESIZED_RENEWALS)):
            renewal_age = max(0, age - i * RENEWAL_SPACING_DAYS)
            if renewal_age <= window:
                events.append(
                    _event(ScoreEventType.RENEWAL, days_before(now, renewal_age), renewal_age)
                )

    if (pin.downvotes or 0) > 0:
        downvote_age = max(0, age - DOWNVOTE_OFFSET_DAYS)
        if downvote_age <= window:
            events.append(
                _event(ScoreEventType.DOWNVOTE, days_before(now, downvote_age), downvote_age)
            )

    return events


def _event(event_type: ScoreEventType, timestamp: datetime, age: int) -> ScoreEvent:
    return ScoreEvent(
        type=event_type,
        timestamp=timestamp,
        weight=get_event_weight(event_type),
        days_ago=age,
    )


# ── Scoring ───────────────────────────────────────────────────────────────────


def calculate_pin_score(
    pin: Pin,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> ScoreCalculation:
    """Compute a fresh score for ``pin`` without modifying it.

    Args:
        pin:    Pin to score.
        config: Lifecycle thresholds; defaults to ``LifecycleConfig()``.
        now:    Scoring instant; defaults to the current UTC time.

    Returns:
        ``ScoreCalculation`` with the new score and its provenance.
    """
    config = config or LifecycleConfig()
    now = now or utcnow()

    events = synthesize_events(pin, config, now)
    current = compute_score(events, config.decay_half_life_days)
    previous = pin.score or 0.0

    return ScoreCalculation(
        current_score=current,
        previous_score=previous,
        change=current - previous,
        events=events,
        last_calculated=now,
    )


def update_pin_score(
    pin: Pin,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> Pin:
    """Return a copy of ``pin`` with refreshed score fields.

    When the recomputed score equals the stored one, the stored
    ``score_change`` is kept, so applying this twice with the same ``now``
    yields the same pin.
    """
    calc = calculate_pin_score(pin, config, now)

    change = calc.change
    if pin.score is not None and math.isclose(calc.current_score, pin.score, abs_tol=1e-12):
        change = pin.score_change if pin.score_change is not None else 0.0

    return pin.model_copy(
        update={
            "score": calc.current_score,
            "score_change": change,
            "score_events": calc.events,
            "score_last_calculated": calc.last_calculated,
        }
    )


def update_all_pin_scores(
    pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> list[Pin]:
    """Rescore every pin against a single shared ``now``."""
    now = now or utcnow()
    return [update_pin_score(p, config, now) for p in pins]


# ── Ranking ───────────────────────────────────────────────────────────────────


class ScorePopulation:
    """Sorted snapshot of a collection's positive scores.

    Build one per ranking pass and reuse it for every pin in the pass;
    percentile lookups are then a bisect instead of a sort.
    """

    def __init__(self, scores: list[float]) -> None:
        self._ascending = sorted(s for s in scores if s and s > 0)

    @classmethod
    def from_pins(cls, pins: list[Pin]) -> "ScorePopulation":
        return cls([p.score or 0.0 for p in pins])

    def __len__(self) -> int:
        return len(self._ascending)

    def percentile(self, score: Optional[float]) -> int:
        """Position of ``score`` down the descending list, 0 (top) to 100."""
        if not score or score <= 0 or not self._ascending:
            return 100
        # Index of the first descending entry <= score == count of entries > score.
        higher = len(self._ascending) - bisect_right(self._ascending, score)
        if higher == len(self._ascending):
            return 100
        return _round_half_up(higher / len(self._ascending) * 100)


def get_score_percentile(pin: Pin, all_pins: list[Pin]) -> int:
    """Return how far down the descending score list ``pin`` sits (0–100).

    0 means top of the list. Only positive scores form the population;
    a pin with no positive score sits at the bottom (100).
    """
    return ScorePopulation.from_pins(all_pins).percentile(pin.score)


def is_pin_trending(
    pin: Pin,
    all_pins: list[Pin],
    percentile_threshold: Optional[int] = None,
    config: Optional[LifecycleConfig] = None,
) -> bool:
    """True if the pin's score percentile is within the trending threshold.

    ``percentile_threshold`` wins over ``config.trending_percentile_threshold``.
    """
    if percentile_threshold is None:
        percentile_threshold = (config or LifecycleConfig()).trending_percentile_threshold
    return get_score_percentile(pin, all_pins) <= percentile_threshold


def get_score_insights(
    pin: Pin,
    all_pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
) -> ScoreInsights:
    """Summarize a pin's percentile, trend direction and rank."""
    percentile = get_score_percentile(pin, all_pins)
    threshold = (config or LifecycleConfig()).trending_percentile_threshold

    trend = TREND_STABLE
    if pin.score_change is not None and abs(pin.score_change) > TREND_CHANGE_THRESHOLD:
        trend = TREND_RISING if pin.score_change > 0 else TREND_FALLING

    own = pin.score or 0.0
    return ScoreInsights(
        percentile=percentile,
        is_trending=percentile <= threshold,
        trend=trend,
        rank=sum(1 for p in all_pins if (p.score or 0.0) > own) + 1,
        total_pins=len(all_pins),
    )


# ── Forecasting and advice ────────────────────────────────────────────────────


def predict_future_score(
    pin: Pin,
    days_in_future: float,
    config: Optional[LifecycleConfig] = None,
) -> float:
    """Project the stored score ``days_in_future`` days ahead assuming no activity."""
    if not pin.score:
        return 0.0
    config = config or LifecycleConfig()
    return pin.score * decay(days_in_future, config.decay_half_life_days)


def get_score_recommendations(
    pin: Pin,
    config: Optional[LifecycleConfig] = None,
) -> list[str]:
    """Return advisory, rule-based suggestions for lifting a pin's score.

    Advisory only: nothing here feeds back into scoring or tiering.
    """
    config = config or LifecycleConfig()
    recommendations: list[str] = []

    if not pin.score or pin.score < 1.0:
        recommendations.append("Pin needs more activity to build trending score")

    if pin.score and pin.score < 2.0:
        recommendations.append("Consider encouraging more endorsements to boost trending")

    if pin.downvotes and pin.downvotes > 0:
        recommendations.append(
            "Downvotes are reducing trending score - address community concerns"
        )

    recent = pin.recent_endorsements or 0
    if recent < config.trending_min_burst:
        needed = config.trending_min_burst - recent
        recommendations.append(
            f"Needs {needed} more recent endorsements to qualify for Trending"
        )

    return recommendations


# ── Helper ────────────────────────────────────────────────────────────────────

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
