"""
Tests for pin_lifecycle/scoring/engine.py.

What we test
------------
synthesize_events() / calculate_pin_score():
  - Single endorsement 5 days ago, half-life 30 → 0.5 ** (5/30) ≈ 0.89.
  - Separate last-endorsement event, renewal events, downvote event.
  - Events older than the trending window are dropped.
  - Input pin is never mutated.
update_pin_score():
  - Idempotent for an unchanged ``now``.
  - Records score_change against the previously stored score.
ScorePopulation / get_score_percentile():
  - Top pin is 0, bottom and unscored pins are 100.
  - Only positive scores form the population.
get_score_insights(), predict_future_score(), get_score_recommendations().
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from pin_lifecycle.config import LifecycleConfig
from pin_lifecycle.scoring.engine import (
    TREND_FALLING,
    TREND_RISING,
    TREND_STABLE,
    ScorePopulation,
    calculate_pin_score,
    get_score_insights,
    get_score_percentile,
    get_score_recommendations,
    is_pin_trending,
    predict_future_score,
    synthesize_events,
    update_all_pin_scores,
    update_pin_score,
)
from pin_lifecycle.taxonomy.pin_taxonomy import ScoreEventType


# ── Scoring ───────────────────────────────────────────────────────────────────

class TestCalculatePinScore:
    def test_single_endorsement_five_days_ago(self, make_pin, now):
        pin = make_pin(age_days=5)
        calc = calculate_pin_score(pin, now=now)
        assert calc.current_score == pytest.approx(0.5 ** (5 / 30))
        assert calc.current_score == pytest.approx(0.893, abs=0.005)

    def test_previous_and_change(self, make_pin, now):
        pin = make_pin(age_days=5, score=2.0)
        calc = calculate_pin_score(pin, now=now)
        assert calc.previous_score == 2.0
        assert calc.change == pytest.approx(calc.current_score - 2.0)
        assert calc.last_calculated == now

    def test_old_pin_scores_zero(self, make_pin, now):
        pin = make_pin(age_days=60)
        assert calculate_pin_score(pin, now=now).current_score == 0.0

    def test_recent_last_endorsement_adds_event(self, make_pin, now):
        pin = make_pin(age_days=10, lastEndorsedAt=(now - timedelta(days=1)).isoformat())
        events = synthesize_events(pin, LifecycleConfig(), now)
        endorsements = [e for e in events if e.type == ScoreEventType.ENDORSEMENT]
        assert [e.days_ago for e in endorsements] == [10, 1]

    def test_renewals_capped_at_three(self, make_pin, now):
        pin = make_pin(age_days=6, totalEndorsements=10, recentEndorsements=10)
        events = synthesize_events(pin, LifecycleConfig(), now)
        renewals = [e for e in events if e.type == ScoreEventType.RENEWAL]
        assert [e.days_ago for e in renewals] == [6, 4, 2]
        assert all(e.weight == 0.6 for e in renewals)

    def test_downvote_event_after_creation(self, make_pin, now):
        pin = make_pin(age_days=10, downvotes=3)
        events = synthesize_events(pin, LifecycleConfig(), now)
        downvotes = [e for e in events if e.type == ScoreEventType.DOWNVOTE]
        assert len(downvotes) == 1
        assert downvotes[0].days_ago == 3
        assert downvotes[0].weight == -0.3

    def test_does_not_mutate_input(self, make_pin, now):
        pin = make_pin(age_days=5)
        before = pin.model_dump()
        calculate_pin_score(pin, now=now)
        update_pin_score(pin, now=now)
        assert pin.model_dump() == before


class TestUpdatePinScore:
    def test_idempotent_with_same_now(self, make_pin, now):
        pin = make_pin(age_days=5, recentEndorsements=1, downvotes=1)
        once = update_pin_score(pin, now=now)
        twice = update_pin_score(once, now=now)
        assert twice == once

    def test_sets_provenance(self, make_pin, now):
        updated = update_pin_score(make_pin(age_days=5, score=1.0), now=now)
        assert updated.score == pytest.approx(0.5 ** (5 / 30))
        assert updated.score_change == pytest.approx(updated.score - 1.0)
        assert updated.score_last_calculated == now
        assert len(updated.score_events) == 1

    def test_update_all_shares_now(self, make_pin, now):
        pins = [make_pin("a", age_days=1), make_pin("b", age_days=2)]
        updated = update_all_pin_scores(pins, now=now)
        assert {p.score_last_calculated for p in updated} == {now}


# ── Ranking ───────────────────────────────────────────────────────────────────

class TestPercentile:
    @pytest.fixture
    def population(self, make_pin):
        return [make_pin(f"p{i}", score=s) for i, s in enumerate([4.0, 3.0, 2.0, 1.0])]

    def test_top_is_zero(self, population):
        assert get_score_percentile(population[0], population) == 0

    def test_middle(self, population):
        assert get_score_percentile(population[2], population) == 50

    def test_unscored_is_bottom(self, make_pin, population):
        assert get_score_percentile(make_pin("x", score=0.0), population) == 100
        assert get_score_percentile(make_pin("y", drop=("score",)), population) == 100

    def test_empty_population(self, make_pin):
        assert ScorePopulation([]).percentile(3.0) == 100

    def test_non_positive_scores_excluded(self):
        population = ScorePopulation([0.0, -1.0, 2.0, 1.0])
        assert len(population) == 2
        assert population.percentile(1.0) == 50

    def test_trending_threshold(self, population):
        assert is_pin_trending(population[0], population)
        assert is_pin_trending(population[1], population)      # 25
        assert not is_pin_trending(population[2], population)  # 50
        assert is_pin_trending(population[2], population, percentile_threshold=50)


class TestInsights:
    def test_rank_and_trend(self, make_pin):
        pins = [
            make_pin("a", score=3.0, scoreChange=0.5),
            make_pin("b", score=2.0, scoreChange=-0.5),
            make_pin("c", score=1.0, scoreChange=0.05),
        ]
        assert get_score_insights(pins[0], pins).trend == TREND_RISING
        assert get_score_insights(pins[1], pins).trend == TREND_FALLING
        insights = get_score_insights(pins[2], pins)
        assert insights.trend == TREND_STABLE
        assert insights.rank == 3
        assert insights.total_pins == 3


class TestForecastAndAdvice:
    def test_predict_future_score(self, make_pin):
        pin = make_pin(score=2.0)
        assert predict_future_score(pin, 30) == pytest.approx(1.0)
        assert predict_future_score(pin, 0) == pytest.approx(2.0)

    def test_predict_unscored(self, make_pin):
        assert predict_future_score(make_pin(drop=("score",)), 10) == 0.0

    def test_recommendations(self, make_pin):
        recs = get_score_recommendations(make_pin(score=0.5, downvotes=2, recentEndorsements=1))
        assert any("more activity" in r for r in recs)
        assert any("Downvotes" in r for r in recs)
        assert any("4 more recent endorsements" in r for r in recs)
