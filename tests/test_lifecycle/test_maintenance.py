"""
Tests for pin_lifecycle/lifecycle/maintenance.py.

What we test
------------
perform_maintenance():
  - Counts: processed, rescored, newly hidden, expired, Classics, Trending.
  - Provenance stripped by default, kept on request.
  - A failure mid-pass returns the input pins and records the error.
is_maintenance_needed() / get_maintenance_schedule():
  - Never-run is due; the interval boundary is inclusive.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from pin_lifecycle.lifecycle.maintenance import (
    get_maintenance_schedule,
    is_maintenance_needed,
    perform_maintenance,
)


@pytest.fixture
def collection(make_pin):
    return [
        make_pin("fresh", age_days=5),
        make_pin("old", age_days=200, totalEndorsements=12),
        make_pin("disliked", age_days=5, downvotes=10),
    ]


class TestPerformMaintenance:
    def test_counts(self, collection, lifecycle_config, now):
        pins, report = perform_maintenance(collection, lifecycle_config, now)
        assert report.succeeded
        assert report.timestamp == now
        assert report.pins_processed == 3
        assert report.scores_updated == 3
        assert report.newly_hidden == 1
        assert report.expired_pins == 1
        assert report.classics == 1
        assert report.trending == 0
        assert [p.id for p in pins] == ["fresh", "old", "disliked"]

    def test_hidden_flag_committed(self, collection, lifecycle_config, now):
        pins, _ = perform_maintenance(collection, lifecycle_config, now)
        assert {p.id for p in pins if p.is_hidden} == {"disliked"}

    def test_scores_refreshed(self, collection, lifecycle_config, now):
        pins, _ = perform_maintenance(collection, lifecycle_config, now)
        by_id = {p.id: p for p in pins}
        assert by_id["old"].score == 0.0
        assert 0.0 < by_id["fresh"].score < 1.0

    def test_strips_provenance(self, collection, lifecycle_config, now):
        pins, _ = perform_maintenance(collection, lifecycle_config, now)
        assert all(p.score_events is None for p in pins)
        assert all(p.score_last_calculated is None for p in pins)

    def test_keeps_provenance_on_request(self, collection, lifecycle_config, now):
        pins, _ = perform_maintenance(collection, lifecycle_config, now, strip_provenance=False)
        assert all(p.score_last_calculated == now for p in pins)

    def test_empty_collection(self, lifecycle_config, now):
        pins, report = perform_maintenance([], lifecycle_config, now)
        assert pins == []
        assert report.succeeded
        assert report.pins_processed == 0

    def test_failure_leaves_pins_untouched(self, collection, lifecycle_config, now, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("scoring exploded")

        monkeypatch.setattr(
            "pin_lifecycle.lifecycle.maintenance.update_all_pin_scores", _boom
        )
        pins, report = perform_maintenance(collection, lifecycle_config, now)
        assert pins is collection
        assert not report.succeeded
        assert report.errors == ["scoring exploded"]


class TestSchedule:
    def test_never_run_is_due(self, now):
        assert is_maintenance_needed(None, now)

    @pytest.mark.parametrize("hours,due", [(1, False), (23, False), (24, True), (72, True)])
    def test_interval_boundary(self, now, hours, due):
        assert is_maintenance_needed(now - timedelta(hours=hours), now) is due

    def test_custom_interval(self, now):
        assert is_maintenance_needed(now - timedelta(hours=6), now, interval_hours=6)

    def test_schedule_after_recent_run(self, now):
        last = now - timedelta(hours=2)
        schedule = get_maintenance_schedule(last, now)
        assert schedule.next_run_at == last + timedelta(hours=24)
        assert schedule.last_run_at == last
        assert not schedule.is_overdue

    def test_schedule_never_run(self, now):
        schedule = get_maintenance_schedule(None, now)
        assert schedule.next_run_at == now
        assert schedule.is_overdue
