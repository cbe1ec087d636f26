"""
Tests for pin_lifecycle/lifecycle/activity.py.

What we test
------------
create_pin():
  - New pins are migrated, endorsed once, scored at ``now``.
  - Category is inferred when not given; ids are generated when omitted.
record_endorsement():
  - total and recent both grow while the last endorsement is recent.
  - A stale last endorsement restarts the recent count at 1.
record_renewal():
  - recent grows but never above total; lastEndorsedAt moves to now.
record_downvote():
  - Hides exactly at the threshold; hiding is one-way.
"""

from __future__ import annotations

import logging

import pytest

from pin_lifecycle.config import LifecycleConfig
from pin_lifecycle.lifecycle.activity import (
    create_pin,
    record_downvote,
    record_endorsement,
    record_renewal,
)


class TestCreatePin:
    def test_new_pin(self, now, lifecycle_config):
        pin = create_pin(40.0, -73.9, "Blue Bottle", lifecycle_config, now, pin_id="new")
        assert pin.id == "new"
        assert pin.place_id == "place_new"
        assert pin.category == "general"
        assert pin.total_endorsements == 1
        assert pin.recent_endorsements == 1
        assert pin.downvotes == 0
        assert pin.is_hidden is False
        assert pin.timestamp == now
        assert pin.last_endorsed_at == now
        assert pin.score == pytest.approx(1.0)

    def test_category_inferred_from_tags(self, now):
        pin = create_pin(1.0, 2.0, "Lookout", now=now, tags=["Park"])
        assert pin.category == "park"

    def test_explicit_category_kept(self, now):
        pin = create_pin(1.0, 2.0, "Lookout", now=now, category="nature")
        assert pin.category == "nature"

    def test_generated_ids_unique(self, now):
        a = create_pin(1.0, 2.0, "A", now=now)
        b = create_pin(1.0, 2.0, "B", now=now)
        assert a.id != b.id
        assert a.place_id == f"place_{a.id}"


class TestEndorsement:
    def test_inside_recent_window(self, make_pin, now, lifecycle_config):
        pin = make_pin(age_days=5)
        out = record_endorsement(pin, lifecycle_config, now)
        assert out.total_endorsements == 2
        assert out.recent_endorsements == 2
        assert out.last_endorsed_at == now
        assert out.score > pin.score

    def test_stale_restarts_recent(self, make_pin, now, lifecycle_config):
        pin = make_pin(age_days=200, totalEndorsements=12, recentEndorsements=3)
        out = record_endorsement(pin, lifecycle_config, now)
        assert out.total_endorsements == 13
        assert out.recent_endorsements == 1

    def test_input_unchanged(self, make_pin, now):
        pin = make_pin()
        record_endorsement(pin, now=now)
        assert pin.total_endorsements == 1


class TestRenewal:
    def test_recent_grows(self, make_pin, now):
        pin = make_pin(totalEndorsements=4, recentEndorsements=2)
        out = record_renewal(pin, now=now)
        assert out.recent_endorsements == 3
        assert out.total_endorsements == 4
        assert out.last_endorsed_at == now

    def test_capped_at_total(self, make_pin, now):
        pin = make_pin(totalEndorsements=3, recentEndorsements=3)
        assert record_renewal(pin, now=now).recent_endorsements == 3


class TestDownvote:
    def test_below_threshold_visible(self, make_pin, now):
        out = record_downvote(make_pin(downvotes=2), now=now)
        assert out.downvotes == 3
        assert out.is_hidden is False

    def test_hidden_at_threshold(self, make_pin, now, caplog):
        caplog.set_level(logging.INFO, logger="pin_lifecycle")
        out = record_downvote(make_pin(downvotes=9), now=now)
        assert out.downvotes == 10
        assert out.is_hidden is True
        assert "hidden" in caplog.text

    def test_custom_threshold(self, make_pin, now):
        config = LifecycleConfig(downvote_hide_threshold=3)
        assert record_downvote(make_pin(downvotes=2), config, now).is_hidden is True

    def test_hiding_is_one_way(self, make_pin, now):
        out = record_downvote(make_pin(downvotes=0, isHidden=True), now=now)
        assert out.is_hidden is True
