"""
Tests for pin_lifecycle/integrity/migration.py.

What we test
------------
migrate_pin_to_new_system():
  - Already-migrated pins come back unchanged (same object).
  - Legacy pins get a derived placeId and seeded counters.
  - recentEndorsements seeds to 0 outside the Recent window.
  - Applying it twice equals applying it once.
infer_category():
  - Precedence: explicit field > tag keyword > text keyword > "general".
needs_pin_migration() / migrate_all_pins().
"""

from __future__ import annotations

import pytest

from pin_lifecycle.integrity.migration import (
    infer_category,
    migrate_all_pins,
    migrate_pin_to_new_system,
    needs_pin_migration,
)
from pin_lifecycle.models.pin import Pin

_LEGACY_DROP = (
    "placeId", "category", "totalEndorsements", "recentEndorsements",
    "lastEndorsedAt", "downvotes", "score", "isHidden",
)


@pytest.fixture
def make_legacy(make_pin):
    def _make(pin_id="legacy-1", age_days=5, **overrides):
        return make_pin(pin_id, age_days=age_days, drop=_LEGACY_DROP, **overrides)
    return _make


class TestMigratePin:
    def test_already_migrated_unchanged(self, make_pin, now):
        pin = make_pin()
        assert migrate_pin_to_new_system(pin, now=now) is pin

    def test_seeds_fields(self, make_legacy, now):
        legacy = make_legacy(age_days=5)
        migrated = migrate_pin_to_new_system(legacy, now=now)
        assert migrated.place_id == "place_legacy-1"
        assert migrated.total_endorsements == 1
        assert migrated.recent_endorsements == 1
        assert migrated.last_endorsed_at == legacy.timestamp
        assert migrated.score == 1.0
        assert migrated.downvotes == 0
        assert migrated.is_hidden is False

    def test_outside_recent_window(self, make_legacy, now):
        migrated = migrate_pin_to_new_system(make_legacy(age_days=120), now=now)
        assert migrated.recent_endorsements == 0

    def test_idempotent(self, make_legacy, now):
        once = migrate_pin_to_new_system(make_legacy(), now=now)
        assert migrate_pin_to_new_system(once, now=now) == once

    def test_keeps_unknown_attributes(self, make_legacy, now):
        legacy = make_legacy(stickers=["heart"])
        migrated = migrate_pin_to_new_system(legacy, now=now)
        assert migrated.to_record()["stickers"] == ["heart"]

    def test_does_not_mutate_input(self, make_legacy, now):
        legacy = make_legacy()
        migrate_pin_to_new_system(legacy, now=now)
        assert legacy.place_id is None


class TestInferCategory:
    def _pin(self, **fields):
        base = {
            "id": "x", "latitude": 0.0, "longitude": 0.0,
            "timestamp": "2026-01-01T00:00:00Z", "title": "Somewhere",
        }
        base.update(fields)
        return Pin.from_record(base)

    def test_known_category_field_wins(self):
        pin = self._pin(category="park", types=["cafe"], tags=["museum"])
        assert infer_category(pin) == "park"

    def test_place_type_beats_tags(self):
        assert infer_category(self._pin(types=["cafe"], tags=["museum"])) == "coffee"

    def test_unmapped_type_falls_through_to_tags(self):
        assert infer_category(self._pin(types=["spaceport"], tags=["Bar"])) == "bar"

    def test_tags_beat_text(self):
        pin = self._pin(title="Museum cafe", tags=["hotel"])
        assert infer_category(pin) == "hotel"

    @pytest.mark.parametrize("title,description,expected", [
        ("Rooftop pub", None, "bar"),
        ("Sunday stroll", "Lovely rose garden", "park"),
        ("Best food downtown", None, "restaurant"),
        ("Cafe and gallery", None, "coffee"),
        ("Quiet spot", None, "general"),
    ])
    def test_text_keywords(self, title, description, expected):
        assert infer_category(self._pin(title=title, description=description)) == expected


class TestCollection:
    def test_needs_pin_migration(self, make_pin, make_legacy):
        assert not needs_pin_migration([make_pin()])
        assert needs_pin_migration([make_pin(), make_legacy()])

    def test_migrate_all(self, make_pin, make_legacy, now):
        pins = migrate_all_pins([make_pin("a"), make_legacy("b")], now=now)
        assert [p.place_id for p in pins] == ["place_a", "place_b"]
        assert not needs_pin_migration(pins)
