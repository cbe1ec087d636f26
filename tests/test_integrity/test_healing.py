"""
Tests for pin_lifecycle/integrity/healing.py.

What we test
------------
heal_pin_data():
  - Clean, migrated pins pass through untouched.
  - Latitude 120 is clamped to 90 and logged as a format issue.
  - Non-numeric or missing coordinates remove the record.
  - Missing id / timestamp / title are synthesized; bad tags are reset.
  - Legacy pins are migrated.
  - Records still failing validation are removed.
  - Duplicate ids: first survives, the rest are counted and dropped.
  - Never raises; healed + removed + duplicates == input length.
check_data_integrity():
  - Healthy vs. blocking severities; recommendations; read-only.
  - Records the loader would reject (bad dates, wrong types, bad tags)
    are blocking.
"""

from __future__ import annotations

import copy
from datetime import timedelta

import pytest

from pin_lifecycle.integrity.healing import (
    DEFAULT_TITLE,
    check_data_integrity,
    heal_pin_data,
)
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.taxonomy.pin_taxonomy import IssueSeverity, IssueType


def _conserved(outcome, n):
    return (
        len(outcome.healed_pins) + len(outcome.removed_pins) + outcome.result.duplicates == n
    )


class TestHealPinData:
    def test_clean_pins_untouched(self, make_record, now):
        records = [make_record("a"), make_record("b")]
        outcome = heal_pin_data(records, now=now)
        assert [p.id for p in outcome.healed_pins] == ["a", "b"]
        assert outcome.removed_pins == []
        assert outcome.issues == []
        assert outcome.healed_pins[0] == Pin.from_record(records[0])

    def test_latitude_clamped(self, make_record, now):
        outcome = heal_pin_data([make_record(latitude=120.0)], now=now)
        assert len(outcome.healed_pins) == 1
        assert outcome.removed_pins == []
        assert outcome.healed_pins[0].latitude == 90.0
        (issue,) = outcome.issues
        assert issue.type == IssueType.FORMAT
        assert issue.severity == IssueSeverity.MEDIUM
        assert issue.fixable

    def test_longitude_clamped(self, make_record, now):
        outcome = heal_pin_data([make_record(longitude=-200)], now=now)
        assert outcome.healed_pins[0].longitude == -180.0

    @pytest.mark.parametrize("lat", ["north", None, True, float("nan")])
    def test_bad_latitude_removed(self, make_record, now, lat):
        outcome = heal_pin_data([make_record(latitude=lat)], now=now)
        assert outcome.healed_pins == []
        assert len(outcome.removed_pins) == 1
        assert outcome.issues[-1].severity == IssueSeverity.CRITICAL
        assert not outcome.issues[-1].fixable

    def test_missing_id_synthesized(self, make_record, now):
        outcome = heal_pin_data([make_record(drop=("id",))], now=now)
        pin = outcome.healed_pins[0]
        assert pin.id == f"healed-{int(now.timestamp() * 1000)}-0"
        assert outcome.issues[0].description == "Generated missing pin ID"
        assert outcome.issues[0].severity == IssueSeverity.HIGH

    def test_missing_timestamp_synthesized(self, make_record, now):
        outcome = heal_pin_data([make_record(drop=("timestamp", "lastEndorsedAt"))], now=now)
        assert outcome.healed_pins[0].timestamp == now

    def test_missing_title_synthesized(self, make_record, now):
        outcome = heal_pin_data([make_record(drop=("title", "locationName"))], now=now)
        assert outcome.healed_pins[0].title == DEFAULT_TITLE

    def test_malformed_tags_reset(self, make_record, now):
        outcome = heal_pin_data([make_record(tags="coffee,cake")], now=now)
        assert outcome.healed_pins[0].tags == []
        assert outcome.issues[0].type == IssueType.FORMAT
        assert outcome.issues[0].severity == IssueSeverity.LOW

    def test_legacy_pin_migrated(self, make_record, now):
        record = make_record("old", drop=("placeId", "score", "totalEndorsements"))
        outcome = heal_pin_data([record], now=now)
        assert outcome.result.migrated == 1
        assert outcome.healed_pins[0].place_id == "place_old"
        assert outcome.issues[0].type == IssueType.MIGRATION

    def test_validation_failure_removed(self, make_record, now):
        future = (now + timedelta(days=2)).isoformat()
        outcome = heal_pin_data([make_record(timestamp=future, lastEndorsedAt=future)], now=now)
        assert outcome.healed_pins == []
        assert outcome.issues[-1].description.startswith("Validation failed:")

    def test_unreadable_field_removed(self, make_record, now):
        outcome = heal_pin_data([make_record(timestamp="not a date")], now=now)
        assert outcome.healed_pins == []
        assert "timestamp" in outcome.issues[-1].description

    def test_duplicates_first_wins(self, make_record, now):
        records = [
            make_record("dup", title="First"),
            make_record("other"),
            make_record("dup", title="Second"),
        ]
        outcome = heal_pin_data(records, now=now)
        assert [p.id for p in outcome.healed_pins] == ["dup", "other"]
        assert outcome.healed_pins[0].title == "First"
        assert outcome.result.duplicates == 1
        assert outcome.removed_pins == []
        assert outcome.issues[-1].type == IssueType.DUPLICATE
        assert len(outcome.healed_pins) + len(outcome.removed_pins) < len(records)
        assert _conserved(outcome, len(records))

    def test_never_raises_on_garbage(self, make_record, now):
        records = [
            None, 5, "pin", [], {}, {"latitude": float("inf"), "longitude": 0},
            make_record("ok"), make_record("bad-score", score="lots"),
        ]
        outcome = heal_pin_data(records, now=now)
        assert [p.id for p in outcome.healed_pins] == ["ok"]
        assert len(outcome.removed_pins) == 7
        assert _conserved(outcome, len(records))

    def test_input_not_mutated(self, make_record, now):
        records = [make_record(latitude=120.0, drop=("id",))]
        snapshot = copy.deepcopy(records)
        heal_pin_data(records, now=now)
        assert records == snapshot

    def test_summary(self, make_record, now):
        outcome = heal_pin_data([make_record("a"), None], now=now)
        assert outcome.result.healed == 1
        assert outcome.result.removed == 1
        assert outcome.result.summary.startswith("Healed 1 pins, removed 1 corrupted")
        assert outcome.result.issues == [i.description for i in outcome.issues]


class TestCheckDataIntegrity:
    def test_healthy(self, make_record):
        report = check_data_integrity([make_record("a"), make_record("b")])
        assert report.healthy
        assert report.issues == []
        assert report.recommendations == []

    def test_missing_id_is_blocking(self, make_record):
        report = check_data_integrity([make_record(drop=("id",))])
        assert not report.healthy
        assert report.blocking_issues[0].severity == IssueSeverity.CRITICAL
        assert any("critical" in r for r in report.recommendations)

    def test_missing_timestamp_is_blocking(self, make_record):
        report = check_data_integrity([make_record(drop=("timestamp",))])
        assert not report.healthy
        assert report.blocking_issues[0].severity == IssueSeverity.HIGH

    def test_migration_only_is_healthy(self, make_record):
        report = check_data_integrity([make_record(drop=("placeId",))])
        assert report.healthy
        assert report.issues[0].type == IssueType.MIGRATION
        assert "Migrate 1 pins to new system" in report.recommendations

    def test_non_object_is_blocking(self):
        assert not check_data_integrity(["junk"]).healthy

    def test_out_of_range_is_not_blocking(self, make_record):
        report = check_data_integrity([make_record(latitude=95.0)])
        assert report.healthy
        assert report.issues[0].type == IssueType.FORMAT

    def test_unparseable_timestamp_is_blocking(self, make_record):
        report = check_data_integrity([make_record("a", timestamp="not-a-date")])
        assert not report.healthy
        issue = report.blocking_issues[0]
        assert issue.severity == IssueSeverity.CRITICAL
        assert issue.pin_id == "a"
        assert "timestamp" in issue.description

    def test_wrong_typed_counter_is_blocking(self, make_record):
        report = check_data_integrity([make_record("a", downvotes="many")])
        assert not report.healthy
        assert report.blocking_issues[0].severity == IssueSeverity.CRITICAL

    def test_malformed_tags_are_blocking(self, make_record):
        report = check_data_integrity([make_record("a", tags="coffee,tea")])
        assert not report.healthy
        assert [i.type for i in report.blocking_issues] == [IssueType.FORMAT]
        assert report.blocking_issues[0].severity == IssueSeverity.HIGH

    def test_heal_clears_unreadable_record(self, make_record, now):
        records = [make_record("a"), make_record("b", timestamp="not-a-date")]
        assert not check_data_integrity(records).healthy
        outcome = heal_pin_data(records, now=now)
        assert [p.id for p in outcome.healed_pins] == ["a"]
        assert check_data_integrity([p.to_record() for p in outcome.healed_pins]).healthy

    def test_duplicates_reported(self, make_record):
        report = check_data_integrity([make_record("a"), make_record("a")])
        assert report.healthy
        assert report.issues[-1].type == IssueType.DUPLICATE

    def test_read_only(self, make_record):
        records = [make_record(drop=("id",))]
        snapshot = copy.deepcopy(records)
        check_data_integrity(records)
        assert records == snapshot
