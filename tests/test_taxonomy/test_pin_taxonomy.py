"""Tests for pin taxonomy integrity: enums, severities, category list."""

from __future__ import annotations

import pytest

from pin_lifecycle.taxonomy.pin_taxonomy import (
    BLOCKING_SEVERITIES,
    DEFAULT_CATEGORY,
    KNOWN_CATEGORIES,
    IssueSeverity,
    IssueType,
    ScoreEventType,
    Tier,
)


class TestEnums:
    @pytest.mark.parametrize("enum_cls", [ScoreEventType, Tier, IssueType, IssueSeverity])
    def test_slug_format(self, enum_cls):
        for member in enum_cls:
            assert " " not in member.value, f"{enum_cls.__name__}.{member.name} contains spaces"
            assert member.value == member.value.lower()

    def test_three_tiers(self):
        assert {t.value for t in Tier} == {"recent", "trending", "classics"}

    def test_event_types(self):
        assert {e.value for e in ScoreEventType} == {"endorsement", "renewal", "downvote"}

    def test_str_comparison(self):
        assert Tier.TRENDING == "trending"
        assert IssueSeverity("critical") is IssueSeverity.CRITICAL


class TestSeverities:
    def test_blocking_is_high_and_critical(self):
        assert BLOCKING_SEVERITIES == {IssueSeverity.HIGH, IssueSeverity.CRITICAL}

    def test_low_and_medium_not_blocking(self):
        assert IssueSeverity.LOW not in BLOCKING_SEVERITIES
        assert IssueSeverity.MEDIUM not in BLOCKING_SEVERITIES


class TestCategories:
    def test_default_is_known(self):
        assert DEFAULT_CATEGORY in KNOWN_CATEGORIES

    def test_minimum_categories(self):
        required = {"coffee", "restaurant", "museum", "park", "bar", "hotel", "shopping"}
        missing = required - KNOWN_CATEGORIES
        assert not missing, f"Required categories missing: {missing}"

    def test_lowercase_slugs(self):
        for category in KNOWN_CATEGORIES:
            assert category == category.lower()
            assert " " not in category
