"""
Validation engine: structural, business-rule and cross-record checks.

Validation never raises. Every check returns a ``ValidationResult`` with
``errors`` (disqualifying) and ``warnings`` (advisory); callers branch on
``is_valid``.

Checks operate on the persisted record shape (camelCase keys), so they can
judge raw, possibly corrupt records loaded from the store as well as
``Pin`` models (which are converted with ``to_record()`` first).

Errors
------
  - missing id / coordinates / name / timestamp
  - non-numeric or out-of-domain coordinates
  - unparseable or future timestamp; ``lastEndorsedAt`` before ``timestamp``
  - counters that are not non-negative integers; ``recent > total``;
    ``total < min_endorsements``; ``downvotes > max_downvotes``
  - non-numeric or negative score
  - ``placeId`` / ``category`` / ``score`` / ``totalEndorsements`` missing
    while the active rule set requires them

Warnings
--------
  - very old timestamp, unusually high score, oversized title / description /
    tag list, downvote ratio above 50%, unrecognized category, malformed
    media URL
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Optional, Union
from urllib.parse import urlparse

from pin_lifecycle.config import LifecycleConfig, ValidationConfig
from pin_lifecycle.integrity.migration import PLACE_ID_PREFIX
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.taxonomy.pin_taxonomy import KNOWN_CATEGORIES
from pin_lifecycle.utils.time_utils import parse_timestamp, utcnow

PinLike = Union[Pin, Mapping[str, Any]]

_URL_SCHEMES_WITHOUT_HOST = frozenset({"data", "blob", "file"})
_COUNTER_FIELDS = ("totalEndorsements", "recentEndorsements", "downvotes")
_NUMERIC_FIELDS = ("latitude", "longitude", "score") + _COUNTER_FIELDS


# ── Result types ──────────────────────────────────────────────────────────────


@dataclass
class ValidationResult:
    """Outcome of one validation pass.

    Attributes:
        is_valid: True when ``errors`` is empty.
        errors:   Disqualifying problems.
        warnings: Advisory problems.
    """

    is_valid: bool
    errors:   list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PinValidationRules:
    """Rule set for ``validate_pin``.

    The ``require_*`` flags make the migrated-schema fields mandatory; healing
    relaxes them because it migrates legacy pins itself.
    """

    require_place_id:       bool  = True
    require_category:       bool  = True
    require_score:          bool  = True
    require_endorsements:   bool  = True
    max_downvotes:          int   = 100
    min_endorsements:       int   = 0
    max_score_warning:      float = 1000.0
    max_title_length:       int   = 200
    max_description_length: int   = 1000
    max_tags:               int   = 20
    very_old_years:         int   = 10

    @classmethod
    def from_config(cls, config: ValidationConfig) -> "PinValidationRules":
        return cls(
            max_downvotes=config.max_downvotes,
            min_endorsements=config.min_endorsements,
            max_score_warning=config.max_score_warning,
            max_title_length=config.max_title_length,
            max_description_length=config.max_description_length,
            max_tags=config.max_tags,
            very_old_years=config.very_old_years,
        )

    def relaxed(self) -> "PinValidationRules":
        """Copy of these rules with every migrated-schema field optional."""
        return replace(
            self,
            require_place_id=False,
            require_category=False,
            require_score=False,
            require_endorsements=False,
        )


@dataclass(frozen=True)
class InvalidPin:
    """A record that failed validation, with the reasons."""

    pin:        Any
    validation: ValidationResult


@dataclass(frozen=True)
class CollectionSummary:
    total:          int
    valid:          int
    invalid:        int
    total_errors:   int
    total_warnings: int


@dataclass
class CollectionValidation:
    """Batch validation partitioned into valid / invalid records."""

    valid_pins:   list[Any]
    invalid_pins: list[InvalidPin]
    summary:      CollectionSummary


@dataclass
class SystemValidationReport:
    """Config, consistency and per-pin validation rolled into one report."""

    system_config:    ValidationResult
    data_consistency: ValidationResult
    pin_collection:   CollectionValidation
    is_valid:         bool
    total_errors:     int
    total_warnings:   int
    recommendations:  list[str] = field(default_factory=list)


# ── Single pin ────────────────────────────────────────────────────────────────


def validate_pin(
    pin: PinLike,
    rules: Optional[PinValidationRules] = None,
    now: Optional[datetime] = None,
) -> ValidationResult:
    """Validate one pin (``Pin`` or raw record) against ``rules``.

    Args:
        pin:   Pin model or persisted record.
        rules: Rule set; defaults to ``PinValidationRules()``.
        now:   Reference instant for future / age checks.

    Returns:
        ``ValidationResult``; never raises.
    """
    rules = rules or PinValidationRules()
    now = now or utcnow()
    errors: list[str] = []
    warnings: list[str] = []

    record = _as_record(pin)
    if record is None:
        return ValidationResult(is_valid=False, errors=["Pin record is not an object"])

    # ── Required fields ───────────────────────────────────────────────────────
    pin_id = record.get("id")
    if not isinstance(pin_id, str) or not pin_id:
        errors.append("Pin ID is required")

    if not _non_empty_str(record.get("title")) and not _non_empty_str(record.get("locationName")):
        errors.append("Pin name is required")

    # ── Coordinates ───────────────────────────────────────────────────────────
    lat, lng = record.get("latitude"), record.get("longitude")
    if lat is None or lng is None:
        errors.append("Pin coordinates are required")
    for name, value, bound in (("Latitude", lat, 90.0), ("Longitude", lng, 180.0)):
        if value is None:
            continue
        if not is_number(value):
            errors.append(f"{name} must be a number")
        elif not -bound <= value <= bound:
            errors.append(f"{name} must be between {-bound:g} and {bound:g}")

    # ── Timestamps ────────────────────────────────────────────────────────────
    created = None
    raw_ts = record.get("timestamp")
    if raw_ts is None or raw_ts == "":
        errors.append("Pin timestamp is required")
    else:
        created = parse_timestamp(raw_ts)
        if created is None:
            errors.append("Invalid timestamp format")
        elif created > now:
            errors.append("Timestamp cannot be in the future")
        elif now - created > timedelta(days=365 * rules.very_old_years):
            warnings.append(f"Pin timestamp is very old (>{rules.very_old_years} years)")

    raw_endorsed = record.get("lastEndorsedAt")
    if raw_endorsed is not None:
        endorsed = parse_timestamp(raw_endorsed)
        if endorsed is None:
            errors.append("Invalid last endorsed timestamp format")
        elif created is not None and endorsed < created:
            errors.append("Last endorsed cannot be before creation timestamp")

    # ── Migrated-schema fields ────────────────────────────────────────────────
    if rules.require_place_id and not _non_empty_str(record.get("placeId")):
        errors.append("Place ID is required")
    if rules.require_category and not record.get("category"):
        errors.append("Category is required")
    if rules.require_score and record.get("score") is None:
        errors.append("Score is required")
    if rules.require_endorsements and record.get("totalEndorsements") is None:
        errors.append("Total endorsements are required")

    # ── Counters ──────────────────────────────────────────────────────────────
    counters: dict[str, int] = {}
    for key in _COUNTER_FIELDS:
        value = record.get(key)
        if value is None:
            continue
        if not _is_int(value) or value < 0:
            errors.append(f"{key} must be a non-negative integer")
        else:
            counters[key] = int(value)

    total = counters.get("totalEndorsements")
    recent = counters.get("recentEndorsements")
    downvotes = counters.get("downvotes")

    if total is not None and total < rules.min_endorsements:
        errors.append(f"Total endorsements must be at least {rules.min_endorsements}")
    if downvotes is not None and downvotes > rules.max_downvotes:
        errors.append(f"Downvotes cannot exceed {rules.max_downvotes}")
    if recent is not None and total is not None and recent > total:
        errors.append("Recent endorsements cannot exceed total endorsements")

    # ── Score ─────────────────────────────────────────────────────────────────
    score = record.get("score")
    if score is not None:
        if not is_number(score):
            errors.append("Score must be a valid number")
        elif score < 0:
            errors.append("Score cannot be negative")
        elif score > rules.max_score_warning:
            warnings.append("Score is unusually high")

    # ── Content ───────────────────────────────────────────────────────────────
    category = record.get("category")
    if category is not None:
        if not isinstance(category, str):
            errors.append("Category must be a string")
        elif category and category not in KNOWN_CATEGORIES:
            warnings.append(f"Category '{category}' is not in the standard list")

    title = record.get("title")
    if isinstance(title, str) and len(title) > rules.max_title_length:
        warnings.append(f"Pin title is very long (>{rules.max_title_length} characters)")

    description = record.get("description")
    if isinstance(description, str) and len(description) > rules.max_description_length:
        warnings.append(
            f"Pin description is very long (>{rules.max_description_length} characters)"
        )

    tags = record.get("tags")
    if tags is not None:
        if not isinstance(tags, list):
            errors.append("Tags must be a list")
        elif len(tags) > rules.max_tags:
            warnings.append(f"Pin has many tags (>{rules.max_tags})")

    if total is not None and downvotes is not None and total + downvotes > 0:
        if downvotes / (total + downvotes) > 0.5:
            warnings.append("Pin has high downvote ratio (>50%)")

    media_url = record.get("mediaUrl")
    if media_url and not _looks_like_url(media_url):
        warnings.append("Media URL format may be invalid")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# ── Collections ───────────────────────────────────────────────────────────────


def validate_pin_collection(
    pins: list[Any],
    rules: Optional[PinValidationRules] = None,
    now: Optional[datetime] = None,
) -> CollectionValidation:
    """Validate a batch, partitioning it into valid and invalid records."""
    now = now or utcnow()
    valid: list[Any] = []
    invalid: list[InvalidPin] = []
    total_errors = total_warnings = 0

    for pin in pins:
        result = validate_pin(pin, rules, now)
        if result.is_valid:
            valid.append(pin)
        else:
            invalid.append(InvalidPin(pin=pin, validation=result))
        total_errors += len(result.errors)
        total_warnings += len(result.warnings)

    return CollectionValidation(
        valid_pins=valid,
        invalid_pins=invalid,
        summary=CollectionSummary(
            total=len(pins),
            valid=len(valid),
            invalid=len(invalid),
            total_errors=total_errors,
            total_warnings=total_warnings,
        ),
    )


def validate_data_consistency(pins: list[Any]) -> ValidationResult:
    """Cross-record checks over a whole collection.

    - duplicate ``id`` (error) and shared ``placeId`` (warning; several pins
      may legitimately reference one place)
    - orphaned references: ``originalPinId`` naming a pin not in the
      collection, or a derived ``place_<id>`` key whose source pin is gone
    - field-type consistency for numeric fields, ``tags`` and ``isHidden``
    """
    errors: list[str] = []
    warnings: list[str] = []
    records = [r for r in (_as_record(p) for p in pins) if r is not None]

    ids = [r.get("id") for r in records if isinstance(r.get("id"), str)]
    id_set = set(ids)
    duplicate_ids = sum(n - 1 for n in Counter(ids).values() if n > 1)
    if duplicate_ids:
        errors.append(f"Found {duplicate_ids} duplicate pin IDs")

    place_counts = Counter(
        r["placeId"] for r in records if _non_empty_str(r.get("placeId"))
    )
    shared = {pid: n for pid, n in place_counts.items() if n > 1}
    if shared:
        warnings.append(
            f"Found {sum(shared.values())} pins sharing {len(shared)} place IDs"
        )

    orphaned = 0
    for r in records:
        original = r.get("originalPinId")
        if _non_empty_str(original) and original not in id_set:
            orphaned += 1
            continue
        place_id = r.get("placeId")
        if _non_empty_str(place_id) and place_id.startswith(PLACE_ID_PREFIX):
            if place_id[len(PLACE_ID_PREFIX):] not in id_set:
                orphaned += 1
    if orphaned:
        warnings.append(f"Found {orphaned} pins with orphaned place or pin references")

    for key in _NUMERIC_FIELDS:
        bad = sum(1 for r in records if r.get(key) is not None and not is_number(r[key]))
        if bad:
            errors.append(f"Found {bad} pins with invalid {key} types")

    bad_tags = sum(1 for r in records if r.get("tags") is not None and not isinstance(r["tags"], list))
    if bad_tags:
        errors.append(f"Found {bad_tags} pins with invalid tags types")

    bad_hidden = sum(
        1 for r in records if r.get("isHidden") is not None and not isinstance(r["isHidden"], bool)
    )
    if bad_hidden:
        errors.append(f"Found {bad_hidden} pins with invalid isHidden types")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_system_config(config: Optional[LifecycleConfig] = None) -> ValidationResult:
    """Sanity-check lifecycle thresholds.

    Every threshold must be a positive integer and the trending percentile
    must lie in 1–100. Window ordering problems are warnings.
    """
    config = config or LifecycleConfig()
    errors: list[str] = []
    warnings: list[str] = []

    for key, value in config.model_dump().items():
        if not _is_int(value):
            errors.append(f"Invalid configuration value for {key}: {value!r}")
        elif value <= 0:
            errors.append(f"Configuration value for {key} must be positive: {value}")

    if config.trending_percentile_threshold > 100:
        errors.append(
            "trending_percentile_threshold must be at most 100: "
            f"{config.trending_percentile_threshold}"
        )

    if config.recent_window_days < config.trending_window_days:
        warnings.append("Recent window should be larger than trending window")

    if config.classics_min_age_days < config.recent_window_days:
        warnings.append("Classics minimum age should be larger than recent window")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def get_system_validation_report(
    pins: list[Any],
    config: Optional[LifecycleConfig] = None,
    rules: Optional[PinValidationRules] = None,
    now: Optional[datetime] = None,
) -> SystemValidationReport:
    """Run config, consistency and per-pin validation and summarize."""
    system_config = validate_system_config(config)
    consistency = validate_data_consistency(pins)
    collection = validate_pin_collection(pins, rules, now)

    total_errors = (
        len(system_config.errors) + len(consistency.errors) + collection.summary.total_errors
    )
    total_warnings = (
        len(system_config.warnings)
        + len(consistency.warnings)
        + collection.summary.total_warnings
    )

    recommendations: list[str] = []
    if collection.summary.invalid:
        recommendations.append(f"Fix {collection.summary.invalid} invalid pins")
    if consistency.errors:
        recommendations.append("Resolve data consistency issues")
    if system_config.errors or system_config.warnings:
        recommendations.append("Review system configuration")

    return SystemValidationReport(
        system_config=system_config,
        data_consistency=consistency,
        pin_collection=collection,
        is_valid=total_errors == 0,
        total_errors=total_errors,
        total_warnings=total_warnings,
        recommendations=recommendations,
    )


# ── Helpers ───────────────────────────────────────────────────────────────────


def is_number(value: Any) -> bool:
    """True for finite int/float values (``bool`` is not a number here)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _as_record(pin: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(pin, Pin):
        return pin.to_record()
    if isinstance(pin, Mapping):
        return pin
    return None


def _looks_like_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    if not parsed.scheme:
        return False
    return bool(parsed.netloc) or parsed.scheme in _URL_SCHEMES_WITHOUT_HOST
