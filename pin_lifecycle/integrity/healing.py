"""
Healing engine: repair or quarantine structurally broken pin records.

``heal_pin_data`` takes raw persisted records (anything decoded from the
store) and processes each one independently:

    1. non-object entries            → removed (critical, unfixable)
    2. missing id / timestamp        → synthesized (high, fixable)
    3. missing or non-numeric coords → removed (critical, unfixable)
       out-of-domain coords          → clamped (format, medium)
    4. missing title and name        → "Discovered Location" (medium)
       malformed tag field           → empty list (format, low)
    5. no ``placeId``                → migrated (migration, low)
    6. relaxed validation failure    → removed (critical, unfixable)
    7. duplicate id                  → later copies dropped and counted

A failure while processing one record is recorded as an issue against that
record and never aborts the batch, so ``heal_pin_data`` does not raise.

``check_data_integrity`` is the read-only counterpart used to decide whether
full healing is warranted. Anything the loader would reject counts as
blocking there, so auto-heal runs before a read can fail.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from pin_lifecycle.config import LifecycleConfig
from pin_lifecycle.integrity.migration import migrate_pin_to_new_system, needs_migration
from pin_lifecycle.integrity.validation import (
    PinValidationRules,
    is_number,
    validate_pin,
)
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.taxonomy.pin_taxonomy import (
    BLOCKING_SEVERITIES,
    IssueSeverity,
    IssueType,
)
from pin_lifecycle.utils.time_utils import to_iso, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Discovered Location"
HEALED_ID_PREFIX = "healed"

# Collections above this size get an archiving recommendation.
ARCHIVE_RECOMMENDATION_THRESHOLD = 1000


# ── Result types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DataIssue:
    """One problem found (and possibly repaired) in a pin record.

    Attributes:
        type:        Problem category.
        severity:    How bad it is; high/critical warrant full healing.
        description: Human-readable audit line.
        fixable:     True if healing repairs it in place.
        pin_id:      Id of the affected record, when it has one.
        index:       Position of the record in the input batch.
    """

    type:        IssueType
    severity:    IssueSeverity
    description: str
    fixable:     bool
    pin_id:      Optional[str] = None
    index:       Optional[int] = None

    @property
    def is_blocking(self) -> bool:
        return self.severity in BLOCKING_SEVERITIES


@dataclass(frozen=True)
class HealingResult:
    """Aggregate counts for one healing pass."""

    healed:     int
    removed:    int
    migrated:   int
    duplicates: int
    issues:     list[str] = field(default_factory=list)
    summary:    str = ""


@dataclass
class HealingOutcome:
    """Everything ``heal_pin_data`` produced.

    ``len(healed_pins) + len(removed_pins) + result.duplicates`` equals the
    input length.
    """

    healed_pins:  list[Pin]
    removed_pins: list[Any]
    issues:       list[DataIssue]
    result:       HealingResult


@dataclass
class IntegrityReport:
    """Read-only integrity check over a raw collection."""

    healthy:         bool
    issues:          list[DataIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def blocking_issues(self) -> list[DataIssue]:
        return [i for i in self.issues if i.is_blocking]


# ── Healing ───────────────────────────────────────────────────────────────────


def heal_pin_data(
    records: list[Any],
    config: Optional[LifecycleConfig] = None,
    rules: Optional[PinValidationRules] = None,
    now: Optional[datetime] = None,
) -> HealingOutcome:
    """Repair what can be repaired and quarantine the rest.

    Args:
        records: Raw decoded records; entries may be of any type.
        config:  Lifecycle thresholds used by migration.
        rules:   Base validation rules; the ``require_*`` flags are relaxed.
        now:     Reference instant for synthesized values.

    Returns:
        ``HealingOutcome``. Never raises for bad input records.
    """
    config = config or LifecycleConfig()
    rules = (rules or PinValidationRules()).relaxed()
    now = now or utcnow()

    issues: list[DataIssue] = []
    healed: list[Pin] = []
    removed: list[Any] = []
    migrated = 0

    logger.info("Healing %d pin records", len(records))

    for index, raw in enumerate(records):
        try:
            pin, was_migrated = _heal_record(raw, index, config, rules, now, issues)
        except Exception as exc:
            issues.append(_issue(
                IssueType.CORRUPTION, IssueSeverity.CRITICAL,
                f"Processing error: {exc}", fixable=False,
                record=raw, index=index,
            ))
            pin, was_migrated = None, False

        if pin is None:
            removed.append(raw if not isinstance(raw, Mapping) else dict(raw))
            logger.warning("Removed pin record at index %d: %s", index, issues[-1].description)
            continue

        migrated += int(was_migrated)
        healed.append(pin)

    unique: list[Pin] = []
    seen: set[str] = set()
    for pin in healed:
        if pin.id in seen:
            continue
        seen.add(pin.id)
        unique.append(pin)

    duplicates = len(healed) - len(unique)
    if duplicates:
        issues.append(_issue(
            IssueType.DUPLICATE, IssueSeverity.MEDIUM,
            f"Removed {duplicates} duplicate pins", fixable=True,
        ))

    summary = (
        f"Healed {len(unique)} pins, removed {len(removed)} corrupted, "
        f"migrated {migrated}, dropped {duplicates} duplicates"
    )
    logger.info(
        "Healing complete: %s", summary,
        extra={
            "healed": len(unique), "removed": len(removed),
            "migrated": migrated, "duplicates": duplicates,
        },
    )

    return HealingOutcome(
        healed_pins=unique,
        removed_pins=removed,
        issues=issues,
        result=HealingResult(
            healed=len(unique),
            removed=len(removed),
            migrated=migrated,
            duplicates=duplicates,
            issues=[i.description for i in issues],
            summary=summary,
        ),
    )


def _heal_record(
    raw: Any,
    index: int,
    config: LifecycleConfig,
    rules: PinValidationRules,
    now: datetime,
    issues: list[DataIssue],
) -> tuple[Optional[Pin], bool]:
    """Heal one record. Returns ``(pin, migrated)``; ``pin`` is None when removed."""
    if not isinstance(raw, Mapping):
        issues.append(_issue(
            IssueType.CORRUPTION, IssueSeverity.CRITICAL,
            f"Pin at index {index} is not a valid object", fixable=False, index=index,
        ))
        return None, False

    record = dict(raw)

    # ── Identity and creation time ────────────────────────────────────────────
    if not isinstance(record.get("id"), str) or not record["id"]:
        record["id"] = f"{HEALED_ID_PREFIX}-{int(now.timestamp() * 1000)}-{index}"
        issues.append(_issue(
            IssueType.CORRUPTION, IssueSeverity.HIGH,
            "Generated missing pin ID", fixable=True, record=record, index=index,
        ))

    if record.get("timestamp") is None or record.get("timestamp") == "":
        record["timestamp"] = to_iso(now)
        issues.append(_issue(
            IssueType.CORRUPTION, IssueSeverity.HIGH,
            "Generated missing timestamp", fixable=True, record=record, index=index,
        ))

    # ── Coordinates ───────────────────────────────────────────────────────────
    if not is_number(record.get("latitude")) or not is_number(record.get("longitude")):
        issues.append(_issue(
            IssueType.CORRUPTION, IssueSeverity.CRITICAL,
            "Invalid coordinates - cannot fix", fixable=False, record=record, index=index,
        ))
        return None, False

    for key, bound in (("latitude", 90.0), ("longitude", 180.0)):
        value = record[key]
        if not -bound <= value <= bound:
            record[key] = max(-bound, min(bound, value))
            issues.append(_issue(
                IssueType.FORMAT, IssueSeverity.MEDIUM,
                f"Fixed {key} out of range ({value} → {record[key]})",
                fixable=True, record=record, index=index,
            ))

    # ── Content ───────────────────────────────────────────────────────────────
    if not record.get("title") and not record.get("locationName"):
        record["title"] = DEFAULT_TITLE
        issues.append(_issue(
            IssueType.CORRUPTION, IssueSeverity.MEDIUM,
            "Generated missing title", fixable=True, record=record, index=index,
        ))

    if record.get("tags") is not None and not isinstance(record["tags"], list):
        record["tags"] = []
        issues.append(_issue(
            IssueType.FORMAT, IssueSeverity.LOW,
            "Fixed malformed tags array", fixable=True, record=record, index=index,
        ))

    try:
        pin = Pin.from_record(record)
    except ValidationError as exc:
        issues.append(_issue(
            IssueType.CORRUPTION, IssueSeverity.CRITICAL,
            f"Unreadable pin fields: {_field_errors(exc)}",
            fixable=False, record=record, index=index,
        ))
        return None, False

    # ── Migration ─────────────────────────────────────────────────────────────
    was_migrated = False
    if needs_migration(pin):
        pin = migrate_pin_to_new_system(pin, config, now)
        was_migrated = True
        issues.append(_issue(
            IssueType.MIGRATION, IssueSeverity.LOW,
            "Migrated to new pin management system", fixable=True,
            record=record, index=index,
        ))

    # ── Final validation ──────────────────────────────────────────────────────
    validation = validate_pin(pin, rules, now)
    if not validation.is_valid:
        issues.append(_issue(
            IssueType.CORRUPTION, IssueSeverity.CRITICAL,
            f"Validation failed: {', '.join(validation.errors)}",
            fixable=False, record=record, index=index,
        ))
        return None, False

    return pin, was_migrated


# ── Integrity check ───────────────────────────────────────────────────────────


def check_data_integrity(records: list[Any]) -> IntegrityReport:
    """Report integrity issues without changing anything.

    The collection is healthy when no issue is high or critical severity.
    A record with an id, a timestamp and numeric coordinates must also build
    a ``Pin``; one that does not (an unparseable date, a wrong-typed field)
    is critical, since loading it would fail.
    """
    issues: list[DataIssue] = []
    seen_ids: set[str] = set()
    duplicates = 0

    for index, raw in enumerate(records):
        if not isinstance(raw, Mapping):
            issues.append(_issue(
                IssueType.CORRUPTION, IssueSeverity.CRITICAL,
                f"Pin at index {index} is not a valid object", fixable=False, index=index,
            ))
            continue

        pin_id = raw.get("id")
        if not isinstance(pin_id, str) or not pin_id:
            issues.append(_issue(
                IssueType.CORRUPTION, IssueSeverity.CRITICAL,
                f"Pin at index {index} missing ID", fixable=True, index=index,
            ))
        elif pin_id in seen_ids:
            duplicates += 1
        else:
            seen_ids.add(pin_id)

        if raw.get("timestamp") is None or raw.get("timestamp") == "":
            issues.append(_issue(
                IssueType.CORRUPTION, IssueSeverity.HIGH,
                f"Pin {pin_id} missing timestamp", fixable=True, record=raw, index=index,
            ))

        lat, lng = raw.get("latitude"), raw.get("longitude")
        if not is_number(lat) or not is_number(lng):
            issues.append(_issue(
                IssueType.CORRUPTION, IssueSeverity.CRITICAL,
                f"Pin {pin_id} has invalid coordinates", fixable=False,
                record=raw, index=index,
            ))
        elif not (-90 <= lat <= 90 and -180 <= lng <= 180):
            issues.append(_issue(
                IssueType.FORMAT, IssueSeverity.MEDIUM,
                f"Pin {pin_id} has out-of-range coordinates", fixable=True,
                record=raw, index=index,
            ))

        tags = raw.get("tags")
        if tags is not None and not isinstance(tags, list):
            issues.append(_issue(
                IssueType.FORMAT, IssueSeverity.HIGH,
                f"Pin {pin_id} has malformed tags", fixable=True,
                record=raw, index=index,
            ))

        buildable = (
            isinstance(pin_id, str) and pin_id
            and raw.get("timestamp") not in (None, "")
            and is_number(lat) and is_number(lng)
        )
        if buildable:
            try:
                Pin.from_record({**raw, "tags": tags if isinstance(tags, list) else []})
            except ValidationError as exc:
                issues.append(_issue(
                    IssueType.CORRUPTION, IssueSeverity.CRITICAL,
                    f"Pin {pin_id} has unreadable fields: {_field_errors(exc)}",
                    fixable=False, record=raw, index=index,
                ))

        if not raw.get("placeId"):
            issues.append(_issue(
                IssueType.MIGRATION, IssueSeverity.LOW,
                f"Pin {pin_id} needs migration to new system", fixable=True,
                record=raw, index=index,
            ))

    if duplicates:
        issues.append(_issue(
            IssueType.DUPLICATE, IssueSeverity.MEDIUM,
            f"Found {duplicates} duplicate pin IDs", fixable=True,
        ))

    recommendations: list[str] = []
    critical = sum(1 for i in issues if i.severity == IssueSeverity.CRITICAL)
    migration = sum(1 for i in issues if i.type == IssueType.MIGRATION)
    if critical:
        recommendations.append(f"Fix {critical} critical data corruption issues immediately")
    if migration:
        recommendations.append(f"Migrate {migration} pins to new system")
    if duplicates:
        recommendations.append(f"Remove {duplicates} duplicate pins")
    if len(records) > ARCHIVE_RECOMMENDATION_THRESHOLD:
        recommendations.append("Consider archiving old pins for better performance")

    return IntegrityReport(
        healthy=not any(i.is_blocking for i in issues),
        issues=issues,
        recommendations=recommendations,
    )


# ── Helpers ───────────────────────────────────────────────────────────────────


def _issue(
    issue_type: IssueType,
    severity: IssueSeverity,
    description: str,
    fixable: bool,
    record: Any = None,
    index: Optional[int] = None,
) -> DataIssue:
    pin_id = record.get("id") if isinstance(record, Mapping) else None
    return DataIssue(
        type=issue_type,
        severity=severity,
        description=description,
        fixable=fixable,
        pin_id=pin_id if isinstance(pin_id, str) else None,
        index=index,
    )


def _field_errors(exc: ValidationError) -> str:
    return ", ".join(
        ".".join(str(p) for p in err["loc"]) or "record" for err in exc.errors()
    )
