"""
Periodic maintenance over a whole collection.

One pass, against a single shared ``now``:
  1. Rescore every pin.
  2. Commit hidden flags for pins at or over the downvote threshold.
  3. Count tier membership (Classics, Trending) and pins whose last activity
     fell out of the Recent window.
  4. Optionally strip transient scoring provenance (``scoreChange``,
     ``scoreEvents``, ``scoreLastCalculated``) before storage.

A failure inside the pass is recorded in ``MaintenanceReport.errors`` and
the input pins are returned untouched, so a caller that persists the result
never writes a half-maintained collection.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from pin_lifecycle.config import LifecycleConfig, MaintenanceConfig
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.scoring.engine import update_all_pin_scores
from pin_lifecycle.taxonomy.pin_taxonomy import Tier
from pin_lifecycle.tiering.classifier import apply_hidden_flags, classify_pins
from pin_lifecycle.utils.time_utils import days_ago, utcnow

logger = logging.getLogger(__name__)

_PROVENANCE_FIELDS = ("score_change", "score_events", "score_last_calculated")


@dataclass
class MaintenanceReport:
    """Counts from one maintenance pass.

    Attributes:
        timestamp:       ``now`` used for the pass.
        pins_processed:  Input collection size.
        scores_updated:  Pins whose stored score changed.
        expired_pins:    Pins with no activity inside the Recent window.
        classics:        Visible Classics members after the pass.
        trending:        Visible Trending members after the pass.
        newly_hidden:    Pins hidden by this pass.
        errors:          Failure messages; non-empty means pins were not changed.
        duration_ms:     Wall-clock time of the pass.
    """

    timestamp:      datetime
    pins_processed: int
    scores_updated: int = 0
    expired_pins:   int = 0
    classics:       int = 0
    trending:       int = 0
    newly_hidden:   int = 0
    errors:         list[str] = field(default_factory=list)
    duration_ms:    float = 0.0

    @property
    def succeeded(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class MaintenanceSchedule:
    next_run_at: datetime
    last_run_at: Optional[datetime]
    is_overdue:  bool


def perform_maintenance(
    pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
    strip_provenance: bool = True,
) -> tuple[list[Pin], MaintenanceReport]:
    """Run one maintenance pass.

    Args:
        pins:             Collection to maintain.
        config:           Lifecycle thresholds.
        now:              Reference instant shared by every step.
        strip_provenance: Drop transient scoring fields from the output.

    Returns:
        ``(maintained_pins, report)``. On failure ``maintained_pins`` is the
        input list and ``report.errors`` says why.
    """
    config = config or LifecycleConfig()
    now = now or utcnow()
    t0 = time.monotonic()
    report = MaintenanceReport(timestamp=now, pins_processed=len(pins))

    logger.info("Starting maintenance over %d pins", len(pins))
    try:
        rescored = update_all_pin_scores(pins, config, now)
        report.scores_updated = sum(
            1 for before, after in zip(pins, rescored) if before.score != after.score
        )

        flagged = apply_hidden_flags(rescored, config)
        report.newly_hidden = sum(
            1 for before, after in zip(rescored, flagged) if after.hidden and not before.hidden
        )

        report.expired_pins = sum(
            1 for p in flagged
            if days_ago(p.last_endorsed_at or p.timestamp, now) > config.recent_window_days
        )

        for assignment in classify_pins(flagged, config, now):
            visible = assignment.visible_tiers
            report.classics += int(Tier.CLASSICS in visible)
            report.trending += int(Tier.TRENDING in visible)

        maintained = _strip_provenance(flagged) if strip_provenance else flagged

    except Exception as exc:
        logger.exception("Maintenance failed; pins left unchanged")
        report.errors.append(str(exc))
        maintained = pins

    report.duration_ms = round((time.monotonic() - t0) * 1000, 3)
    logger.info(
        "Maintenance done in %.1fms: %d rescored, %d newly hidden, %d expired from Recent",
        report.duration_ms, report.scores_updated, report.newly_hidden, report.expired_pins,
        extra={"rescored": report.scores_updated, "newly_hidden": report.newly_hidden},
    )
    return maintained, report


def is_maintenance_needed(
    last_run_at: Optional[datetime],
    now: Optional[datetime] = None,
    interval_hours: int = MaintenanceConfig().interval_hours,
) -> bool:
    """True when maintenance never ran or ran ``interval_hours`` or more ago."""
    if last_run_at is None:
        return True
    now = now or utcnow()
    return now - last_run_at >= timedelta(hours=interval_hours)


def get_maintenance_schedule(
    last_run_at: Optional[datetime],
    now: Optional[datetime] = None,
    interval_hours: int = MaintenanceConfig().interval_hours,
) -> MaintenanceSchedule:
    """Next due time and overdue flag for the maintenance cadence."""
    now = now or utcnow()
    interval = timedelta(hours=interval_hours)
    next_run = (last_run_at + interval) if last_run_at is not None else now
    return MaintenanceSchedule(
        next_run_at=next_run,
        last_run_at=last_run_at,
        is_overdue=is_maintenance_needed(last_run_at, now, interval_hours),
    )


def _strip_provenance(pins: list[Pin]) -> list[Pin]:
    cleared = dict.fromkeys(_PROVENANCE_FIELDS)
    return [p.model_copy(update=cleared) for p in pins]
