"""
Pin lifecycle orchestration over a persisted collection.

``PinLifecycleService`` is the one place where the pure engines meet the
store. It owns no global state: config, store and clock are injected, so
two services over two stores never interfere.

Auto-heal on startup
--------------------
  Step 1, Load:        Read the primary key. Absent means nothing to do.
                       An unparseable blob fails the run and nothing is
                       written; the last-known-good value stays in place.
  Step 2, Check:       ``check_data_integrity``. Only high / critical
                       issues trigger healing.
  Step 3, Heal:        ``heal_pin_data`` over the raw records.
  Step 4, Backup:      Write ``{backup_key_prefix}-{epoch_ms}`` with the
                       original records and the healing summary.
  Step 5, Swap:        Overwrite the primary key, only after Step 4 was
                       confirmed. A failed backup leaves the primary untouched.

Usage::

    from pin_lifecycle.config import load_config
    from pin_lifecycle.service import PinLifecycleService

    service = PinLifecycleService.from_config(load_config())
    run = service.auto_heal_on_startup()
    trending = service.rank(Tier.TRENDING)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from pin_lifecycle.config import AppConfig
from pin_lifecycle.integrity.healing import (
    HealingOutcome,
    IntegrityReport,
    check_data_integrity,
    heal_pin_data,
)
from pin_lifecycle.integrity.migration import migrate_all_pins, needs_migration
from pin_lifecycle.integrity.validation import (
    PinValidationRules,
    SystemValidationReport,
    get_system_validation_report,
)
from pin_lifecycle.lifecycle.activity import (
    create_pin,
    record_downvote,
    record_endorsement,
    record_renewal,
)
from pin_lifecycle.lifecycle.maintenance import (
    MaintenanceReport,
    MaintenanceSchedule,
    get_maintenance_schedule,
    is_maintenance_needed,
    perform_maintenance,
)
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.scoring.engine import update_all_pin_scores
from pin_lifecycle.storage.codec import PinDecodeError, decode_pins, encode_pins
from pin_lifecycle.storage.sqlite_store import SqlitePinStore
from pin_lifecycle.storage.store import PinStore
from pin_lifecycle.taxonomy.pin_taxonomy import Tier
from pin_lifecycle.tiering.classifier import (
    LifecycleStatistics,
    apply_hidden_flags,
    get_lifecycle_statistics,
    get_pins_for_tier,
)
from pin_lifecycle.utils.time_utils import parse_timestamp, to_iso, utcnow

logger = logging.getLogger(__name__)

AUTO_HEAL_REASON = "Auto-healing backup"
MANUAL_HEAL_REASON = "Manual healing backup"


class PinNotFoundError(KeyError):
    """Raised when an operation targets a pin id that is not stored."""


class PinStoreWriteError(RuntimeError):
    """Raised when the store reports a failed write for a single-pin update."""


# ── Result types ──────────────────────────────────────────────────────────────


@dataclass
class HealRun:
    """Outcome of one heal / auto-heal run.

    Attributes:
        success:      False only when nothing could be done safely (blob
                      unparseable, backup or primary write failed).
        healing_ran:  True if ``heal_pin_data`` was executed.
        committed:    True if the healed collection replaced the primary key.
        backup_key:   Key of the confirmed backup snapshot, if one was written.
        integrity:    Pre-heal integrity report.
        outcome:      Healing outcome, when healing ran.
        error:        Failure description when ``success`` is False.
    """

    success:     bool
    healing_ran: bool                       = False
    committed:   bool                       = False
    backup_key:  Optional[str]              = None
    integrity:   Optional[IntegrityReport]  = None
    outcome:     Optional[HealingOutcome]   = None
    error:       Optional[str]              = None


@dataclass
class SystemReport:
    """Everything an operator needs to judge the collection at a glance."""

    total_records: int
    readable_pins: int
    integrity:     IntegrityReport
    validation:    SystemValidationReport
    statistics:    LifecycleStatistics
    schedule:      MaintenanceSchedule
    backups:       list[str] = field(default_factory=list)


# ── Service ───────────────────────────────────────────────────────────────────


class PinLifecycleService:
    """Load, heal, rank and maintain a persisted pin collection.

    Args:
        config: AppConfig for this service.
        store:  Key-value store holding the collection.
        clock:  Returns "now"; injected so runs are reproducible.
    """

    def __init__(
        self,
        config: AppConfig,
        store: PinStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.store  = store
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        db_path: Optional[str] = None,
    ) -> "PinLifecycleService":
        """Build a service over the SQLite store named in ``config.storage``."""
        store = SqlitePinStore(
            db_path or config.storage.db_path,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
        )
        return cls(config, store)

    # ── Plumbing ──────────────────────────────────────────────────────────────

    @property
    def pins_key(self) -> str:
        return self.config.storage.pins_key

    @property
    def rules(self) -> PinValidationRules:
        return PinValidationRules.from_config(self.config.validation)

    def now(self) -> datetime:
        return self._clock()

    def load_records(self) -> list[Any]:
        """Return the raw stored records (empty when the key is absent).

        Raises:
            PinDecodeError: If the stored blob is not a JSON array.
        """
        text = self.store.load(self.pins_key)
        if text is None:
            return []
        return decode_pins(text)

    def load_pins(self) -> list[Pin]:
        """Return the stored collection as ``Pin`` models.

        Raises:
            PinDecodeError: If the blob or any record cannot be read;
                run ``heal`` first.
        """
        pins: list[Pin] = []
        for index, record in enumerate(self.load_records()):
            if not isinstance(record, dict):
                raise PinDecodeError(f"Record at index {index} is not an object")
            try:
                pins.append(Pin.from_record(record))
            except ValidationError as exc:
                raise PinDecodeError(
                    f"Record at index {index} is unreadable: {exc.error_count()} field errors"
                ) from exc
        return pins

    def save_pins(self, pins: list[Pin]) -> bool:
        ok = self.store.save(self.pins_key, encode_pins(pins))
        if ok:
            logger.debug("Saved %d pins to %s", len(pins), self.pins_key)
        else:
            logger.error("Failed to save %d pins to %s", len(pins), self.pins_key)
        return ok

    def backups(self) -> list[str]:
        return self.store.keys(self.config.storage.backup_key_prefix)

    # ── Integrity ─────────────────────────────────────────────────────────────

    def check_integrity(self) -> IntegrityReport:
        return check_data_integrity(self.load_records())

    def auto_heal_on_startup(self) -> HealRun:
        """Heal the stored collection only when blocking issues exist."""
        try:
            records = self.load_records()
        except PinDecodeError as exc:
            logger.error("Auto-heal aborted, stored pins unreadable: %s", exc)
            return HealRun(success=False, error=str(exc))

        if not records:
            return HealRun(success=True)

        integrity = check_data_integrity(records)
        if integrity.healthy:
            logger.info("Auto-heal: %d pins healthy, nothing to do", len(records))
            return HealRun(success=True, integrity=integrity)

        logger.info(
            "Auto-healing %d blocking data issues", len(integrity.blocking_issues),
            extra={"pins_key": self.pins_key, "blocking": len(integrity.blocking_issues)},
        )
        return self._heal(records, integrity, commit=True, reason=AUTO_HEAL_REASON)

    def heal(self, commit: bool = True) -> HealRun:
        """Heal the stored collection unconditionally.

        With ``commit=False`` the outcome is computed and returned but
        nothing is written.
        """
        try:
            records = self.load_records()
        except PinDecodeError as exc:
            logger.error("Heal aborted, stored pins unreadable: %s", exc)
            return HealRun(success=False, error=str(exc))

        integrity = check_data_integrity(records)
        return self._heal(records, integrity, commit=commit, reason=MANUAL_HEAL_REASON)

    def _heal(
        self,
        records: list[Any],
        integrity: IntegrityReport,
        commit: bool,
        reason: str,
    ) -> HealRun:
        now = self.now()
        outcome = heal_pin_data(records, self.config.lifecycle, self.rules, now)
        run = HealRun(success=True, healing_ran=True, integrity=integrity, outcome=outcome)
        if not commit:
            return run

        # Phase 1: backup snapshot of the pre-heal collection.
        backup_key = f"{self.config.storage.backup_key_prefix}-{int(now.timestamp() * 1000)}"
        snapshot = json.dumps({
            "timestamp":     to_iso(now),
            "originalPins":  records,
            "healingResult": asdict(outcome.result),
            "reason":        reason,
        })
        if not self.store.save(backup_key, snapshot):
            run.success = False
            run.error = f"Backup write to {backup_key} failed; stored pins left unchanged"
            logger.error(run.error)
            return run
        run.backup_key = backup_key
        logger.info("Backup created: %s", backup_key, extra={"backup_key": backup_key})

        # Phase 2: swap the primary collection.
        if not self.save_pins(outcome.healed_pins):
            run.success = False
            run.error = f"Primary write to {self.pins_key} failed; backup kept at {backup_key}"
            logger.error(run.error)
            return run

        run.committed = True
        logger.info(
            "Healing committed: %s", outcome.result.summary,
            extra={
                "pins_key": self.pins_key, "backup_key": backup_key,
                "healed": outcome.result.healed, "removed": outcome.result.removed,
            },
        )
        return run

    # ── Migration, scoring, ranking ───────────────────────────────────────────

    def migrate_all(self) -> int:
        """Migrate every legacy pin and persist. Returns the number migrated."""
        pins = self.load_pins()
        pending = sum(1 for p in pins if needs_migration(p))
        if not pending:
            return 0
        migrated = migrate_all_pins(pins, self.config.lifecycle, self.now())
        if not self.save_pins(migrated):
            raise PinStoreWriteError(f"Could not persist {pending} migrated pins")
        logger.info(
            "Migrated %d pins to new system", pending,
            extra={"pins_key": self.pins_key, "migrated": pending},
        )
        return pending

    def rank(self, tier: Tier) -> list[Pin]:
        """Visible members of ``tier``, best first.

        Scores are recomputed at ``now`` in memory so ordering reflects decay
        since the last write. Nothing is persisted; see ``commit_scores``.
        """
        now = self.now()
        pins = update_all_pin_scores(self.load_pins(), self.config.lifecycle, now)
        return get_pins_for_tier(pins, tier, self.config.lifecycle, now)

    def commit_scores(self) -> list[Pin]:
        """Rescore every pin, commit hidden flags and persist."""
        now = self.now()
        pins = update_all_pin_scores(self.load_pins(), self.config.lifecycle, now)
        pins = apply_hidden_flags(pins, self.config.lifecycle)
        if not self.save_pins(pins):
            raise PinStoreWriteError("Could not persist rescored pins")
        return pins

    # ── Maintenance ───────────────────────────────────────────────────────────

    def last_maintenance_at(self) -> Optional[datetime]:
        return parse_timestamp(self.store.load(self.config.storage.last_maintenance_key))

    def run_maintenance(self, force: bool = False) -> Optional[MaintenanceReport]:
        """Run maintenance when due (or when ``force``). None when skipped."""
        now = self.now()
        interval = self.config.maintenance.interval_hours
        if not force and not is_maintenance_needed(self.last_maintenance_at(), now, interval):
            logger.info("Maintenance not due yet")
            return None

        pins, report = perform_maintenance(self.load_pins(), self.config.lifecycle, now)
        if not report.succeeded:
            return report

        if not self.save_pins(pins):
            report.errors.append(f"Could not persist maintained pins to {self.pins_key}")
            return report
        self.store.save(self.config.storage.last_maintenance_key, to_iso(now))
        return report

    # ── Activity ──────────────────────────────────────────────────────────────

    def create(self, latitude: float, longitude: float, title: str, **fields: Any) -> Pin:
        """Create, persist and return a new pin."""
        pins = self.load_pins()
        pin = create_pin(
            latitude, longitude, title, self.config.lifecycle, self.now(), **fields
        )
        if not self.save_pins(pins + [pin]):
            raise PinStoreWriteError(f"Could not persist new pin {pin.id}")
        return pin

    def endorse(self, pin_id: str) -> Pin:
        return self._update_one(pin_id, record_endorsement)

    def renew(self, pin_id: str) -> Pin:
        return self._update_one(pin_id, record_renewal)

    def downvote(self, pin_id: str) -> Pin:
        return self._update_one(pin_id, record_downvote)

    def _update_one(self, pin_id: str, action: Callable[..., Pin]) -> Pin:
        pins = self.load_pins()
        for i, pin in enumerate(pins):
            if pin.id == pin_id:
                break
        else:
            raise PinNotFoundError(pin_id)

        updated = action(pin, self.config.lifecycle, self.now())
        pins[i] = updated
        if not self.save_pins(pins):
            raise PinStoreWriteError(f"Could not persist pin {pin_id}")
        return updated

    # ── Import / export ───────────────────────────────────────────────────────

    def import_pins(self, text: str, replace: bool = False) -> HealRun:
        """Heal incoming records and merge them into the stored collection.

        Incoming pins whose id is already stored are skipped unless
        ``replace`` is set. The previous collection is backed up first.

        Raises:
            PinDecodeError: If ``text`` is not a JSON array.
        """
        incoming = decode_pins(text)
        now = self.now()
        outcome = heal_pin_data(incoming, self.config.lifecycle, self.rules, now)

        existing = self.load_pins()
        by_id = {p.id: p for p in existing}
        for pin in outcome.healed_pins:
            if replace or pin.id not in by_id:
                by_id[pin.id] = pin
        merged = list(by_id.values())

        run = HealRun(success=True, healing_ran=True, outcome=outcome)
        backup_key = f"{self.config.storage.backup_key_prefix}-{int(now.timestamp() * 1000)}"
        if existing and not self.store.save(backup_key, encode_pins(existing)):
            run.success = False
            run.error = f"Backup write to {backup_key} failed; import not applied"
            return run
        run.backup_key = backup_key if existing else None

        if not self.save_pins(merged):
            run.success = False
            run.error = f"Primary write to {self.pins_key} failed"
            return run
        run.committed = True
        return run

    def export_pins(self) -> str:
        """Return the stored collection as JSON text (``"[]"`` when absent)."""
        return self.store.load(self.pins_key) or "[]"

    # ── Reporting ─────────────────────────────────────────────────────────────

    def system_report(self) -> SystemReport:
        """Integrity, validation, tier statistics and maintenance schedule."""
        now = self.now()
        records = self.load_records()
        readable = _readable_pins(records)
        return SystemReport(
            total_records=len(records),
            readable_pins=len(readable),
            integrity=check_data_integrity(records),
            validation=get_system_validation_report(
                records, self.config.lifecycle, self.rules, now
            ),
            statistics=get_lifecycle_statistics(
                readable, self.config.lifecycle, now,
                self.config.maintenance.expiring_soon_days,
            ),
            schedule=get_maintenance_schedule(
                self.last_maintenance_at(), now, self.config.maintenance.interval_hours
            ),
            backups=self.backups(),
        )


def _readable_pins(records: list[Any]) -> list[Pin]:
    pins: list[Pin] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        try:
            pins.append(Pin.from_record(record))
        except ValidationError:
            logger.debug("Skipping unreadable record %r", record.get("id"))
    return pins
