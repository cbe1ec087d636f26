"""
Pin lifecycle CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Build a ``PinLifecycleService`` over the configured SQLite store.
  4. Execute the action.
  5. Report result to stdout.

Install and run::

    pip install -e .
    pin-lifecycle --help
    pin-lifecycle validate-config
    pin-lifecycle check-integrity
    pin-lifecycle heal --dry-run
    pin-lifecycle rank --tier trending
    pin-lifecycle maintenance --force
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="pin-lifecycle",
    help="Pin lifecycle & ranking core: local maintenance CLI.",
    add_completion=False,
)

_CONFIG_HELP = "Path to TOML config file (default: config/default.toml)."
_DB_HELP = "Override DB path from config (e.g. data/db/test.db)."


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from pin_lifecycle.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from pin_lifecycle.utils.logging import configure_logging
    configure_logging(config.logging)


def _service_or_exit(config_path: Optional[str], db_path: Optional[str]):
    """Load config, configure logging and open the service."""
    from pin_lifecycle.service import PinLifecycleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    return PinLifecycleService.from_config(config, db_path=db_path)


def _load_pins_or_exit(service):
    from pin_lifecycle.storage.codec import PinDecodeError

    try:
        return service.load_pins()
    except PinDecodeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        typer.echo("        Run 'pin-lifecycle heal' to repair stored pins.", err=True)
        raise typer.Exit(code=1)


def _echo_heal_run(run) -> None:
    if run.integrity is not None:
        typer.echo(f"  Issues found:     {len(run.integrity.issues)}")
        typer.echo(f"  Blocking issues:  {len(run.integrity.blocking_issues)}")
    if run.outcome is not None:
        result = run.outcome.result
        typer.echo(f"  Healed:           {result.healed}")
        typer.echo(f"  Removed:          {result.removed}")
        typer.echo(f"  Migrated:         {result.migrated}")
        typer.echo(f"  Duplicates:       {result.duplicates}")
    if run.backup_key:
        typer.echo(f"  Backup:           {run.backup_key}")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and sanity-check lifecycle thresholds.

    Exits with code 1 if the config fails to load or a threshold is invalid.
    """
    from pin_lifecycle.integrity.validation import validate_system_config

    config = _load_config_or_exit(config_path)
    lc = config.lifecycle

    typer.echo("Configuration loaded.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.storage.db_path}")
    typer.echo(f"  Pins key:          {config.storage.pins_key}")
    typer.echo(f"  Recent window:     {lc.recent_window_days}d")
    typer.echo(f"  Trending window:   {lc.trending_window_days}d (burst >= {lc.trending_min_burst})")
    typer.echo(
        f"  Classics:          age >= {lc.classics_min_age_days}d, "
        f"endorsements >= {lc.classics_min_total_endorsements}"
    )
    typer.echo(f"  Hide threshold:    {lc.downvote_hide_threshold} downvotes")
    typer.echo(f"  Decay half-life:   {lc.decay_half_life_days}d")
    typer.echo(f"  Log level:         {config.logging.level}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    result = validate_system_config(lc)
    for warning in result.warnings:
        typer.echo(f"  [WARN] {warning}")
    if not result.is_valid:
        for error in result.errors:
            typer.echo(f"  [ERROR] {error}", err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("check-integrity")
def check_integrity(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Report data integrity issues without changing anything.

    Exits with code 1 when high or critical issues are present.
    """
    from pin_lifecycle.storage.codec import PinDecodeError

    service = _service_or_exit(config_path, db_path)
    try:
        report = service.check_integrity()
    except PinDecodeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    for issue in report.issues:
        typer.echo(f"  [{issue.severity.upper():8s}] {issue.type:10s} {issue.description}")
    for rec in report.recommendations:
        typer.echo(f"  -> {rec}")

    if not report.healthy:
        typer.echo(f"[ERROR] {len(report.blocking_issues)} blocking issue(s).", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Data healthy.")


@app.command("heal")
def heal(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Compute the healing outcome but do not write anything.",
    ),
    auto: bool = typer.Option(
        False,
        "--auto",
        help="Heal only when blocking issues exist (startup behaviour).",
    ),
) -> None:
    """Repair or quarantine broken pin records.

    A backup of the original collection is written before the stored pins
    are replaced; a failed backup leaves the stored pins untouched.
    """
    service = _service_or_exit(config_path, db_path)

    if auto and not dry_run:
        run = service.auto_heal_on_startup()
    else:
        run = service.heal(commit=not dry_run)

    _echo_heal_run(run)
    if not run.success:
        typer.echo(f"[ERROR] {run.error}", err=True)
        raise typer.Exit(code=1)

    if dry_run:
        typer.echo("[DRY RUN] No changes written.")
        if run.outcome is not None:
            for description in run.outcome.result.issues[:20]:
                typer.echo(f"  {description}")
    elif run.committed:
        typer.echo("[OK] Healed pins saved.")
    else:
        typer.echo("[OK] Nothing to heal.")


@app.command("migrate")
def migrate(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Upgrade legacy pins (no placeId) to the lifecycle schema."""
    from pin_lifecycle.storage.codec import PinDecodeError

    service = _service_or_exit(config_path, db_path)
    try:
        count = service.migrate_all()
    except PinDecodeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] Migrated {count} pin(s).")


@app.command("rank")
def rank(
    tier: str = typer.Option(..., "--tier", "-t", help="recent | trending | classics"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max pins to list."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """List visible pins in a tier, highest score first."""
    from pin_lifecycle.taxonomy.pin_taxonomy import Tier

    try:
        tier_value = Tier(tier.lower())
    except ValueError:
        typer.echo(
            f"[ERROR] Unknown tier '{tier}'. Use one of: {', '.join(t.value for t in Tier)}.",
            err=True,
        )
        raise typer.Exit(code=1)

    service = _service_or_exit(config_path, db_path)
    _load_pins_or_exit(service)
    pins = service.rank(tier_value)

    typer.echo(f"{tier_value.value.title()}: {len(pins)} pin(s)")
    for pin in pins[:limit]:
        typer.echo(f"  {pin.score or 0.0:8.3f}  {pin.id}  {pin.display_name}")


@app.command("score")
def score(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Recompute and persist every pin's score and hidden flag."""
    service = _service_or_exit(config_path, db_path)
    _load_pins_or_exit(service)
    pins = service.commit_scores()
    hidden = sum(1 for p in pins if p.hidden)
    typer.echo(f"[OK] Rescored {len(pins)} pin(s); {hidden} hidden.")


@app.command("maintenance")
def maintenance(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
    force: bool = typer.Option(False, "--force", help="Run even if not due yet."),
) -> None:
    """Run periodic maintenance (rescore, hide, prune provenance)."""
    service = _service_or_exit(config_path, db_path)
    _load_pins_or_exit(service)
    report = service.run_maintenance(force=force)

    if report is None:
        typer.echo("[OK] Maintenance not due. Use --force to run anyway.")
        return

    typer.echo(f"  Pins processed:   {report.pins_processed}")
    typer.echo(f"  Scores updated:   {report.scores_updated}")
    typer.echo(f"  Newly hidden:     {report.newly_hidden}")
    typer.echo(f"  Expired (Recent): {report.expired_pins}")
    typer.echo(f"  Classics:         {report.classics}")
    typer.echo(f"  Trending:         {report.trending}")
    if not report.succeeded:
        for error in report.errors:
            typer.echo(f"[ERROR] {error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Maintenance complete.")


@app.command("endorse")
def endorse(
    pin_id: str = typer.Argument(..., help="Pin id."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Record an endorsement on a pin."""
    _apply_activity("endorse", pin_id, config_path, db_path)


@app.command("renew")
def renew(
    pin_id: str = typer.Argument(..., help="Pin id."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Record a renewal on a pin."""
    _apply_activity("renew", pin_id, config_path, db_path)


@app.command("downvote")
def downvote(
    pin_id: str = typer.Argument(..., help="Pin id."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Record a downvote on a pin."""
    _apply_activity("downvote", pin_id, config_path, db_path)


def _apply_activity(action: str, pin_id: str, config_path, db_path) -> None:
    from pin_lifecycle.service import PinNotFoundError, PinStoreWriteError

    service = _service_or_exit(config_path, db_path)
    _load_pins_or_exit(service)
    try:
        pin = getattr(service, action)(pin_id)
    except PinNotFoundError:
        typer.echo(f"[ERROR] Pin not found: {pin_id}", err=True)
        raise typer.Exit(code=1)
    except PinStoreWriteError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"[OK] {pin.id}: score={pin.score or 0.0:.3f} "
        f"endorsements={pin.total_endorsements} downvotes={pin.downvotes} "
        f"hidden={pin.hidden}"
    )


@app.command("import-pins")
def import_pins(
    pins_file: str = typer.Option(..., "--file", "-f", help="JSON array of pin records."),
    replace: bool = typer.Option(
        False, "--replace", help="Overwrite stored pins that share an id."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Heal and merge pins from a JSON file into the store."""
    from pin_lifecycle.storage.codec import PinDecodeError

    path = Path(pins_file)
    if not path.exists():
        typer.echo(f"[ERROR] Pins file not found: {path}", err=True)
        raise typer.Exit(code=1)

    service = _service_or_exit(config_path, db_path)
    _load_pins_or_exit(service)
    try:
        run = service.import_pins(path.read_text(encoding="utf-8"), replace=replace)
    except PinDecodeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    _echo_heal_run(run)
    if not run.success:
        typer.echo(f"[ERROR] {run.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Pins imported.")


@app.command("export-pins")
def export_pins(
    pins_file: str = typer.Option(..., "--file", "-f", help="Destination JSON file."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Write the stored collection to a JSON file."""
    service = _service_or_exit(config_path, db_path)
    path = Path(pins_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(service.export_pins(), encoding="utf-8")
    typer.echo(f"[OK] Pins exported to {path}")


@app.command("report")
def report(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_HELP),
) -> None:
    """Print integrity, validation, tier statistics and maintenance status."""
    from pin_lifecycle.storage.codec import PinDecodeError
    from pin_lifecycle.utils.time_utils import to_iso

    service = _service_or_exit(config_path, db_path)
    try:
        rep = service.system_report()
    except PinDecodeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    stats = rep.statistics
    validation = rep.validation
    typer.echo(f"Pins: {rep.total_records} stored, {rep.readable_pins} readable")
    typer.echo("")
    typer.echo("Tiers:")
    typer.echo(f"  Recent:        {stats.recent}")
    typer.echo(f"  Trending:      {stats.trending}")
    typer.echo(f"  Classics:      {stats.classics}")
    typer.echo(f"  Hidden:        {stats.hidden}")
    typer.echo(f"  Untiered:      {stats.untiered}")
    typer.echo(f"  Expiring soon: {stats.expiring_soon}")
    typer.echo("")
    typer.echo("Validation:")
    typer.echo(f"  Valid pins:    {validation.pin_collection.summary.valid}")
    typer.echo(f"  Invalid pins:  {validation.pin_collection.summary.invalid}")
    typer.echo(f"  Errors:        {validation.total_errors}")
    typer.echo(f"  Warnings:      {validation.total_warnings}")
    for rec in validation.recommendations + rep.integrity.recommendations:
        typer.echo(f"  -> {rec}")
    typer.echo("")
    last = rep.schedule.last_run_at
    typer.echo("Maintenance:")
    typer.echo(f"  Last run:      {to_iso(last) if last else 'never'}")
    typer.echo(f"  Next due:      {to_iso(rep.schedule.next_run_at)}")
    typer.echo(f"  Overdue:       {rep.schedule.is_overdue}")
    typer.echo(f"  Backups:       {len(rep.backups)}")
    typer.echo("")
    typer.echo("[OK] Healthy." if rep.integrity.healthy else "[WARN] Integrity issues present.")


if __name__ == "__main__":
    app()
