"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      : committed static defaults
  2. ``config/local.toml``        : optional local overrides (gitignored)
  3. ``.env``                     : local secrets and env overrides (gitignored)
  4. Environment variables        : ``PIN_LIFECYCLE_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

Environment overrides for lifecycle thresholds never fail the load: a value
that cannot be parsed as a number, or that is zero or negative, falls back
to the value it would otherwise have (with a warning). Values read from TOML
are kept as written and reported by ``validate_system_config()``.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "PIN_LIFECYCLE_"

# ── Sub-config models ─────────────────────────────────────────────────────────


class LifecycleConfig(BaseModel):
    """Windows and limits that drive scoring and tier membership.

    Attributes:
        recent_window_days:              Max age (days) for the Recent tier.
        trending_window_days:            Max age (days) for the Trending tier;
                                         also the horizon for synthesized events.
        trending_min_burst:              Min ``recentEndorsements`` for Trending.
        classics_min_age_days:           Min age (days) for the Classics tier.
        classics_min_total_endorsements: Min ``totalEndorsements`` for Classics.
        downvote_hide_threshold:         Downvotes at which a pin is hidden.
        decay_half_life_days:            Days after which an event's weight halves.
        trending_percentile_threshold:   Max score percentile (0 = top) for Trending.
    """

    model_config = ConfigDict(frozen=True)

    recent_window_days: int = 90
    trending_window_days: int = 14
    trending_min_burst: int = 5
    classics_min_age_days: int = 180
    classics_min_total_endorsements: int = 10
    downvote_hide_threshold: int = 10
    decay_half_life_days: int = 30
    trending_percentile_threshold: int = 25


class ValidationConfig(BaseModel):
    """Limits applied by the validation engine."""

    model_config = ConfigDict(frozen=True)

    max_downvotes: int = 100
    min_endorsements: int = 0
    max_score_warning: float = 1000.0
    max_title_length: int = 200
    max_description_length: int = 1000
    max_tags: int = 20
    very_old_years: int = 10


class StorageConfig(BaseModel):
    """Key-value store location and key names."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/pin_lifecycle.db"
    pins_key: str = "pinit-pins"
    backup_key_prefix: str = "pinit-auto-heal-backup"
    last_maintenance_key: str = "pinit-last-maintenance"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class MaintenanceConfig(BaseModel):
    """Periodic maintenance cadence."""

    model_config = ConfigDict(frozen=True)

    interval_hours: int = 24
    expiring_soon_days: int = 7


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = ""
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration, the single source of truth.

    Every engine function takes the section it needs (usually
    ``LifecycleConfig``) as an explicit argument; nothing reads process
    globals at call time.
    """

    model_config = ConfigDict(frozen=True)

    lifecycle: LifecycleConfig = LifecycleConfig()
    validation: ValidationConfig = ValidationConfig()
    storage: StorageConfig = StorageConfig()
    maintenance: MaintenanceConfig = MaintenanceConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Environment-style lifecycle overrides ─────────────────────────────────────

LIFECYCLE_ENV_KEYS: dict[str, str] = {
    f"{ENV_PREFIX}{name.upper()}": name for name in LifecycleConfig.model_fields
}


def lifecycle_config_from_env(
    env: Mapping[str, str],
    base: Optional[LifecycleConfig] = None,
) -> LifecycleConfig:
    """Apply named numeric overrides (``PIN_LIFECYCLE_<FIELD>``) to a config.

    Unparseable and non-positive values are ignored with a warning, so the
    field keeps its value from ``base`` (or the documented default).

    Args:
        env:  Mapping of environment-style keys to string values.
        base: Starting config; defaults to ``LifecycleConfig()``.

    Returns:
        A new ``LifecycleConfig``.
    """
    base = base or LifecycleConfig()
    updates: dict[str, int] = {}
    for env_key, field_name in LIFECYCLE_ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is None or str(raw).strip() == "":
            continue
        try:
            value = int(str(raw).strip())
        except ValueError:
            logger.warning(
                "Ignoring invalid override %s=%r; keeping %s=%s",
                env_key, raw, field_name, getattr(base, field_name),
            )
            continue
        if value <= 0:
            logger.warning(
                "Ignoring non-positive override %s=%s; keeping %s=%s",
                env_key, value, field_name, getattr(base, field_name),
            )
            continue
        updates[field_name] = value
    return base.model_copy(update=updates)


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``; when that default file
            is absent the built-in defaults are used.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    raw: dict[str, Any] = {}
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = root / "config" / "default.toml"

    if config_path.exists():
        with open(config_path, "rb") as f:
            raw = tomllib.load(f)

        # Also merge local.toml if present (gitignored local overrides)
        local_config_path = config_path.parent / "local.toml"
        if local_config_path.exists():
            with open(local_config_path, "rb") as f:
                local_raw: dict[str, Any] = tomllib.load(f)
            raw = _deep_merge(raw, local_raw)

    # 3. Apply PIN_LIFECYCLE_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    config = _build_app_config(raw)
    lifecycle = lifecycle_config_from_env(os.environ, base=config.lifecycle)
    return config.model_copy(update={"lifecycle": lifecycle})


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply non-lifecycle PIN_LIFECYCLE_* env vars to the raw config dict.

    Supported overrides:
      PIN_LIFECYCLE_DB_PATH    → raw["storage"]["db_path"]
      PIN_LIFECYCLE_PINS_KEY   → raw["storage"]["pins_key"]
      PIN_LIFECYCLE_LOG_LEVEL  → raw["logging"]["level"]
      PIN_LIFECYCLE_DEBUG      → raw["debug"]

    Lifecycle thresholds are applied afterwards by
    ``lifecycle_config_from_env`` so bad values fall back instead of failing.
    """
    if db_path := os.environ.get(f"{ENV_PREFIX}DB_PATH"):
        raw.setdefault("storage", {})["db_path"] = db_path

    if pins_key := os.environ.get(f"{ENV_PREFIX}PINS_KEY"):
        raw.setdefault("storage", {})["pins_key"] = pins_key

    if log_level := os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get(f"{ENV_PREFIX}DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        lifecycle=LifecycleConfig(**raw.get("lifecycle", {})),
        validation=ValidationConfig(**raw.get("validation", {})),
        storage=StorageConfig(**raw.get("storage", {})),
        maintenance=MaintenanceConfig(**raw.get("maintenance", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
