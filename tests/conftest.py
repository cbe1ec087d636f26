"""
Shared pytest fixtures for the pin lifecycle test suite.

Provides:
  - ``now``: the fixed reference instant every time-dependent test uses.
  - ``lifecycle_config`` / ``app_config``: default configuration objects.
  - ``make_record``: factory for persisted (camelCase) pin records.
  - ``make_pin``: factory for ``Pin`` models built from those records.
  - ``store``: an empty ``InMemoryPinStore``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from pin_lifecycle.config import AppConfig, LifecycleConfig, LoggingConfig
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.storage.store import InMemoryPinStore
from pin_lifecycle.utils.time_utils import to_iso

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def iso_days_ago(days: float, now: datetime = NOW) -> str:
    """ISO timestamp ``days`` days before ``now``."""
    return to_iso(now - timedelta(days=days))


# ── Time and config ───────────────────────────────────────────────────────────

@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def lifecycle_config() -> LifecycleConfig:
    return LifecycleConfig()


@pytest.fixture
def app_config() -> AppConfig:
    """Default config with file logging disabled."""
    return AppConfig(logging=LoggingConfig(level="WARNING", log_file=""))


# ── Pin factories ─────────────────────────────────────────────────────────────

@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    """Return a factory for valid, migrated pin records.

    ``age_days`` sets both ``timestamp`` and ``lastEndorsedAt``. Keyword
    overrides use the persisted camelCase names; names listed in ``drop``
    are removed from the record.
    """

    def _make(
        pin_id: str = "pin-1",
        age_days: float = 5,
        drop: tuple[str, ...] = (),
        **overrides: Any,
    ) -> dict[str, Any]:
        created = iso_days_ago(age_days)
        record: dict[str, Any] = {
            "id": pin_id,
            "placeId": f"place_{pin_id}",
            "latitude": 40.7128,
            "longitude": -74.006,
            "title": "Corner Coffee",
            "locationName": "Lower Manhattan",
            "description": "Great espresso",
            "tags": ["coffee"],
            "category": "coffee",
            "timestamp": created,
            "lastEndorsedAt": created,
            "totalEndorsements": 1,
            "recentEndorsements": 1,
            "downvotes": 0,
            "score": 1.0,
            "isHidden": False,
        }
        record.update(overrides)
        for key in drop:
            record.pop(key, None)
        return record

    return _make


@pytest.fixture
def make_pin(make_record) -> Callable[..., Pin]:
    """Return a factory for ``Pin`` models; same arguments as ``make_record``."""

    def _make(*args: Any, **kwargs: Any) -> Pin:
        return Pin.from_record(make_record(*args, **kwargs))

    return _make


# ── Storage ───────────────────────────────────────────────────────────────────

@pytest.fixture
def store() -> InMemoryPinStore:
    return InMemoryPinStore()
