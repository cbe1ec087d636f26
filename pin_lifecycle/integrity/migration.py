"""
One-time, idempotent upgrade of legacy pins to the lifecycle schema.

A pin is "migrated" once it carries a ``placeId``. Migrating an already
migrated pin returns it unchanged, so the pass can run on every load.

Category inference is an ordered rule table; the first rule that yields a
category wins:

    1. explicit field   ``category`` if it is a known category, else the
                        first legacy place type found in ``PLACE_TYPE_CATEGORIES``
    2. tag keyword      first tag in ``TAG_CATEGORY_KEYWORDS``
    3. text keyword     first ``TEXT_KEYWORD_RULES`` entry whose keyword
                        occurs in title + description
    4. default          ``"general"``

Usage:
    from pin_lifecycle.integrity.migration import migrate_pin_to_new_system

    upgraded = migrate_pin_to_new_system(pin, config, now)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from pin_lifecycle.config import LifecycleConfig
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.taxonomy.pin_taxonomy import DEFAULT_CATEGORY, KNOWN_CATEGORIES
from pin_lifecycle.utils.time_utils import days_ago, utcnow

logger = logging.getLogger(__name__)

PLACE_ID_PREFIX = "place_"
INITIAL_SCORE = 1.0

# Legacy place-provider types → category.
PLACE_TYPE_CATEGORIES: dict[str, str] = {
    "restaurant":         "restaurant",
    "cafe":               "coffee",
    "bar":                "bar",
    "museum":             "museum",
    "park":               "park",
    "shopping_mall":      "shopping",
    "art_gallery":        "museum",
    "amusement_park":     "park",
    "zoo":                "park",
    "aquarium":           "museum",
    "lodging":            "hotel",
    "establishment":      "general",
    "point_of_interest":  "general",
    "tourist_attraction": "general",
}

# Tags recognized as categories on their own.
TAG_CATEGORY_KEYWORDS: tuple[str, ...] = (
    "coffee", "restaurant", "museum", "park", "shopping", "hotel", "bar", "cafe",
)

# (keywords, category) checked in order against lower-cased title + description.
TEXT_KEYWORD_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("coffee", "cafe"),          "coffee"),
    (("restaurant", "food"),      "restaurant"),
    (("museum", "gallery"),       "museum"),
    (("park", "garden"),          "park"),
    (("shopping", "mall"),        "shopping"),
    (("hotel", "accommodation"),  "hotel"),
    (("bar", "pub"),              "bar"),
)


# ── Category rules ────────────────────────────────────────────────────────────


def _from_explicit_field(pin: Pin) -> Optional[str]:
    if pin.category and pin.category in KNOWN_CATEGORIES:
        return pin.category
    for place_type in pin.types or []:
        if place_type in PLACE_TYPE_CATEGORIES:
            return PLACE_TYPE_CATEGORIES[place_type]
    return None


def _from_tags(pin: Pin) -> Optional[str]:
    for tag in pin.tags:
        lowered = tag.lower()
        if lowered in TAG_CATEGORY_KEYWORDS:
            return lowered
    return None


def _from_text(pin: Pin) -> Optional[str]:
    text = f"{pin.title or ''} {pin.description or ''}".lower()
    for keywords, category in TEXT_KEYWORD_RULES:
        if any(k in text for k in keywords):
            return category
    return None


CategoryRule = Callable[[Pin], Optional[str]]

CATEGORY_RULES: tuple[tuple[str, CategoryRule], ...] = (
    ("explicit_field", _from_explicit_field),
    ("tag_keyword",    _from_tags),
    ("text_keyword",   _from_text),
)


def infer_category(pin: Pin) -> str:
    """Return the first category produced by ``CATEGORY_RULES``, else ``"general"``."""
    for name, rule in CATEGORY_RULES:
        category = rule(pin)
        if category is not None:
            logger.debug("Pin %s category %r from rule %s", pin.id, category, name)
            return category
    return DEFAULT_CATEGORY


# ── Migration ─────────────────────────────────────────────────────────────────


def needs_migration(pin: Pin) -> bool:
    return pin.place_id is None


def migrate_pin_to_new_system(
    pin: Pin,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> Pin:
    """Upgrade a legacy pin; return already-migrated pins unchanged.

    Seeds one endorsement (the creator's), counts it as recent when the pin
    is inside the Recent window, and starts the score at 1.0.

    Args:
        pin:    Pin to upgrade.
        config: Lifecycle thresholds (Recent window).
        now:    Reference instant for the pin's age.

    Returns:
        The migrated pin (a new object) or ``pin`` itself.
    """
    if not needs_migration(pin):
        return pin

    config = config or LifecycleConfig()
    now = now or utcnow()
    age = days_ago(pin.timestamp, now)

    migrated = pin.model_copy(
        update={
            "place_id": f"{PLACE_ID_PREFIX}{pin.id}",
            "category": infer_category(pin),
            "total_endorsements": 1,
            "recent_endorsements": 1 if age <= config.recent_window_days else 0,
            "last_endorsed_at": pin.timestamp,
            "score": INITIAL_SCORE,
            "downvotes": 0,
            "is_hidden": False,
        }
    )
    logger.debug("Migrated pin %s → %s (%s)", pin.id, migrated.place_id, migrated.category)
    return migrated


def migrate_all_pins(
    pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> list[Pin]:
    """Migrate every pin against a single shared ``now``."""
    now = now or utcnow()
    return [migrate_pin_to_new_system(p, config, now) for p in pins]


def needs_pin_migration(pins: list[Pin]) -> bool:
    """True if any pin in the collection still lacks a ``placeId``."""
    return any(needs_migration(p) for p in pins)
