"""
Single-pin interactions: create, endorse, renew, downvote.

Each function takes a pin and returns an updated copy with its score
recomputed at ``now``; nothing is persisted here (see ``service``).

Counter rules
-------------
    endorse  : totalEndorsements += 1
               recentEndorsements += 1 if the previous endorsement is inside
               the Recent window, else it restarts at 1
               lastEndorsedAt = now
    renew    : recentEndorsements += 1 (never above totalEndorsements)
               lastEndorsedAt = now
    downvote : downvotes += 1; isHidden once downvotes >= threshold
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pin_lifecycle.config import LifecycleConfig
from pin_lifecycle.integrity.migration import PLACE_ID_PREFIX, infer_category
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.scoring.engine import update_pin_score
from pin_lifecycle.utils.time_utils import days_ago, utcnow

logger = logging.getLogger(__name__)


def create_pin(
    latitude: float,
    longitude: float,
    title: str,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
    pin_id: Optional[str] = None,
    **fields: Any,
) -> Pin:
    """Create a new, already-migrated pin endorsed once by its creator.

    Args:
        latitude:  Degrees.
        longitude: Degrees.
        title:     Display title.
        config:    Lifecycle thresholds.
        now:       Creation instant.
        pin_id:    Explicit id; a random one is generated when omitted.
        **fields:  Any other ``Pin`` attribute (``category``, ``tags``, ...).

    Returns:
        The new ``Pin`` with a score computed at ``now``.
    """
    now = now or utcnow()
    pin_id = pin_id or str(uuid4())

    pin = Pin(
        id=pin_id,
        latitude=latitude,
        longitude=longitude,
        title=title,
        timestamp=now,
        **fields,
    )
    pin = pin.model_copy(
        update={
            "place_id": pin.place_id or f"{PLACE_ID_PREFIX}{pin_id}",
            "category": pin.category or infer_category(pin),
            "total_endorsements": 1,
            "recent_endorsements": 1,
            "last_endorsed_at": now,
            "downvotes": 0,
            "is_hidden": False,
        }
    )
    logger.debug("Created pin %s (%s)", pin.id, pin.category)
    return update_pin_score(pin, config, now)


def record_endorsement(
    pin: Pin,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> Pin:
    """Return ``pin`` with one more endorsement at ``now``."""
    config = config or LifecycleConfig()
    now = now or utcnow()

    total = (pin.total_endorsements or 0) + 1
    recent = pin.recent_endorsements or 0
    last = pin.last_endorsed_at or pin.timestamp
    if days_ago(last, now) <= config.recent_window_days:
        recent += 1
    else:
        recent = 1

    updated = pin.model_copy(
        update={
            "total_endorsements": total,
            "recent_endorsements": min(recent, total),
            "last_endorsed_at": now,
        }
    )
    return update_pin_score(updated, config, now)


def record_renewal(
    pin: Pin,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> Pin:
    """Return ``pin`` renewed at ``now``."""
    now = now or utcnow()
    total = pin.total_endorsements or 0
    recent = min((pin.recent_endorsements or 0) + 1, total)

    updated = pin.model_copy(
        update={"recent_endorsements": recent, "last_endorsed_at": now}
    )
    return update_pin_score(updated, config, now)


def record_downvote(
    pin: Pin,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> Pin:
    """Return ``pin`` with one more downvote; hides it at the threshold."""
    config = config or LifecycleConfig()
    now = now or utcnow()
    downvotes = (pin.downvotes or 0) + 1
    hidden = pin.hidden or downvotes >= config.downvote_hide_threshold

    if hidden and not pin.hidden:
        logger.info(
            "Pin %s hidden after %d downvotes", pin.id, downvotes,
            extra={"pin_id": pin.id, "downvotes": downvotes},
        )

    updated = pin.model_copy(update={"downvotes": downvotes, "is_hidden": hidden})
    return update_pin_score(updated, config, now)
