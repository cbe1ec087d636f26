"""
Tier classification: maps a scored pin + lifecycle config to presentation tiers.

Rules (non-exclusive: a pin may satisfy several)
--------------------------------------------------
    RECENT   : age <= recent_window_days
    TRENDING : age <= trending_window_days
               AND recentEndorsements >= trending_min_burst
               AND score percentile <= trending_percentile_threshold
    CLASSICS : age >= classics_min_age_days
               AND totalEndorsements >= classics_min_total_endorsements

Hidden (overriding flag, not a tier)
------------------------------------
    downvotes >= downvote_hide_threshold, or the pin already carries
    ``isHidden``. A hidden pin is excluded from every listing even when it
    otherwise qualifies for a tier.

Classification reads stored scores; it never rescores or mutates a pin.
``apply_hidden_flags`` is the one explicit "commit" that writes ``isHidden``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pin_lifecycle.config import LifecycleConfig
from pin_lifecycle.models.pin import Pin
from pin_lifecycle.scoring.engine import ScorePopulation
from pin_lifecycle.taxonomy.pin_taxonomy import Tier
from pin_lifecycle.utils.time_utils import days_ago, utcnow

DEFAULT_EXPIRING_SOON_DAYS = 7


@dataclass(frozen=True)
class TierAssignment:
    """Tier membership and lifecycle position for one pin.

    Attributes:
        pin_id:                     Pin identity.
        tiers:                      Tiers the pin qualifies for (ignores hiding).
        is_hidden:                  True if the pin is excluded from listings.
        percentile:                 Score percentile within the population.
        age_days:                   Whole days since creation.
        days_until_recent_expiry:   Days left in Recent; None when not Recent.
        days_until_classic:         Days of age still needed for Classics.
        endorsements_until_classic: Endorsements still needed for Classics.
        reasons:                    Human-readable explanation per tier / flag.
    """

    pin_id:                     str
    tiers:                      frozenset[Tier]
    is_hidden:                  bool
    percentile:                 int
    age_days:                   int
    days_until_recent_expiry:   Optional[int]
    days_until_classic:         int
    endorsements_until_classic: int
    reasons:                    list[str] = field(default_factory=list)

    @property
    def visible_tiers(self) -> frozenset[Tier]:
        """Tiers the pin is actually listed in (empty when hidden)."""
        return frozenset() if self.is_hidden else self.tiers


@dataclass(frozen=True)
class LifecycleStatistics:
    """Distribution of a collection across tiers."""

    recent:        int
    trending:      int
    classics:      int
    hidden:        int
    untiered:      int
    expiring_soon: int
    total:         int


# ── Single-pin classification ─────────────────────────────────────────────────


def is_pin_hidden(pin: Pin, config: Optional[LifecycleConfig] = None) -> bool:
    """True if ``pin`` must be excluded from every listing."""
    config = config or LifecycleConfig()
    return pin.hidden or (pin.downvotes or 0) >= config.downvote_hide_threshold


def classify_pin(
    pin: Pin,
    all_pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
    population: Optional[ScorePopulation] = None,
) -> TierAssignment:
    """Classify one pin against the collection it is ranked in.

    Args:
        pin:        Pin to classify.
        all_pins:   Population used for the Trending percentile.
        config:     Lifecycle thresholds.
        now:        Reference instant.
        population: Pre-built ``ScorePopulation`` for ``all_pins`` (optional;
                    pass one when classifying many pins in a single pass).

    Returns:
        ``TierAssignment`` for ``pin``.
    """
    config = config or LifecycleConfig()
    now = now or utcnow()
    population = population or ScorePopulation.from_pins(all_pins)

    age = days_ago(pin.timestamp, now)
    recent_count = pin.recent_endorsements or 0
    total_count = pin.total_endorsements or 0
    percentile = population.percentile(pin.score)

    tiers: set[Tier] = set()
    reasons: list[str] = []

    if age <= config.recent_window_days:
        tiers.add(Tier.RECENT)
        reasons.append(f"Recent: created {age} days ago")

    if (
        age <= config.trending_window_days
        and recent_count >= config.trending_min_burst
        and percentile <= config.trending_percentile_threshold
    ):
        tiers.add(Tier.TRENDING)
        reasons.append(
            f"Trending: {recent_count} recent endorsements, top {percentile}% by score"
        )

    if (
        age >= config.classics_min_age_days
        and total_count >= config.classics_min_total_endorsements
    ):
        tiers.add(Tier.CLASSICS)
        reasons.append(f"Classic: {total_count} endorsements over {age} days")

    hidden = is_pin_hidden(pin, config)
    if hidden:
        reasons.append(f"Hidden: {pin.downvotes or 0} downvotes")

    return TierAssignment(
        pin_id=pin.id,
        tiers=frozenset(tiers),
        is_hidden=hidden,
        percentile=percentile,
        age_days=age,
        days_until_recent_expiry=(
            config.recent_window_days - age if Tier.RECENT in tiers else None
        ),
        days_until_classic=max(0, config.classics_min_age_days - age),
        endorsements_until_classic=max(
            0, config.classics_min_total_endorsements - total_count
        ),
        reasons=reasons,
    )


# ── Collection views ──────────────────────────────────────────────────────────


def classify_pins(
    pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> list[TierAssignment]:
    """Classify every pin in one pass (shared population and ``now``)."""
    now = now or utcnow()
    population = ScorePopulation.from_pins(pins)
    return [classify_pin(p, pins, config, now, population) for p in pins]


def get_visible_pins(
    pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
) -> list[Pin]:
    """Return every pin not hidden by downvotes."""
    return [p for p in pins if not is_pin_hidden(p, config)]


def get_pins_for_tier(
    pins: list[Pin],
    tier: Tier,
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
) -> list[Pin]:
    """Return visible members of ``tier``, highest score first (ties by id)."""
    assignments = classify_pins(pins, config, now)
    members = [
        pin for pin, a in zip(pins, assignments) if tier in a.visible_tiers
    ]
    return sorted(members, key=lambda p: (-(p.score or 0.0), p.id))


def get_lifecycle_statistics(
    pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
    expiring_soon_days: int = DEFAULT_EXPIRING_SOON_DAYS,
) -> LifecycleStatistics:
    """Count visible pins per tier, plus hidden / untiered / expiring-soon."""
    counts = {Tier.RECENT: 0, Tier.TRENDING: 0, Tier.CLASSICS: 0}
    hidden = untiered = expiring = 0

    for a in classify_pins(pins, config, now):
        if a.is_hidden:
            hidden += 1
            continue
        if not a.tiers:
            untiered += 1
        for tier in a.tiers:
            counts[tier] += 1
        if _expires_soon(a, expiring_soon_days):
            expiring += 1

    return LifecycleStatistics(
        recent=counts[Tier.RECENT],
        trending=counts[Tier.TRENDING],
        classics=counts[Tier.CLASSICS],
        hidden=hidden,
        untiered=untiered,
        expiring_soon=expiring,
        total=len(pins),
    )


def get_lifecycle_recommendations(
    pin: Pin,
    all_pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
    now: Optional[datetime] = None,
    expiring_soon_days: int = DEFAULT_EXPIRING_SOON_DAYS,
) -> list[str]:
    """Advisory suggestions for moving a pin between tiers."""
    a = classify_pin(pin, all_pins, config, now)
    recommendations: list[str] = []

    if a.is_hidden:
        recommendations.append(
            f"Pin is hidden after {pin.downvotes or 0} downvotes - consider community feedback"
        )
        return recommendations

    if Tier.CLASSICS not in a.tiers:
        if a.days_until_classic > 0:
            recommendations.append(
                f"Wait {a.days_until_classic} more days to qualify for Classics"
            )
        if a.endorsements_until_classic > 0:
            recommendations.append(
                f"Need {a.endorsements_until_classic} more endorsements to qualify for Classics"
            )

    if _expires_soon(a, expiring_soon_days):
        recommendations.append("Pin leaves Recent soon - consider renewing")

    if Tier.TRENDING in a.tiers:
        recommendations.append("Pin is trending! Keep the momentum going")

    return recommendations


# ── Commit ────────────────────────────────────────────────────────────────────


def apply_hidden_flags(
    pins: list[Pin],
    config: Optional[LifecycleConfig] = None,
) -> list[Pin]:
    """Return pins with ``is_hidden`` set wherever the downvote threshold is met.

    Hiding is one-way: an already-hidden pin stays hidden.
    """
    config = config or LifecycleConfig()
    out: list[Pin] = []
    for pin in pins:
        if not pin.hidden and is_pin_hidden(pin, config):
            pin = pin.model_copy(update={"is_hidden": True})
        out.append(pin)
    return out


def _expires_soon(a: TierAssignment, expiring_soon_days: int) -> bool:
    return (
        a.days_until_recent_expiry is not None
        and a.days_until_recent_expiry <= expiring_soon_days
    )
