"""
Vocabulary for the pin lifecycle core.

Four enums describe the moving parts:
  - ``ScoreEventType``: kinds of interaction that feed the score.
  - ``Tier``          : presentation tiers (non-exclusive).
  - ``IssueType``     : what kind of data problem healing found.
  - ``IssueSeverity`` : how bad it is; ``critical``/``high`` trigger auto-heal.

``KNOWN_CATEGORIES`` is the standard category list. Categories are free-form
on a pin; anything outside this set is a validation *warning*, never an error.

This module has NO imports from any other ``pin_lifecycle`` package.
"""

from enum import StrEnum


class ScoreEventType(StrEnum):
    """Interaction kinds that contribute to a pin's score."""

    ENDORSEMENT = "endorsement"
    """Positive interaction; weight +1.0."""

    RENEWAL = "renewal"
    """Repeat positive interaction; weight +0.6."""

    DOWNVOTE = "downvote"
    """Negative interaction; weight -0.3."""


class Tier(StrEnum):
    """Presentation tiers. A pin may belong to several at once."""

    RECENT = "recent"
    TRENDING = "trending"
    CLASSICS = "classics"


class IssueType(StrEnum):
    """Category of problem detected by integrity checks or healing."""

    CORRUPTION = "corruption"
    MIGRATION = "migration"
    DUPLICATE = "duplicate"
    ORPHAN = "orphan"
    FORMAT = "format"


class IssueSeverity(StrEnum):
    """Severity of a data issue, lowest to highest."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Severities that make a collection "unhealthy" and warrant full healing.
BLOCKING_SEVERITIES = frozenset({IssueSeverity.HIGH, IssueSeverity.CRITICAL})

DEFAULT_CATEGORY = "general"

KNOWN_CATEGORIES = frozenset({
    "coffee", "restaurant", "museum", "park", "shopping",
    "hotel", "bar", "general", "tourist_attraction", "cafe",
    "food", "entertainment", "nature", "culture", "adventure",
})
