"""
Pin model: the saved-location record every engine operates on.

``Pin`` mirrors the persisted JSON record: field names are snake_case in
Python and camelCase on the wire (``placeId``, ``lastEndorsedAt``, ...).
Use ``Pin.from_record(raw)`` / ``pin.to_record()`` to cross that boundary.

The model only enforces *types*. Structural and business invariants
(coordinate domain, ``recentEndorsements <= totalEndorsements``, timestamp
ordering, ...) are checked by ``integrity.validation`` and reported as
structured results, so a legacy or slightly broken record can still be
represented, scored and repaired.

Unknown persisted attributes (media, stickers, AI metadata, ...) are kept
as pydantic extras and written back unchanged; the core never drops user
data it does not understand.

``Pin`` is frozen. Engines return updated copies via ``model_copy``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pin_lifecycle.taxonomy.pin_taxonomy import ScoreEventType
from pin_lifecycle.utils.time_utils import parse_timestamp


def _coerce_timestamp(value: Any) -> Any:
    if value is None or isinstance(value, datetime):
        return value
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Unparseable timestamp: {value!r}")
    return parsed


class ScoreEvent(BaseModel):
    """One weighted interaction used as scoring provenance.

    Attributes:
        type:      Interaction kind.
        timestamp: When the interaction happened (or is assumed to have).
        weight:    Signed weight before decay.
        days_ago:  Whole days between ``timestamp`` and scoring time.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: ScoreEventType
    timestamp: datetime
    weight: float
    days_ago: int = Field(alias="daysAgo")

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_event_timestamp(cls, v: Any) -> Any:
        return _coerce_timestamp(v)


class Pin(BaseModel):
    """A user-saved location record with engagement counters and a derived score.

    Attributes:
        id:                    Stable unique identity.
        place_id:              Canonical place key; ``None`` until migrated.
        latitude:              Degrees, domain [-90, 90].
        longitude:             Degrees, domain [-180, 180].
        title:                 Display title (this or ``location_name`` required).
        location_name:         Human-readable place name.
        description:           Free text.
        tags:                  Ordered tag list.
        category:              Free-form category, checked against ``KNOWN_CATEGORIES``.
        types:                 Legacy place-type list from the places provider.
        media_url:             Photo/video reference.
        original_pin_id:       Id of the pin this one was re-pinned from.
        timestamp:             Creation time.
        last_endorsed_at:      Most recent positive interaction.
        total_endorsements:    Lifetime endorsements.
        recent_endorsements:   Endorsements inside the recent window.
        downvotes:             Lifetime downvotes.
        score:                 Derived decayed score.
        score_change:          Derived change since the previous score.
        score_events:          Derived scoring provenance.
        score_last_calculated: When ``score`` was last recomputed.
        is_hidden:             Derived; overrides tier membership.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str
    place_id: Optional[str] = Field(default=None, alias="placeId")
    latitude: float
    longitude: float
    title: Optional[str] = None
    location_name: Optional[str] = Field(default=None, alias="locationName")
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    category: Optional[str] = None
    types: Optional[list[str]] = None
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")
    original_pin_id: Optional[str] = Field(default=None, alias="originalPinId")
    timestamp: datetime
    last_endorsed_at: Optional[datetime] = Field(default=None, alias="lastEndorsedAt")
    total_endorsements: Optional[int] = Field(default=None, alias="totalEndorsements")
    recent_endorsements: Optional[int] = Field(default=None, alias="recentEndorsements")
    downvotes: Optional[int] = None
    score: Optional[float] = None
    score_change: Optional[float] = Field(default=None, alias="scoreChange")
    score_events: Optional[list[ScoreEvent]] = Field(default=None, alias="scoreEvents")
    score_last_calculated: Optional[datetime] = Field(
        default=None, alias="scoreLastCalculated"
    )
    is_hidden: Optional[bool] = Field(default=None, alias="isHidden")

    @field_validator("timestamp", "last_endorsed_at", "score_last_calculated", mode="before")
    @classmethod
    def parse_pin_timestamps(cls, v: Any) -> Any:
        return _coerce_timestamp(v)

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [t if isinstance(t, str) else str(t) for t in v]
        return v

    # ── Conversions ───────────────────────────────────────────────────────────

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Pin":
        """Build a ``Pin`` from a persisted (camelCase) record.

        Raises:
            pydantic.ValidationError: If a field has the wrong type.
        """
        return cls.model_validate(record)

    def to_record(self) -> dict[str, Any]:
        """Return the persisted (camelCase, JSON-safe) form of this pin."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    # ── Convenience ───────────────────────────────────────────────────────────

    @property
    def display_name(self) -> str:
        return self.title or self.location_name or ""

    @property
    def hidden(self) -> bool:
        return bool(self.is_hidden)
