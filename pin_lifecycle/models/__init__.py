"""Domain models: ``Pin`` and its scoring provenance ``ScoreEvent``."""

from pin_lifecycle.models.pin import Pin, ScoreEvent

__all__ = ["Pin", "ScoreEvent"]
