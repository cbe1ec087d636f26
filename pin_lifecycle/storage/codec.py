"""
JSON codec for the persisted pin collection.

The stored value is a JSON array of pin records (camelCase keys). Decoding
returns raw records, not ``Pin`` models, so corrupt entries survive long
enough for the healing engine to judge them.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Union

from pin_lifecycle.models.pin import Pin


class PinDecodeError(ValueError):
    """Raised when a stored blob is not a JSON array."""


def encode_pins(pins: Iterable[Union[Pin, dict[str, Any]]]) -> str:
    """Serialize pins (models or records) to the persisted JSON text."""
    records = [p.to_record() if isinstance(p, Pin) else p for p in pins]
    return json.dumps(records, ensure_ascii=False, allow_nan=False)


def decode_pins(text: str) -> list[Any]:
    """Parse persisted JSON text into a list of raw records.

    Raises:
        PinDecodeError: If ``text`` is not valid JSON or not a JSON array.
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise PinDecodeError(f"Stored pins are not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise PinDecodeError(
            f"Stored pins must be a JSON array, got {type(data).__name__}"
        )
    return data
