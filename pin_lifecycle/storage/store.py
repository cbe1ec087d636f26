"""
Key-value store contract for persisted pin state.

The lifecycle core only ever needs three things from persistence:

    load(key)        -> text or None when the key is absent
    save(key, text)  -> True on success, False on failure (never raises)
    keys(prefix)     -> stored keys starting with ``prefix`` (backup listing)

Each ``save`` replaces the whole value for a key; there are no partial
writes.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class PinStore(Protocol):
    def load(self, key: str) -> Optional[str]: ...

    def save(self, key: str, value: str) -> bool: ...

    def keys(self, prefix: str = "") -> list[str]: ...


class InMemoryPinStore:
    """Dict-backed store for tests and embedding.

    Args:
        initial:     Optional starting key/value pairs.
        fail_writes: Keys (or key prefixes) whose ``save`` reports failure.
    """

    def __init__(
        self,
        initial: Optional[dict[str, str]] = None,
        fail_writes: tuple[str, ...] = (),
    ) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.fail_writes = fail_writes

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, value: str) -> bool:
        if any(key.startswith(prefix) for prefix in self.fail_writes):
            logger.warning("Write to %s rejected", key)
            return False
        self._data[key] = value
        return True

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def __len__(self) -> int:
        return len(self._data)
