"""
SQLite-backed ``PinStore``.

Provides a context manager ``get_connection()`` that:
  - Enables WAL journal mode when requested.
  - Sets a busy timeout to handle lock contention gracefully.
  - Uses ``sqlite3.Row`` factory so rows behave like dicts.
  - Commits on clean exit, rolls back on exception.

and ``SqlitePinStore``, which keeps every value in a single ``kv_store``
table. Each ``save`` is one UPSERT inside one transaction, so a value is
either fully replaced or left as it was.

Usage::

    from pin_lifecycle.storage.sqlite_store import SqlitePinStore

    store = SqlitePinStore("data/db/pin_lifecycle.db")
    store.save("pinit-pins", "[]")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from pin_lifecycle.utils.time_utils import to_iso, utcnow

logger = logging.getLogger(__name__)

_DDL_KV_STORE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT    PRIMARY KEY,
    value       TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);
"""


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    The database file (and any parent directories) are created if they do
    not already exist.

    Args:
        db_path: Path to the SQLite database file. Use ``":memory:"`` for
            in-memory databases.
        wal_mode: If ``True``, enable WAL journal mode.
        busy_timeout_ms: Milliseconds to wait when the database is locked.

    Yields:
        An open, configured ``sqlite3.Connection``.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
        if wal_mode:
            conn.execute("PRAGMA journal_mode = WAL;")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create the ``kv_store`` table. Idempotent."""
    conn.execute(_DDL_KV_STORE)
    conn.commit()
    logger.debug("kv_store schema applied")


class SqlitePinStore:
    """``PinStore`` over a SQLite file.

    Every operation opens its own short-lived connection, so the store
    object holds no open handles between calls.
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        if db_path == ":memory:":
            raise ValueError("SqlitePinStore needs a file path; use InMemoryPinStore instead.")
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        with self._connect() as conn:
            apply_schema(conn)

    def _connect(self):
        return get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms)

    def load(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?;", (key,)
            ).fetchone()
        return row["value"] if row is not None else None

    def save(self, key: str, value: str) -> bool:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value      = excluded.value,
                        updated_at = excluded.updated_at;
                    """,
                    (key, value, to_iso(utcnow())),
                )
        except sqlite3.Error as exc:
            logger.error("Failed to save %s to %s: %s", key, self.db_path, exc)
            return False
        return True

    def keys(self, prefix: str = "") -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key;",
                (f"{escaped}%",),
            ).fetchall()
        return [row["key"] for row in rows]
