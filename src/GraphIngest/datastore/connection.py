"""Shared SQLite connection for the queue, registry and runs tables.

A single connection is opened with ``check_same_thread=False`` and every
statement is serialized through one re-entrant lock, so the worker threads of
the batch storer can share it. Each public operation on the datastore is a
short transaction; the lock is never held across network I/O.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Sequence

from .migrations import apply_migrations

__all__ = ["Connection", "utc_now", "parse_timestamp"]

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with microseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp; naive values are taken to be UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Connection:
    """SQLite connection guarded by a lock, with the schema applied on open."""

    def __init__(
        self,
        path: str | Path = MEMORY,
        *,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.path = str(path)
        self._lock = threading.RLock()

        if self.path != MEMORY:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.path, timeout=10.0, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if wal_mode and self.path != MEMORY:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        apply_migrations(self._conn)

        logger.info(f"Datastore opened at {self.path} (wal_mode={wal_mode})")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically under the connection lock."""
        with self._lock:
            try:
                yield self._conn
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
