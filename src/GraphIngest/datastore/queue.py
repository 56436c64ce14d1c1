"""
SQLite-backed Work Queue with Idempotent Push and Bounded Retry

Durable, FIFO, at-least-once delivery of identifiers to the batch storer.

**Key Features:**

- **Idempotent push**: one row per identifier; pushing an identifier that is
  already queued only refreshes ``updated_at`` (action, type and retry count
  are retained)
- **FIFO**: items are returned by ``created_at`` with insertion order as
  tie-breaker
- **Bounded retry**: :meth:`Queue.retry` removes the item and re-queues it
  with ``retry_count + 1`` until ``max_retry_count`` is exceeded, at which
  point :class:`~GraphIngest.errors.RetryLimitExceededError` is raised and the
  item stays removed
- **Atomic resolution**: :meth:`Queue.process_and_save` and
  :meth:`Queue.process_and_remove` update the queue and the registry in a
  single transaction, so a crash never leaves an identifier in both or
  neither state half-applied

**Usage:**

    from GraphIngest.datastore import Connection, Queue

    connection = Connection("state/graphingest.sqlite")
    queue = Queue(connection, max_retry_count=2)
    queue.push("https://example.org/resource/1", action="create", type="objects")
    for item in queue.get_all(type="objects", limit=100):
        ...

**Thread Safety:**

All statements go through the shared :class:`Connection` lock; the queue can
be used from the storer's worker threads.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from ..errors import RetryLimitExceededError
from .connection import Connection, utc_now
from .models import Action, QueueItem
from .registry import delete_registry_row, upsert_registry_row

__all__ = ["Queue"]

_LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_RETRY_COUNT = 2


def _insert(
    conn: sqlite3.Connection,
    iri: str,
    action: Optional[Action],
    type: Optional[str],
    retry_count: int,
) -> None:
    now = utc_now()
    conn.execute(
        """
        INSERT INTO queue (iri, action, type, retry_count, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(iri) DO UPDATE SET updated_at = excluded.updated_at
        """,
        (iri, action.value if action else None, type, retry_count, now, now),
    )


def _delete(conn: sqlite3.Connection, iri: str) -> None:
    conn.execute("DELETE FROM queue WHERE iri = ?", (iri,))


class Queue:
    """Durable queue of identifiers awaiting fetch, store or delete."""

    def __init__(
        self,
        connection: Connection,
        max_retry_count: int = DEFAULT_MAX_RETRY_COUNT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_retry_count < 0:
            raise ValueError("max_retry_count must be >= 0")
        self.connection = connection
        self.max_retry_count = max_retry_count
        self.logger = logger or _LOGGER

    def push(
        self,
        iri: str,
        action: Action | str | None = None,
        type: Optional[str] = None,
        retry_count: int = 0,
    ) -> QueueItem:
        """Queue ``iri``, or refresh ``updated_at`` if it is already queued.

        Returns:
            The stored row, which carries the original action and type when the
            identifier was already queued.

        Raises:
            ValueError: If ``action`` is not a known action
        """
        if retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        normalized = Action.coerce(action)
        with self.connection.transaction() as conn:
            _insert(conn, iri, normalized, type, retry_count)
            row = conn.execute("SELECT * FROM queue WHERE iri = ?", (iri,)).fetchone()
        return QueueItem.from_row(row)

    def remove(self, iri: str) -> None:
        with self.connection.transaction() as conn:
            _delete(conn, iri)

    def get(self, iri: str) -> Optional[QueueItem]:
        row = self.connection.fetch_one("SELECT * FROM queue WHERE iri = ?", (iri,))
        return QueueItem.from_row(row) if row else None

    def get_all(self, type: Optional[str] = None, limit: Optional[int] = None) -> list[QueueItem]:
        """Return queued items oldest first, optionally filtered by type and limited."""
        if limit is not None and limit < 1:
            raise ValueError("limit must be >= 1")

        sql = "SELECT * FROM queue"
        params: list[object] = []
        if type is not None:
            sql += " WHERE type = ?"
            params.append(type)
        sql += " ORDER BY created_at ASC, rowid ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        return [QueueItem.from_row(row) for row in self.connection.fetch_all(sql, params)]

    def size(self, type: Optional[str] = None) -> int:
        if type is None:
            row = self.connection.fetch_one("SELECT COUNT(*) FROM queue")
        else:
            row = self.connection.fetch_one("SELECT COUNT(*) FROM queue WHERE type = ?", (type,))
        return int(row[0])

    def retry(self, item: QueueItem) -> QueueItem:
        """Send ``item`` to the back of the queue with an incremented retry count.

        Raises:
            RetryLimitExceededError: If the incremented count exceeds
                ``max_retry_count``. The item has been removed regardless.
        """
        retry_count = item.retry_count + 1
        with self.connection.transaction() as conn:
            _delete(conn, item.iri)
            if retry_count <= self.max_retry_count:
                _insert(conn, item.iri, item.action, item.type, retry_count)
                row = conn.execute("SELECT * FROM queue WHERE iri = ?", (item.iri,)).fetchone()
            else:
                row = None

        if row is None:
            raise RetryLimitExceededError(item.iri, self.max_retry_count)

        self.logger.debug(f"Re-queued {item.iri} (retry {retry_count}/{self.max_retry_count})")
        return QueueItem.from_row(row)

    def process_and_save(self, item: QueueItem) -> None:
        """Remove ``item`` from the queue and record it in the registry, atomically."""
        with self.connection.transaction() as conn:
            _delete(conn, item.iri)
            upsert_registry_row(conn, item.iri, item.type)

    def process_and_remove(self, item: QueueItem) -> None:
        """Remove ``item`` from both the queue and the registry, atomically."""
        with self.connection.transaction() as conn:
            _delete(conn, item.iri)
            delete_registry_row(conn, item.iri)

    def remove_all(self, type: Optional[str] = None) -> int:
        """Empty the queue (or one type of it); returns the number of rows removed."""
        with self.connection.transaction() as conn:
            if type is None:
                cursor = conn.execute("DELETE FROM queue")
            else:
                cursor = conn.execute("DELETE FROM queue WHERE type = ?", (type,))
        return cursor.rowcount
