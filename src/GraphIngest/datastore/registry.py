"""Registry of identifiers currently materialized in the file store.

The registry answers one question that the queue cannot: which resources
were stored by an earlier run but are no longer part of the source? After a
caller has pushed the complete, fresh identifier set for a type into the
queue, :meth:`Registry.remove_if_not_in_queue` deletes and returns exactly
those registry rows of that type whose identifier is absent from the queue.

The upsert/delete statements are exposed as module functions so that the
queue can apply them inside its own transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from .connection import Connection, utc_now
from .models import RegistryItem

__all__ = ["Registry"]

_LOGGER = logging.getLogger(__name__)


def upsert_registry_row(conn: sqlite3.Connection, iri: str, type: Optional[str]) -> None:
    now = utc_now()
    conn.execute(
        """
        INSERT INTO registry (iri, type, created_at, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(iri) DO UPDATE SET type = excluded.type, updated_at = excluded.updated_at
        """,
        (iri, type, now, now),
    )


def delete_registry_row(conn: sqlite3.Connection, iri: str) -> None:
    conn.execute("DELETE FROM registry WHERE iri = ?", (iri,))


class Registry:
    """Durable set of stored identifiers, partitioned by an optional type."""

    def __init__(self, connection: Connection, logger: Optional[logging.Logger] = None) -> None:
        self.connection = connection
        self.logger = logger or _LOGGER

    def save(self, iri: str, type: Optional[str] = None) -> RegistryItem:
        """Insert or refresh ``iri``; saving twice keeps a single row."""
        with self.connection.transaction() as conn:
            upsert_registry_row(conn, iri, type)
            row = conn.execute("SELECT * FROM registry WHERE iri = ?", (iri,)).fetchone()
        return RegistryItem.from_row(row)

    def remove(self, iri: str) -> None:
        with self.connection.transaction() as conn:
            delete_registry_row(conn, iri)

    def get(self, iri: str) -> Optional[RegistryItem]:
        row = self.connection.fetch_one("SELECT * FROM registry WHERE iri = ?", (iri,))
        return RegistryItem.from_row(row) if row else None

    def get_all(self, type: Optional[str] = None) -> list[RegistryItem]:
        if type is None:
            rows = self.connection.fetch_all("SELECT * FROM registry ORDER BY rowid ASC")
        else:
            rows = self.connection.fetch_all(
                "SELECT * FROM registry WHERE type = ? ORDER BY rowid ASC", (type,)
            )
        return [RegistryItem.from_row(row) for row in rows]

    def size(self, type: Optional[str] = None) -> int:
        if type is None:
            row = self.connection.fetch_one("SELECT COUNT(*) FROM registry")
        else:
            row = self.connection.fetch_one("SELECT COUNT(*) FROM registry WHERE type = ?", (type,))
        return int(row[0])

    def remove_if_not_in_queue(self, type: Optional[str] = None) -> list[RegistryItem]:
        """Delete and return registry rows (of ``type``) whose identifier is not queued.

        Only meaningful once the queue has been repopulated with the complete
        identifier set for ``type``; otherwise live resources are removed.
        """
        type_clause = "" if type is None else "AND registry.type = ?"
        params: tuple = () if type is None else (type,)
        with self.connection.transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT registry.* FROM registry
                WHERE NOT EXISTS (SELECT 1 FROM queue WHERE queue.iri = registry.iri)
                {type_clause}
                ORDER BY registry.rowid ASC
                """,
                params,
            ).fetchall()
            conn.executemany(
                "DELETE FROM registry WHERE iri = ?", [(row["iri"],) for row in rows]
            )

        removed = [RegistryItem.from_row(row) for row in rows]
        self.logger.info(
            f"Removed {len(removed)} obsolete registry items"
            + (f" of type {type!r}" if type is not None else "")
        )
        return removed
