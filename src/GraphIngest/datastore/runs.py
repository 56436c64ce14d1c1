"""Run bookkeeping: the last run's timestamp and freshness marker."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from .connection import Connection, utc_now
from .models import RunItem

__all__ = ["Runs"]


class Runs:
    """Keeps a single current run; saving a run replaces all earlier ones."""

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    def get_last(self) -> Optional[RunItem]:
        row = self.connection.fetch_one("SELECT * FROM runs ORDER BY id DESC LIMIT 1")
        return RunItem.from_row(row) if row else None

    def save(
        self, identifier: Optional[str] = None, created_at: Optional[datetime] = None
    ) -> RunItem:
        """Replace the current run.

        ``created_at`` records when the run started; it defaults to now. A run
        saved after its work finished passes its start time so the next run
        resumes from there.
        """
        now = utc_now()
        started = now
        if created_at is not None:
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            started = created_at.astimezone(timezone.utc).isoformat(timespec="microseconds")
        with self.connection.transaction() as conn:
            conn.execute("DELETE FROM runs")
            cursor = conn.execute(
                "INSERT INTO runs (identifier, created_at, updated_at) VALUES (?, ?, ?)",
                (identifier, started, now),
            )
            row = conn.execute("SELECT * FROM runs WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return RunItem.from_row(row)

    def remove_all(self) -> None:
        with self.connection.transaction() as conn:
            conn.execute("DELETE FROM runs")
