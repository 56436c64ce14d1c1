"""Row types for the queue, registry and runs tables."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .connection import parse_timestamp

__all__ = ["Action", "QueueItem", "RegistryItem", "RunItem"]


class Action(str, Enum):
    """What the storer must do with a queued identifier."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def coerce(cls, value: "Action | str | None") -> Optional["Action"]:
        if value is None or isinstance(value, Action):
            return value
        return cls(value)


@dataclass(frozen=True)
class QueueItem:
    iri: str
    action: Optional[Action]
    type: Optional[str]
    retry_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "QueueItem":
        return cls(
            iri=row["iri"],
            action=Action.coerce(row["action"]),
            type=row["type"],
            retry_count=int(row["retry_count"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass(frozen=True)
class RegistryItem:
    iri: str
    type: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "RegistryItem":
        return cls(
            iri=row["iri"],
            type=row["type"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass(frozen=True)
class RunItem:
    id: int
    identifier: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "RunItem":
        return cls(
            id=int(row["id"]),
            identifier=row["identifier"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )
