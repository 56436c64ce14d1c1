"""Durable queue, registry and run bookkeeping on a shared SQLite connection."""

from __future__ import annotations

from .connection import Connection
from .models import Action, QueueItem, RegistryItem, RunItem
from .queue import Queue
from .registry import Registry
from .runs import Runs

__all__ = [
    "Action",
    "Connection",
    "Queue",
    "QueueItem",
    "Registry",
    "RegistryItem",
    "RunItem",
    "Runs",
]
