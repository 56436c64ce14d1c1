"""IIIF Change Discovery: activity stream models and the backward-paging client."""

from __future__ import annotations

from .discoverer import (
    ACTION_BY_CHANGE_TYPE,
    ChangeDiscoverer,
    ChangeRecord,
    ChangeType,
    DiscoveryListener,
    QueueSink,
)

__all__ = [
    "ACTION_BY_CHANGE_TYPE",
    "ChangeDiscoverer",
    "ChangeRecord",
    "ChangeType",
    "DiscoveryListener",
    "QueueSink",
]
