"""Batch storer and fetch-group helpers."""

from __future__ import annotations

from .batch import (
    BatchResult,
    BatchStorer,
    FetchFunction,
    PartialContent,
    StorerListener,
    StorerRunOptions,
    group_id,
)
from .chunks import to_chunks

__all__ = [
    "BatchResult",
    "BatchStorer",
    "FetchFunction",
    "PartialContent",
    "StorerListener",
    "StorerRunOptions",
    "group_id",
    "to_chunks",
]
