"""Splitting of queue items into fetch groups."""

from __future__ import annotations

from typing import List, Sequence, TypeVar

T = TypeVar("T")

__all__ = ["to_chunks"]


def to_chunks(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive groups of at most ``size`` elements.

    >>> to_chunks([1, 2, 3, 4, 5], 2)
    [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError("size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
