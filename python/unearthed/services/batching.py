"""List partitioning helpers for batched writes and job sharding."""

import math
from collections.abc import Iterator, Sequence
from typing import TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def split_into_shards(items: Sequence[T], parts: int) -> list[list[T]]:
    """Split ``items`` into exactly ``parts`` contiguous, near-equal shards.

    Shards hold ceil(len/parts) items each, so trailing shards may be short
    or empty. Every item lands in exactly one shard and order is preserved.
    """
    if parts < 1:
        raise ValueError("parts must be at least 1")
    if not items:
        return [[] for _ in range(parts)]

    per_part = math.ceil(len(items) / parts)
    shards = [list(items[i * per_part : (i + 1) * per_part]) for i in range(parts)]
    return shards
