"""Split oversized batch requests into store-sized chunks.

Chunks are plain sequential slices: concatenating ``chunk.items`` in order
gives back the input, and ``original_indexes`` maps every item to its input
position.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from keyquery.config import KeyQueryConfig
from keyquery.telemetry import log_chunk_plan

T = TypeVar("T")


@dataclass(frozen=True)
class BatchChunk(Generic[T]):
    """One request-sized slice of a larger batch.

    Attributes:
        items: Items in this chunk, never more than the ceiling
        original_indexes: Position of each item in the caller's sequence
        chunk_index: Zero-based index of this chunk in the overall plan
    """

    items: tuple[T, ...]
    original_indexes: tuple[int, ...]
    chunk_index: int = 0

    def __len__(self) -> int:
        return len(self.items)


def chunk_items(
    items: Sequence[T], ceiling: int, *, operation: str = "batch"
) -> list[BatchChunk[T]]:
    """Slice ``items`` into chunks of at most ``ceiling`` items.

    Args:
        items: Items to split, in caller order
        ceiling: Maximum items per chunk
        operation: Operation name for logging

    Returns:
        List of chunks; empty when ``items`` is empty

    Raises:
        ValueError: If ceiling is not positive
    """
    if ceiling <= 0:
        raise ValueError(f"chunk ceiling must be positive, got {ceiling}")

    chunks: list[BatchChunk[T]] = []
    start = 0
    chunk_index = 0
    while start < len(items):
        end = min(start + ceiling, len(items))
        chunks.append(
            BatchChunk(
                items=tuple(items[start:end]),
                original_indexes=tuple(range(start, end)),
                chunk_index=chunk_index,
            )
        )
        start = end
        chunk_index += 1

    log_chunk_plan(
        operation=operation,
        total_items=len(items),
        total_chunks=len(chunks),
        ceiling=ceiling,
    )
    return chunks


def chunk_writes(items: Sequence[T], config: KeyQueryConfig) -> list[BatchChunk[T]]:
    return chunk_items(items, config.write_batch_limit, operation="batch_write_item")


def chunk_reads(keys: Sequence[T], config: KeyQueryConfig) -> list[BatchChunk[T]]:
    return chunk_items(keys, config.read_batch_limit, operation="batch_get_item")

