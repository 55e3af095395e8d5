"""Base class and helpers for the in-memory stores.

All state lives in process memory; nothing survives a restart.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

from pydantic import BaseModel

RecordT = TypeVar("RecordT", bound=BaseModel)


def paginate(items: list[RecordT], limit: int, offset: int) -> list[RecordT]:
    """Slice a list for limit/offset pagination.

    Negative values are treated as zero.
    """
    offset = max(offset, 0)
    limit = max(limit, 0)
    return items[offset : offset + limit]


class InMemoryStore(Generic[RecordT]):
    """Ordered, lock-guarded collection with a sequence id allocator.

    Provides:
    - Insertion-ordered record list plus an id index
    - Monotonic integer ids starting at 1
    - An asyncio.Lock serializing mutations
    """

    def __init__(self) -> None:
        self._records: list[RecordT] = []
        self._by_id: dict[int, RecordT] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    def _allocate_id(self) -> int:
        """Return the next sequence id. Call with the lock held."""
        record_id = self._next_id
        self._next_id += 1
        return record_id

    def _insert(self, record_id: int, record: RecordT) -> None:
        self._records.append(record)
        self._by_id[record_id] = record

    def _remove(self, record_id: int) -> RecordT | None:
        record = self._by_id.pop(record_id, None)
        if record is not None:
            self._records.remove(record)
        return record

    def _replace(self, record_id: int, record: RecordT) -> None:
        old = self._by_id[record_id]
        self._records[self._records.index(old)] = record
        self._by_id[record_id] = record

    async def count(self) -> int:
        """Number of stored records."""
        return len(self._records)

    async def reset(self) -> None:
        """Drop all records and restart ids at 1."""
        async with self._lock:
            self._records.clear()
            self._by_id.clear()
            self._next_id = 1
