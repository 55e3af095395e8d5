"""Event storage with idempotent intake.

The external id uniqueness check is the idempotency boundary that keeps
producer retries from turning into duplicate deliveries.
"""

from __future__ import annotations

import logging
from typing import Any

from hookrelay.models import Event

from .base import InMemoryStore, paginate

logger = logging.getLogger(__name__)


class EventStore(InMemoryStore[Event]):
    """Owns the set of ingested events.

    Example:
        ```python
        store = EventStore()
        event = await store.create("evt-1", "job_created", {"job_id": "j1"})
        assert await store.create("evt-1", "job_created", {}) is None
        ```
    """

    def __init__(self) -> None:
        super().__init__()
        self._by_external_id: dict[str, Event] = {}

    async def create(self, external_id: str, type: str, payload: Any) -> Event | None:
        """Store a new event unless its external id was seen before.

        Args:
            external_id: Producer-supplied unique identifier.
            type: Event type.
            payload: Event payload.

        Returns:
            The created Event, or None if external_id is a duplicate.
        """
        async with self._lock:
            if external_id in self._by_external_id:
                logger.info("Duplicate event ignored: %s", external_id)
                return None

            event = Event(
                id=self._allocate_id(),
                external_id=external_id,
                type=type,
                payload=payload,
            )
            self._insert(event.id, event)
            self._by_external_id[external_id] = event

        logger.info("New event created: %s (%s)", type, external_id)
        return event

    async def discard(self, event_id: int) -> bool:
        """Remove an event that was never handed to delivery.

        Frees its external id so the producer can send it again.

        Returns:
            True if the event existed.
        """
        async with self._lock:
            event = self._remove(event_id)
            if event is None:
                return False
            del self._by_external_id[event.external_id]
        return True

    async def get_by_id(self, event_id: int) -> Event | None:
        """Get an event by its sequence id."""
        return self._by_id.get(event_id)

    async def get_by_external_id(self, external_id: str) -> Event | None:
        """Get an event by its producer-supplied id."""
        return self._by_external_id.get(external_id)

    async def get_by_type(self, event_type: str, limit: int = 50) -> list[Event]:
        """Get the first ``limit`` events of a type, in insertion order."""
        matching = [e for e in self._records if e.type == event_type]
        return paginate(matching, limit, 0)

    async def get_all(self, limit: int = 50, offset: int = 0) -> list[Event]:
        """Get events in insertion order."""
        return paginate(self._records, limit, offset)

    async def reset(self) -> None:
        await super().reset()
        self._by_external_id.clear()
