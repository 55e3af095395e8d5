"""Delivery audit log.

Append-only record of every delivery attempt, success or failure. Retry
exhaustion is never raised to callers; it is visible only here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hookrelay.exceptions import InvalidStateError, NotFoundError
from hookrelay.models import DeliveryAttempt, DeliveryStats, DeliveryStatus

from .base import InMemoryStore, paginate

if TYPE_CHECKING:
    from .events import EventStore
    from .webhooks import WebhookRegistry

logger = logging.getLogger(__name__)


class AuditLog(InMemoryStore[DeliveryAttempt]):
    """Owns the delivery attempt records.

    Holds references to the EventStore and WebhookRegistry to enforce
    referential integrity on append and to compute dashboard stats.
    """

    def __init__(self, events: EventStore, webhooks: WebhookRegistry) -> None:
        super().__init__()
        self._events = events
        self._webhooks = webhooks

    async def append(
        self,
        event_id: int,
        webhook_id: int,
        status: DeliveryStatus,
        attempt_count: int,
        response_code: int | None = None,
        error_message: str | None = None,
    ) -> DeliveryAttempt:
        """Record one delivery attempt.

        Args:
            event_id: Event that was delivered.
            webhook_id: Subscription it was delivered to.
            status: Outcome of the attempt.
            attempt_count: Position in the retry chain (1 = initial try).
            response_code: HTTP status received, 0 if none.
            error_message: Failure description.

        Returns:
            The stored record.

        Raises:
            NotFoundError: If the event or webhook doesn't exist.
        """
        if await self._events.get_by_id(event_id) is None:
            raise NotFoundError("event", event_id)
        if await self._webhooks.get_by_id(webhook_id) is None:
            raise NotFoundError("webhook", webhook_id)

        async with self._lock:
            record = DeliveryAttempt(
                id=self._allocate_id(),
                event_id=event_id,
                webhook_id=webhook_id,
                status=status,
                attempt_count=attempt_count,
                response_code=response_code,
                error_message=error_message,
            )
            self._insert(record.id, record)

        return record.model_copy()

    async def get_by_id(self, attempt_id: int) -> DeliveryAttempt | None:
        """Get a delivery attempt by id."""
        record = self._by_id.get(attempt_id)
        return record.model_copy() if record is not None else None

    async def get_by_event_id(self, event_id: int) -> list[DeliveryAttempt]:
        """Get all attempts for an event, oldest first."""
        return [r.model_copy() for r in self._records if r.event_id == event_id]

    async def get_by_webhook_id(self, webhook_id: int) -> list[DeliveryAttempt]:
        """Get all attempts made to a webhook, oldest first."""
        return [r.model_copy() for r in self._records if r.webhook_id == webhook_id]

    async def get_all(self, limit: int = 100, offset: int = 0) -> list[DeliveryAttempt]:
        """Get attempts in insertion order."""
        return [r.model_copy() for r in paginate(self._records, limit, offset)]

    async def get_stats(self) -> DeliveryStats:
        """Compute dashboard statistics by scanning current state.

        Fine for a store bounded by process lifetime; a persistent
        backend would keep running counters instead.
        """
        return DeliveryStats(
            event_count=await self._events.count(),
            webhook_count=await self._webhooks.count(),
            active_webhook_count=await self._webhooks.count_active(),
            success_count=sum(1 for r in self._records if r.status == "success"),
            failure_count=sum(1 for r in self._records if r.status == "failed"),
        )

    async def requeue(self, attempt_id: int) -> DeliveryAttempt:
        """Mark a failed attempt for operator-initiated redelivery.

        This is the one in-place edit the log permits.

        Raises:
            NotFoundError: If no such attempt exists.
            InvalidStateError: If the attempt already succeeded.
        """
        async with self._lock:
            record = self._by_id.get(attempt_id)
            if record is None:
                raise NotFoundError("delivery_attempt", attempt_id)
            if record.status == "success":
                raise InvalidStateError("Delivery already successful")
            record.mark_requeued()

        logger.info(
            "Delivery %d marked for retry (attempt_count=%d)", attempt_id, record.attempt_count
        )
        return record.model_copy()
