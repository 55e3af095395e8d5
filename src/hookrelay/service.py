"""Core HookRelay service layer.

This module provides the RelayService that wires the stores, the delivery
engine, the retry scheduler and the delivery workers together behind the
operations the HTTP layer exposes.

Example:
    ```python
    from hookrelay.service import RelayService

    async with RelayService.create() as relay:
        await relay.create_webhook("job_created", "https://example.test/hook")
        event = await relay.ingest_event("evt-1", "job_created", {"job_id": "j1"})
        # Delivery happens in the background; inspect it through the audit log
        logs = await relay.get_delivery_logs(event.id)
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from hookrelay.config import Settings
from hookrelay.exceptions import NotFoundError, QueueFullError, ValidationError
from hookrelay.models import (
    DeliveryAttempt,
    DeliveryStats,
    EnrichedDeliveryLog,
    Event,
    WebhookSubscription,
    WebhookUpdate,
    utc_now,
)
from hookrelay.storage import AuditLog, EventStore, WebhookLookupCache, WebhookRegistry
from hookrelay.webhooks import DeliveryQueue, RetryScheduler, WebhookDispatcher

logger = logging.getLogger(__name__)


def _require(field: str, value: object) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field, "is required")


@dataclass
class RelayService:
    """High-level HookRelay service.

    Uses dependency injection for every component, so tests can build a
    service around their own stores or HTTP transport.

    Attributes:
        events: Event store (idempotent intake).
        webhooks: Subscription registry with its lookup cache.
        audit_log: Delivery attempt records.
        dispatcher: Delivery engine.
        retry_scheduler: Pending retries.
        queue: Background delivery workers.
        settings: Configuration settings.
    """

    events: EventStore
    webhooks: WebhookRegistry
    audit_log: AuditLog
    dispatcher: WebhookDispatcher
    retry_scheduler: RetryScheduler
    queue: DeliveryQueue
    settings: Settings

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> RelayService:
        """Create a RelayService with default in-memory components.

        Args:
            settings: Optional settings. Uses environment if None.
            transport: Optional httpx transport for outbound calls.

        Returns:
            Configured, not yet initialized RelayService.
        """
        if settings is None:
            settings = Settings()

        events = EventStore()
        webhooks = WebhookRegistry(WebhookLookupCache(ttl_seconds=settings.webhook_cache_ttl_seconds))
        audit_log = AuditLog(events, webhooks)
        retry_scheduler = RetryScheduler(
            webhooks,
            max_retries=settings.max_retries,
            base_delay_seconds=settings.retry_base_delay_seconds,
        )
        dispatcher = WebhookDispatcher(
            webhooks,
            audit_log,
            retry_scheduler,
            timeout_seconds=settings.delivery_timeout_seconds,
            max_concurrent=settings.max_concurrent_deliveries,
            treat_any_response_as_success=settings.treat_any_response_as_success,
            header_prefix=settings.signature_header_prefix,
            transport=transport,
        )
        queue = DeliveryQueue(
            dispatcher,
            workers=settings.delivery_workers,
            maxsize=settings.delivery_queue_size,
        )

        return cls(
            events=events,
            webhooks=webhooks,
            audit_log=audit_log,
            dispatcher=dispatcher,
            retry_scheduler=retry_scheduler,
            queue=queue,
            settings=settings,
        )

    async def initialize(self) -> None:
        """Start the delivery workers."""
        await self.queue.start()

    async def close(self) -> None:
        """Stop workers, cancel pending retries and close the HTTP client."""
        await self.queue.stop()
        await self.retry_scheduler.shutdown()
        await self.dispatcher.close()

    async def __aenter__(self) -> RelayService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def drain(self) -> None:
        """Wait for queued fan-outs and every retry chain to finish."""
        await self.queue.join()
        await self.retry_scheduler.wait_idle()

    def _page_size(self, limit: int | None) -> int:
        if limit is None:
            return self.settings.default_page_size
        return max(0, min(limit, self.settings.max_page_size))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def ingest_event(self, external_id: str, type: str, payload: Any) -> Event | None:
        """Store an event and queue it for delivery.

        Delivery runs in the background; its failures never reach the
        caller and are only visible in the audit log.

        Args:
            external_id: Producer-supplied unique id (idempotency key).
            type: Event type.
            payload: Event payload.

        Returns:
            The new Event, or None if external_id was already ingested.

        Raises:
            ValidationError: If a required field is missing.
            QueueFullError: If the delivery queue can't take more events.
        """
        _require("external_id", external_id)
        _require("type", type)
        _require("payload", payload)

        if not self.queue.running:
            raise QueueFullError("Delivery workers are not running")
        if self.queue.depth >= self.settings.delivery_queue_size:
            raise QueueFullError("Delivery queue is full, retry later")

        event = await self.events.create(external_id, type, payload)
        if event is None:
            return None

        try:
            self.queue.enqueue(event)
        except QueueFullError:
            # Concurrent intakes can fill the queue while this one waits on the store
            await self.events.discard(event.id)
            logger.warning("Event %s refused, delivery queue filled up", external_id)
            raise
        return event

    async def get_event(self, event_id: int) -> Event:
        """Get an event by id.

        Raises:
            NotFoundError: If the event doesn't exist.
        """
        event = await self.events.get_by_id(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        return event

    async def list_events(self, limit: int | None = None, offset: int = 0) -> list[Event]:
        """List events in intake order."""
        return await self.events.get_all(limit=self._page_size(limit), offset=offset)

    async def list_events_by_type(self, event_type: str, limit: int | None = None) -> list[Event]:
        """List the first events of a type in intake order."""
        return await self.events.get_by_type(event_type, limit=self._page_size(limit))

    # ------------------------------------------------------------------
    # Delivery audit
    # ------------------------------------------------------------------

    async def get_delivery_logs(self, event_id: int) -> list[EnrichedDeliveryLog]:
        """Get delivery attempts for an event with webhook details.

        Raises:
            NotFoundError: If the event doesn't exist.
        """
        event = await self.get_event(event_id)
        attempts = await self.audit_log.get_by_event_id(event_id)
        return [await self._enrich(attempt, event) for attempt in attempts]

    async def list_delivery_logs(
        self, limit: int | None = None, offset: int = 0
    ) -> list[EnrichedDeliveryLog]:
        """List delivery attempts with event and webhook details."""
        if limit is None:
            limit = 100
        attempts = await self.audit_log.get_all(limit=self._page_size(limit), offset=offset)
        return [await self._enrich(attempt) for attempt in attempts]

    async def _enrich(
        self, attempt: DeliveryAttempt, event: Event | None = None
    ) -> EnrichedDeliveryLog:
        if event is None:
            event = await self.events.get_by_id(attempt.event_id)
        webhook = await self.webhooks.get_by_id(attempt.webhook_id)
        return EnrichedDeliveryLog(
            **attempt.model_dump(),
            event_type=event.type if event else None,
            event_external_id=event.external_id if event else None,
            target_url=webhook.target_url if webhook else None,
        )

    async def get_stats(self) -> DeliveryStats:
        """Dashboard statistics."""
        return await self.audit_log.get_stats()

    async def retry_delivery(self, attempt_id: int) -> DeliveryAttempt:
        """Manually requeue a failed delivery attempt.

        Raises:
            NotFoundError: If the attempt doesn't exist.
            InvalidStateError: If the attempt already succeeded.
        """
        return await self.audit_log.requeue(attempt_id)

    # ------------------------------------------------------------------
    # Webhook subscriptions
    # ------------------------------------------------------------------

    async def create_webhook(
        self,
        event_type: str,
        target_url: str,
        secret: str | None = None,
    ) -> WebhookSubscription:
        """Register a subscription; a secret is generated if none is given."""
        _require("event_type", event_type)
        _require("target_url", target_url)
        return await self.webhooks.create(event_type, target_url, secret)

    async def get_webhook(self, webhook_id: int) -> WebhookSubscription:
        """Get a subscription by id.

        Raises:
            NotFoundError: If the webhook doesn't exist.
        """
        webhook = await self.webhooks.get_by_id(webhook_id)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        return webhook

    async def list_webhooks(self) -> list[WebhookSubscription]:
        """List every subscription."""
        return await self.webhooks.get_all()

    async def update_webhook(
        self,
        webhook_id: int,
        updates: WebhookUpdate | dict[str, Any],
    ) -> WebhookSubscription:
        """Apply a partial update.

        Raises:
            NotFoundError: If the webhook doesn't exist.
            ValidationError: If an updated field is invalid.
        """
        webhook = await self.webhooks.update(webhook_id, updates)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        return webhook

    async def delete_webhook(self, webhook_id: int) -> None:
        """Delete a subscription and cancel its pending retries.

        Raises:
            NotFoundError: If the webhook doesn't exist.
        """
        if not await self.webhooks.delete(webhook_id):
            raise NotFoundError("webhook", webhook_id)
        self.retry_scheduler.cancel_for_webhook(webhook_id)

    async def toggle_webhook(self, webhook_id: int) -> WebhookSubscription:
        """Flip a subscription's active flag.

        Raises:
            NotFoundError: If the webhook doesn't exist.
        """
        webhook = await self.webhooks.toggle_active(webhook_id)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        return webhook

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health(self) -> dict[str, Any]:
        """Report storage and worker state."""
        return {
            "storage": "healthy",
            "workers_running": self.queue.running,
            "queue_depth": self.queue.depth,
            "pending_retries": self.retry_scheduler.pending_count,
            "timestamp": utc_now().isoformat(),
        }
