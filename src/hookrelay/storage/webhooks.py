"""Webhook subscription registry.

The registry is the source of truth for subscriptions. Lookups by event
type go through a WebhookLookupCache; every mutation invalidates the cache
entries for the event types it touches before it returns.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from hookrelay.exceptions import ValidationError
from hookrelay.models import WebhookSubscription, WebhookUpdate, generate_secret, utc_now

from .base import InMemoryStore
from .cache import WebhookLookupCache

logger = logging.getLogger(__name__)


def _invalid(error: PydanticValidationError, default_field: str) -> ValidationError:
    """Report the first field pydantic rejected."""
    first = error.errors()[0]
    loc = first.get("loc") or (default_field,)
    return ValidationError(str(loc[0]), first["msg"])


class WebhookRegistry(InMemoryStore[WebhookSubscription]):
    """Owns the set of webhook subscriptions.

    Records handed out are copies; callers can't mutate registry state
    except through the methods below.

    Example:
        ```python
        registry = WebhookRegistry(WebhookLookupCache(ttl_seconds=3600))
        webhook = await registry.create("job_created", "https://example.test/hook")
        active = await registry.get_active_for_event("job_created")
        ```
    """

    def __init__(self, cache: WebhookLookupCache | None = None) -> None:
        """Initialize the registry.

        Args:
            cache: Lookup cache for get_active_for_event. A default
                one-hour cache is created if None.
        """
        super().__init__()
        self.cache = cache if cache is not None else WebhookLookupCache()

    async def create(
        self,
        event_type: str,
        target_url: str,
        secret: str | None = None,
    ) -> WebhookSubscription:
        """Register a new subscription.

        Args:
            event_type: Event type to subscribe to.
            target_url: Endpoint to POST events to.
            secret: Signing secret. A random one is generated if empty.

        Returns:
            The created subscription.

        Raises:
            ValidationError: If event_type or target_url is invalid.
        """
        if not event_type:
            raise ValidationError("event_type", "is required")
        if not target_url:
            raise ValidationError("target_url", "is required")

        async with self._lock:
            try:
                webhook = WebhookSubscription(
                    id=self._next_id,
                    event_type=event_type,
                    target_url=target_url,
                    secret=secret or generate_secret(),
                )
            except PydanticValidationError as e:
                raise _invalid(e, "webhook") from e
            self._allocate_id()
            self._insert(webhook.id, webhook)
            self.cache.invalidate(event_type)

        logger.info("Webhook %d registered for %s -> %s", webhook.id, event_type, target_url)
        return webhook.model_copy()

    async def update(
        self,
        webhook_id: int,
        updates: WebhookUpdate | dict[str, Any],
    ) -> WebhookSubscription | None:
        """Apply a partial update.

        Args:
            webhook_id: ID of the webhook to update.
            updates: Fields to change (any subset of event_type,
                target_url, is_active, secret).

        Returns:
            Updated subscription, or None if not found.

        Raises:
            ValidationError: If an updated field is invalid.
        """
        if isinstance(updates, dict):
            try:
                updates = WebhookUpdate(**updates)
            except PydanticValidationError as e:
                raise _invalid(e, "updates") from e
        changes = updates.changes()

        async with self._lock:
            current = self._by_id.get(webhook_id)
            if current is None:
                return None

            try:
                updated = WebhookSubscription.model_validate(
                    {**current.model_dump(), **changes, "updated_at": utc_now()}
                )
            except PydanticValidationError as e:
                raise _invalid(e, "updates") from e

            self._replace(webhook_id, updated)
            self.cache.invalidate(current.event_type)
            if updated.event_type != current.event_type:
                self.cache.invalidate(updated.event_type)

        logger.info("Webhook %d updated: %s", webhook_id, sorted(changes))
        return updated.model_copy()

    async def delete(self, webhook_id: int) -> bool:
        """Remove a subscription.

        Returns:
            True if deleted, False if not found.
        """
        async with self._lock:
            removed = self._remove(webhook_id)
            if removed is None:
                return False
            self.cache.invalidate(removed.event_type)

        logger.info("Webhook %d deleted", webhook_id)
        return True

    async def toggle_active(self, webhook_id: int) -> WebhookSubscription | None:
        """Flip a subscription's active flag.

        Returns:
            Updated subscription, or None if not found.
        """
        async with self._lock:
            current = self._by_id.get(webhook_id)
            if current is None:
                return None
            updated = current.model_copy(
                update={"is_active": not current.is_active, "updated_at": utc_now()}
            )
            self._replace(webhook_id, updated)
            self.cache.invalidate(current.event_type)

        logger.info("Webhook %d active=%s", webhook_id, updated.is_active)
        return updated.model_copy()

    async def get_by_id(self, webhook_id: int) -> WebhookSubscription | None:
        """Get a subscription by id."""
        webhook = self._by_id.get(webhook_id)
        return webhook.model_copy() if webhook is not None else None

    async def get_all(self) -> list[WebhookSubscription]:
        """Get every subscription in registration order."""
        return [w.model_copy() for w in self._records]

    async def get_by_event_type(self, event_type: str) -> list[WebhookSubscription]:
        """Scan the registry for active subscriptions to an event type."""
        return [w.model_copy() for w in self._records if w.subscribes_to(event_type)]

    async def get_active_for_event(self, event_type: str) -> list[WebhookSubscription]:
        """Cache-fronted lookup of active subscriptions to an event type.

        May return membership up to one TTL old, unless a mutation for
        this event type invalidated the entry in the meantime.
        """
        cached = self.cache.get(event_type)
        if cached is not None:
            return cached

        webhooks = await self.get_by_event_type(event_type)
        self.cache.set(event_type, webhooks)
        return webhooks

    async def count_active(self) -> int:
        """Number of active subscriptions."""
        return sum(1 for w in self._records if w.is_active)

    async def reset(self) -> None:
        await super().reset()
        self.cache.clear()
