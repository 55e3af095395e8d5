"""Response builders shared by the API routes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .schemas import DeliveryLogResponse, EventResponse, WebhookResponse

if TYPE_CHECKING:
    from hookrelay.models import DeliveryAttempt, Event, WebhookSubscription


def event_to_response(event: Event) -> EventResponse:
    """Convert an Event model to an EventResponse."""
    return EventResponse(
        id=event.id,
        external_id=event.external_id,
        type=event.type,
        payload=event.payload,
        created_at=event.created_at,
    )


def webhook_to_response(webhook: WebhookSubscription) -> WebhookResponse:
    """Convert a WebhookSubscription model to a WebhookResponse."""
    return WebhookResponse(**webhook.model_dump())


def delivery_to_response(attempt: DeliveryAttempt) -> DeliveryLogResponse:
    """Convert a DeliveryAttempt (plain or enriched) to a DeliveryLogResponse.

    Enrichment fields are left null for a plain attempt.
    """
    return DeliveryLogResponse(**attempt.model_dump())
