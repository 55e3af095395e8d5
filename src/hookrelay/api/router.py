"""FastAPI router for HookRelay API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from hookrelay.service import RelayService

from .helpers import delivery_to_response, event_to_response, webhook_to_response
from .schemas import (
    CreateWebhookRequest,
    DashboardHealthResponse,
    DeliveryLogResponse,
    EventResponse,
    IngestEventRequest,
    IngestEventResponse,
    RetryDeliveryResponse,
    StatsResponse,
    UpdateWebhookRequest,
    WebhookResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: RelayService | None = None


def set_service(service: RelayService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> RelayService:
    """Dependency to get the RelayService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[RelayService, Depends(get_service)]
LimitQuery = Annotated[int | None, Query(ge=1, description="Page size")]
OffsetQuery = Annotated[int, Query(ge=0, description="Records to skip")]


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------


@router.post(
    "/events",
    response_model=IngestEventResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["events"],
)
async def ingest_event(
    request: IngestEventRequest,
    service: ServiceDep,
    response: Response,
) -> IngestEventResponse:
    """Ingest an event and queue it for delivery.

    Returns 201 with the stored event. If the id was already ingested the
    request is acknowledged with 200 and a null event; nothing is
    delivered again.
    """
    event = await service.ingest_event(request.external_id, request.type, request.payload)

    if event is None:
        response.status_code = status.HTTP_200_OK
        return IngestEventResponse(event=None, message="Event already processed")

    return IngestEventResponse(
        event=event_to_response(event),
        message="Event received and queued for delivery",
    )


@router.get("/events", response_model=list[EventResponse], tags=["events"])
async def list_events(
    service: ServiceDep,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
) -> list[EventResponse]:
    """List events in intake order."""
    events = await service.list_events(limit=limit, offset=offset)
    return [event_to_response(e) for e in events]


# Declared before /events/{event_id} so "type" isn't parsed as an id
@router.get("/events/type/{event_type}", response_model=list[EventResponse], tags=["events"])
async def list_events_by_type(
    event_type: str,
    service: ServiceDep,
    limit: LimitQuery = None,
) -> list[EventResponse]:
    """List events of one type."""
    events = await service.list_events_by_type(event_type, limit=limit)
    return [event_to_response(e) for e in events]


@router.get("/events/{event_id}", response_model=EventResponse, tags=["events"])
async def get_event(event_id: int, service: ServiceDep) -> EventResponse:
    """Get an event by id."""
    return event_to_response(await service.get_event(event_id))


@router.get(
    "/events/{event_id}/delivery-logs",
    response_model=list[DeliveryLogResponse],
    tags=["events"],
)
async def get_event_delivery_logs(
    event_id: int,
    service: ServiceDep,
) -> list[DeliveryLogResponse]:
    """Get every delivery attempt made for an event."""
    logs = await service.get_delivery_logs(event_id)
    return [delivery_to_response(log) for log in logs]


# ----------------------------------------------------------------------
# Webhooks
# ----------------------------------------------------------------------


@router.post(
    "/webhooks",
    response_model=WebhookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    request: CreateWebhookRequest,
    service: ServiceDep,
) -> WebhookResponse:
    """Register a webhook subscription."""
    webhook = await service.create_webhook(
        event_type=request.event_type,
        target_url=request.target_url,
        secret=request.secret,
    )
    return webhook_to_response(webhook)


@router.get("/webhooks", response_model=list[WebhookResponse], tags=["webhooks"])
async def list_webhooks(service: ServiceDep) -> list[WebhookResponse]:
    """List every webhook subscription."""
    return [webhook_to_response(w) for w in await service.list_webhooks()]


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(webhook_id: int, service: ServiceDep) -> WebhookResponse:
    """Get a webhook subscription by id."""
    return webhook_to_response(await service.get_webhook(webhook_id))


@router.put("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: int,
    request: UpdateWebhookRequest,
    service: ServiceDep,
) -> WebhookResponse:
    """Partially update a webhook subscription.

    Only the fields present in the body are changed.
    """
    updates = request.model_dump(exclude_unset=True)
    return webhook_to_response(await service.update_webhook(webhook_id, updates))


@router.delete(
    "/webhooks/{webhook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_webhook(webhook_id: int, service: ServiceDep) -> Response:
    """Delete a webhook subscription and cancel its pending retries."""
    await service.delete_webhook(webhook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/webhooks/{webhook_id}/toggle",
    response_model=WebhookResponse,
    tags=["webhooks"],
)
async def toggle_webhook(webhook_id: int, service: ServiceDep) -> WebhookResponse:
    """Flip a webhook's active flag."""
    return webhook_to_response(await service.toggle_webhook(webhook_id))


# ----------------------------------------------------------------------
# Dashboard
# ----------------------------------------------------------------------


@router.get("/dashboard/stats", response_model=StatsResponse, tags=["dashboard"])
async def get_stats(service: ServiceDep) -> StatsResponse:
    """Event, webhook and delivery counts."""
    stats = await service.get_stats()
    return StatsResponse(**stats.model_dump())


@router.get("/dashboard/health", response_model=DashboardHealthResponse, tags=["dashboard"])
async def dashboard_health(service: ServiceDep) -> DashboardHealthResponse:
    """Storage, worker and retry state."""
    return DashboardHealthResponse(**service.health())


@router.get("/dashboard/logs", response_model=list[DeliveryLogResponse], tags=["dashboard"])
async def list_delivery_logs(
    service: ServiceDep,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
) -> list[DeliveryLogResponse]:
    """List delivery attempts with event and webhook details."""
    logs = await service.list_delivery_logs(limit=limit, offset=offset)
    return [delivery_to_response(log) for log in logs]


@router.post(
    "/dashboard/retry/{log_id}",
    response_model=RetryDeliveryResponse,
    tags=["dashboard"],
)
async def retry_delivery(log_id: int, service: ServiceDep) -> RetryDeliveryResponse:
    """Mark a failed delivery attempt as pending again.

    The record is flagged for redelivery; no request is sent.
    """
    attempt = await service.retry_delivery(log_id)
    logger.info("Delivery %d requeued by operator", log_id)
    return RetryDeliveryResponse(
        message="Delivery queued for retry",
        log=delivery_to_response(attempt),
    )
