"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models import DeliveryStatus


class IngestEventRequest(BaseModel):
    """Request body for ingesting an event.

    Attributes:
        external_id: Producer-supplied unique id, sent as ``externalId``.
            Re-sending an id is a no-op.
        type: Event type used to route to subscriptions.
        payload: Arbitrary JSON document delivered to subscribers.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    external_id: str = Field(
        alias="externalId",
        min_length=1,
        description="Producer-supplied unique event id",
    )
    type: str = Field(min_length=1, description="Event type")
    payload: Any = Field(description="Event payload delivered as the request body")


class EventResponse(BaseModel):
    """Response model for an event."""

    model_config = ConfigDict(extra="forbid")

    id: int
    external_id: str
    type: str
    payload: Any
    created_at: datetime


class IngestEventResponse(BaseModel):
    """Response for event intake.

    ``event`` is null when the external id was already ingested.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    event: EventResponse | None = None
    message: str


class CreateWebhookRequest(BaseModel):
    """Request body for registering a webhook.

    Attributes:
        event_type: Event type to subscribe to.
        target_url: HTTP(S) endpoint that receives events.
        secret: Signing secret; generated if omitted.
    """

    model_config = ConfigDict(extra="forbid")

    event_type: str = Field(min_length=1, description="Event type to subscribe to")
    target_url: str = Field(min_length=1, description="HTTP(S) endpoint to receive events")
    secret: str | None = Field(default=None, description="Signing secret (generated if omitted)")


class UpdateWebhookRequest(BaseModel):
    """Request body for a partial webhook update."""

    model_config = ConfigDict(extra="forbid")

    event_type: str | None = Field(default=None, min_length=1)
    target_url: str | None = Field(default=None)
    is_active: bool | None = Field(default=None)
    secret: str | None = Field(default=None, min_length=1)


class WebhookResponse(BaseModel):
    """Response model for a webhook subscription.

    The secret is included so the subscriber can verify signatures.
    """

    model_config = ConfigDict(extra="forbid")

    id: int
    event_type: str
    target_url: str
    secret: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class DeliveryLogResponse(BaseModel):
    """Response model for a delivery attempt with display details."""

    model_config = ConfigDict(extra="forbid")

    id: int
    event_id: int
    webhook_id: int
    status: DeliveryStatus
    attempt_count: int
    response_code: int | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    event_type: str | None = None
    event_external_id: str | None = None
    target_url: str | None = None


class RetryDeliveryResponse(BaseModel):
    """Response for a manual requeue."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    message: str
    log: DeliveryLogResponse


class StatsResponse(BaseModel):
    """Dashboard statistics."""

    model_config = ConfigDict(extra="forbid")

    event_count: int = Field(ge=0)
    webhook_count: int = Field(ge=0)
    active_webhook_count: int = Field(ge=0)
    success_count: int = Field(ge=0)
    failure_count: int = Field(ge=0)


class DashboardHealthResponse(BaseModel):
    """Detailed service health."""

    model_config = ConfigDict(extra="forbid")

    storage: str
    workers_running: bool
    queue_depth: int = Field(ge=0)
    pending_retries: int = Field(ge=0)
    timestamp: str


class HealthResponse(BaseModel):
    """Liveness probe response."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(description="Service status")
    version: str = Field(description="HookRelay version")
    timestamp: str = Field(description="Server time (ISO 8601)")
