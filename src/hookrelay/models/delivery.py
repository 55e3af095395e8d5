"""Delivery models: audit records, per-call results and aggregates."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import utc_now

# Delivery status
DeliveryStatus = Literal["success", "failed", "pending"]


class DeliveryAttempt(BaseModel):
    """Audit record of one delivery attempt (initial or retry).

    Records are append-only. The only sanctioned in-place change is an
    operator requeue, see ``mark_requeued``.

    Attributes:
        id: Sequence identifier assigned by the AuditLog.
        event_id: ID of the event being delivered.
        webhook_id: ID of the target subscription.
        status: Outcome (success, failed) or pending after a requeue.
        attempt_count: 1 for the initial try, incremented along the retry chain.
        response_code: HTTP status received, 0 if no response arrived.
        error_message: Error description if delivery failed.
        created_at: When the attempt was recorded.
        updated_at: When the record last changed.
    """

    model_config = ConfigDict(extra="forbid")

    id: int = Field(ge=1, description="Sequence identifier")
    event_id: int = Field(ge=1, description="ID of the event being delivered")
    webhook_id: int = Field(ge=1, description="ID of the target webhook")
    status: DeliveryStatus = Field(description="Delivery status")
    attempt_count: int = Field(default=1, ge=1, description="Attempt number in the chain")
    response_code: int | None = Field(default=None, description="HTTP response status code")
    error_message: str | None = Field(default=None, description="Error message if failed")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def mark_requeued(self) -> "DeliveryAttempt":
        """Flag the record for operator-initiated redelivery."""
        self.attempt_count += 1
        self.status = "pending"
        self.updated_at = utc_now()
        return self


class DeliveryResult(BaseModel):
    """Outcome of a single call to a webhook endpoint."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: int
    success: bool
    status: int = Field(default=0, description="HTTP status, 0 when no response arrived")
    error: str | None = None


class DeliverySummary(BaseModel):
    """Aggregate outcome of fanning one event out to its subscribers."""

    model_config = ConfigDict(extra="forbid")

    delivered: int = 0
    failed: int = 0


class DeliveryStats(BaseModel):
    """Dashboard statistics computed from the in-memory stores."""

    model_config = ConfigDict(extra="forbid")

    event_count: int = 0
    webhook_count: int = 0
    active_webhook_count: int = 0
    success_count: int = 0
    failure_count: int = 0


class EnrichedDeliveryLog(DeliveryAttempt):
    """Delivery attempt joined with event and webhook details for display."""

    event_type: str | None = None
    event_external_id: str | None = None
    target_url: str | None = None


__all__ = [
    "DeliveryAttempt",
    "DeliveryResult",
    "DeliveryStats",
    "DeliveryStatus",
    "DeliverySummary",
    "EnrichedDeliveryLog",
]
