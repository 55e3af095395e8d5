"""Webhook subscription models.

A subscription registers interest in one event type, naming a target URL
and the secret used to sign deliveries.
"""

from datetime import datetime
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import utc_now


def _check_target_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("target_url must be an absolute http(s) URL")
    return value


class WebhookSubscription(BaseModel):
    """A registered webhook subscription.

    Attributes:
        id: Sequence identifier assigned by the WebhookRegistry.
        event_type: Event type this subscription receives.
        target_url: Endpoint that receives POSTed events.
        secret: Shared secret for HMAC-SHA256 signatures. Never empty.
        is_active: Whether deliveries are made to this subscription.
        created_at: When the subscription was registered.
        updated_at: When the subscription was last modified.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: int = Field(ge=1, description="Sequence identifier")
    event_type: str = Field(min_length=1, description="Subscribed event type")
    target_url: str = Field(description="HTTP(S) endpoint to receive events")
    secret: str = Field(min_length=1, description="Shared secret for HMAC-SHA256 signatures")
    is_active: bool = Field(default=True, description="Whether the webhook is active")
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the webhook was registered",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="When the webhook was last modified",
    )

    @field_validator("target_url")
    @classmethod
    def _validate_target_url(cls, value: str) -> str:
        return _check_target_url(value)

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this webhook should receive events of the given type."""
        return self.is_active and self.event_type == event_type


class WebhookUpdate(BaseModel):
    """Partial update for a webhook subscription.

    Only fields that were explicitly provided are applied; use
    ``model_dump(exclude_unset=True)`` to get them.
    """

    model_config = ConfigDict(extra="forbid")

    event_type: str | None = Field(default=None, min_length=1)
    target_url: str | None = Field(default=None)
    is_active: bool | None = Field(default=None)
    secret: str | None = Field(default=None, min_length=1)

    @field_validator("target_url")
    @classmethod
    def _validate_target_url(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return _check_target_url(value)

    def changes(self) -> dict[str, object]:
        """Return the explicitly set, non-null fields."""
        return {k: v for k, v in self.model_dump(exclude_unset=True).items() if v is not None}


__all__ = [
    "WebhookSubscription",
    "WebhookUpdate",
]
