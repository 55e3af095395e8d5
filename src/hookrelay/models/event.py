"""Event model - a single occurrence reported by a producer."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import utc_now


class Event(BaseModel):
    """An ingested event.

    Events are immutable once created. The ``id`` is assigned by the
    EventStore; ``external_id`` is chosen by the producer and is the
    idempotency key for intake.

    Attributes:
        id: Sequence identifier assigned by the EventStore.
        external_id: Producer-supplied unique identifier.
        type: Event type used to route to subscriptions.
        payload: Arbitrary JSON document delivered as the request body.
        created_at: When the event was ingested.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int = Field(ge=1, description="Sequence identifier")
    external_id: str = Field(min_length=1, description="Producer-supplied unique id")
    type: str = Field(min_length=1, description="Event type")
    payload: Any = Field(description="Event payload (any JSON document)")
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the event was ingested",
    )

    def __str__(self) -> str:
        return f"Event({self.id}, {self.type}, {self.external_id})"
