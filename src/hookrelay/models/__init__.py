"""Data models for HookRelay.

Core Types:
    - Event: Immutable ingested event
    - WebhookSubscription: Registered interest in an event type
    - DeliveryAttempt: Audit record of one delivery try

Supporting Types:
    - WebhookUpdate: Partial subscription update
    - DeliveryResult, DeliverySummary: Delivery outcomes
    - DeliveryStats: Dashboard aggregates
    - EnrichedDeliveryLog: Delivery attempt joined with event/webhook details
"""

from .base import generate_secret, utc_now
from .delivery import (
    DeliveryAttempt,
    DeliveryResult,
    DeliveryStats,
    DeliveryStatus,
    DeliverySummary,
    EnrichedDeliveryLog,
)
from .event import Event
from .webhook import WebhookSubscription, WebhookUpdate

__all__ = [
    # Helpers
    "generate_secret",
    "utc_now",
    # Core types
    "Event",
    "WebhookSubscription",
    "DeliveryAttempt",
    # Supporting types
    "WebhookUpdate",
    "DeliveryResult",
    "DeliveryStats",
    "DeliveryStatus",
    "DeliverySummary",
    "EnrichedDeliveryLog",
]
