"""HookRelay: event intake and signed webhook fan-out.

Producers POST events; HookRelay stores each one once, looks up the
active subscriptions for its type and delivers the payload to each of
them concurrently, signed with HMAC-SHA256. Failed deliveries are retried
with exponential backoff and every attempt is kept in an audit log.

Quick Start:
    from hookrelay.service import RelayService

    async with RelayService.create() as relay:
        webhook = await relay.create_webhook(
            event_type="job_created",
            target_url="https://example.test/hooks/jobs",
        )
        event = await relay.ingest_event("evt-1", "job_created", {"job_id": "j1"})
        await relay.drain()
        logs = await relay.get_delivery_logs(event.id)

Core Types:
    - Event: Immutable ingested event
    - WebhookSubscription: Registered interest in an event type
    - DeliveryAttempt: Audit record of one delivery try
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    HookRelayError,
    InvalidStateError,
    NotFoundError,
    QueueFullError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
)

# Models
from .models import (
    DeliveryAttempt,
    DeliveryStats,
    EnrichedDeliveryLog,
    Event,
    WebhookSubscription,
    WebhookUpdate,
)

# Signature verification for receivers
from .webhooks.signing import compute_signature, verify_request, verify_signature

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HookRelayError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "QueueFullError",
    "DeliveryError",
    "ConfigurationError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "logger",
    # Models
    "Event",
    "WebhookSubscription",
    "WebhookUpdate",
    "DeliveryAttempt",
    "DeliveryStats",
    "EnrichedDeliveryLog",
    # Signing
    "compute_signature",
    "verify_request",
    "verify_signature",
]
