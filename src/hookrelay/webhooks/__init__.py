"""Webhook delivery system for HookRelay.

Provides HMAC-signed concurrent fan-out with exponential backoff retry.

Example:
    ```python
    from hookrelay.webhooks import RetryScheduler, WebhookDispatcher

    scheduler = RetryScheduler(registry, max_retries=3)
    dispatcher = WebhookDispatcher(registry, audit_log, scheduler)
    summary = await dispatcher.deliver_event(event)
    ```

Receivers can check requests with ``verify_request(body, headers, secret)``.
"""

from .delivery import WebhookDispatcher
from .queue import DeliveryQueue
from .retry import RetryJob, RetryScheduler
from .signing import (
    DEFAULT_HEADER_PREFIX,
    compute_signature,
    serialize_payload,
    verify_request,
    verify_signature,
)

__all__ = [
    "DEFAULT_HEADER_PREFIX",
    "DeliveryQueue",
    "RetryJob",
    "RetryScheduler",
    "WebhookDispatcher",
    "compute_signature",
    "serialize_payload",
    "verify_request",
    "verify_signature",
]
