"""In-memory storage for HookRelay.

Each store is an owned, lock-guarded repository object. Components receive
the stores they need at construction; there is no module-level state.

Example:
    ```python
    from hookrelay.storage import AuditLog, EventStore, WebhookLookupCache, WebhookRegistry

    events = EventStore()
    webhooks = WebhookRegistry(WebhookLookupCache(ttl_seconds=3600))
    audit = AuditLog(events, webhooks)
    ```
"""

from .audit import AuditLog
from .base import InMemoryStore, paginate
from .cache import DEFAULT_TTL_SECONDS, WebhookLookupCache
from .events import EventStore
from .webhooks import WebhookRegistry

__all__ = [
    "AuditLog",
    "EventStore",
    "InMemoryStore",
    "WebhookLookupCache",
    "WebhookRegistry",
    "DEFAULT_TTL_SECONDS",
    "paginate",
]
