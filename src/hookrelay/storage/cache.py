"""Time-bounded cache of active webhooks by event type.

Sits in front of ``WebhookRegistry.get_by_event_type`` so that high event
volume doesn't rescan the full registry for every delivery. Staleness is
bounded by the TTL; registry mutations invalidate affected entries
immediately.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from hookrelay.models import WebhookSubscription

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


def cache_key(event_type: str) -> str:
    """Build the cache key for an event type."""
    return f"webhooks:{event_type}"


@dataclass
class _CacheEntry:
    webhooks: list[WebhookSubscription]
    expires_at: float


class WebhookLookupCache:
    """TTL cache keyed by event type.

    Example:
        ```python
        cache = WebhookLookupCache(ttl_seconds=60)
        cache.set("job_created", webhooks)
        cache.get("job_created")  # -> webhooks until 60s pass
        cache.invalidate("job_created")
        ```
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry. 0 disables caching.
            clock: Monotonic time source, injectable for tests.
        """
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups served from cache."""
        total = self._hits + self._misses
        return self._hits / total if total else 0.0

    def get(self, event_type: str) -> list[WebhookSubscription] | None:
        """Return the cached list, or None on miss or expiry."""
        key = cache_key(event_type)
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at > self._clock():
            self._hits += 1
            logger.debug("Webhook cache hit for %s (hit_rate=%.2f)", event_type, self.hit_rate)
            return list(entry.webhooks)

        # Expired entries are dropped on read
        self._entries.pop(key, None)
        self._misses += 1
        logger.debug("Webhook cache miss for %s", event_type)
        return None

    def set(self, event_type: str, webhooks: list[WebhookSubscription]) -> None:
        """Cache the active webhook list for an event type."""
        if self._ttl <= 0:
            return
        self._entries[cache_key(event_type)] = _CacheEntry(
            webhooks=list(webhooks),
            expires_at=self._clock() + self._ttl,
        )

    def invalidate(self, event_type: str) -> None:
        """Drop the entry for an event type, if any."""
        if self._entries.pop(cache_key(event_type), None) is not None:
            logger.debug("Invalidated webhook cache for %s", event_type)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
