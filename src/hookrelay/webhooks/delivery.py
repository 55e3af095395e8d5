"""Webhook delivery with HMAC signatures and concurrent fan-out.

Resolves the active subscribers for an event, POSTs the signed payload to
each of them concurrently, records one audit entry per attempt and hands
failures to the RetryScheduler.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from hookrelay.exceptions import NotFoundError
from hookrelay.models import DeliveryResult, DeliverySummary, utc_now

from .signing import DEFAULT_HEADER_PREFIX, compute_signature, serialize_payload

if TYPE_CHECKING:
    from hookrelay.models import Event, WebhookSubscription
    from hookrelay.storage import AuditLog, WebhookRegistry

    from .retry import RetryScheduler

logger = logging.getLogger(__name__)


def _header_value(value: str) -> str | bytes:
    return value if value.isascii() else value.encode("utf-8")


class WebhookDispatcher:
    """Dispatches events to subscribed webhook endpoints.

    Handles:
    - Finding active webhooks for an event type (through the lookup cache)
    - Signing payloads with HMAC-SHA256
    - Concurrent delivery, one audit record per attempt
    - Handing failures to the retry scheduler

    Example:
        ```python
        dispatcher = WebhookDispatcher(registry, audit_log, retry_scheduler)
        summary = await dispatcher.deliver_event(event)
        print(summary.delivered, summary.failed)
        await dispatcher.close()
        ```
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        retry_scheduler: RetryScheduler | None = None,
        timeout_seconds: float = 10.0,
        max_concurrent: int = 10,
        treat_any_response_as_success: bool = False,
        header_prefix: str = DEFAULT_HEADER_PREFIX,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the webhook dispatcher.

        Args:
            registry: Subscription registry (with its lookup cache).
            audit_log: Where delivery attempts are recorded.
            retry_scheduler: Receives failed deliveries. No retries if None.
            timeout_seconds: HTTP request timeout.
            max_concurrent: Maximum concurrent requests across fan-outs.
            treat_any_response_as_success: Count non-2xx responses as
                delivered instead of retrying them.
            header_prefix: Prefix for signature and metadata headers.
            transport: Optional httpx transport (tests, proxies).
        """
        self._registry = registry
        self._audit_log = audit_log
        self._retry_scheduler = retry_scheduler
        self._timeout = timeout_seconds
        self._max_concurrent = max_concurrent
        self._any_response_succeeds = treat_any_response_as_success
        self._header_prefix = header_prefix
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._client: httpx.AsyncClient | None = None

        if retry_scheduler is not None:
            retry_scheduler.bind(self)

    @property
    def retry_scheduler(self) -> RetryScheduler | None:
        return self._retry_scheduler

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the shared HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def deliver_event(self, event: Event) -> DeliverySummary:
        """Deliver an event to all active subscribers.

        Every subscriber is attempted concurrently; a failing dispatch
        never cancels the others. Each failure starts a retry chain.

        Args:
            event: Event to deliver.

        Returns:
            Counts of delivered and failed dispatches.
        """
        webhooks = await self._registry.get_active_for_event(event.type)

        if not webhooks:
            logger.debug("No webhooks registered for event type: %s", event.type)
            return DeliverySummary()

        results = await asyncio.gather(
            *(self._deliver_bounded(event, webhook) for webhook in webhooks),
            return_exceptions=True,
        )

        summary = DeliverySummary()
        for webhook, result in zip(webhooks, results, strict=True):
            if isinstance(result, DeliveryResult) and result.success:
                summary.delivered += 1
                continue

            summary.failed += 1
            if isinstance(result, BaseException):
                logger.error(
                    "Webhook delivery raised for event %d to webhook %d: %r",
                    event.id,
                    webhook.id,
                    result,
                )
            if self._retry_scheduler is not None:
                self._retry_scheduler.schedule(event, webhook, attempt=1)

        logger.info(
            "Event %d (%s) fanned out: %d delivered, %d failed",
            event.id,
            event.type,
            summary.delivered,
            summary.failed,
        )
        return summary

    async def _deliver_bounded(
        self, event: Event, webhook: WebhookSubscription
    ) -> DeliveryResult:
        async with self._semaphore:
            return await self.deliver_to_webhook(event, webhook)

    def build_headers(
        self, event: Event, signature: str, attempt_count: int
    ) -> dict[str, str | bytes]:
        """Build the out-of-band metadata headers for a delivery.

        Producer-supplied values that aren't ASCII are sent as UTF-8 bytes.
        """
        prefix = self._header_prefix
        return {
            "Content-Type": "application/json",
            f"{prefix}-Signature": signature,
            f"{prefix}-Event-Type": _header_value(event.type),
            f"{prefix}-Event-Id": _header_value(event.external_id),
            f"{prefix}-Timestamp": utc_now().isoformat(timespec="milliseconds"),
            f"{prefix}-Attempt": str(attempt_count),
        }

    def _is_success(self, status_code: int) -> bool:
        return self._any_response_succeeds or 200 <= status_code < 300

    async def deliver_to_webhook(
        self,
        event: Event,
        webhook: WebhookSubscription,
        attempt_count: int = 1,
    ) -> DeliveryResult:
        """Deliver an event to a single webhook and record the attempt.

        Args:
            event: Event to deliver.
            webhook: Target subscription.
            attempt_count: Position in the retry chain (1 = initial try).

        Returns:
            Outcome of the call. Never raises for a request that could not
            be built or sent.
        """
        body = serialize_payload(event.payload)
        signature = compute_signature(body, webhook.secret)
        headers = self.build_headers(event, signature, attempt_count)

        try:
            response = await self._get_client().post(
                webhook.target_url,
                content=body,
                headers=headers,
            )
        except httpx.TimeoutException:
            result = DeliveryResult(webhook_id=webhook.id, success=False, error="Request timeout")
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            result = DeliveryResult(
                webhook_id=webhook.id,
                success=False,
                error=f"{type(e).__name__}: {e}",
            )
        else:
            if self._is_success(response.status_code):
                result = DeliveryResult(
                    webhook_id=webhook.id,
                    success=True,
                    status=response.status_code,
                )
            else:
                result = DeliveryResult(
                    webhook_id=webhook.id,
                    success=False,
                    status=response.status_code,
                    error=f"HTTP {response.status_code}: {response.text[:200]}",
                )

        if result.success:
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                event.type,
                webhook.target_url,
                result.status,
                attempt_count,
            )
        else:
            logger.warning(
                "Webhook delivery failed: %s to %s (attempt %d): %s",
                event.type,
                webhook.target_url,
                attempt_count,
                result.error,
            )

        await self._record(event, webhook, result, attempt_count)
        return result

    async def _record(
        self,
        event: Event,
        webhook: WebhookSubscription,
        result: DeliveryResult,
        attempt_count: int,
    ) -> None:
        try:
            await self._audit_log.append(
                event_id=event.id,
                webhook_id=webhook.id,
                status="success" if result.success else "failed",
                attempt_count=attempt_count,
                response_code=result.status,
                error_message=result.error,
            )
        except NotFoundError as e:
            # Subscription removed while the request was in flight
            logger.warning("Delivery attempt not recorded: %s", e.message)
