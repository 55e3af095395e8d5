"""Bounded exponential-backoff retry of failed deliveries.

Each (event, webhook) failure starts an independent chain:

    scheduled(N) -> in_flight -> succeeded
                              -> scheduled(N + 1)   if N + 1 <= max_retries
                              -> exhausted          otherwise

Attempt N is the N-th delivery of the chain, the initial try being attempt
1. After attempt N fails, attempt N + 1 fires ``base_delay * 2 ** (N - 1)``
seconds later (1s, then 2s, with the default base). ``max_retries`` caps
``attempt_count`` across the whole chain, so the default of 3 gives at most
three audit records. Timers are plain asyncio tasks, so many chains can be
pending without a thread each. Exhaustion is logged and otherwise only
visible in the audit log.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Literal

from hookrelay.exceptions import DeliveryError
from hookrelay.models import utc_now

if TYPE_CHECKING:
    from hookrelay.models import Event, WebhookSubscription
    from hookrelay.storage import WebhookRegistry

    from .delivery import WebhookDispatcher

logger = logging.getLogger(__name__)

RetryState = Literal["scheduled", "in_flight", "succeeded", "failed", "abandoned"]


@dataclass
class RetryJob:
    """A pending or running retry of one event to one webhook.

    Attributes:
        event: Event being redelivered.
        webhook: Target subscription as known when the retry was scheduled.
        attempt: attempt_count this retry is recorded with (2 for the
            first retry).
        delay_seconds: Backoff delay before this retry fires.
        due_at: When the retry fires.
        state: Position in the retry state machine.
    """

    event: Event
    webhook: WebhookSubscription
    attempt: int
    delay_seconds: float
    due_at: datetime
    state: RetryState = "scheduled"
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class RetryScheduler:
    """Holds pending retries and re-invokes single-webhook delivery.

    Example:
        ```python
        scheduler = RetryScheduler(registry, max_retries=3)
        dispatcher = WebhookDispatcher(registry, audit_log, scheduler)
        # failures in dispatcher.deliver_event() now start retry chains
        await scheduler.wait_idle()
        ```
    """

    def __init__(
        self,
        registry: WebhookRegistry | None = None,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            registry: Used to re-resolve the subscription when a retry
                fires. Without it the scheduled copy is used as-is.
            max_retries: Ceiling on attempt_count across a chain, the
                initial try included.
            base_delay_seconds: Delay before the first retry.
        """
        self._registry = registry
        self._max_retries = max_retries
        self._base_delay = base_delay_seconds
        self._dispatcher: WebhookDispatcher | None = None
        self._jobs: dict[asyncio.Task[None], RetryJob] = {}

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def pending_count(self) -> int:
        """Number of retries waiting for their timer."""
        return sum(1 for job in self._jobs.values() if job.state == "scheduled")

    @property
    def jobs(self) -> list[RetryJob]:
        """Snapshot of scheduled and running retries."""
        return list(self._jobs.values())

    def bind(self, dispatcher: WebhookDispatcher) -> None:
        """Attach the dispatcher whose deliver_to_webhook retries call."""
        self._dispatcher = dispatcher

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds after attempt number ``attempt`` fails."""
        return self._base_delay * (2 ** (attempt - 1))

    def schedule(
        self,
        event: Event,
        webhook: WebhookSubscription,
        attempt: int,
    ) -> RetryJob | None:
        """Schedule the attempt that follows a failed ``attempt``.

        Must be called from within a running event loop.

        Args:
            event: Event to redeliver.
            webhook: Target subscription.
            attempt: attempt_count of the delivery that just failed.

        Returns:
            The scheduled job, or None if the chain is exhausted.

        Raises:
            DeliveryError: If no dispatcher is bound.
        """
        dispatcher = self._dispatcher
        if dispatcher is None:
            raise DeliveryError("RetryScheduler is not bound to a dispatcher")

        next_attempt = attempt + 1
        if next_attempt > self._max_retries:
            logger.warning(
                "Webhook max retries exceeded: event %d to webhook %d (%s) after %d attempts",
                event.id,
                webhook.id,
                webhook.target_url,
                attempt,
            )
            return None

        delay = self.backoff_delay(attempt)
        job = RetryJob(
            event=event,
            webhook=webhook,
            attempt=next_attempt,
            delay_seconds=delay,
            due_at=utc_now() + timedelta(seconds=delay),
        )
        task = asyncio.get_running_loop().create_task(
            self._run(job, dispatcher),
            name=f"retry-event{event.id}-webhook{webhook.id}-{next_attempt}",
        )
        job.task = task
        self._jobs[task] = job
        task.add_done_callback(self._on_done)

        logger.info(
            "Webhook scheduled for retry: event %d to webhook %d (attempt %d at %s)",
            event.id,
            webhook.id,
            next_attempt,
            job.due_at.isoformat(),
        )
        return job

    async def _run(self, job: RetryJob, dispatcher: WebhookDispatcher) -> None:
        await asyncio.sleep(job.delay_seconds)

        webhook = job.webhook
        if self._registry is not None:
            current = await self._registry.get_by_id(webhook.id)
            if current is None or not current.is_active:
                job.state = "abandoned"
                logger.info(
                    "Retry chain stopped: webhook %d was removed or deactivated",
                    webhook.id,
                )
                return
            webhook = current

        job.state = "in_flight"
        result = await dispatcher.deliver_to_webhook(
            job.event,
            webhook,
            attempt_count=job.attempt,
        )

        if result.success:
            job.state = "succeeded"
            return

        job.state = "failed"
        self.schedule(job.event, webhook, job.attempt)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        job = self._jobs.pop(task, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Retry of event %s to webhook %s crashed",
                job.event.id if job else "?",
                job.webhook.id if job else "?",
                exc_info=exc,
            )

    def cancel_for_webhook(self, webhook_id: int) -> int:
        """Cancel retries of a webhook that are still waiting for their timer.

        In-flight requests are left to finish.

        Returns:
            Number of cancelled retries.
        """
        cancelled = 0
        for task, job in list(self._jobs.items()):
            if job.webhook.id == webhook_id and job.state == "scheduled":
                job.state = "abandoned"
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.info("Cancelled %d pending retries for webhook %d", cancelled, webhook_id)
        return cancelled

    async def wait_idle(self) -> None:
        """Wait until every retry chain has finished or been exhausted."""
        while True:
            running = [task for task in self._jobs if not task.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all pending and running retries."""
        tasks = list(self._jobs)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Retry scheduler stopped, %d retries cancelled", len(tasks))
