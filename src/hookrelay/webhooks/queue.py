"""Background delivery workers.

Intake enqueues new events and returns immediately; a small pool of
asyncio workers drains the queue and runs the fan-out, independently of
the request that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from hookrelay.exceptions import QueueFullError

if TYPE_CHECKING:
    from hookrelay.models import Event

    from .delivery import WebhookDispatcher

logger = logging.getLogger(__name__)


class DeliveryQueue:
    """Bounded queue of events awaiting fan-out, drained by worker tasks.

    Example:
        ```python
        queue = DeliveryQueue(dispatcher, workers=4)
        await queue.start()
        queue.enqueue(event)
        await queue.join()  # all queued events fanned out
        await queue.stop()
        ```
    """

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        workers: int = 4,
        maxsize: int = 1000,
    ) -> None:
        self._dispatcher = dispatcher
        self._worker_count = workers
        self._maxsize = maxsize
        self._queue: asyncio.Queue[Event] | None = None
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def depth(self) -> int:
        """Events waiting for a worker."""
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """Start the worker tasks. Idempotent."""
        if self._workers:
            return
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._maxsize)
        self._queue = queue
        self._workers = [
            asyncio.create_task(self._worker(i, queue), name=f"delivery-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Started %d delivery workers", self._worker_count)

    def enqueue(self, event: Event) -> None:
        """Hand an event to the workers without waiting for delivery.

        Raises:
            QueueFullError: If the queue is saturated or not started.
        """
        if self._queue is None:
            raise QueueFullError("Delivery queue is not running")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as e:
            raise QueueFullError(
                f"Delivery queue is full ({self._maxsize} events pending)"
            ) from e

    async def _worker(self, index: int, queue: asyncio.Queue[Event]) -> None:
        while True:
            event = await queue.get()
            try:
                await self._dispatcher.deliver_event(event)
            except Exception:
                # One bad event must not take the worker down
                logger.exception("Worker %d failed delivering event %d", index, event.id)
            finally:
                queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been fanned out."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Cancel the workers. Events still queued are dropped."""
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
            logger.info("Stopped delivery workers (%d events dropped)", self.depth)
        self._workers = []
        self._queue = None
