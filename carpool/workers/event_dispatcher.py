"""
Background Event Dispatcher
===========================

Drains the ``QueuedEventSink`` and hands each event to a publisher
(Redis pub/sub in production, the log otherwise).

Delivery is best-effort
-----------------------
* A publisher error is logged and the event is dropped; the loop keeps
  running.
* On shutdown the queue is flushed for at most ``drain_timeout`` seconds.
"""

from __future__ import annotations

import asyncio
import logging

from carpool.infrastructure.events import EventPublisher, QueuedEventSink

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(
        self,
        sink: QueuedEventSink,
        publisher: EventPublisher,
        drain_timeout: float = 5.0,
    ):
        self.sink = sink
        self.publisher = publisher
        self.drain_timeout = drain_timeout
        self._task: asyncio.Task | None = None
        self.delivered = 0

    # ── Public API ────────────────────────────────────────────────────

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop())
        logger.info("Event dispatcher started")

    async def stop(self) -> None:
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self.sink.queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Event dispatcher stopped with %d undelivered events",
                self.sink.queue.qsize(),
            )
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Event dispatcher stopped")

    # ── Internals ─────────────────────────────────────────────────────

    async def _loop(self) -> None:
        queue = self.sink.queue
        while True:
            event = await queue.get()
            try:
                await self.publisher.publish(event.to_dict())
                self.delivered += 1
            except Exception:
                logger.exception("Failed to publish %s", event.name)
            finally:
                queue.task_done()
