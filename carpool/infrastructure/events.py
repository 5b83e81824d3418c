"""
Event sinks and publishers for the real-time fan-out.

``QueuedEventSink.publish`` only enqueues; the ``EventDispatcher`` worker
hands queued events to a publisher in the background.  A full queue drops
the event with a warning rather than blocking the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import redis.asyncio as aioredis

from carpool.domain.events import DomainEvent

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    async def publish(self, payload: dict[str, Any]) -> None: ...


class QueuedEventSink:
    def __init__(self, maxsize: int = 1000):
        self.queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=maxsize)

    def publish(self, event: DomainEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Event queue full; dropping %s", event.name)


class RedisEventPublisher:
    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def publish(self, payload: dict[str, Any]) -> None:
        await self.redis.publish(self.channel, json.dumps(payload, default=str))


class LoggingEventPublisher:
    async def publish(self, payload: dict[str, Any]) -> None:
        logger.info("event %s", json.dumps(payload, default=str))
