"""
Service container: explicit wiring of the engine and its collaborators.

Nothing is constructed at import time.  ``build_container`` creates the
infrastructure named by ``Settings`` unless the caller passes its own
implementation (tests pass an in-memory store, a stub gateway and a
recording event sink).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta, tzinfo
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from carpool.config import Settings
from carpool.domain.events import EventSink
from carpool.domain.fees import FeeCalculator
from carpool.domain.payments import PaymentGateway
from carpool.domain.schedule import Clock, system_clock
from carpool.domain.store import RideStore
from carpool.infrastructure.database import create_engine, create_session_factory
from carpool.infrastructure.events import (
    LoggingEventPublisher,
    QueuedEventSink,
    RedisEventPublisher,
)
from carpool.infrastructure.locks import LocalLockManager, LockManager, RedisLockManager
from carpool.infrastructure.memory import InMemoryRideStore
from carpool.infrastructure.payments import HttpPaymentGateway, StubPaymentGateway
from carpool.infrastructure.redis_client import create_redis
from carpool.infrastructure.repositories import SqlAlchemyRideStore
from carpool.workers.event_dispatcher import EventDispatcher

from .booking import BookingOrchestrator
from .lifecycle import RideLifecycle
from .queries import RideQueries
from .settlement import SettlementService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    tz: tzinfo
    clock: Clock
    store: RideStore
    locks: LockManager
    payments: PaymentGateway
    events: EventSink
    fees: FeeCalculator
    bookings: BookingOrchestrator
    lifecycle: RideLifecycle
    settlement: SettlementService
    queries: RideQueries
    dispatcher: Optional[EventDispatcher] = None
    _closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def start(self) -> None:
        if self.dispatcher is not None:
            await self.dispatcher.start()

    async def close(self) -> None:
        if self.dispatcher is not None:
            await self.dispatcher.stop()
        for close in reversed(self._closers):
            await close()


def build_container(
    settings: Settings,
    *,
    store: Optional[RideStore] = None,
    locks: Optional[LockManager] = None,
    payments: Optional[PaymentGateway] = None,
    events: Optional[EventSink] = None,
    clock: Optional[Clock] = None,
) -> ServiceContainer:
    # Fee policy is validated here so a bad policy stops startup.
    fees = FeeCalculator(settings.fee_policy(), settings.minimum_fare)
    tz = ZoneInfo(settings.timezone)
    clock = clock or system_clock(tz)
    closers: list[Callable[[], Awaitable[None]]] = []

    redis = None
    if (locks is None and settings.lock_backend == "redis") or (
        events is None and settings.events_backend == "redis"
    ):
        redis = create_redis(settings.redis_url)
        closers.append(redis.aclose)

    if store is None:
        if settings.store_backend == "memory":
            store = InMemoryRideStore()
        else:
            engine = create_engine(settings.database_url)
            store = SqlAlchemyRideStore(create_session_factory(engine))
            closers.append(engine.dispose)

    if locks is None:
        if settings.lock_backend == "redis":
            locks = RedisLockManager(
                redis,
                ttl_seconds=settings.lock_ttl_seconds,
                wait_seconds=settings.lock_wait_seconds,
                retry_interval=settings.lock_retry_interval_seconds,
            )
        else:
            locks = LocalLockManager()

    if payments is None:
        if settings.payment_backend == "http":
            gateway = HttpPaymentGateway(
                settings.payment_base_url,
                settings.payment_api_key,
                timeout_seconds=settings.payment_timeout_seconds,
            )
            closers.append(gateway.aclose)
            payments = gateway
        else:
            payments = StubPaymentGateway()

    dispatcher = None
    if events is None:
        sink = QueuedEventSink(maxsize=settings.event_queue_size)
        if settings.events_backend == "redis":
            publisher = RedisEventPublisher(redis, settings.events_channel)
        else:
            publisher = LoggingEventPublisher()
        dispatcher = EventDispatcher(sink, publisher)
        events = sink

    shared = dict(
        store=store, locks=locks, payments=payments, events=events, clock=clock
    )
    settlement = SettlementService(fees=fees, **shared)
    container = ServiceContainer(
        settings=settings,
        tz=tz,
        clock=clock,
        store=store,
        locks=locks,
        payments=payments,
        events=events,
        fees=fees,
        bookings=BookingOrchestrator(
            fees=fees,
            workflow=settings.booking_workflow,
            currency=settings.currency,
            payment_timeout=settings.payment_timeout_seconds,
            confirmation_prefix=settings.confirmation_prefix,
            pickup_pin_ttl=timedelta(hours=settings.pickup_pin_ttl_hours),
            **shared,
        ),
        lifecycle=RideLifecycle(
            tz=tz,
            settlement=settlement,
            max_seats_per_ride=settings.max_seats_per_ride,
            minimum_fare=settings.minimum_fare,
            **shared,
        ),
        settlement=settlement,
        queries=RideQueries(store, clock, tz),
        dispatcher=dispatcher,
        _closers=closers,
    )
    logger.info(
        "Engine ready: store=%s locks=%s payments=%s workflow=%s",
        type(store).__name__,
        type(locks).__name__,
        type(payments).__name__,
        settings.booking_workflow.value,
    )
    return container
