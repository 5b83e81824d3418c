"""
Shared plumbing for the ride-scoped use cases.

Every mutation follows the same shape:

1. take ``ride:<id>`` from the lock manager,
2. load a fresh copy of the aggregate, apply the rule, save it,
3. release the lock, *then* talk to the payment processor,
4. re-take the lock briefly to record what the processor said.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from carpool.domain.entities import Booking, Ride
from carpool.domain.enums import PaymentStatus
from carpool.domain.errors import Forbidden, NotFound
from carpool.domain.events import DomainEvent, EventSink
from carpool.domain.payments import PaymentGateway
from carpool.domain.schedule import Clock
from carpool.domain.store import RideStore
from carpool.infrastructure.locks import LockManager, ride_key

logger = logging.getLogger(__name__)


class RideService:
    def __init__(
        self,
        store: RideStore,
        locks: LockManager,
        payments: PaymentGateway,
        events: EventSink,
        clock: Clock,
    ):
        self.store = store
        self.locks = locks
        self.payments = payments
        self.events = events
        self.clock = clock

    async def _load(self, ride_id: int) -> Ride:
        ride = await self.store.get(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        return ride

    async def _ride_id_for(self, booking_id: int) -> int:
        booking = await self.store.get_booking(booking_id)
        if booking is None or booking.ride_id is None:
            raise NotFound("Booking not found")
        return booking.ride_id

    @staticmethod
    def _check_driver(ride: Ride, driver_id: int) -> None:
        if ride.driver_id != driver_id:
            raise Forbidden("This ride belongs to another driver")

    def _emit(self, *events: DomainEvent) -> None:
        for event in events:
            try:
                self.events.publish(event)
            except Exception:
                logger.exception("Event sink rejected %s", event.name)

    # ── Payment bookkeeping ───────────────────────────────────────────

    async def _void_quietly(self, handle_id: str) -> bool:
        try:
            await asyncio.shield(self.payments.void(handle_id))
        except Exception:
            logger.exception("Failed to void authorization %s", handle_id)
            return False
        return True

    async def _void_authorizations(
        self, ride_id: int, bookings: Iterable[Booking]
    ) -> Optional[Ride]:
        held = [
            b
            for b in bookings
            if b.payment_handle and b.payment_status is PaymentStatus.AUTHORIZED
        ]
        if not held:
            return None
        results = await asyncio.gather(
            *(self._void_quietly(b.payment_handle) for b in held)
        )
        updates = {
            b.id: PaymentStatus.VOIDED if ok else PaymentStatus.VOID_FAILED
            for b, ok in zip(held, results)
        }
        return await self._record_payments(ride_id, updates)

    async def _record_payments(
        self,
        ride_id: int,
        updates: dict[int, PaymentStatus],
        settlement_failed: Iterable[int] = (),
    ) -> Ride:
        failed = set(settlement_failed)
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            for booking in ride.passengers:
                if booking.id in updates:
                    booking.payment_status = updates[booking.id]
                if booking.id in failed:
                    booking.settlement_failed = True
            await self.store.save(ride)
        return ride
