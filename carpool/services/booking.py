"""
Booking Orchestrator
====================

``request_booking`` runs in three phases so that the per-ride lock is
never held while the payment processor is thinking:

1. **validate** (locked)   -- ride exists, is scheduled, has the seats,
   rider has no other active booking on it.
2. **authorize** (unlocked) -- hold the rider's total with the processor.
3. **commit** (locked)     -- reload, validate again (the ride may have
   filled up or been cancelled meanwhile), reserve the seats and save.

Anything that goes wrong after a successful authorization, including the
caller being cancelled, voids that authorization.  Nothing is written
before phase 3, so a declined, timed-out or cancelled authorization
leaves the inventory untouched.

Every confirmed booking carries a 4-digit pickup PIN that the rider shows
the driver at pickup.  Riders may change their seat count or pickup spot
while the ride is still scheduled; a seat change on a paid booking goes
through the same three phases with a fresh authorization for the new
total, and the old hold is voided once the change is saved.

The deployment chooses one workflow for every ride:

* ``instant``         -- bookings are created ``confirmed``.
* ``driver_approval`` -- bookings are created ``pending`` and the driver
  accepts or rejects them.  Seats are held from the moment of request.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from carpool.domain import inventory
from carpool.domain.entities import Booking, PickupDetails, Ride
from carpool.domain.enums import (
    BookingStatus,
    BookingWorkflow,
    PaymentStatus,
    RideStatus,
)
from carpool.domain.errors import (
    AlreadyTerminal,
    DuplicateBooking,
    Forbidden,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    PaymentDeclined,
    PickupPinExpired,
    RideNotBookable,
)
from carpool.domain.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingRequested,
    BookingUpdated,
)
from carpool.domain.fees import FeeCalculator, RiderCharge
from carpool.domain.payments import AuthorizationHandle
from carpool.infrastructure.locks import ride_key

from .base import RideService

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class PickupPin:
    pin: str
    expires_at: Optional[datetime]


class BookingOrchestrator(RideService):
    def __init__(
        self,
        *args,
        fees: FeeCalculator,
        workflow: BookingWorkflow = BookingWorkflow.INSTANT,
        currency: str = "usd",
        payment_timeout: float = 10.0,
        confirmation_prefix: str = "WP",
        pickup_pin_ttl: timedelta = timedelta(hours=24),
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.fees = fees
        self.workflow = workflow
        self.currency = currency
        self.payment_timeout = payment_timeout
        self.confirmation_prefix = confirmation_prefix
        self.pickup_pin_ttl = pickup_pin_ttl

    # ── Rider actions ─────────────────────────────────────────────────

    def quote(self, ride: Ride, seats: int) -> RiderCharge:
        if seats < 1:
            raise InvalidRequest("Number of seats must be at least 1")
        return self.fees.rider_total(ride.price_per_seat * seats)

    async def request_booking(
        self,
        ride_id: int,
        rider_id: int,
        seats: int,
        pickup: Optional[PickupDetails] = None,
        idempotency_key: Optional[str] = None,
    ) -> Booking:
        if seats < 1:
            raise InvalidRequest("Number of seats must be at least 1")

        if idempotency_key:
            existing = await self.store.find_booking_by_idempotency_key(
                rider_id, idempotency_key
            )
            if existing is not None:
                if existing.ride_id != ride_id:
                    raise InvalidRequest("Idempotency key was used for another ride")
                return existing

        # 1. validate
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_bookable(ride, rider_id, seats)
            price = ride.price_per_seat

        # 2. authorize, no lock held
        charge = self.fees.rider_total(price * seats)
        handle = await self._authorize(charge.total, rider_id)

        # 3. commit
        committed = False
        try:
            async with self.locks.hold(ride_key(ride_id)):
                ride = await self._load(ride_id)
                self._check_bookable(ride, rider_id, seats)
                booking = Booking(
                    rider_id=rider_id,
                    number_of_seats=seats,
                    price_per_seat=price,
                    status=self._initial_status(),
                    pickup=pickup,
                    confirmation_number=self._confirmation_number(),
                    idempotency_key=idempotency_key,
                    payment_handle=handle.id if handle else None,
                    payment_status=PaymentStatus.AUTHORIZED if handle else None,
                    amount=charge.total,
                )
                if booking.status is BookingStatus.CONFIRMED:
                    booking.issue_pickup_pin(self._pin_expiry(ride))
                inventory.reserve(ride, booking)
                await self.store.save(ride)
                committed = True
        except BaseException:
            # Once saved, the hold backs a live booking even if the lock
            # release is interrupted.
            if handle is not None and not committed:
                await self._void_quietly(handle.id)
            raise

        logger.info(
            "Booking %s (%s) %s: ride=%s rider=%s seats=%d",
            booking.id,
            booking.confirmation_number,
            booking.status.value,
            ride.id,
            rider_id,
            seats,
        )
        event_type = (
            BookingConfirmed
            if booking.status is BookingStatus.CONFIRMED
            else BookingRequested
        )
        self._emit(
            event_type(
                ride_id=ride.id,
                booking_id=booking.id,
                rider_id=rider_id,
                driver_id=ride.driver_id,
                seats=seats,
            )
        )
        return booking

    async def cancel_booking(self, booking_id: int, rider_id: int) -> Booking:
        ride_id = await self._ride_id_for(booking_id)
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            booking = ride.booking(booking_id)
            if booking.rider_id != rider_id:
                raise Forbidden("You do not have permission to cancel this booking")
            if booking.is_terminal:
                raise AlreadyTerminal()
            inventory.release(ride, booking, reason="cancelled_by_rider")
            await self.store.save(ride)

        logger.info("Booking %s cancelled by rider %s", booking_id, rider_id)
        return await self._after_release(ride, booking, "cancelled_by_rider")

    async def modify_booking(
        self,
        booking_id: int,
        rider_id: int,
        *,
        seats: Optional[int] = None,
        pickup: Optional[PickupDetails] = None,
    ) -> Booking:
        if seats is None and pickup is None:
            raise InvalidRequest("Nothing to change")
        if seats is not None and seats < 1:
            raise InvalidRequest("Number of seats must be at least 1")
        ride_id = await self._ride_id_for(booking_id)

        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            booking = self._modifiable(ride, booking_id, rider_id)
            reprice = (
                seats is not None
                and seats != booking.number_of_seats
                and booking.payment_handle is not None
            )
            if not reprice:
                if seats is not None:
                    inventory.change_seats(ride, booking, seats)
                if pickup is not None:
                    booking.pickup = pickup
                await self.store.save(ride)

        if reprice:
            booking = await self._reprice(ride_id, booking_id, rider_id, seats, pickup)

        changed = tuple(
            name
            for name, value in (("number_of_seats", seats), ("pickup", pickup))
            if value is not None
        )
        logger.info(
            "Booking %s changed by rider %s: %s", booking_id, rider_id, ", ".join(changed)
        )
        self._emit(
            BookingUpdated(
                ride_id=ride_id,
                booking_id=booking.id,
                rider_id=rider_id,
                driver_id=ride.driver_id,
                seats=booking.number_of_seats,
                changed_fields=changed,
            )
        )
        return booking

    async def get_pickup_pin(self, booking_id: int, rider_id: int) -> PickupPin:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.rider_id != rider_id:
            raise Forbidden("You do not have permission to view this PIN")
        if booking.status is not BookingStatus.CONFIRMED:
            raise InvalidTransition("PIN is only available for confirmed bookings")
        if booking.pickup_pin is None:
            raise NotFound("Pickup PIN not found for this booking")
        if booking.pin_expired(self.clock()):
            raise PickupPinExpired()
        return PickupPin(booking.pickup_pin, booking.pickup_pin_expires_at)

    # ── Driver actions (driver_approval workflow) ─────────────────────

    async def accept_booking(self, booking_id: int, driver_id: int) -> Booking:
        ride_id = await self._ride_id_for(booking_id)
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            booking = ride.booking(booking_id)
            if booking.is_terminal:
                raise AlreadyTerminal()
            if booking.status is not BookingStatus.PENDING:
                raise InvalidTransition("This booking is already confirmed")
            if ride.status is not RideStatus.SCHEDULED:
                raise RideNotBookable()
            # The pending booking already holds its seats; this guards
            # against capacity having been edited underneath it.
            inventory.ensure_capacity(ride, 0)
            booking.transition_to(BookingStatus.CONFIRMED)
            booking.issue_pickup_pin(self._pin_expiry(ride))
            await self.store.save(ride)

        logger.info("Booking %s accepted by driver %s", booking_id, driver_id)
        self._emit(
            BookingConfirmed(
                ride_id=ride.id,
                booking_id=booking.id,
                rider_id=booking.rider_id,
                driver_id=ride.driver_id,
                seats=booking.number_of_seats,
            )
        )
        return booking

    async def reject_booking(self, booking_id: int, driver_id: int) -> Booking:
        ride_id = await self._ride_id_for(booking_id)
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            booking = ride.booking(booking_id)
            if booking.is_terminal:
                raise AlreadyTerminal()
            if booking.status is not BookingStatus.PENDING:
                raise InvalidTransition("Only pending requests can be rejected")
            inventory.release(ride, booking, reason="rejected_by_driver")
            await self.store.save(ride)

        logger.info("Booking %s rejected by driver %s", booking_id, driver_id)
        return await self._after_release(ride, booking, "rejected_by_driver")

    # ── Internals ─────────────────────────────────────────────────────

    def _initial_status(self) -> BookingStatus:
        if self.workflow is BookingWorkflow.DRIVER_APPROVAL:
            return BookingStatus.PENDING
        return BookingStatus.CONFIRMED

    @staticmethod
    def _check_bookable(ride: Ride, rider_id: int, seats: int) -> None:
        if ride.status is not RideStatus.SCHEDULED:
            raise RideNotBookable()
        inventory.ensure_capacity(ride, seats)
        if ride.active_booking_for(rider_id) is not None:
            raise DuplicateBooking()

    async def _authorize(
        self, amount: Decimal, rider_id: int
    ) -> Optional[AuthorizationHandle]:
        if amount == 0:
            return None  # free ride, nothing to hold
        try:
            return await asyncio.wait_for(
                self.payments.authorize(amount, self.currency, rider_id),
                timeout=self.payment_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Authorization timed out for rider %s", rider_id)
            raise PaymentDeclined(
                "The payment processor did not respond, please try again"
            ) from exc

    @staticmethod
    def _modifiable(ride: Ride, booking_id: int, rider_id: int) -> Booking:
        booking = ride.booking(booking_id)
        if booking.rider_id != rider_id:
            raise Forbidden("You do not have permission to update this booking")
        if booking.is_terminal:
            raise AlreadyTerminal()
        if ride.status is not RideStatus.SCHEDULED:
            raise InvalidTransition(
                "Cannot update a booking once the ride has started"
            )
        return booking

    async def _reprice(
        self,
        ride_id: int,
        booking_id: int,
        rider_id: int,
        seats: int,
        pickup: Optional[PickupDetails],
    ) -> Booking:
        """Hold the new total, swap it in under the lock, release the old hold."""
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            booking = self._modifiable(ride, booking_id, rider_id)
            inventory.ensure_capacity(ride, seats - booking.number_of_seats)
            price = booking.price_per_seat

        charge = self.fees.rider_total(price * seats)
        handle = await self._authorize(charge.total, rider_id)

        committed = False
        try:
            async with self.locks.hold(ride_key(ride_id)):
                ride = await self._load(ride_id)
                booking = self._modifiable(ride, booking_id, rider_id)
                inventory.change_seats(ride, booking, seats)
                if pickup is not None:
                    booking.pickup = pickup
                replaced = None
                if booking.payment_status is PaymentStatus.AUTHORIZED:
                    replaced = booking.payment_handle
                booking.payment_handle = handle.id
                booking.payment_status = PaymentStatus.AUTHORIZED
                booking.amount = charge.total
                await self.store.save(ride)
                committed = True
        except BaseException:
            if not committed:
                await self._void_quietly(handle.id)
            raise

        if replaced is not None:
            await self._void_quietly(replaced)
        return booking

    def _pin_expiry(self, ride: Ride) -> datetime:
        now = self.clock()
        start = max(now, ride.departure_time) if ride.departure_time else now
        return start + self.pickup_pin_ttl

    def _confirmation_number(self) -> str:
        day = self.clock().strftime("%Y%m%d")
        suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
        return f"{self.confirmation_prefix}-{day}-{suffix}"

    async def _after_release(
        self, ride: Ride, booking: Booking, reason: str
    ) -> Booking:
        updated = await self._void_authorizations(ride.id, [booking])
        if updated is not None:
            booking = updated.booking(booking.id)
        self._emit(
            BookingCancelled(
                ride_id=ride.id,
                booking_id=booking.id,
                rider_id=booking.rider_id,
                driver_id=ride.driver_id,
                seats=booking.number_of_seats,
                reason=reason,
            )
        )
        return booking
