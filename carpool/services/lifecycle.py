"""
Ride lifecycle use cases (driver side).

    scheduled -> in-progress -> completed
        \\             \\
         +-> cancelled <-+

* ``start_ride`` holds the driver's lock as well as the ride's, so two
  rides of the same driver can never both become ``in-progress``.
* ``cancel_ride`` cascades to every non-terminal booking and voids their
  authorizations once the ride lock is released.
* Completion and capture live in :mod:`carpool.services.settlement`.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Any, Optional

from carpool.domain import inventory
from carpool.domain.distance import haversine_miles
from carpool.domain.entities import Booking, Location, Ride
from carpool.domain.enums import BookingStatus, PickupStatus, RideStatus
from carpool.domain.errors import (
    InvalidPickupPin,
    InvalidRequest,
    InvalidTransition,
    RideHasActiveBookings,
)
from carpool.domain.events import (
    BookingCancelled,
    PassengerPickedUp,
    RideCancelled,
    RideStarted,
    RideUpdated,
)
from carpool.domain.fees import to_money
from carpool.infrastructure.locks import driver_key, ride_key

from .base import RideService
from .settlement import SettlementReport, SettlementService

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "departure_time",
        "total_seats",
        "price_per_seat",
        "origin",
        "destination",
        "origin_address",
        "destination_address",
        "distance",
    }
)

REQUIRED_FIELDS = frozenset(
    {
        "departure_time",
        "total_seats",
        "price_per_seat",
        "origin_address",
        "destination_address",
    }
)


class RideLifecycle(RideService):
    def __init__(
        self,
        *args,
        tz: tzinfo,
        settlement: SettlementService,
        max_seats_per_ride: int = 8,
        minimum_fare: Decimal = Decimal("1.00"),
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.tz = tz
        self.settlement = settlement
        self.max_seats_per_ride = max_seats_per_ride
        self.minimum_fare = to_money(minimum_fare)

    # ── Creation / editing ────────────────────────────────────────────

    async def create_ride(
        self,
        *,
        driver_id: int,
        departure_time: datetime,
        total_seats: int,
        price_per_seat: Decimal,
        origin: Optional[Location] = None,
        destination: Optional[Location] = None,
        origin_address: str = "",
        destination_address: str = "",
        distance: Optional[float] = None,
    ) -> Ride:
        price = self._validate_price(price_per_seat)
        self._validate_seats(total_seats)
        if distance is None and origin is not None and destination is not None:
            distance = round(
                haversine_miles(
                    origin.latitude,
                    origin.longitude,
                    destination.latitude,
                    destination.longitude,
                ),
                2,
            )
        ride = Ride(
            driver_id=driver_id,
            departure_time=self._localize(departure_time),
            total_seats=total_seats,
            available_seats=total_seats,
            price_per_seat=price,
            origin=origin,
            destination=destination,
            origin_address=origin_address,
            destination_address=destination_address,
            distance=distance,
        )
        await self.store.save(ride)
        logger.info("Ride %s created by driver %s", ride.id, driver_id)
        return ride

    async def update_ride(
        self, ride_id: int, driver_id: int, **changes: Any
    ) -> Ride:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidRequest(f"Cannot change {', '.join(sorted(unknown))}")
        cleared = sorted(n for n in REQUIRED_FIELDS if n in changes and changes[n] is None)
        if cleared:
            raise InvalidRequest(f"{', '.join(cleared)} cannot be empty")
        changed_fields = tuple(sorted(changes))

        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            if not ride.can_edit():
                raise InvalidTransition(f"A {ride.status.value} ride cannot be edited")

            if "total_seats" in changes:
                total_seats = changes.pop("total_seats")
                self._validate_seats(total_seats)
                inventory.resize(ride, total_seats)
            if "price_per_seat" in changes:
                changes["price_per_seat"] = self._validate_price(
                    changes["price_per_seat"]
                )
            if "departure_time" in changes:
                changes["departure_time"] = self._localize(changes["departure_time"])
            for name, value in changes.items():
                setattr(ride, name, value)
            await self.store.save(ride)

        riders = self._rider_ids(
            ride.bookings_in(BookingStatus.PENDING, BookingStatus.CONFIRMED)
        )
        self._emit(
            RideUpdated(
                ride_id=ride.id,
                driver_id=ride.driver_id,
                rider_ids=riders,
                changed_fields=changed_fields,
            )
        )
        return ride

    async def delete_ride(self, ride_id: int, driver_id: int) -> None:
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            if not ride.can_delete():
                raise InvalidTransition(f"A {ride.status.value} ride cannot be deleted")
            if inventory.reserved_seats(ride):
                raise RideHasActiveBookings()
            await self.store.delete(ride_id)
        logger.info("Ride %s deleted by driver %s", ride_id, driver_id)

    # ── Transitions ───────────────────────────────────────────────────

    async def start_ride(self, ride_id: int, driver_id: int) -> Ride:
        async with self.locks.hold(driver_key(driver_id), ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            now = self.clock()
            if ride.status is not RideStatus.SCHEDULED:
                raise InvalidTransition(f"A {ride.status.value} ride cannot be started")
            if not ride.can_start(now):
                raise InvalidTransition("A ride can only be started on its departure day")
            active = await self.store.in_progress_ride_for_driver(driver_id)
            if active is not None and active.id != ride.id:
                raise InvalidTransition(
                    "Complete your current ride before starting another one"
                )
            ride.transition_to(RideStatus.IN_PROGRESS)
            ride.started_at = now
            await self.store.save(ride)

        logger.info("Ride %s started by driver %s", ride.id, driver_id)
        self._emit(
            RideStarted(
                ride_id=ride.id,
                driver_id=driver_id,
                rider_ids=self._rider_ids(ride.bookings_in(BookingStatus.CONFIRMED)),
            )
        )
        return ride

    async def complete_ride(self, ride_id: int, driver_id: int) -> SettlementReport:
        return await self.settlement.complete_ride(ride_id, driver_id)

    async def cancel_ride(self, ride_id: int, driver_id: int) -> Ride:
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            ride.transition_to(RideStatus.CANCELLED)
            ride.cancelled_at = self.clock()
            cancelled: list[Booking] = []
            for booking in ride.passengers:
                if not booking.is_terminal:
                    inventory.release(ride, booking, reason="ride_cancelled")
                    cancelled.append(booking)
            await self.store.save(ride)

        logger.info(
            "Ride %s cancelled by driver %s (%d bookings cancelled)",
            ride.id,
            driver_id,
            len(cancelled),
        )
        updated = await self._void_authorizations(ride.id, cancelled)
        self._emit(
            RideCancelled(
                ride_id=ride.id,
                driver_id=driver_id,
                rider_ids=self._rider_ids(cancelled),
            ),
            *(
                BookingCancelled(
                    ride_id=ride.id,
                    booking_id=b.id,
                    rider_id=b.rider_id,
                    driver_id=driver_id,
                    seats=b.number_of_seats,
                    reason="ride_cancelled",
                )
                for b in cancelled
            ),
        )
        return updated or ride

    async def pick_up_passenger(
        self, booking_id: int, driver_id: int, pin: str
    ) -> Booking:
        if not (len(pin) == 4 and pin.isascii() and pin.isdigit()):
            raise InvalidRequest("PIN must be exactly 4 digits")
        ride_id = await self._ride_id_for(booking_id)
        rejected: Optional[InvalidPickupPin] = None
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            booking = ride.booking(booking_id)
            if ride.status is not RideStatus.IN_PROGRESS:
                raise InvalidTransition(
                    "Start the ride before marking passengers as picked up"
                )
            if booking.pickup_status is PickupStatus.PICKED_UP:
                return booking
            now = self.clock()
            try:
                booking.check_pickup_pin(pin, now)
            except InvalidPickupPin as exc:
                rejected = exc
            else:
                booking.mark_picked_up(now)
            await self.store.save(ride)

        if rejected is not None:
            logger.warning(
                "Wrong pickup PIN for booking %s (%d attempts left)",
                booking_id,
                rejected.attempts_remaining,
            )
            raise rejected

        self._emit(
            PassengerPickedUp(
                ride_id=ride.id,
                booking_id=booking.id,
                rider_id=booking.rider_id,
                driver_id=driver_id,
                picked_up_at=booking.picked_up_at,
            )
        )
        return booking

    # ── Internals ─────────────────────────────────────────────────────

    def _localize(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment

    def _validate_seats(self, total_seats: int) -> None:
        if not 1 <= total_seats <= self.max_seats_per_ride:
            raise InvalidRequest(
                f"Seats must be between 1 and {self.max_seats_per_ride}"
            )

    def _validate_price(self, price: Decimal) -> Decimal:
        price = to_money(price)
        if price < 0:
            raise InvalidRequest("Price per seat must not be negative")
        if 0 < price < self.minimum_fare:
            raise InvalidRequest(
                f"Price per seat must be 0 or at least {self.minimum_fare}"
            )
        return price

    @staticmethod
    def _rider_ids(bookings: list[Booking]) -> tuple[int, ...]:
        return tuple(sorted({b.rider_id for b in bookings}))
