"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride`` and ``Booking``: enforce valid lifecycle
  transitions from the tables in :mod:`enums`.
- ``Ride`` is the aggregate root: its bookings (``passengers``) are only
  ever mutated and persisted together with it.
"""

from __future__ import annotations

import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from .enums import (
    BOOKING_TRANSITIONS,
    RIDE_TRANSITIONS,
    BookingStatus,
    PaymentStatus,
    PickupStatus,
    RideStatus,
)
from .errors import (
    InvalidPickupPin,
    InvalidTransition,
    NotFound,
    PickupPinExpired,
    PickupPinLocked,
)
from .fees import EarningsBreakdown
from .schedule import local_date

PIN_MAX_ATTEMPTS = 5
PIN_LOCKOUT = timedelta(minutes=10)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class PickupDetails:
    address: str
    location: Optional[Location] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Booking:
    id: Optional[int] = None
    ride_id: Optional[int] = None
    rider_id: int = 0
    number_of_seats: int = 1
    price_per_seat: Decimal = Decimal("0.00")  # locked in at booking time
    status: BookingStatus = BookingStatus.PENDING
    pickup_status: PickupStatus = PickupStatus.PENDING
    pickup: Optional[PickupDetails] = None
    confirmation_number: str = ""
    idempotency_key: Optional[str] = None
    payment_handle: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    amount: Decimal = Decimal("0.00")
    settlement_failed: bool = False
    earnings: Optional[EarningsBreakdown] = None
    cancellation_reason: Optional[str] = None
    picked_up_at: Optional[datetime] = None
    pickup_pin: Optional[str] = None  # shown to the rider, checked by the driver
    pickup_pin_expires_at: Optional[datetime] = None
    pickup_pin_attempts: int = 0
    pickup_pin_locked_until: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return not BOOKING_TRANSITIONS[self.status]

    @property
    def subtotal(self) -> Decimal:
        return self.price_per_seat * self.number_of_seats

    def transition_to(self, new_status: BookingStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        if new_status not in BOOKING_TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(
                f"Cannot move a {self.status.value} booking to {new_status.value}"
            )
        self.status = new_status

    def mark_picked_up(self, at: datetime) -> bool:
        """Record the pickup.  Returns False when it was already recorded."""
        if self.pickup_status is PickupStatus.PICKED_UP:
            return False
        if self.status is not BookingStatus.CONFIRMED:
            raise InvalidTransition("Only confirmed passengers can be picked up")
        self.pickup_status = PickupStatus.PICKED_UP
        self.picked_up_at = at
        return True

    # ── Pickup PIN ────────────────────────────────────────────────────

    def issue_pickup_pin(self, expires_at: datetime) -> str:
        self.pickup_pin = f"{secrets.randbelow(10_000):04d}"
        self.pickup_pin_expires_at = expires_at
        self.pickup_pin_attempts = 0
        self.pickup_pin_locked_until = None
        return self.pickup_pin

    def pin_expired(self, now: datetime) -> bool:
        return (
            self.pickup_pin_expires_at is not None
            and self.pickup_pin_expires_at < now
        )

    def check_pickup_pin(self, pin: str, now: datetime) -> None:
        """Verify the PIN the rider shows the driver.

        A wrong guess is counted on the booking; the fifth one locks
        verification for ``PIN_LOCKOUT``.  Callers must persist the booking
        whether or not this raises.
        """
        if self.status is not BookingStatus.CONFIRMED:
            raise InvalidTransition("Only confirmed passengers can be picked up")
        if self.pickup_pin is None:
            raise InvalidTransition("No pickup PIN is set for this booking")
        if self.pin_expired(now):
            raise PickupPinExpired()
        if self.pickup_pin_locked_until is not None:
            if now < self.pickup_pin_locked_until:
                seconds = (self.pickup_pin_locked_until - now).total_seconds()
                minutes = math.ceil(seconds / 60)
                raise PickupPinLocked(
                    f"Too many failed attempts, please try again in "
                    f"{minutes} minute{'s' if minutes != 1 else ''}"
                )
            self.pickup_pin_locked_until = None
            self.pickup_pin_attempts = 0
        if not secrets.compare_digest(pin, self.pickup_pin):
            self.pickup_pin_attempts += 1
            if self.pickup_pin_attempts >= PIN_MAX_ATTEMPTS:
                self.pickup_pin_locked_until = now + PIN_LOCKOUT
            raise InvalidPickupPin(max(0, PIN_MAX_ATTEMPTS - self.pickup_pin_attempts))
        self.pickup_pin_attempts = 0
        self.pickup_pin_locked_until = None


@dataclass
class Ride:
    id: Optional[int] = None
    driver_id: int = 0
    departure_time: Optional[datetime] = None
    total_seats: int = 1
    available_seats: int = 1  # cache only, see inventory.refresh_cache
    price_per_seat: Decimal = Decimal("0.00")
    status: RideStatus = RideStatus.SCHEDULED
    origin: Optional[Location] = None
    destination: Optional[Location] = None
    origin_address: str = ""
    destination_address: str = ""
    distance: Optional[float] = None  # precomputed route distance, miles
    passengers: list[Booking] = field(default_factory=list)
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return not RIDE_TRANSITIONS[self.status]

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        if new_status not in RIDE_TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(
                f"Cannot move a {self.status.value} ride to {new_status.value}"
            )
        self.status = new_status

    def departs_on(self, now: datetime) -> bool:
        """True if the departure falls on *now*'s local calendar day."""
        if self.departure_time is None:
            return False
        return local_date(self.departure_time, now.tzinfo) == now.date()

    def can_start(self, now: datetime) -> bool:
        return self.status is RideStatus.SCHEDULED and self.departs_on(now)

    def can_edit(self) -> bool:
        return self.status is RideStatus.SCHEDULED

    def can_delete(self) -> bool:
        return self.status is RideStatus.SCHEDULED

    def booking(self, booking_id: int) -> Booking:
        for b in self.passengers:
            if b.id == booking_id:
                return b
        raise NotFound("Booking not found")

    def bookings_in(self, *statuses: BookingStatus) -> list[Booking]:
        return [b for b in self.passengers if b.status in statuses]

    def active_booking_for(self, rider_id: int) -> Optional[Booking]:
        """The rider's non-cancelled booking on this ride, if any."""
        for b in self.passengers:
            if b.rider_id == rider_id and b.status is not BookingStatus.CANCELLED:
                return b
        return None
