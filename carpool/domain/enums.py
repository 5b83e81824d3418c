"""Domain enumerations and state-transition rules."""

from __future__ import annotations

import enum
from typing import Optional


class RideStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PickupStatus(str, enum.Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"


class PaymentStatus(str, enum.Enum):
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    VOIDED = "voided"
    CAPTURE_FAILED = "capture_failed"
    VOID_FAILED = "void_failed"


class BookingWorkflow(str, enum.Enum):
    INSTANT = "instant"  # confirmed on request
    DRIVER_APPROVAL = "driver_approval"  # pending until the driver accepts


class RideSortKey(str, enum.Enum):
    DATE = "date"
    DISTANCE = "distance"
    EARNINGS = "earnings"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.SCHEDULED: {RideStatus.IN_PROGRESS, RideStatus.CANCELLED},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

# Bookings whose seats count against a ride's capacity
SEAT_HOLDING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED}
)

# Bookings that still earn money for the driver
EARNING_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})


def normalize_ride_status(value: Optional[str | RideStatus]) -> RideStatus:
    """Map a stored / client-supplied status onto ``RideStatus``.

    Legacy rows and older clients leave the status empty, which has always
    meant "scheduled".
    """
    if value is None or value == "":
        return RideStatus.SCHEDULED
    return RideStatus(value)
