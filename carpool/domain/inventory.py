"""
Seat Inventory
==============

    available = total_seats - sum(seats of bookings in SEAT_HOLDING_STATUSES)

``Ride.available_seats`` is a denormalized cache for cheap listing; every
rule below recomputes from the bookings and refreshes the cache
afterwards.  Callers must run :func:`reserve` / :func:`release` inside the
ride's lock and persist the aggregate in the same critical section.
"""

from __future__ import annotations

from .entities import Booking, Ride
from .enums import SEAT_HOLDING_STATUSES, BookingStatus
from .errors import InsufficientCapacity, InvalidTransition


def reserved_seats(ride: Ride) -> int:
    return sum(
        b.number_of_seats for b in ride.passengers if b.status in SEAT_HOLDING_STATUSES
    )


def available_seats(ride: Ride) -> int:
    return ride.total_seats - reserved_seats(ride)


def is_full(ride: Ride) -> bool:
    return available_seats(ride) <= 0


def refresh_cache(ride: Ride) -> int:
    ride.available_seats = max(0, available_seats(ride))
    return ride.available_seats


def ensure_capacity(ride: Ride, requested_seats: int) -> None:
    free = available_seats(ride)
    if requested_seats > free:
        raise InsufficientCapacity(
            f"Only {max(free, 0)} seat{'s' if free != 1 else ''} left on this ride"
        )


def reserve(ride: Ride, booking: Booking) -> None:
    """Attach *booking* to *ride* if its seats fit, else raise."""
    if booking.status not in SEAT_HOLDING_STATUSES:
        raise InvalidTransition("Only pending or confirmed bookings hold seats")
    ensure_capacity(ride, booking.number_of_seats)
    booking.ride_id = ride.id
    ride.passengers.append(booking)
    refresh_cache(ride)


def release(ride: Ride, booking: Booking, reason: str) -> None:
    """Cancel *booking*, freeing its seats in the same step."""
    booking.transition_to(BookingStatus.CANCELLED)
    booking.cancellation_reason = reason
    refresh_cache(ride)


def resize(ride: Ride, total_seats: int) -> None:
    """Change capacity; never below the seats already held."""
    held = reserved_seats(ride)
    if total_seats < held:
        raise InsufficientCapacity(
            f"{held} seats are already booked on this ride"
        )
    ride.total_seats = total_seats
    refresh_cache(ride)


def change_seats(ride: Ride, booking: Booking, seats: int) -> None:
    """Move *booking* to *seats*, checking only the extra seats it asks for."""
    if booking.status not in SEAT_HOLDING_STATUSES:
        raise InvalidTransition("Only pending or confirmed bookings hold seats")
    extra = seats - booking.number_of_seats
    if extra > 0:
        ensure_capacity(ride, extra)
    booking.number_of_seats = seats
    refresh_cache(ride)
