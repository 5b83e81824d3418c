"""Unit tests for seat inventory rules."""

import pytest

from carpool.domain import inventory
from carpool.domain.entities import Booking, Ride
from carpool.domain.enums import BookingStatus
from carpool.domain.errors import InsufficientCapacity, InvalidTransition


def _ride(total=4, *bookings):
    ride = Ride(id=1, total_seats=total, available_seats=total)
    for b in bookings:
        ride.passengers.append(b)
    inventory.refresh_cache(ride)
    return ride


class TestAvailability:
    def test_empty_ride(self):
        ride = _ride(4)
        assert inventory.available_seats(ride) == 4
        assert not inventory.is_full(ride)

    def test_pending_confirmed_and_completed_hold_seats(self):
        ride = _ride(
            6,
            Booking(number_of_seats=1, status=BookingStatus.PENDING),
            Booking(number_of_seats=2, status=BookingStatus.CONFIRMED),
            Booking(number_of_seats=1, status=BookingStatus.COMPLETED),
            Booking(number_of_seats=2, status=BookingStatus.CANCELLED),
        )
        assert inventory.reserved_seats(ride) == 4
        assert ride.available_seats == 2


class TestReserve:
    def test_reserve_decrements_availability(self):
        ride = _ride(3)
        inventory.reserve(ride, Booking(number_of_seats=2, status=BookingStatus.CONFIRMED))
        assert ride.available_seats == 1
        assert ride.passengers[0].ride_id == 1

    def test_exact_fit_is_accepted(self):
        ride = _ride(3)
        inventory.reserve(ride, Booking(number_of_seats=3, status=BookingStatus.CONFIRMED))
        assert inventory.is_full(ride)

    def test_overbooking_is_refused(self):
        ride = _ride(3, Booking(number_of_seats=2, status=BookingStatus.CONFIRMED))
        with pytest.raises(InsufficientCapacity, match="Only 1 seat left"):
            inventory.reserve(
                ride, Booking(number_of_seats=2, status=BookingStatus.CONFIRMED)
            )
        assert len(ride.passengers) == 1

    def test_cancelled_booking_cannot_be_reserved(self):
        with pytest.raises(InvalidTransition):
            inventory.reserve(_ride(3), Booking(status=BookingStatus.CANCELLED))


class TestRelease:
    def test_release_frees_seats(self):
        booking = Booking(number_of_seats=2, status=BookingStatus.CONFIRMED)
        ride = _ride(3, booking)
        inventory.release(ride, booking, reason="cancelled_by_rider")
        assert booking.status is BookingStatus.CANCELLED
        assert booking.cancellation_reason == "cancelled_by_rider"
        assert ride.available_seats == 3

    def test_completed_booking_cannot_be_released(self):
        booking = Booking(status=BookingStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            inventory.release(_ride(3, booking), booking, reason="late")


class TestResize:
    def test_grow(self):
        ride = _ride(2, Booking(number_of_seats=2, status=BookingStatus.CONFIRMED))
        inventory.resize(ride, 4)
        assert ride.available_seats == 2

    def test_cannot_shrink_below_booked(self):
        ride = _ride(4, Booking(number_of_seats=3, status=BookingStatus.CONFIRMED))
        with pytest.raises(InsufficientCapacity):
            inventory.resize(ride, 2)
        assert ride.total_seats == 4


class TestChangeSeats:
    def test_growing_uses_free_seats(self):
        booking = Booking(number_of_seats=1, status=BookingStatus.CONFIRMED)
        ride = _ride(4, booking)
        inventory.change_seats(ride, booking, 3)
        assert booking.number_of_seats == 3
        assert ride.available_seats == 1

    def test_growing_past_capacity(self):
        mine = Booking(number_of_seats=1, status=BookingStatus.CONFIRMED)
        ride = _ride(3, mine, Booking(number_of_seats=2, status=BookingStatus.CONFIRMED))
        with pytest.raises(InsufficientCapacity, match="Only 0 seats left"):
            inventory.change_seats(ride, mine, 2)
        assert mine.number_of_seats == 1

    def test_shrinking_frees_seats(self):
        booking = Booking(number_of_seats=3, status=BookingStatus.PENDING)
        ride = _ride(4, booking)
        inventory.change_seats(ride, booking, 1)
        assert ride.available_seats == 3

    def test_cancelled_booking_cannot_change(self):
        booking = Booking(number_of_seats=1, status=BookingStatus.CANCELLED)
        ride = _ride(4, booking)
        with pytest.raises(InvalidTransition):
            inventory.change_seats(ride, booking, 2)
