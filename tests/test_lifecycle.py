"""Ride create / edit / delete / start / cancel / pickup use cases."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from carpool.domain.entities import Location
from carpool.domain.enums import (
    BookingStatus,
    PaymentStatus,
    PickupStatus,
    RideStatus,
)
from carpool.domain.errors import (
    Forbidden,
    InsufficientCapacity,
    InvalidPickupPin,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    PickupPinLocked,
    RideHasActiveBookings,
)

from conftest import DRIVER, FIXED_NOW, OTHER_DRIVER, OTHER_RIDER, RIDER

AUSTIN = Location(30.2672, -97.7431)
DALLAS = Location(32.7767, -96.7970)


class TestCreateRide:
    @pytest.mark.asyncio
    async def test_new_ride_is_scheduled_with_all_seats_free(self, publish_ride):
        ride = await publish_ride(total_seats=4)
        assert ride.id is not None
        assert ride.status is RideStatus.SCHEDULED
        assert ride.available_seats == 4
        assert ride.price_per_seat == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_distance_is_derived_from_coordinates(self, publish_ride):
        ride = await publish_ride(origin=AUSTIN, destination=DALLAS)
        assert ride.distance == pytest.approx(182, abs=2)

    @pytest.mark.asyncio
    async def test_given_distance_wins(self, publish_ride):
        ride = await publish_ride(origin=AUSTIN, destination=DALLAS, distance=195.4)
        assert ride.distance == 195.4

    @pytest.mark.asyncio
    async def test_naive_departure_is_local_time(self, publish_ride):
        ride = await publish_ride(departure_time=datetime(2026, 3, 10, 18, 0))
        assert ride.departure_time.tzinfo is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seats", [0, 9])
    async def test_seat_bounds(self, publish_ride, seats):
        with pytest.raises(InvalidRequest):
            await publish_ride(total_seats=seats)

    @pytest.mark.asyncio
    async def test_price_below_minimum_fare(self, publish_ride):
        with pytest.raises(InvalidRequest):
            await publish_ride(price_per_seat=Decimal("0.50"))

    @pytest.mark.asyncio
    async def test_free_ride_allowed(self, publish_ride):
        ride = await publish_ride(price_per_seat=Decimal("0"))
        assert ride.price_per_seat == Decimal("0.00")


class TestUpdateRide:
    @pytest.mark.asyncio
    async def test_edit_price_and_notify_riders(self, container, publish_ride, sink):
        ride = await publish_ride()
        await container.bookings.request_booking(ride.id, RIDER, 1)

        updated = await container.lifecycle.update_ride(
            ride.id, DRIVER, price_per_seat=Decimal("25.00"), origin_address="Round Rock"
        )

        assert updated.price_per_seat == Decimal("25.00")
        assert updated.origin_address == "Round Rock"
        event = sink.events[-1]
        assert event.name == "RideUpdated"
        assert event.rider_ids == (RIDER,)
        assert event.changed_fields == ("origin_address", "price_per_seat")

    @pytest.mark.asyncio
    async def test_existing_bookings_keep_their_price(self, container, publish_ride):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.lifecycle.update_ride(ride.id, DRIVER, price_per_seat=Decimal("30.00"))
        stored = await container.queries.get_booking(booking.id)
        assert stored.price_per_seat == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_seats_cannot_drop_below_bookings(self, container, publish_ride):
        ride = await publish_ride(total_seats=4)
        await container.bookings.request_booking(ride.id, RIDER, 3)
        with pytest.raises(InsufficientCapacity):
            await container.lifecycle.update_ride(ride.id, DRIVER, total_seats=2)

    @pytest.mark.asyncio
    async def test_adding_seats_frees_capacity(self, container, publish_ride):
        ride = await publish_ride(total_seats=2)
        await container.bookings.request_booking(ride.id, RIDER, 2)
        updated = await container.lifecycle.update_ride(ride.id, DRIVER, total_seats=4)
        assert updated.available_seats == 2

    @pytest.mark.asyncio
    async def test_unknown_field(self, container, publish_ride):
        ride = await publish_ride()
        with pytest.raises(InvalidRequest):
            await container.lifecycle.update_ride(ride.id, DRIVER, status="completed")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field", ["departure_time", "total_seats", "price_per_seat", "origin_address"]
    )
    async def test_required_field_cannot_be_cleared(self, container, publish_ride, field):
        ride = await publish_ride()
        with pytest.raises(InvalidRequest, match=f"{field} cannot be empty"):
            await container.lifecycle.update_ride(ride.id, DRIVER, **{field: None})
        stored = await container.queries.get_ride(ride.id)
        assert stored.total_seats == 3
        assert stored.price_per_seat == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_other_driver(self, container, publish_ride):
        ride = await publish_ride()
        with pytest.raises(Forbidden):
            await container.lifecycle.update_ride(ride.id, OTHER_DRIVER, origin_address="x")

    @pytest.mark.asyncio
    async def test_started_ride_is_read_only(self, container, publish_ride):
        ride = await publish_ride()
        await container.lifecycle.start_ride(ride.id, DRIVER)
        with pytest.raises(InvalidTransition):
            await container.lifecycle.update_ride(ride.id, DRIVER, origin_address="x")


class TestDeleteRide:
    @pytest.mark.asyncio
    async def test_delete_unbooked_ride(self, container, publish_ride):
        ride = await publish_ride()
        await container.lifecycle.delete_ride(ride.id, DRIVER)
        with pytest.raises(NotFound):
            await container.queries.get_ride(ride.id)

    @pytest.mark.asyncio
    async def test_refused_while_booked(self, container, publish_ride):
        ride = await publish_ride()
        await container.bookings.request_booking(ride.id, RIDER, 1)
        with pytest.raises(RideHasActiveBookings):
            await container.lifecycle.delete_ride(ride.id, DRIVER)

    @pytest.mark.asyncio
    async def test_allowed_once_bookings_are_cancelled(self, container, publish_ride):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.bookings.cancel_booking(booking.id, RIDER)
        await container.lifecycle.delete_ride(ride.id, DRIVER)
        assert await container.store.get(ride.id) is None


class TestStartRide:
    @pytest.mark.asyncio
    async def test_start_on_departure_day(self, container, publish_ride, sink):
        ride = await publish_ride()
        await container.bookings.request_booking(ride.id, RIDER, 1)

        started = await container.lifecycle.start_ride(ride.id, DRIVER)

        assert started.status is RideStatus.IN_PROGRESS
        assert started.started_at == FIXED_NOW
        assert sink.events[-1].name == "RideStarted"
        assert sink.events[-1].rider_ids == (RIDER,)

    @pytest.mark.asyncio
    async def test_not_before_departure_day(self, container, publish_ride):
        ride = await publish_ride(departure_time=FIXED_NOW + timedelta(days=1))
        with pytest.raises(InvalidTransition, match="departure day"):
            await container.lifecycle.start_ride(ride.id, DRIVER)

    @pytest.mark.asyncio
    async def test_one_active_ride_per_driver(self, container, publish_ride):
        first = await publish_ride()
        second = await publish_ride()
        await container.lifecycle.start_ride(first.id, DRIVER)

        with pytest.raises(InvalidTransition, match="Complete your current ride"):
            await container.lifecycle.start_ride(second.id, DRIVER)

    @pytest.mark.asyncio
    async def test_next_ride_after_completing(self, container, publish_ride):
        first = await publish_ride()
        second = await publish_ride()
        await container.lifecycle.start_ride(first.id, DRIVER)
        await container.lifecycle.complete_ride(first.id, DRIVER)
        started = await container.lifecycle.start_ride(second.id, DRIVER)
        assert started.status is RideStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_other_drivers_are_independent(self, container, publish_ride):
        mine = await publish_ride()
        theirs = await publish_ride(driver_id=OTHER_DRIVER)
        await container.lifecycle.start_ride(mine.id, DRIVER)
        started = await container.lifecycle.start_ride(theirs.id, OTHER_DRIVER)
        assert started.status is RideStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_only_the_driver_starts(self, container, publish_ride):
        ride = await publish_ride()
        with pytest.raises(Forbidden):
            await container.lifecycle.start_ride(ride.id, OTHER_DRIVER)

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, container, publish_ride):
        ride = await publish_ride()
        await container.lifecycle.start_ride(ride.id, DRIVER)
        with pytest.raises(InvalidTransition):
            await container.lifecycle.start_ride(ride.id, DRIVER)


class TestCancelRide:
    @pytest.mark.asyncio
    async def test_cascades_to_bookings(self, container, publish_ride, gateway, sink):
        ride = await publish_ride(total_seats=4)
        first = await container.bookings.request_booking(ride.id, RIDER, 2)
        second = await container.bookings.request_booking(ride.id, OTHER_RIDER, 1)

        cancelled = await container.lifecycle.cancel_ride(ride.id, DRIVER)

        assert cancelled.status is RideStatus.CANCELLED
        assert cancelled.cancelled_at == FIXED_NOW
        assert cancelled.available_seats == 4
        for booking in cancelled.passengers:
            assert booking.status is BookingStatus.CANCELLED
            assert booking.cancellation_reason == "ride_cancelled"
            assert booking.payment_status is PaymentStatus.VOIDED
        assert gateway.voided == {first.payment_handle, second.payment_handle}
        assert sink.names()[-3:] == ["RideCancelled", "BookingCancelled", "BookingCancelled"]

    @pytest.mark.asyncio
    async def test_in_progress_ride_can_be_cancelled(self, container, publish_ride):
        ride = await publish_ride()
        await container.lifecycle.start_ride(ride.id, DRIVER)
        cancelled = await container.lifecycle.cancel_ride(ride.id, DRIVER)
        assert cancelled.status is RideStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_terminal_ride_cannot_be_cancelled(self, container, publish_ride):
        ride = await publish_ride()
        await container.lifecycle.cancel_ride(ride.id, DRIVER)
        with pytest.raises(InvalidTransition):
            await container.lifecycle.cancel_ride(ride.id, DRIVER)

    @pytest.mark.asyncio
    async def test_previously_cancelled_booking_is_left_alone(self, container, publish_ride, sink):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.bookings.cancel_booking(booking.id, RIDER)

        cancelled = await container.lifecycle.cancel_ride(ride.id, DRIVER)

        assert cancelled.passengers[0].cancellation_reason == "cancelled_by_rider"
        assert sink.names()[-1] == "RideCancelled"


class TestPickUp:
    @pytest.mark.asyncio
    async def test_pick_up_after_start(self, container, publish_ride, clock, sink):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.lifecycle.start_ride(ride.id, DRIVER)
        clock.advance(minutes=20)

        picked = await container.lifecycle.pick_up_passenger(
            booking.id, DRIVER, booking.pickup_pin
        )

        assert picked.pickup_status is PickupStatus.PICKED_UP
        assert picked.picked_up_at == FIXED_NOW + timedelta(minutes=20)
        assert sink.events[-1].name == "PassengerPickedUp"

    @pytest.mark.asyncio
    async def test_pick_up_is_idempotent(self, container, publish_ride, clock, sink):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.lifecycle.start_ride(ride.id, DRIVER)
        pin = booking.pickup_pin
        first = await container.lifecycle.pick_up_passenger(booking.id, DRIVER, pin)
        clock.advance(minutes=5)
        again = await container.lifecycle.pick_up_passenger(booking.id, DRIVER, pin)

        assert again.picked_up_at == first.picked_up_at
        assert sink.names().count("PassengerPickedUp") == 1

    @pytest.mark.asyncio
    async def test_not_before_start(self, container, publish_ride):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        with pytest.raises(InvalidTransition):
            await container.lifecycle.pick_up_passenger(
                booking.id, DRIVER, booking.pickup_pin
            )

    @pytest.mark.asyncio
    async def test_only_the_driver_picks_up(self, container, publish_ride):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.lifecycle.start_ride(ride.id, DRIVER)
        with pytest.raises(Forbidden):
            await container.lifecycle.pick_up_passenger(
                booking.id, OTHER_DRIVER, booking.pickup_pin
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pin", ["123", "12345", "12a4", "١٢٣٤"])
    async def test_pin_must_be_four_digits(self, container, publish_ride, pin):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.lifecycle.start_ride(ride.id, DRIVER)
        with pytest.raises(InvalidRequest, match="4 digits"):
            await container.lifecycle.pick_up_passenger(booking.id, DRIVER, pin)

    @pytest.mark.asyncio
    async def test_wrong_pin_is_counted(self, container, publish_ride, sink):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.lifecycle.start_ride(ride.id, DRIVER)

        with pytest.raises(InvalidPickupPin) as excinfo:
            await container.lifecycle.pick_up_passenger(
                booking.id, DRIVER, _other_pin(booking.pickup_pin)
            )

        assert excinfo.value.attempts_remaining == 4
        stored = await container.queries.get_booking(booking.id)
        assert stored.pickup_pin_attempts == 1
        assert stored.pickup_status is PickupStatus.PENDING
        assert "PassengerPickedUp" not in sink.names()

    @pytest.mark.asyncio
    async def test_locked_after_five_wrong_pins(self, container, publish_ride, clock):
        ride = await publish_ride()
        booking = await container.bookings.request_booking(ride.id, RIDER, 1)
        await container.lifecycle.start_ride(ride.id, DRIVER)
        wrong = _other_pin(booking.pickup_pin)
        for _ in range(5):
            with pytest.raises(InvalidPickupPin):
                await container.lifecycle.pick_up_passenger(booking.id, DRIVER, wrong)

        with pytest.raises(PickupPinLocked):
            await container.lifecycle.pick_up_passenger(
                booking.id, DRIVER, booking.pickup_pin
            )

        clock.advance(minutes=11)
        picked = await container.lifecycle.pick_up_passenger(
            booking.id, DRIVER, booking.pickup_pin
        )
        assert picked.pickup_status is PickupStatus.PICKED_UP
        assert picked.pickup_pin_attempts == 0


def _other_pin(pin: str) -> str:
    return "0000" if pin != "0000" else "1111"


class TestTimezones:
    @pytest.mark.asyncio
    async def test_departure_day_follows_the_clock_zone(self, make_container, clock):
        central = timezone(timedelta(hours=-5))
        clock.now = datetime(2026, 3, 10, 20, 0, tzinfo=central)
        container = make_container()
        # 01:30 UTC on the 11th is 20:30 on the 10th in Central
        ride = await container.lifecycle.create_ride(
            driver_id=DRIVER,
            departure_time=datetime(2026, 3, 11, 1, 30, tzinfo=timezone.utc),
            total_seats=2,
            price_per_seat=Decimal("5.00"),
        )
        started = await container.lifecycle.start_ride(ride.id, DRIVER)
        assert started.status is RideStatus.IN_PROGRESS
