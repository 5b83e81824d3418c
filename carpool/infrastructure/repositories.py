"""
Repository Pattern -- the SQLAlchemy implementation of ``RideStore``.

Each call is its own unit-of-work: a fresh ``AsyncSession`` is opened,
used and closed, and the domain objects handed back are fully detached
from it.

``save`` locks the ride row (``SELECT ... FOR UPDATE``) and then checks
the incoming aggregate against what is stored, inside that transaction:

* ride and booking statuses may only move along their state machines,
* new bookings are only accepted while the stored ride is ``scheduled``,
* the seat-holding bookings on the row (including ones this copy never
  saw) must fit in ``total_seats``; ``available_seats`` is recomputed
  from them.

A copy loaded before another process committed therefore fails with a
domain error instead of overwriting or overselling the ride, whichever
lock manager is configured.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import BookingModel, RideModel
from carpool.domain.entities import Booking, Location, PickupDetails, Ride
from carpool.domain.enums import (
    BOOKING_TRANSITIONS,
    RIDE_TRANSITIONS,
    SEAT_HOLDING_STATUSES,
    BookingStatus,
    PaymentStatus,
    PickupStatus,
    RideStatus,
    normalize_ride_status,
)
from carpool.domain.errors import (
    InsufficientCapacity,
    InvalidTransition,
    NotFound,
    RideNotBookable,
)
from carpool.domain.fees import EarningsBreakdown


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; everything is written as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def _location(lat: Optional[float], lng: Optional[float]) -> Optional[Location]:
    if lat is None or lng is None:
        return None
    return Location(lat, lng)


def _money(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0.00")


# ── Model -> domain ───────────────────────────────────────────────────


def booking_from_model(m: BookingModel) -> Booking:
    earnings = None
    if m.net_earnings is not None:
        earnings = EarningsBreakdown(
            gross_earnings=_money(m.gross_earnings),
            processing_fee=_money(m.processing_fee),
            commission=_money(m.commission),
            net_earnings=_money(m.net_earnings),
        )
    pickup = None
    if m.pickup_address is not None:
        pickup = PickupDetails(
            address=m.pickup_address,
            location=_location(m.pickup_lat, m.pickup_lng),
            city=m.pickup_city,
            state=m.pickup_state,
            zip_code=m.pickup_zip_code,
        )
    return Booking(
        id=m.id,
        ride_id=m.ride_id,
        rider_id=m.rider_id,
        number_of_seats=m.number_of_seats,
        price_per_seat=_money(m.price_per_seat),
        status=BookingStatus(m.status),
        pickup_status=PickupStatus(m.pickup_status),
        pickup=pickup,
        confirmation_number=m.confirmation_number,
        idempotency_key=m.idempotency_key,
        payment_handle=m.payment_handle,
        payment_status=PaymentStatus(m.payment_status) if m.payment_status else None,
        amount=_money(m.amount),
        settlement_failed=bool(m.settlement_failed),
        earnings=earnings,
        cancellation_reason=m.cancellation_reason,
        picked_up_at=_aware(m.picked_up_at),
        pickup_pin=m.pickup_pin,
        pickup_pin_expires_at=_aware(m.pickup_pin_expires_at),
        pickup_pin_attempts=m.pickup_pin_attempts or 0,
        pickup_pin_locked_until=_aware(m.pickup_pin_locked_until),
        created_at=_aware(m.created_at),
    )


def ride_from_model(m: RideModel) -> Ride:
    return Ride(
        id=m.id,
        driver_id=m.driver_id,
        departure_time=_aware(m.departure_time),
        total_seats=m.total_seats,
        available_seats=m.available_seats,
        price_per_seat=_money(m.price_per_seat),
        status=normalize_ride_status(m.status),
        origin=_location(m.origin_lat, m.origin_lng),
        destination=_location(m.destination_lat, m.destination_lng),
        origin_address=m.origin_address or "",
        destination_address=m.destination_address or "",
        distance=m.distance,
        passengers=[booking_from_model(b) for b in m.bookings],
        created_at=_aware(m.created_at),
        started_at=_aware(m.started_at),
        completed_at=_aware(m.completed_at),
        cancelled_at=_aware(m.cancelled_at),
    )


# ── Domain -> model ───────────────────────────────────────────────────


def _apply_ride(m: RideModel, ride: Ride) -> None:
    m.driver_id = ride.driver_id
    m.origin_address = ride.origin_address
    m.origin_lat = ride.origin.latitude if ride.origin else None
    m.origin_lng = ride.origin.longitude if ride.origin else None
    m.destination_address = ride.destination_address
    m.destination_lat = ride.destination.latitude if ride.destination else None
    m.destination_lng = ride.destination.longitude if ride.destination else None
    m.distance = ride.distance
    m.departure_time = _utc(ride.departure_time)
    m.total_seats = ride.total_seats
    m.available_seats = ride.available_seats
    m.price_per_seat = ride.price_per_seat
    m.status = ride.status.value
    m.started_at = _utc(ride.started_at)
    m.completed_at = _utc(ride.completed_at)
    m.cancelled_at = _utc(ride.cancelled_at)


def _apply_booking(m: BookingModel, b: Booking) -> None:
    m.rider_id = b.rider_id
    m.number_of_seats = b.number_of_seats
    m.price_per_seat = b.price_per_seat
    m.status = b.status.value
    m.pickup_status = b.pickup_status.value
    if b.pickup is not None:
        m.pickup_address = b.pickup.address
        m.pickup_city = b.pickup.city
        m.pickup_state = b.pickup.state
        m.pickup_zip_code = b.pickup.zip_code
        m.pickup_lat = b.pickup.location.latitude if b.pickup.location else None
        m.pickup_lng = b.pickup.location.longitude if b.pickup.location else None
    m.confirmation_number = b.confirmation_number
    m.idempotency_key = b.idempotency_key
    m.payment_handle = b.payment_handle
    m.payment_status = b.payment_status.value if b.payment_status else None
    m.amount = b.amount
    m.settlement_failed = b.settlement_failed
    if b.earnings is not None:
        m.gross_earnings = b.earnings.gross_earnings
        m.processing_fee = b.earnings.processing_fee
        m.commission = b.earnings.commission
        m.net_earnings = b.earnings.net_earnings
    m.cancellation_reason = b.cancellation_reason
    m.picked_up_at = _utc(b.picked_up_at)
    m.pickup_pin = b.pickup_pin
    m.pickup_pin_expires_at = _utc(b.pickup_pin_expires_at)
    m.pickup_pin_attempts = b.pickup_pin_attempts
    m.pickup_pin_locked_until = _utc(b.pickup_pin_locked_until)


def _check_stored_state(
    model: RideModel, existing: dict[int, BookingModel], ride: Ride
) -> None:
    stored = normalize_ride_status(model.status)
    for booking in ride.passengers:
        bm = existing.get(booking.id) if booking.id is not None else None
        if bm is None:
            if stored is not RideStatus.SCHEDULED:
                raise RideNotBookable()
            continue
        was = BookingStatus(bm.status)
        if booking.status is not was and booking.status not in BOOKING_TRANSITIONS[was]:
            raise InvalidTransition(f"This booking is already {was.value}")

    if ride.status is not stored and ride.status not in RIDE_TRANSITIONS[stored]:
        raise InvalidTransition(f"This ride is already {stored.value}")


# ── Store ─────────────────────────────────────────────────────────────


class SqlAlchemyRideStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, ride_id: int) -> Optional[Ride]:
        async with self.session_factory() as session:
            model = await session.get(RideModel, ride_id)
            return ride_from_model(model) if model else None

    async def save(self, ride: Ride) -> Ride:
        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            async with session.begin():
                if ride.id is None:
                    ride.created_at = ride.created_at or now
                    model = RideModel(created_at=ride.created_at)
                    session.add(model)
                else:
                    model = await session.get(
                        RideModel, ride.id, with_for_update=True
                    )
                    if model is None:
                        raise NotFound("Ride not found")

                existing = {b.id: b for b in model.bookings}
                if ride.id is not None:
                    _check_stored_state(model, existing, ride)
                _apply_ride(model, ride)

                written: list[tuple[Booking, BookingModel]] = []
                for booking in ride.passengers:
                    bm = existing.get(booking.id) if booking.id is not None else None
                    if bm is None:
                        booking.created_at = booking.created_at or now
                        bm = BookingModel(created_at=booking.created_at)
                        model.bookings.append(bm)
                    _apply_booking(bm, booking)
                    written.append((booking, bm))

                held = sum(
                    bm.number_of_seats
                    for bm in model.bookings
                    if BookingStatus(bm.status) in SEAT_HOLDING_STATUSES
                )
                if held > model.total_seats:
                    raise InsufficientCapacity()
                model.available_seats = model.total_seats - held

                await session.flush()
                ride.id = model.id
                ride.available_seats = model.available_seats
                for booking, bm in written:
                    booking.id = bm.id
                    booking.ride_id = model.id
        return ride

    async def delete(self, ride_id: int) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                model = await session.get(RideModel, ride_id, with_for_update=True)
                if model is not None:
                    await session.delete(model)

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        async with self.session_factory() as session:
            model = await session.get(BookingModel, booking_id)
            return booking_from_model(model) if model else None

    async def find_booking_by_idempotency_key(
        self, rider_id: int, key: str
    ) -> Optional[Booking]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BookingModel).where(
                    BookingModel.rider_id == rider_id,
                    BookingModel.idempotency_key == key,
                )
            )
            model = result.scalar_one_or_none()
            return booking_from_model(model) if model else None

    async def list_rides(
        self,
        *,
        driver_id: Optional[int] = None,
        statuses: Optional[Iterable[RideStatus]] = None,
    ) -> list[Ride]:
        query = select(RideModel).order_by(RideModel.departure_time)
        if driver_id is not None:
            query = query.where(RideModel.driver_id == driver_id)
        if statuses is not None:
            wanted = set(statuses)
            clause = RideModel.status.in_([s.value for s in wanted])
            if RideStatus.SCHEDULED in wanted:
                clause = or_(clause, RideModel.status.is_(None))
            query = query.where(clause)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [ride_from_model(m) for m in result.scalars().all()]

    async def bookings_for_rider(self, rider_id: int) -> list[Booking]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BookingModel)
                .where(BookingModel.rider_id == rider_id)
                .order_by(BookingModel.id.desc())
            )
            return [booking_from_model(m) for m in result.scalars().all()]

    async def in_progress_ride_for_driver(self, driver_id: int) -> Optional[Ride]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(RideModel)
                .where(
                    RideModel.driver_id == driver_id,
                    RideModel.status == RideStatus.IN_PROGRESS.value,
                )
                .limit(1)
            )
            model = result.scalars().first()
            return ride_from_model(model) if model else None
