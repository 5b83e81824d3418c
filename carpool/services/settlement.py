"""
Completion & Settlement
=======================

On ``complete_ride``:

1. (locked) ride -> ``completed``; every ``confirmed`` booking ->
   ``completed`` with its ``EarningsBreakdown`` frozen on the booking;
   bookings still ``pending`` never travelled and are cancelled.
2. (unlocked) capture every held authorization concurrently and void the
   ones belonging to dropped requests.
3. (locked) record each capture outcome.  A failed capture marks that
   booking ``settlement_failed``; it never blocks the ride or its other
   bookings.  Retrying is an out-of-band job.

Earnings stored at completion are never recomputed, so later fee-policy
changes leave settled rides untouched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from carpool.domain import inventory
from carpool.domain.entities import Booking, Ride
from carpool.domain.enums import (
    EARNING_STATUSES,
    BookingStatus,
    PaymentStatus,
    RideStatus,
)
from carpool.domain.errors import InvalidTransition
from carpool.domain.events import RideCompleted
from carpool.domain.fees import (
    NO_EARNINGS,
    ZERO,
    EarningsBreakdown,
    FeeCalculator,
    to_money,
)
from carpool.infrastructure.locks import ride_key

from .base import RideService

logger = logging.getLogger(__name__)


@dataclass
class SettlementReport:
    ride: Ride
    earnings: EarningsBreakdown
    captured_booking_ids: list[int] = field(default_factory=list)
    failed_booking_ids: list[int] = field(default_factory=list)


@dataclass
class RideEarnings:
    ride_id: int
    completed_at: Optional[datetime]
    origin_address: str
    destination_address: str
    seats_booked: int
    price_per_seat: Decimal
    distance: float
    breakdown: EarningsBreakdown


@dataclass
class EarningsSummary:
    total_net: Decimal
    total_gross: Decimal
    total_fees: Decimal
    total_rides: int
    total_seats_booked: int
    total_distance: float
    average_net_per_ride: Decimal
    this_week_net: Decimal
    this_month_net: Decimal
    rides: list[RideEarnings] = field(default_factory=list)


class SettlementService(RideService):
    def __init__(self, *args, fees: FeeCalculator, **kwargs):
        super().__init__(*args, **kwargs)
        self.fees = fees

    async def complete_ride(self, ride_id: int, driver_id: int) -> SettlementReport:
        async with self.locks.hold(ride_key(ride_id)):
            ride = await self._load(ride_id)
            self._check_driver(ride, driver_id)
            if ride.status is not RideStatus.IN_PROGRESS:
                raise InvalidTransition(
                    f"A {ride.status.value} ride cannot be completed"
                )
            ride.transition_to(RideStatus.COMPLETED)
            ride.completed_at = self.clock()

            travelled = ride.bookings_in(BookingStatus.CONFIRMED)
            for booking in travelled:
                booking.transition_to(BookingStatus.COMPLETED)
                booking.earnings = self.fees.driver_net(booking.subtotal)
            dropped = ride.bookings_in(BookingStatus.PENDING)
            for booking in dropped:
                inventory.release(ride, booking, reason="ride_completed")
            await self.store.save(ride)

        captured, failed = await self._capture_all(ride.id, travelled)
        await self._void_authorizations(ride.id, dropped)
        ride = await self._load(ride.id)

        logger.info(
            "Ride %s completed: %d captured, %d settlement failures",
            ride.id,
            len(captured),
            len(failed),
        )
        self._emit(
            RideCompleted(
                ride_id=ride.id,
                driver_id=ride.driver_id,
                rider_ids=tuple(sorted({b.rider_id for b in travelled})),
                settlement_failed_booking_ids=tuple(failed),
            )
        )
        return SettlementReport(
            ride=ride,
            earnings=self.ride_earnings(ride),
            captured_booking_ids=captured,
            failed_booking_ids=failed,
        )

    async def _capture_all(
        self, ride_id: int, bookings: list[Booking]
    ) -> tuple[list[int], list[int]]:
        held = [b for b in bookings if b.payment_handle]
        if not held:
            return [], []
        results = await asyncio.gather(
            *(self.payments.capture(b.payment_handle) for b in held),
            return_exceptions=True,
        )
        updates: dict[int, PaymentStatus] = {}
        captured: list[int] = []
        failed: list[int] = []
        for booking, result in zip(held, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Capture failed for booking %s (%s): %s",
                    booking.id,
                    booking.payment_handle,
                    result,
                )
                updates[booking.id] = PaymentStatus.CAPTURE_FAILED
                failed.append(booking.id)
            else:
                updates[booking.id] = PaymentStatus.CAPTURED
                captured.append(booking.id)
        await self._record_payments(ride_id, updates, settlement_failed=failed)
        return captured, failed

    # ── Earnings ──────────────────────────────────────────────────────

    def ride_earnings(self, ride: Ride) -> EarningsBreakdown:
        """Settled figures for completed rides, a projection otherwise."""
        total = NO_EARNINGS
        for booking in ride.passengers:
            if booking.earnings is not None and booking.status is BookingStatus.COMPLETED:
                total = total + booking.earnings
            elif booking.status in EARNING_STATUSES:
                total = total + self.fees.driver_net(booking.subtotal)
        return total

    async def driver_summary(self, driver_id: int) -> EarningsSummary:
        rides = await self.store.list_rides(
            driver_id=driver_id, statuses=[RideStatus.COMPLETED]
        )
        return summarize_earnings(rides, self.ride_earnings, self.clock())


def summarize_earnings(
    rides: Iterable[Ride],
    earnings_of,
    now: datetime,
) -> EarningsSummary:
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    details: list[RideEarnings] = []
    total = NO_EARNINGS
    week = month = ZERO
    seats = 0
    distance = 0.0
    for ride in rides:
        breakdown = earnings_of(ride)
        booked = sum(
            b.number_of_seats for b in ride.passengers if b.status in EARNING_STATUSES
        )
        total = total + breakdown
        seats += booked
        distance += ride.distance or 0.0
        finished = ride.completed_at or ride.departure_time
        if finished is not None and finished >= week_ago:
            week += breakdown.net_earnings
        if finished is not None and finished >= month_ago:
            month += breakdown.net_earnings
        details.append(
            RideEarnings(
                ride_id=ride.id,
                completed_at=ride.completed_at,
                origin_address=ride.origin_address,
                destination_address=ride.destination_address,
                seats_booked=booked,
                price_per_seat=ride.price_per_seat,
                distance=ride.distance or 0.0,
                breakdown=breakdown,
            )
        )

    details.sort(
        key=lambda r: r.completed_at.timestamp() if r.completed_at else 0.0,
        reverse=True,
    )
    count = len(details)
    average = to_money(total.net_earnings / count) if count else ZERO
    return EarningsSummary(
        total_net=total.net_earnings,
        total_gross=total.gross_earnings,
        total_fees=total.total_fees,
        total_rides=count,
        total_seats_booked=seats,
        total_distance=round(distance, 2),
        average_net_per_ride=average,
        this_week_net=week,
        this_month_net=month,
        rides=details,
    )
