"""
In-memory ``RideStore``.

Used by the test-suite and by ``store_backend=memory`` for local demos.
Every read and write goes through ``copy.deepcopy`` so callers can never
share mutable state with the store; that mirrors the detached objects the
SQL store hands out.
"""

from __future__ import annotations

import copy
import itertools
from datetime import datetime, timezone
from typing import Iterable, Optional

from carpool.domain.entities import Booking, Ride
from carpool.domain.enums import RideStatus


class InMemoryRideStore:
    def __init__(self) -> None:
        self._rides: dict[int, Ride] = {}
        self._ride_ids = itertools.count(1)
        self._booking_ids = itertools.count(1)

    async def get(self, ride_id: int) -> Optional[Ride]:
        ride = self._rides.get(ride_id)
        return copy.deepcopy(ride) if ride else None

    async def save(self, ride: Ride) -> Ride:
        now = datetime.now(timezone.utc)
        if ride.id is None:
            ride.id = next(self._ride_ids)
            ride.created_at = ride.created_at or now
        for booking in ride.passengers:
            if booking.id is None:
                booking.id = next(self._booking_ids)
                booking.created_at = booking.created_at or now
            booking.ride_id = ride.id
        self._rides[ride.id] = copy.deepcopy(ride)
        return ride

    async def delete(self, ride_id: int) -> None:
        self._rides.pop(ride_id, None)

    def _all_bookings(self) -> Iterable[Booking]:
        for ride in self._rides.values():
            yield from ride.passengers

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        for booking in self._all_bookings():
            if booking.id == booking_id:
                return copy.deepcopy(booking)
        return None

    async def find_booking_by_idempotency_key(
        self, rider_id: int, key: str
    ) -> Optional[Booking]:
        for booking in self._all_bookings():
            if booking.rider_id == rider_id and booking.idempotency_key == key:
                return copy.deepcopy(booking)
        return None

    async def list_rides(
        self,
        *,
        driver_id: Optional[int] = None,
        statuses: Optional[Iterable[RideStatus]] = None,
    ) -> list[Ride]:
        wanted = set(statuses) if statuses is not None else None
        return [
            copy.deepcopy(r)
            for r in self._rides.values()
            if (driver_id is None or r.driver_id == driver_id)
            and (wanted is None or r.status in wanted)
        ]

    async def bookings_for_rider(self, rider_id: int) -> list[Booking]:
        found = [
            copy.deepcopy(b) for b in self._all_bookings() if b.rider_id == rider_id
        ]
        return sorted(found, key=lambda b: b.id or 0, reverse=True)

    async def in_progress_ride_for_driver(self, driver_id: int) -> Optional[Ride]:
        for ride in self._rides.values():
            if ride.driver_id == driver_id and ride.status is RideStatus.IN_PROGRESS:
                return copy.deepcopy(ride)
        return None
