"""
Persistence port for the ride aggregate (ride + its bookings).

``save`` writes the whole aggregate in one transaction and assigns ids in
place on new rides / bookings.  Readers always get a detached snapshot;
mutating it has no effect until it is saved.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from .entities import Booking, Ride
from .enums import RideStatus


class RideStore(Protocol):
    async def get(self, ride_id: int) -> Optional[Ride]: ...

    async def save(self, ride: Ride) -> Ride: ...

    async def delete(self, ride_id: int) -> None: ...

    async def get_booking(self, booking_id: int) -> Optional[Booking]: ...

    async def find_booking_by_idempotency_key(
        self, rider_id: int, key: str
    ) -> Optional[Booking]: ...

    async def list_rides(
        self,
        *,
        driver_id: Optional[int] = None,
        statuses: Optional[Iterable[RideStatus]] = None,
    ) -> list[Ride]: ...

    async def bookings_for_rider(self, rider_id: int) -> list[Booking]: ...

    async def in_progress_ride_for_driver(self, driver_id: int) -> Optional[Ride]: ...
