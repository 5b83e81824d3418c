"""Read-side use cases.  No locks: every call works on a fresh snapshot."""

from __future__ import annotations

from datetime import tzinfo
from typing import Optional

from carpool.domain import queries
from carpool.domain.entities import Booking, Location, Ride
from carpool.domain.enums import RideSortKey, RideStatus
from carpool.domain.errors import NotFound
from carpool.domain.schedule import Clock
from carpool.domain.store import RideStore


class RideQueries:
    def __init__(self, store: RideStore, clock: Clock, tz: tzinfo):
        self.store = store
        self.clock = clock
        self.tz = tz

    async def get_ride(self, ride_id: int) -> Ride:
        ride = await self.store.get(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        return ride

    async def get_booking(self, booking_id: int) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    async def list_rides(
        self,
        *,
        driver_id: Optional[int] = None,
        status: str = queries.ALL,
        sort: RideSortKey = RideSortKey.DATE,
        current_location: Optional[Location] = None,
    ) -> list[Ride]:
        rides = await self.store.list_rides(driver_id=driver_id)
        return queries.query_rides(
            rides, status=status, sort=sort, current_location=current_location
        )

    async def search(
        self,
        *,
        min_seats: int = 1,
        sort: RideSortKey = RideSortKey.DATE,
        current_location: Optional[Location] = None,
    ) -> list[Ride]:
        rides = await self.store.list_rides(statuses=[RideStatus.SCHEDULED])
        return queries.sort_rides(
            queries.bookable_rides(rides, min_seats), sort, current_location
        )

    async def rides_by_date(self, driver_id: int) -> queries.DatePartition:
        rides = await self.store.list_rides(driver_id=driver_id)
        today = self.clock().date()
        return queries.separate_by_date(
            queries.sort_rides(rides, RideSortKey.DATE), today, self.tz
        )

    async def active_ride(self, driver_id: int) -> Optional[Ride]:
        rides = await self.store.list_rides(
            driver_id=driver_id, statuses=[RideStatus.IN_PROGRESS]
        )
        return queries.active_ride(rides)

    async def rider_bookings(self, rider_id: int) -> list[Booking]:
        return await self.store.bookings_for_rider(rider_id)
