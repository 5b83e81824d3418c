"""
Ride Query / Sort Engine
========================

One implementation of every list view (driver dashboard, rider search,
history).  All functions are pure: they never mutate the rides passed in
and return new lists.

* ``filter_by_status`` -- ``"all"`` or one status; empty status reads as
  scheduled.
* ``sort_rides``       -- by date (asc), distance (asc) or earnings (desc).
  Sorting is stable, so ties keep their input order.
* ``separate_by_date`` -- today / upcoming / past by local calendar date.

Complexity: O(n log n) for sorting, O(n) otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, tzinfo
from decimal import Decimal
from typing import Iterable, Optional

from . import inventory
from .distance import haversine_miles
from .entities import Location, Ride
from .enums import EARNING_STATUSES, RideSortKey, RideStatus, normalize_ride_status
from .schedule import local_date

ALL = "all"


@dataclass
class DatePartition:
    today: list[Ride] = field(default_factory=list)
    upcoming: list[Ride] = field(default_factory=list)
    past: list[Ride] = field(default_factory=list)


def gross_earnings(ride: Ride) -> Decimal:
    """Seat revenue from bookings that pay (confirmed or completed)."""
    return sum(
        (b.subtotal for b in ride.passengers if b.status in EARNING_STATUSES),
        Decimal("0.00"),
    )


def filter_by_status(
    rides: Iterable[Ride], status: str | RideStatus | None
) -> list[Ride]:
    if status is None or status == ALL:
        return list(rides)
    wanted = RideStatus(status)
    return [r for r in rides if normalize_ride_status(r.status) is wanted]


def _distance_key(ride: Ride, current: Optional[Location]) -> float:
    if current is not None and ride.origin is not None:
        return haversine_miles(
            current.latitude,
            current.longitude,
            ride.origin.latitude,
            ride.origin.longitude,
        )
    return ride.distance if ride.distance is not None else math.inf


def sort_rides(
    rides: Iterable[Ride],
    key: str | RideSortKey,
    current_location: Optional[Location] = None,
) -> list[Ride]:
    key = RideSortKey(key)
    rides = list(rides)
    if key is RideSortKey.DATE:
        return sorted(rides, key=lambda r: _departure_key(r))
    if key is RideSortKey.DISTANCE:
        return sorted(rides, key=lambda r: _distance_key(r, current_location))
    return sorted(rides, key=gross_earnings, reverse=True)


def _departure_key(ride: Ride) -> float:
    if ride.departure_time is None:
        return math.inf
    return ride.departure_time.timestamp()


def separate_by_date(
    rides: Iterable[Ride], today: date, tz: tzinfo
) -> DatePartition:
    partition = DatePartition()
    for ride in rides:
        if ride.departure_time is None:
            continue
        day = local_date(ride.departure_time, tz)
        if day == today:
            partition.today.append(ride)
        elif day > today:
            partition.upcoming.append(ride)
        else:
            partition.past.append(ride)
    return partition


def active_ride(rides: Iterable[Ride]) -> Optional[Ride]:
    for ride in rides:
        if ride.status is RideStatus.IN_PROGRESS:
            return ride
    return None


def bookable_rides(rides: Iterable[Ride], min_seats: int = 1) -> list[Ride]:
    """Scheduled rides with at least *min_seats* free."""
    return [
        r
        for r in rides
        if r.status is RideStatus.SCHEDULED
        and inventory.available_seats(r) >= min_seats
    ]


def query_rides(
    rides: Iterable[Ride],
    *,
    status: str | RideStatus | None = ALL,
    sort: str | RideSortKey = RideSortKey.DATE,
    current_location: Optional[Location] = None,
) -> list[Ride]:
    """Filter then sort: the combination every list screen uses."""
    return sort_rides(filter_by_status(rides, status), sort, current_location)
