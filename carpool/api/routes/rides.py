"""
Ride endpoints
==============

POST   /api/v1/rides                    -- driver publishes a ride
GET    /api/v1/rides                    -- list rides (filter + sort)
GET    /api/v1/rides/search             -- bookable rides for riders
GET    /api/v1/rides/{ride_id}          -- ride with its passengers
PATCH  /api/v1/rides/{ride_id}          -- edit a scheduled ride
DELETE /api/v1/rides/{ride_id}          -- delete a ride nobody booked
PATCH  /api/v1/rides/{ride_id}/start    -- scheduled -> in-progress
PATCH  /api/v1/rides/{ride_id}/complete -- in-progress -> completed, settles
PATCH  /api/v1/rides/{ride_id}/cancel   -- cancels the ride and its bookings
GET    /api/v1/rides/{ride_id}/earnings -- driver earnings for one ride
GET    /api/v1/rides/{ride_id}/quote    -- what a rider would pay

The acting driver is identified by the ``driver_id`` query parameter.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from carpool.api.dependencies import get_container, get_current_location
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    EarningsSchema,
    QuoteResponse,
    RideCreateRequest,
    RideResponse,
    RideUpdateRequest,
    SettlementResponse,
)
from carpool.config import settings
from carpool.domain.entities import Location
from carpool.domain.enums import RideSortKey
from carpool.services.container import ServiceContainer

router = APIRouter(prefix="/rides", tags=["rides"])

STATUS_FILTER = "^(all|scheduled|in-progress|completed|cancelled)$"


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Publish a ride",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    container: ServiceContainer = Depends(get_container),
):
    return await container.lifecycle.create_ride(
        driver_id=body.driver_id,
        departure_time=body.departure_time,
        total_seats=body.total_seats,
        price_per_seat=body.price_per_seat,
        origin=body.origin.to_domain() if body.origin else None,
        destination=body.destination.to_domain() if body.destination else None,
        origin_address=body.origin_address,
        destination_address=body.destination_address,
        distance=body.distance,
    )


@router.get(
    "",
    response_model=list[RideResponse],
    summary="List rides",
    description=(
        "Filter by driver and status, then sort by departure date, distance "
        "from the caller (``lat``/``lng``) or gross earnings."
    ),
)
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    driver_id: Optional[int] = None,
    status: str = Query("all", pattern=STATUS_FILTER),
    sort: RideSortKey = RideSortKey.DATE,
    current_location: Optional[Location] = Depends(get_current_location),
    container: ServiceContainer = Depends(get_container),
):
    return await container.queries.list_rides(
        driver_id=driver_id,
        status=status,
        sort=sort,
        current_location=current_location,
    )


@router.get(
    "/search",
    response_model=list[RideResponse],
    summary="Find scheduled rides with free seats",
)
@limiter.limit(settings.rate_limit)
async def search_rides(
    request: Request,
    min_seats: int = Query(1, ge=1),
    sort: RideSortKey = RideSortKey.DATE,
    current_location: Optional[Location] = Depends(get_current_location),
    container: ServiceContainer = Depends(get_container),
):
    return await container.queries.search(
        min_seats=min_seats, sort=sort, current_location=current_location
    )


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.queries.get_ride(ride_id)


@router.patch("/{ride_id}", response_model=RideResponse, summary="Edit a ride")
@limiter.limit(settings.rate_limit)
async def update_ride(
    request: Request,
    ride_id: int,
    body: RideUpdateRequest,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.lifecycle.update_ride(ride_id, driver_id, **body.changes())


@router.delete("/{ride_id}", status_code=204, summary="Delete a ride")
@limiter.limit(settings.rate_limit)
async def delete_ride(
    request: Request,
    ride_id: int,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    await container.lifecycle.delete_ride(ride_id, driver_id)
    return Response(status_code=204)


@router.patch(
    "/{ride_id}/start",
    response_model=RideResponse,
    summary="Start a ride",
    description="Only on the departure day, and only one ride per driver at a time.",
)
@limiter.limit(settings.rate_limit)
async def start_ride(
    request: Request,
    ride_id: int,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.lifecycle.start_ride(ride_id, driver_id)


@router.patch(
    "/{ride_id}/complete",
    response_model=SettlementResponse,
    summary="Complete a ride and settle payments",
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: int,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.lifecycle.complete_ride(ride_id, driver_id)


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description="Every open booking is cancelled and its payment hold released.",
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.lifecycle.cancel_ride(ride_id, driver_id)


@router.get(
    "/{ride_id}/earnings",
    response_model=EarningsSchema,
    summary="Driver earnings for a ride",
)
@limiter.limit(settings.rate_limit)
async def ride_earnings(
    request: Request,
    ride_id: int,
    container: ServiceContainer = Depends(get_container),
):
    ride = await container.queries.get_ride(ride_id)
    return container.settlement.ride_earnings(ride)


@router.get(
    "/{ride_id}/quote",
    response_model=QuoteResponse,
    summary="Price a booking before requesting it",
)
@limiter.limit(settings.rate_limit)
async def quote(
    request: Request,
    ride_id: int,
    seats: int = Query(1, ge=1),
    container: ServiceContainer = Depends(get_container),
):
    ride = await container.queries.get_ride(ride_id)
    charge = container.bookings.quote(ride, seats)
    return QuoteResponse(
        ride_id=ride.id,
        seats=seats,
        subtotal=charge.subtotal,
        processing_fee=charge.processing_fee,
        commission=charge.commission,
        total=charge.total,
    )
