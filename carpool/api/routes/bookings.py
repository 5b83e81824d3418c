"""
Booking endpoints
=================

POST  /api/v1/bookings                       -- request seats on a ride
GET   /api/v1/bookings/{booking_id}          -- booking status
PATCH /api/v1/bookings/{booking_id}          -- rider changes seats or pickup spot
PATCH /api/v1/bookings/{booking_id}/cancel   -- rider cancels
GET   /api/v1/bookings/{booking_id}/pickup-pin -- rider reads the pickup PIN
PATCH /api/v1/bookings/{booking_id}/accept   -- driver accepts a pending request
PATCH /api/v1/bookings/{booking_id}/reject   -- driver rejects a pending request
PATCH /api/v1/bookings/{booking_id}/pickup   -- driver checks the PIN, marks the rider picked up
"""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_container
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    BookingUpdateRequest,
    PickupPinResponse,
    PickupRequest,
)
from carpool.config import settings
from carpool.domain.entities import Location, PickupDetails
from carpool.services.container import ServiceContainer

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Book seats on a ride",
    responses={
        402: {"description": "Payment authorization declined."},
        409: {"description": "Ride full, not bookable, or already booked."},
    },
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    container: ServiceContainer = Depends(get_container),
):
    location = None
    if body.pickup_latitude is not None:
        location = Location(body.pickup_latitude, body.pickup_longitude)
    pickup = PickupDetails(
        address=body.pickup_address,
        location=location,
        city=body.pickup_city,
        state=body.pickup_state,
        zip_code=body.pickup_zip_code,
    )
    return await container.bookings.request_booking(
        body.ride_id,
        body.rider_id,
        body.number_of_seats,
        pickup=pickup,
        idempotency_key=body.idempotency_key,
    )


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.queries.get_booking(booking_id)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Change seats or pickup location",
    responses={409: {"description": "Not enough seats, or the ride has started."}},
)
@limiter.limit(settings.rate_limit)
async def update_booking(
    request: Request,
    booking_id: int,
    rider_id: int,
    body: BookingUpdateRequest,
    container: ServiceContainer = Depends(get_container),
):
    return await container.bookings.modify_booking(
        booking_id,
        rider_id,
        seats=body.number_of_seats,
        pickup=body.pickup(),
    )


@router.get(
    "/{booking_id}/pickup-pin",
    response_model=PickupPinResponse,
    summary="Show the rider their pickup PIN",
)
@limiter.limit(settings.rate_limit)
async def get_pickup_pin(
    request: Request,
    booking_id: int,
    rider_id: int,
    container: ServiceContainer = Depends(get_container),
):
    pin = await container.bookings.get_pickup_pin(booking_id, rider_id)
    return PickupPinResponse(
        booking_id=booking_id, pin=pin.pin, expires_at=pin.expires_at
    )


@router.patch(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    rider_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.bookings.cancel_booking(booking_id, rider_id)


@router.patch(
    "/{booking_id}/accept",
    response_model=BookingResponse,
    summary="Accept a pending booking",
)
@limiter.limit(settings.rate_limit)
async def accept_booking(
    request: Request,
    booking_id: int,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.bookings.accept_booking(booking_id, driver_id)


@router.patch(
    "/{booking_id}/reject",
    response_model=BookingResponse,
    summary="Reject a pending booking",
)
@limiter.limit(settings.rate_limit)
async def reject_booking(
    request: Request,
    booking_id: int,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.bookings.reject_booking(booking_id, driver_id)


@router.patch(
    "/{booking_id}/pickup",
    response_model=BookingResponse,
    summary="Mark a passenger as picked up",
    responses={
        401: {"description": "Wrong PIN."},
        429: {"description": "Too many wrong PINs, verification locked."},
    },
)
@limiter.limit(settings.rate_limit)
async def pick_up(
    request: Request,
    booking_id: int,
    driver_id: int,
    body: PickupRequest,
    container: ServiceContainer = Depends(get_container),
):
    return await container.lifecycle.pick_up_passenger(
        booking_id, driver_id, body.pin
    )
