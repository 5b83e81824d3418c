"""GET /api/v1/riders/{rider_id}/bookings -- a rider's bookings, newest first."""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_container
from carpool.api.middleware import limiter
from carpool.api.schemas import BookingResponse
from carpool.config import settings
from carpool.services.container import ServiceContainer

router = APIRouter(prefix="/riders", tags=["riders"])


@router.get(
    "/{rider_id}/bookings",
    response_model=list[BookingResponse],
    summary="List a rider's bookings",
)
@limiter.limit(settings.rate_limit)
async def rider_bookings(
    request: Request,
    rider_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.queries.rider_bookings(rider_id)
