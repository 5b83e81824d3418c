"""
Driver dashboards
=================

GET /api/v1/drivers/{driver_id}/rides/active  -- the ride in progress, if any
GET /api/v1/drivers/{driver_id}/rides/by-date -- today / upcoming / past
GET /api/v1/drivers/{driver_id}/earnings      -- settled earnings summary
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_container
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    EarningsSummaryResponse,
    RideResponse,
    RidesByDateResponse,
)
from carpool.config import settings
from carpool.services.container import ServiceContainer

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get(
    "/{driver_id}/rides/active",
    response_model=Optional[RideResponse],
    summary="Ride currently in progress",
)
@limiter.limit(settings.rate_limit)
async def active_ride(
    request: Request,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.queries.active_ride(driver_id)


@router.get(
    "/{driver_id}/rides/by-date",
    response_model=RidesByDateResponse,
    summary="Rides grouped by departure day",
)
@limiter.limit(settings.rate_limit)
async def rides_by_date(
    request: Request,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.queries.rides_by_date(driver_id)


@router.get(
    "/{driver_id}/earnings",
    response_model=EarningsSummaryResponse,
    summary="Earnings over completed rides",
)
@limiter.limit(settings.rate_limit)
async def earnings(
    request: Request,
    driver_id: int,
    container: ServiceContainer = Depends(get_container),
):
    return await container.settlement.driver_summary(driver_id)
