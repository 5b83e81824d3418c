"""GET /api/v1/admin/health -- liveness plus a few engine facts."""

from fastapi import APIRouter, Depends

from carpool.api.dependencies import get_container
from carpool.api.schemas import HealthResponse
from carpool.services.container import ServiceContainer

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(container: ServiceContainer = Depends(get_container)):
    dispatcher = container.dispatcher
    return HealthResponse(
        workflow=container.settings.booking_workflow.value,
        events_delivered=dispatcher.delivered if dispatcher else None,
    )
