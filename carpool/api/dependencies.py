"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Query, Request

from carpool.domain.entities import Location
from carpool.domain.errors import InvalidRequest
from carpool.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The container built by the lifespan handler for this app."""
    return request.app.state.container


def get_current_location(
    lat: Optional[float] = Query(None, ge=-90, le=90, description="Caller latitude"),
    lng: Optional[float] = Query(None, ge=-180, le=180, description="Caller longitude"),
) -> Optional[Location]:
    """Optional ``lat``/``lng`` pair used by distance sorting."""
    if lat is None and lng is None:
        return None
    if lat is None or lng is None:
        raise InvalidRequest("lat and lng must be given together")
    return Location(lat, lng)
