"""
FastAPI application factory.

* Registers routes for rides, bookings, drivers, riders and admin.
* Builds the service container and starts / stops the event dispatcher
  via lifespan events.
* Translates domain errors into ``{"detail", "code"}`` responses.
* Applies rate limiting.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.errors import carpool_error_handler
from carpool.api.middleware import limiter
from carpool.api.routes import admin, bookings, drivers, riders, rides
from carpool.config import settings
from carpool.domain.errors import CarpoolError
from carpool.services.container import ServiceContainer, build_container


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the app.  Tests pass a prebuilt ``container``."""
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            app.state.container = build_container(settings)
        await app.state.container.start()
        yield
        await app.state.container.close()

    app = FastAPI(
        title="Carpool Ride & Booking API",
        description=(
            "Drivers publish rides with a fixed number of seats; riders book "
            "seats, pay through a held authorization, and are charged when "
            "the ride completes.  Seat inventory stays consistent under "
            "concurrent bookings and cancellations."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(CarpoolError, carpool_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(riders.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
