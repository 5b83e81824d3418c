"""
Translation of domain errors into HTTP responses.

Clients get ``{"detail": <message>, "code": <code>}`` and nothing more;
the traceback stays in the log.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from carpool.domain.errors import (
    AlreadyTerminal,
    CarpoolError,
    DuplicateBooking,
    Forbidden,
    InsufficientCapacity,
    InvalidPickupPin,
    InvalidRequest,
    InvalidTransition,
    LockTimeout,
    NotFound,
    PaymentDeclined,
    PickupPinExpired,
    PickupPinLocked,
    RideHasActiveBookings,
    RideNotBookable,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[CarpoolError], int] = {
    NotFound: 404,
    Forbidden: 403,
    InvalidTransition: 409,
    RideNotBookable: 409,
    InsufficientCapacity: 409,
    DuplicateBooking: 409,
    AlreadyTerminal: 409,
    RideHasActiveBookings: 409,
    PaymentDeclined: 402,
    InvalidRequest: 422,
    LockTimeout: 503,
    InvalidPickupPin: 401,
    PickupPinLocked: 429,
    PickupPinExpired: 409,
}


def status_for(exc: CarpoolError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_CODES:
            return STATUS_CODES[error_type]
    return 500


async def carpool_error_handler(request: Request, exc: CarpoolError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, status_code, exc.code)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )
