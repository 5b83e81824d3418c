"""
Domain error taxonomy.

Every error carries a stable ``code`` and a ``message`` safe to show to an
end user.  The API layer maps codes to HTTP statuses; nothing else about
the exception leaks to clients.
"""


class CarpoolError(Exception):
    code = "error"
    default_message = "The request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(CarpoolError):
    code = "not_found"
    default_message = "Not found"


class Forbidden(CarpoolError):
    code = "forbidden"
    default_message = "You do not have permission to change this resource"


class InvalidTransition(CarpoolError):
    """Raised when a status change violates a state machine."""

    code = "invalid_transition"
    default_message = "This action is not allowed in the current state"


class RideNotBookable(CarpoolError):
    code = "ride_not_bookable"
    default_message = "This ride is no longer accepting bookings"


class InsufficientCapacity(CarpoolError):
    code = "insufficient_capacity"
    default_message = "Not enough seats left on this ride"


class DuplicateBooking(CarpoolError):
    code = "duplicate_booking"
    default_message = "You already have a booking on this ride"


class AlreadyTerminal(CarpoolError):
    code = "already_terminal"
    default_message = "This booking is already completed or cancelled"


class RideHasActiveBookings(CarpoolError):
    code = "ride_has_active_bookings"
    default_message = "Cancel the bookings on this ride before deleting it"


class PaymentDeclined(CarpoolError):
    code = "payment_declined"
    default_message = "Your payment method was declined"


class InvalidRequest(CarpoolError):
    code = "invalid_request"
    default_message = "The request is invalid"


class LockTimeout(CarpoolError):
    code = "busy"
    default_message = "This ride is busy, please try again"


class ConfigurationError(CarpoolError):
    """Fee policy (or other startup configuration) is unusable."""

    code = "configuration_error"
    default_message = "Service is misconfigured"


class InvalidPickupPin(CarpoolError):
    code = "invalid_pin"
    default_message = "Invalid PIN"

    def __init__(self, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        super().__init__(f"Invalid PIN, {attempts_remaining} attempts remaining")


class PickupPinLocked(CarpoolError):
    code = "pin_locked"
    default_message = "Too many failed attempts, please try again later"


class PickupPinExpired(CarpoolError):
    code = "pin_expired"
    default_message = "Pickup PIN has expired"
