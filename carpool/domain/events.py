"""
Domain events for the real-time fan-out.

Publishing is fire-and-forget: an :class:`EventSink` must return
immediately and must never raise into the operation that emitted the
event.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    ride_id: int
    occurred_at: datetime = field(default_factory=_utcnow, kw_only=True)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        data["event"] = self.name
        return data


@dataclass(frozen=True)
class BookingRequested(DomainEvent):
    booking_id: int
    rider_id: int
    driver_id: int
    seats: int


@dataclass(frozen=True)
class BookingConfirmed(DomainEvent):
    booking_id: int
    rider_id: int
    driver_id: int
    seats: int


@dataclass(frozen=True)
class BookingCancelled(DomainEvent):
    booking_id: int
    rider_id: int
    driver_id: int
    seats: int
    reason: str


@dataclass(frozen=True)
class BookingUpdated(DomainEvent):
    booking_id: int
    rider_id: int
    driver_id: int
    seats: int
    changed_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class RideStarted(DomainEvent):
    driver_id: int
    rider_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class RideCompleted(DomainEvent):
    driver_id: int
    rider_ids: tuple[int, ...] = ()
    settlement_failed_booking_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class RideCancelled(DomainEvent):
    driver_id: int
    rider_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class RideUpdated(DomainEvent):
    driver_id: int
    rider_ids: tuple[int, ...] = ()
    changed_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class PassengerPickedUp(DomainEvent):
    booking_id: int
    rider_id: int
    driver_id: int
    picked_up_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.picked_up_at is not None:
            data["picked_up_at"] = self.picked_up_at.isoformat()
        return data


class EventSink(Protocol):
    def publish(self, event: DomainEvent) -> None: ...
