"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from carpool.domain.entities import Location, PickupDetails
from carpool.domain.enums import (
    BookingStatus,
    PaymentStatus,
    PickupStatus,
    RideStatus,
)


# ── Shared ────────────────────────────────────────────────────────────


class LocationSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    model_config = {"from_attributes": True}

    def to_domain(self) -> Location:
        return Location(self.latitude, self.longitude)


class EarningsSchema(BaseModel):
    gross_earnings: Decimal
    processing_fee: Decimal
    commission: Decimal
    net_earnings: Decimal

    model_config = {"from_attributes": True}


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    driver_id: int
    departure_time: datetime
    total_seats: int = Field(..., ge=1)
    price_per_seat: Decimal = Field(..., ge=0, decimal_places=2)
    origin: Optional[LocationSchema] = None
    destination: Optional[LocationSchema] = None
    origin_address: str = Field("", max_length=255)
    destination_address: str = Field("", max_length=255)
    distance: Optional[float] = Field(
        None, ge=0, description="Precomputed route distance in miles."
    )


class RideUpdateRequest(BaseModel):
    departure_time: Optional[datetime] = None
    total_seats: Optional[int] = Field(None, ge=1)
    price_per_seat: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    origin: Optional[LocationSchema] = None
    destination: Optional[LocationSchema] = None
    origin_address: Optional[str] = Field(None, max_length=255)
    destination_address: Optional[str] = Field(None, max_length=255)
    distance: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def _no_cleared_required_fields(self):
        required = (
            "departure_time",
            "total_seats",
            "price_per_seat",
            "origin_address",
            "destination_address",
        )
        cleared = [
            name
            for name in required
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self

    def changes(self) -> dict:
        data = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if isinstance(value, LocationSchema):
                value = value.to_domain()
            data[name] = value
        return data


class BookingCreateRequest(BaseModel):
    ride_id: int
    rider_id: int
    number_of_seats: int = Field(1, ge=1)
    pickup_address: str = Field(..., min_length=1, max_length=255)
    pickup_city: Optional[str] = Field(None, max_length=120)
    pickup_state: Optional[str] = Field(None, max_length=120)
    pickup_zip_code: Optional[str] = Field(None, max_length=20)
    pickup_latitude: Optional[float] = Field(None, ge=-90, le=90)
    pickup_longitude: Optional[float] = Field(None, ge=-180, le=180)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )

    @model_validator(mode="after")
    def _both_coordinates(self):
        if (self.pickup_latitude is None) != (self.pickup_longitude is None):
            raise ValueError("pickup_latitude and pickup_longitude go together")
        return self


class BookingUpdateRequest(BaseModel):
    number_of_seats: Optional[int] = Field(None, ge=1)
    pickup_address: Optional[str] = Field(None, min_length=1, max_length=255)
    pickup_city: Optional[str] = Field(None, max_length=120)
    pickup_state: Optional[str] = Field(None, max_length=120)
    pickup_zip_code: Optional[str] = Field(None, max_length=20)
    pickup_latitude: Optional[float] = Field(None, ge=-90, le=90)
    pickup_longitude: Optional[float] = Field(None, ge=-180, le=180)

    @model_validator(mode="after")
    def _pickup_is_complete(self):
        if self.number_of_seats is None and self.pickup_address is None:
            raise ValueError("Provide number_of_seats or a new pickup_address")
        if self.pickup_address is not None and (
            self.pickup_latitude is None or self.pickup_longitude is None
        ):
            raise ValueError(
                "pickup_latitude and pickup_longitude are required with pickup_address"
            )
        return self

    def pickup(self) -> Optional[PickupDetails]:
        if self.pickup_address is None:
            return None
        return PickupDetails(
            address=self.pickup_address,
            location=Location(self.pickup_latitude, self.pickup_longitude),
            city=self.pickup_city,
            state=self.pickup_state,
            zip_code=self.pickup_zip_code,
        )


class PickupRequest(BaseModel):
    pin: str = Field(..., pattern=r"^[0-9]{4}$", description="The rider's 4-digit PIN.")


# ── Responses ─────────────────────────────────────────────────────────


class PickupSchema(BaseModel):
    address: str
    location: Optional[LocationSchema] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    ride_id: int
    rider_id: int
    number_of_seats: int
    price_per_seat: Decimal
    status: BookingStatus
    pickup_status: PickupStatus
    pickup: Optional[PickupSchema] = None
    confirmation_number: str
    payment_status: Optional[PaymentStatus] = None
    amount: Decimal
    settlement_failed: bool = False
    earnings: Optional[EarningsSchema] = None
    cancellation_reason: Optional[str] = None
    picked_up_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PickupPinResponse(BaseModel):
    booking_id: int
    pin: str
    expires_at: Optional[datetime] = None


class RideResponse(BaseModel):
    id: int
    driver_id: int
    departure_time: datetime
    total_seats: int
    available_seats: int
    price_per_seat: Decimal
    status: RideStatus
    origin: Optional[LocationSchema] = None
    destination: Optional[LocationSchema] = None
    origin_address: str
    destination_address: str
    distance: Optional[float] = None
    passengers: list[BookingResponse] = []
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RidesByDateResponse(BaseModel):
    today: list[RideResponse] = []
    upcoming: list[RideResponse] = []
    past: list[RideResponse] = []

    model_config = {"from_attributes": True}


class QuoteResponse(BaseModel):
    ride_id: int
    seats: int
    subtotal: Decimal
    processing_fee: Decimal
    commission: Decimal
    total: Decimal


class SettlementResponse(BaseModel):
    ride: RideResponse
    earnings: EarningsSchema
    captured_booking_ids: list[int]
    failed_booking_ids: list[int]

    model_config = {"from_attributes": True}


class RideEarningsSchema(BaseModel):
    ride_id: int
    completed_at: Optional[datetime] = None
    origin_address: str
    destination_address: str
    seats_booked: int
    price_per_seat: Decimal
    distance: float
    breakdown: EarningsSchema

    model_config = {"from_attributes": True}


class EarningsSummaryResponse(BaseModel):
    total_net: Decimal
    total_gross: Decimal
    total_fees: Decimal
    total_rides: int
    total_seats_booked: int
    total_distance: float
    average_net_per_ride: Decimal
    this_week_net: Decimal
    this_month_net: Decimal
    rides: list[RideEarningsSchema] = []

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
    workflow: str
    events_delivered: Optional[int] = None


class ErrorResponse(BaseModel):
    detail: str
    code: str
