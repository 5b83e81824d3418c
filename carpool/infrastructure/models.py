"""
SQLAlchemy ORM models.

Tables
------
* ``rides``    -- trips offered by drivers
* ``bookings`` -- riders' seat reservations, one row per booking

Statuses are stored as their plain string values.  ``rides.status`` is
nullable because early rows were written without one; the store maps NULL
to ``scheduled`` on load.

Indexes
-------
* **B-Tree** on ``driver_id`` + ``status`` (dashboard and active-ride look-ups)
* **B-Tree** on ``ride_id``, ``rider_id`` and ``(rider_id, idempotency_key)``
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base

MONEY = Numeric(10, 2, asdecimal=True)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, nullable=False)

    origin_address = Column(String(255), nullable=False, default="")
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    destination_address = Column(String(255), nullable=False, default="")
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    distance = Column(Float, nullable=True)

    departure_time = Column(DateTime(timezone=True), nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price_per_seat = Column(MONEY, nullable=False)
    status = Column(String(20), nullable=True, default="scheduled")

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bookings = relationship(
        "BookingModel",
        back_populates="ride",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BookingModel.id",
    )

    __table_args__ = (
        Index("idx_rides_driver_status", "driver_id", "status"),
        Index("idx_rides_status", "status"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(
        Integer, ForeignKey("rides.id", ondelete="CASCADE"), nullable=False
    )
    rider_id = Column(Integer, nullable=False)
    number_of_seats = Column(Integer, nullable=False, default=1)
    price_per_seat = Column(MONEY, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    pickup_status = Column(String(20), nullable=False, default="pending")

    pickup_address = Column(String(255), nullable=True)
    pickup_city = Column(String(120), nullable=True)
    pickup_state = Column(String(120), nullable=True)
    pickup_zip_code = Column(String(20), nullable=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)

    confirmation_number = Column(String(32), unique=True, nullable=False)
    idempotency_key = Column(String(64), nullable=True)

    # Opaque processor reference only -- never card data
    payment_handle = Column(String(128), nullable=True)
    payment_status = Column(String(20), nullable=True)
    amount = Column(MONEY, nullable=False)
    settlement_failed = Column(Boolean, nullable=False, default=False)

    gross_earnings = Column(MONEY, nullable=True)
    processing_fee = Column(MONEY, nullable=True)
    commission = Column(MONEY, nullable=True)
    net_earnings = Column(MONEY, nullable=True)

    cancellation_reason = Column(String(40), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    pickup_pin = Column(String(4), nullable=True)
    pickup_pin_expires_at = Column(DateTime(timezone=True), nullable=True)
    pickup_pin_attempts = Column(Integer, nullable=False, default=0)
    pickup_pin_locked_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    ride = relationship("RideModel", back_populates="bookings")

    __table_args__ = (
        Index("idx_bookings_ride", "ride_id"),
        Index("idx_bookings_rider", "rider_id"),
        UniqueConstraint(
            "rider_id", "idempotency_key", name="uq_bookings_rider_idempotency"
        ),
    )
