"""Initial schema: rides and bookings.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(10, 2)


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, nullable=False),
        sa.Column("origin_address", sa.String(255), nullable=False, server_default=""),
        sa.Column("origin_lat", sa.Float, nullable=True),
        sa.Column("origin_lng", sa.Float, nullable=True),
        sa.Column(
            "destination_address", sa.String(255), nullable=False, server_default=""
        ),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column("distance", sa.Float, nullable=True),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column("price_per_seat", MONEY, nullable=False),
        # NULL is read back as "scheduled"
        sa.Column("status", sa.String(20), nullable=True, server_default="scheduled"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_rides_driver_status", "rides", ["driver_id", "status"])
    op.create_index("idx_rides_status", "rides", ["status"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id",
            sa.Integer,
            sa.ForeignKey("rides.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rider_id", sa.Integer, nullable=False),
        sa.Column("number_of_seats", sa.Integer, nullable=False, server_default="1"),
        sa.Column("price_per_seat", MONEY, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "pickup_status", sa.String(20), nullable=False, server_default="pending"
        ),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("pickup_city", sa.String(120), nullable=True),
        sa.Column("pickup_state", sa.String(120), nullable=True),
        sa.Column("pickup_zip_code", sa.String(20), nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("confirmation_number", sa.String(32), unique=True, nullable=False),
        sa.Column("idempotency_key", sa.String(64), nullable=True),
        sa.Column("payment_handle", sa.String(128), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column(
            "settlement_failed", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("gross_earnings", MONEY, nullable=True),
        sa.Column("processing_fee", MONEY, nullable=True),
        sa.Column("commission", MONEY, nullable=True),
        sa.Column("net_earnings", MONEY, nullable=True),
        sa.Column("cancellation_reason", sa.String(40), nullable=True),
        sa.Column("picked_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pickup_pin", sa.String(4), nullable=True),
        sa.Column("pickup_pin_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "pickup_pin_attempts", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column("pickup_pin_locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "rider_id", "idempotency_key", name="uq_bookings_rider_idempotency"
        ),
    )
    op.create_index("idx_bookings_ride", "bookings", ["ride_id"])
    op.create_index("idx_bookings_rider", "bookings", ["rider_id"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("rides")
