"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Goes through the same services the API uses (with the stub payment
gateway), so every row respects the seat and status rules.  Creates:
  - 3 drivers with 6 rides (today, upcoming, one in progress, one completed,
    one cancelled)
  - bookings from 6 riders spread across those rides
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

from carpool.config import settings
from carpool.domain.entities import Location, PickupDetails
from carpool.infrastructure.payments import StubPaymentGateway
from carpool.services.container import build_container

# Austin, TX area coordinates (approx)
DOWNTOWN = Location(30.2672, -97.7431)
AIRPORT = Location(30.1975, -97.6664)
ROUND_ROCK = Location(30.5083, -97.6789)
SAN_MARCOS = Location(29.8833, -97.9414)

PICKUPS = [
    PickupDetails("600 Congress Ave", Location(30.2686, -97.7426), "Austin", "TX", "78701"),
    PickupDetails("1100 S Lamar Blvd", Location(30.2561, -97.7640), "Austin", "TX", "78704"),
    PickupDetails("2110 Speedway", Location(30.2849, -97.7367), "Austin", "TX", "78712"),
    PickupDetails("4500 Duval St", Location(30.3050, -97.7255), "Austin", "TX", "78751"),
    PickupDetails("900 E 7th St", Location(30.2666, -97.7330), "Austin", "TX", "78702"),
    PickupDetails("3200 Jefferson St", Location(30.3070, -97.7530), "Austin", "TX", "78731"),
]


async def seed():
    container = build_container(settings, payments=StubPaymentGateway())
    await container.start()
    lifecycle, bookings = container.lifecycle, container.bookings
    now = container.clock()
    today = now.replace(hour=23, minute=0, second=0, microsecond=0)

    try:
        # ── Rides ─────────────────────────────────────────────────────
        commute = await lifecycle.create_ride(
            driver_id=1,
            departure_time=today,
            total_seats=4,
            price_per_seat=Decimal("12.00"),
            origin=ROUND_ROCK,
            destination=DOWNTOWN,
            origin_address="Round Rock Premium Outlets",
            destination_address="Downtown Austin",
        )
        airport = await lifecycle.create_ride(
            driver_id=1,
            departure_time=now + timedelta(days=2),
            total_seats=3,
            price_per_seat=Decimal("20.00"),
            origin=DOWNTOWN,
            destination=AIRPORT,
            origin_address="Downtown Austin",
            destination_address="Austin-Bergstrom International Airport",
        )
        weekend = await lifecycle.create_ride(
            driver_id=2,
            departure_time=now + timedelta(days=5),
            total_seats=2,
            price_per_seat=Decimal("0.00"),
            origin=DOWNTOWN,
            destination=SAN_MARCOS,
            origin_address="Downtown Austin",
            destination_address="San Marcos",
        )
        live = await lifecycle.create_ride(
            driver_id=2,
            departure_time=today,
            total_seats=4,
            price_per_seat=Decimal("15.00"),
            origin=AIRPORT,
            destination=DOWNTOWN,
            origin_address="Austin-Bergstrom International Airport",
            destination_address="Downtown Austin",
        )
        finished = await lifecycle.create_ride(
            driver_id=3,
            departure_time=today,
            total_seats=3,
            price_per_seat=Decimal("18.50"),
            origin=SAN_MARCOS,
            destination=DOWNTOWN,
            origin_address="San Marcos",
            destination_address="Downtown Austin",
        )
        called_off = await lifecycle.create_ride(
            driver_id=3,
            departure_time=now + timedelta(days=1),
            total_seats=4,
            price_per_seat=Decimal("10.00"),
            origin=DOWNTOWN,
            destination=ROUND_ROCK,
            origin_address="Downtown Austin",
            destination_address="Round Rock",
        )
        print("  Created 6 rides")

        # ── Bookings ──────────────────────────────────────────────────
        plan = [
            (commute, 101, 2),
            (commute, 102, 1),
            (airport, 103, 1),
            (weekend, 104, 2),
            (live, 105, 1),
            (live, 106, 2),
            (finished, 101, 1),
            (finished, 103, 2),
            (called_off, 102, 1),
        ]
        for index, (ride, rider_id, seats) in enumerate(plan):
            booking = await bookings.request_booking(
                ride.id, rider_id, seats, pickup=PICKUPS[index % len(PICKUPS)]
            )
            if booking.status.value == "pending":
                await bookings.accept_booking(booking.id, ride.driver_id)
        print(f"  Created {len(plan)} bookings")

        # ── Transitions ───────────────────────────────────────────────
        await lifecycle.start_ride(live.id, live.driver_id)
        await lifecycle.start_ride(finished.id, finished.driver_id)
        await lifecycle.complete_ride(finished.id, finished.driver_id)
        await lifecycle.cancel_ride(called_off.id, called_off.driver_id)
        print("  Started 2 rides, completed 1, cancelled 1")
        print("\nSeed complete!")
    finally:
        await container.close()


async def main():
    print("Seeding database...")
    await seed()


if __name__ == "__main__":
    asyncio.run(main())
