"""
Shared test fixtures.

Services run against the in-memory store, the stub payment gateway and a
recording event sink, with a frozen clock so "today" is deterministic.
Repository tests get their own SQLite database (via aiosqlite) so they run
without Docker / PostgreSQL / Redis.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from carpool.config import Settings
from carpool.infrastructure.memory import InMemoryRideStore
from carpool.infrastructure.payments import StubPaymentGateway
from carpool.services.container import build_container

# Tuesday morning, UTC
FIXED_NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

DRIVER = 1
OTHER_DRIVER = 2
RIDER = 101
OTHER_RIDER = 102


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class RecordingEventSink:
    def __init__(self):
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.events]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def store():
    return InMemoryRideStore()


@pytest.fixture
def gateway():
    return StubPaymentGateway()


@pytest.fixture
def sink():
    return RecordingEventSink()


@pytest.fixture
def make_container(store, gateway, sink, clock):
    """Build a container over the shared fakes with settings overrides."""

    def _make(**overrides):
        overrides.setdefault("store_backend", "memory")
        settings = Settings(_env_file=None, **overrides)
        return build_container(
            settings, store=store, payments=gateway, events=sink, clock=clock
        )

    return _make


@pytest.fixture
def container(make_container):
    return make_container()


@pytest.fixture
def publish_ride(container):
    """Create a ride departing later today; keyword arguments override."""

    async def _publish(**overrides):
        fields = dict(
            driver_id=DRIVER,
            departure_time=FIXED_NOW + timedelta(hours=6),
            total_seats=3,
            price_per_seat=Decimal("20.00"),
            origin_address="Austin, TX",
            destination_address="Dallas, TX",
        )
        fields.update(overrides)
        return await container.lifecycle.create_ride(**fields)

    return _publish
