"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
"""

import os
from datetime import date, timedelta

import pytest

# Must be set BEFORE any imports of shared.config
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["OPENROUTER_API_KEY"] = "sk-or-test"
os.environ["ANTHROPIC_API_KEY"] = "sk-ant-test"
os.environ["BOOKING_API_URL"] = "http://booking-api.test"
os.environ["BOOKING_API_TOKEN"] = "test-token"

from agent.booking.models import BookingDraft, BookingType  # noqa: E402
from shared.circuit_breaker import _breakers  # noqa: E402
from tests.factories import make_option  # noqa: E402


class InMemoryRedis:
    """Async stand-in for the get/setex/delete subset of redis.asyncio.Redis."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key):
        existed = key in self.data
        self.data.pop(key, None)
        self.ttls.pop(key, None)
        return int(existed)


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Close every circuit breaker so failures in one test never open it for the next."""
    for breaker in _breakers.values():
        breaker.close()
    yield


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def pickup_date():
    """ISO date two days from today."""
    return (date.today() + timedelta(days=2)).isoformat()


@pytest.fixture
def complete_draft(pickup_date):
    """A draft with every field the router requires before searching."""
    return BookingDraft(
        booking_type=BookingType.DAY,
        pickup_date=pickup_date,
        dropoff_date=(date.fromisoformat(pickup_date) + timedelta(days=1)).isoformat(),
        pickup_time="09:00",
        pickup_location="Lekki Phase 1",
        dropoff_location="Lekki Phase 1",
    )


@pytest.fixture
def two_options():
    """Two presented options priced 80,000 and 150,000."""
    return [
        make_option("veh-prado", total=80000),
        make_option("veh-lx", make="Lexus", model="LX 570", color="White", total=150000),
    ]
