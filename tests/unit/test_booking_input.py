"""Unit tests for booking creation input."""

from datetime import time
from zoneinfo import ZoneInfo

import pytest

from agent.booking.booking_input import (
    build_booking_input,
    build_guest_identity,
    normalize_pickup_time_to_12_hour,
    parse_pickup_time,
)
from agent.booking.models import BookingDraft, BookingType
from tests.factories import make_option

LAGOS = ZoneInfo("Africa/Lagos")


class TestGuestIdentity:
    def test_synthetic_email_from_phone(self):
        guest = build_guest_identity("+234 801-234-5678", "Ada", "example.com")

        assert guest.guest_email == "whatsapp.2348012345678@example.com"
        assert guest.guest_name == "Ada"
        assert guest.guest_phone == "+234 801-234-5678"

    def test_default_name(self):
        assert build_guest_identity("+2348012345678", None).guest_name == "WhatsApp Customer"


class TestPickupTime:
    @pytest.mark.parametrize(
        "value,expected",
        [("14:00", time(14, 0)), ("2 PM", time(14, 0)), ("12am", time(0, 0)), ("9:30 am", time(9, 30))],
    )
    def test_parse(self, value, expected):
        assert parse_pickup_time(value) == expected

    @pytest.mark.parametrize("value", [None, "24:00", "13 PM", "noonish"])
    def test_parse_invalid(self, value):
        assert parse_pickup_time(value) is None

    @pytest.mark.parametrize(
        "value,expected",
        [("14:00", "2 PM"), ("09:30", "9:30 AM"), ("00:00", "12 AM"), ("9 AM", "9 AM")],
    )
    def test_normalize_to_12_hour(self, value, expected):
        assert normalize_pickup_time_to_12_hour(value) == expected


class TestBuildBookingInput:
    """Tests for build_booking_input."""

    def test_same_location(self, complete_draft):
        guest = build_guest_identity("+2348012345678", "Ada")
        booking_input = build_booking_input(complete_draft, make_option("veh-prado"), guest, LAGOS)

        assert booking_input.car_id == "veh-prado"
        assert booking_input.same_location is True
        assert booking_input.drop_off_address is None
        assert booking_input.pickup_time == "9 AM"
        assert booking_input.start_date.hour == 9
        assert booking_input.start_date.tzinfo == LAGOS

    def test_different_dropoff(self):
        draft = BookingDraft(
            booking_type=BookingType.FULL_DAY,
            pickup_date="2026-03-15",
            dropoff_date="2026-03-16",
            pickup_time="14:30",
            pickup_location="Ikeja",
            dropoff_location="Lekki",
        )
        guest = build_guest_identity("+2348012345678", "Ada")
        payload = build_booking_input(draft, make_option("veh-1"), guest, LAGOS).model_dump(
            by_alias=True, exclude_none=True, mode="json"
        )

        assert payload["carId"] == "veh-1"
        assert payload["sameLocation"] is False
        assert payload["dropOffAddress"] == "Lekki"
        assert payload["pickupTime"] == "2:30 PM"
        assert payload["bookingType"] == "FULL_DAY"
        assert payload["guestEmail"] == "whatsapp.2348012345678@tripdly.com"
        assert payload["startDate"].startswith("2026-03-15T14:30:00")
