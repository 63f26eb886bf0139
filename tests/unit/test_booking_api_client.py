"""Unit tests for the booking backend client."""

from datetime import datetime
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

import httpx
import pytest

from agent.booking.booking_input import BookingInput
from agent.booking.errors import BookingCreationFailed, VehicleUnavailable
from agent.booking.models import BookingType, VehicleSearchQuery
from agent.services.booking_api_client import BookingApiClient

LAGOS = ZoneInfo("Africa/Lagos")


def _response(status_code, payload=None, method="GET", path="/cars/search"):
    return httpx.Response(
        status_code,
        json=payload if payload is not None else {},
        request=httpx.Request(method, f"http://booking-api.test{path}"),
    )


def _booking_input():
    return BookingInput(
        car_id="veh-prado",
        start_date=datetime(2026, 3, 15, 9, 0, tzinfo=LAGOS),
        end_date=datetime(2026, 3, 16, 0, 0, tzinfo=LAGOS),
        pickup_address="Lekki",
        booking_type=BookingType.DAY,
        pickup_time="9 AM",
        same_location=True,
        guest_email="whatsapp.2348012345678@tripdly.com",
        guest_name="Ada",
        guest_phone="+2348012345678",
    )


class TestBookingApiClientInit:
    def test_strips_trailing_slash(self):
        client = BookingApiClient(api_url="http://booking-api.test/", api_token="tok")
        assert client.api_url == "http://booking-api.test"
        assert client.headers["Authorization"] == "Bearer tok"


class TestSearchVehicles:
    """Tests for search_vehicles."""

    @pytest.mark.asyncio
    async def test_parses_cars_and_sends_aliased_params(self):
        client = BookingApiClient()
        cars = [{"id": "veh-1", "make": "Toyota", "model": "Prado", "vehicleType": "SUV", "dayRate": 80000}]
        query = VehicleSearchQuery(limit=10, from_date="2026-03-15", to_date="2026-03-16", make="Toyota")

        with patch.object(BookingApiClient, "_request", AsyncMock(return_value=_response(200, {"cars": cars}))) as mock_request:
            vehicles = await client.search_vehicles(query)

        assert vehicles[0].id == "veh-1"
        assert vehicles[0].day_rate == 80000
        params = mock_request.await_args.kwargs["params"]
        assert params["from"] == "2026-03-15"
        assert params["make"] == "Toyota"
        assert "color" not in params

    @pytest.mark.asyncio
    async def test_retries_transport_errors(self):
        client = BookingApiClient()
        side_effect = [httpx.ConnectError("refused"), _response(200, {"cars": []})]

        with patch.object(BookingApiClient, "_request", AsyncMock(side_effect=side_effect)) as mock_request:
            vehicles = await client.search_vehicles(VehicleSearchQuery(limit=5))

        assert vehicles == []
        assert mock_request.await_count == 2

    @pytest.mark.asyncio
    async def test_client_error_raises(self):
        client = BookingApiClient()

        with patch.object(BookingApiClient, "_request", AsyncMock(return_value=_response(400))):
            with pytest.raises(httpx.HTTPStatusError):
                await client.search_vehicles(VehicleSearchQuery(limit=5))


class TestGetVatRate:
    @pytest.mark.asyncio
    async def test_reads_percent(self):
        client = BookingApiClient()

        with patch.object(
            BookingApiClient, "_request", AsyncMock(return_value=_response(200, {"vatRatePercent": 7.5}, path="/rates"))
        ):
            assert await client.get_vat_rate_percent() == 7.5


class TestCreateBooking:
    """Tests for create_booking."""

    @pytest.mark.asyncio
    async def test_success(self):
        client = BookingApiClient()
        payload = {"bookingId": "bk-1", "checkoutUrl": "https://pay.test/pay/tok"}

        with patch.object(
            BookingApiClient, "_request", AsyncMock(return_value=_response(201, payload, "POST", "/bookings/guest"))
        ) as mock_request:
            confirmation = await client.create_booking(_booking_input())

        assert confirmation.booking_id == "bk-1"
        assert confirmation.checkout_url == "https://pay.test/pay/tok"
        sent = mock_request.await_args.kwargs["json"]
        assert sent["carId"] == "veh-prado"
        assert sent["guestPhone"] == "+2348012345678"

    @pytest.mark.asyncio
    async def test_conflict_means_unavailable(self):
        client = BookingApiClient()

        with patch.object(BookingApiClient, "_request", AsyncMock(return_value=_response(409, method="POST"))):
            with pytest.raises(VehicleUnavailable) as exc_info:
                await client.create_booking(_booking_input())

        assert exc_info.value.vehicle_id == "veh-prado"

    @pytest.mark.asyncio
    async def test_other_rejection(self):
        client = BookingApiClient()

        with patch.object(BookingApiClient, "_request", AsyncMock(return_value=_response(422, method="POST"))):
            with pytest.raises(BookingCreationFailed):
                await client.create_booking(_booking_input())

    @pytest.mark.asyncio
    async def test_transport_error_is_not_retried(self):
        client = BookingApiClient()

        with patch.object(BookingApiClient, "_request", AsyncMock(side_effect=httpx.ReadTimeout("slow"))) as mock_request:
            with pytest.raises(BookingCreationFailed):
                await client.create_booking(_booking_input())

        assert mock_request.await_count == 1
