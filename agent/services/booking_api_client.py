"""
Booking backend client.

This module provides the BookingApiClient class for the three backend
operations the booking agent depends on: vehicle catalog search, VAT rate
lookup and guest booking creation.

Read-only calls are retried on transport errors; booking creation is never
retried because it is not idempotent. Every call goes through the
``booking_api`` circuit breaker.
"""

import logging
from typing import Any

import httpx
import pybreaker
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agent.booking.booking_input import BookingConfirmation, BookingInput
from agent.booking.errors import BookingCreationFailed, VehicleUnavailable
from agent.booking.models import CatalogVehicle, VehicleSearchQuery
from shared.circuit_breaker import booking_api_breaker, call_with_breaker
from shared.config import get_settings

logger = logging.getLogger(__name__)

CAR_NOT_AVAILABLE_STATUS = 409


class BookingApiClient:
    """Client for the booking backend HTTP API."""

    def __init__(self, api_url: str | None = None, api_token: str | None = None):
        settings = get_settings()
        # Remove trailing slash to avoid double slashes in URLs
        self.api_url = (api_url or settings.BOOKING_API_URL).rstrip("/")
        self.api_token = api_token or settings.BOOKING_API_TOKEN

        self.headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

        logger.info(f"BookingApiClient initialized: {self.api_url}")

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request; server errors raise, client errors are returned to the caller."""
        async with httpx.AsyncClient() as client:
            response = await client.request(
                method,
                f"{self.api_url}{path}",
                headers=self.headers,
                timeout=10.0,
                **kwargs,
            )
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def search_vehicles(self, query: VehicleSearchQuery) -> list[CatalogVehicle]:
        """
        Search the vehicle catalog.

        Args:
            query: Exact or relaxed search query

        Returns:
            Vehicles in backend order
        """
        params = query.model_dump(by_alias=True, exclude_none=True, mode="json")
        response = await call_with_breaker(
            booking_api_breaker, self._request, "GET", "/cars/search", params=params
        )
        response.raise_for_status()

        cars = response.json().get("cars", [])
        logger.debug(f"Catalog search returned {len(cars)} vehicles for {params}")
        return [CatalogVehicle.model_validate(car) for car in cars]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def get_vat_rate_percent(self) -> float:
        response = await call_with_breaker(booking_api_breaker, self._request, "GET", "/rates")
        response.raise_for_status()
        return float(response.json()["vatRatePercent"])

    async def create_booking(self, booking_input: BookingInput) -> BookingConfirmation:
        """
        Create a guest booking.

        Raises:
            VehicleUnavailable: Backend reports the car is not available (HTTP 409)
            BookingCreationFailed: Any other failure
        """
        payload = booking_input.model_dump(by_alias=True, exclude_none=True, mode="json")

        try:
            response = await call_with_breaker(
                booking_api_breaker, self._request, "POST", "/bookings/guest", json=payload
            )
        except (httpx.HTTPError, pybreaker.CircuitBreakerError) as e:
            logger.error(f"HTTP error creating booking: {e}")
            raise BookingCreationFailed(type(e).__name__) from e

        if response.status_code == CAR_NOT_AVAILABLE_STATUS:
            raise VehicleUnavailable(booking_input.car_id)
        if response.is_error:
            raise BookingCreationFailed(f"HTTP {response.status_code}")

        confirmation = BookingConfirmation.model_validate(response.json())
        logger.info(f"Booking created: booking_id={confirmation.booking_id}")
        return confirmation
