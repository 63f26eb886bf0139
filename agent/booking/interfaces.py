"""Interfaces of the external collaborators the booking engine consumes."""

from typing import Protocol

from agent.booking.booking_input import BookingConfirmation, BookingInput
from agent.booking.models import CatalogVehicle, VehicleSearchQuery


class VehicleCatalog(Protocol):
    async def search_vehicles(self, query: VehicleSearchQuery) -> list[CatalogVehicle]:
        """Return catalog vehicles matching ``query``. May fail per call."""
        ...


class VatRateProvider(Protocol):
    async def get_vat_rate_percent(self) -> float:
        ...


class BookingCreator(Protocol):
    async def create_booking(self, booking_input: BookingInput) -> BookingConfirmation:
        """
        Create a booking for a guest.

        Raises:
            VehicleUnavailable: The vehicle cannot be booked for the period
            BookingCreationFailed: Any other rejection or failure
        """
        ...
