"""
Booking creation input.

Turns a confirmed draft + selected vehicle into the request the booking
backend expects. Messaging-channel customers book as guests, identified by a
synthetic email derived from their phone number.
"""

import re
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from pydantic import Field

from agent.booking.models import BookingDraft, BookingType, CamelModel, VehicleSearchOption

_TIME_24H = re.compile(r"^(\d{1,2}):(\d{2})$")
_TIME_12H = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(AM|PM)$", re.IGNORECASE)
_NON_DIGITS = re.compile(r"\D")

DEFAULT_PICKUP_TIME = "9:00 AM"
DEFAULT_GUEST_NAME = "WhatsApp Customer"


class GuestIdentity(CamelModel):
    guest_email: str
    guest_name: str
    guest_phone: str


class BookingInput(CamelModel):
    """Guest booking request sent to the booking backend."""

    car_id: str
    start_date: datetime
    end_date: datetime
    pickup_address: str
    booking_type: BookingType
    pickup_time: str
    flight_number: str | None = None
    same_location: bool
    drop_off_address: str | None = None
    include_security_detail: bool = False
    requires_full_tank: bool = False
    use_credits: int = 0
    guest_email: str
    guest_name: str
    guest_phone: str


class BookingConfirmation(CamelModel):
    booking_id: str
    checkout_url: str = Field(description="Hosted checkout link for the booking payment")


def build_guest_identity(
    phone_e164: str,
    profile_name: str | None,
    email_domain: str = "tripdly.com",
) -> GuestIdentity:
    digits = _NON_DIGITS.sub("", phone_e164)
    return GuestIdentity(
        guest_email=f"whatsapp.{digits}@{email_domain}",
        guest_name=profile_name or DEFAULT_GUEST_NAME,
        guest_phone=phone_e164,
    )


def parse_pickup_time(value: str | None) -> time | None:
    """Parse 24-hour ("14:00") or 12-hour ("2 PM", "2:30pm") pickup times."""
    if not value:
        return None
    candidate = value.strip()

    match = _TIME_24H.match(candidate)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return time(hours, minutes)

    match = _TIME_12H.match(candidate)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        if not 1 <= hours <= 12 or minutes > 59:
            return None
        period = match.group(3).upper()
        if period == "PM" and hours != 12:
            hours += 12
        if period == "AM" and hours == 12:
            hours = 0
        return time(hours, minutes)

    return None


def normalize_pickup_time_to_12_hour(value: str) -> str:
    """'14:00' -> '2 PM', '09:30' -> '9:30 AM'; 12-hour input is returned unchanged."""
    if re.search(r"\s*(AM|PM)$", value, re.IGNORECASE):
        return value

    match = _TIME_24H.match(value.strip())
    if not match:
        return value

    hours, minutes = int(match.group(1)), int(match.group(2))
    period = "PM" if hours >= 12 else "AM"
    if hours == 0:
        hours = 12
    elif hours > 12:
        hours -= 12

    minute_part = f":{minutes:02d}" if minutes > 0 else ""
    return f"{hours}{minute_part} {period}"


def _parse_date(value: str | None, fallback: date) -> date:
    if not value:
        return fallback
    try:
        return date.fromisoformat(value)
    except ValueError:
        return fallback


def build_booking_input(
    draft: BookingDraft,
    selected_option: VehicleSearchOption,
    guest: GuestIdentity,
    timezone: ZoneInfo,
) -> BookingInput:
    """
    Build the booking request for a confirmed selection.

    Totals are left to the backend, which computes them authoritatively.
    """
    today = datetime.now(timezone).date()
    pickup_time = parse_pickup_time(draft.pickup_time) or time(0, 0)
    start_date = datetime.combine(_parse_date(draft.pickup_date, today), pickup_time, timezone)
    end_date = datetime.combine(_parse_date(draft.dropoff_date, today), time(0, 0), timezone)

    same_location = draft.pickup_location == draft.dropoff_location

    return BookingInput(
        car_id=selected_option.id,
        start_date=start_date,
        end_date=end_date,
        pickup_address=draft.pickup_location or "",
        booking_type=draft.booking_type or BookingType.DAY,
        pickup_time=normalize_pickup_time_to_12_hour(draft.pickup_time or DEFAULT_PICKUP_TIME),
        flight_number=draft.flight_number,
        same_location=same_location,
        drop_off_address=None if same_location else (draft.dropoff_location or draft.pickup_location or ""),
        guest_email=guest.guest_email,
        guest_name=guest.guest_name,
        guest_phone=guest.guest_phone,
    )
