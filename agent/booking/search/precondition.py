"""
Search precondition policy.

Returns the single field that blocks a vehicle search (first failing check
wins) so the customer is asked for one thing at a time. The search layer is
never invoked with an unparseable or inverted date range.
"""

import re
from datetime import date

from agent.booking.models import BookingDraft, BookingType, SearchPrecondition

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_12H = re.compile(r"^(1[0-2]|0?[1-9])(:[0-5]\d)?\s?(AM|PM)$", re.IGNORECASE)
_TIME_24H = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")

PICKUP_DATE_PROMPT = "What date should pickup start? Please share it as YYYY-MM-DD."
DROPOFF_DATE_PROMPT = (
    "What date should the booking end? Please share it as YYYY-MM-DD "
    "(on or after the pickup date)."
)
PICKUP_TIME_PROMPT = "Please share pickup time in this format: 9:00 AM or 14:00."
FLIGHT_NUMBER_PROMPT = "Please share your flight number so I can check airport pickup availability."


def parse_search_date(value: str | None) -> date | None:
    """Parse a strict YYYY-MM-DD calendar date; impossible dates (2026-02-30) yield None."""
    if not value or not _ISO_DATE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def is_valid_pickup_time(value: str | None) -> bool:
    """Accept 12-hour (9 AM, 9:30pm) and 24-hour (09:00, 14:30) times."""
    if not value:
        return False
    candidate = value.strip()
    return bool(_TIME_12H.match(candidate) or _TIME_24H.match(candidate))


def resolve_precondition(draft: BookingDraft) -> SearchPrecondition | None:
    """
    Check whether a draft is complete enough to search.

    Order: pickup date → dropoff date → pickup time → flight number
    (airport pickups only).

    Returns:
        None when the search may run, otherwise the first blocking precondition
    """
    pickup_date = parse_search_date(draft.pickup_date)
    if pickup_date is None:
        return SearchPrecondition(missing_field="from", prompt=PICKUP_DATE_PROMPT)

    dropoff_date = parse_search_date(draft.dropoff_date)
    if dropoff_date is None or dropoff_date < pickup_date:
        return SearchPrecondition(missing_field="to", prompt=DROPOFF_DATE_PROMPT)

    if not is_valid_pickup_time(draft.pickup_time):
        return SearchPrecondition(missing_field="pickupTime", prompt=PICKUP_TIME_PROMPT)

    if draft.booking_type == BookingType.AIRPORT_PICKUP and not (draft.flight_number or "").strip():
        return SearchPrecondition(missing_field="flightNumber", prompt=FLIGHT_NUMBER_PROMPT)

    return None
