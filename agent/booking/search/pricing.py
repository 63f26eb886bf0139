"""
Price estimation for search options.

    quantity  = leg count for the booking type and date span
    subtotal  = round(rate_per_unit * quantity)
    vat       = round(subtotal * vat_rate_percent / 100)
    total     = subtotal + vat

Every amount is clamped at zero. Booking-type-specific rates fall back to the
day rate when absent.
"""

from datetime import date

from agent.booking.models import BookingDraft, BookingType, VehicleRates, VehicleSearchOption
from agent.booking.search.precondition import parse_search_date


def calculate_leg_count(booking_type: BookingType, start: date | None, end: date | None) -> int:
    """
    Number of billable legs.

    Airport pickups are a single leg. Day, night and full-day bookings bill
    one leg per day/night between pickup and dropoff date, minimum one.
    Missing dates count as one leg.
    """
    if booking_type == BookingType.AIRPORT_PICKUP:
        return 1
    if start is None or end is None:
        return 1
    return max(1, (end - start).days)


def resolve_rate_per_unit(rates: VehicleRates, booking_type: BookingType) -> float | None:
    specific = {
        BookingType.DAY: rates.day,
        BookingType.NIGHT: rates.night,
        BookingType.FULL_DAY: rates.full_day,
        BookingType.AIRPORT_PICKUP: rates.airport_pickup,
    }[booking_type]
    return specific if specific is not None else rates.day


def _round_half_up(value: float) -> int:
    # round() uses banker's rounding; prices round half away from zero
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def apply_estimate(
    option: VehicleSearchOption,
    draft: BookingDraft,
    vat_rate_percent: float,
) -> VehicleSearchOption:
    """
    Attach subtotal, VAT, total and a basis string to an option.

    Options with no usable rate are returned without estimate fields.
    """
    booking_type = draft.booking_type or BookingType.DAY
    quantity = calculate_leg_count(
        booking_type,
        parse_search_date(draft.pickup_date),
        parse_search_date(draft.dropoff_date),
    )
    rate = resolve_rate_per_unit(option.rates, booking_type)
    if rate is None:
        return option

    subtotal = max(0, _round_half_up(rate * quantity))
    vat_amount = max(0, _round_half_up(subtotal * vat_rate_percent / 100))

    return option.model_copy(
        update={
            "estimated_subtotal": subtotal,
            "estimated_vat_amount": vat_amount,
            "estimated_total_incl_vat": subtotal + vat_amount,
            "estimate_basis": f"{quantity} {booking_type.value} {'legs' if quantity > 1 else 'leg'}",
        }
    )
