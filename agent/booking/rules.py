"""
Booking draft rules.

Holds the draft patch union and the single function that applies it, plus the
rules that run during the merge step of a turn: which intents may mutate the
draft, which fields are derived implicitly, which fields are still missing,
and whether a draft changed materially.
"""

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, TypeVar

from pydantic import BaseModel

from agent.booking.constants import DRAFT_KEY_FIELDS, NIGHT_PICKUP_TIME, REQUIRED_SEARCH_FIELDS
from agent.booking.models import BookingDraft, BookingType, IntentType, UserPreferences

ModelT = TypeVar("ModelT", bound=BaseModel)

DRAFT_MUTATING_INTENTS = frozenset({
    IntentType.PROVIDE_INFO,
    IntentType.UPDATE_INFO,
    IntentType.SELECT_OPTION,
    IntentType.NEW_BOOKING,
})

SAME_LOCATION_PHRASES = (
    "same place",
    "same location",
    "same as pickup",
    "same as pick up",
    "same pickup location",
    "same pick up location",
    "drop me off at the same place",
    "dropoff same",
)

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Merge:
    """Overlay ``fields`` onto the current value, keeping everything else."""

    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Replace:
    """Discard the current value and start from ``fields`` alone."""

    fields: dict[str, Any] = field(default_factory=dict)


DraftPatch = Merge | Replace


def apply_patch(current: ModelT, patch: DraftPatch | None) -> ModelT:
    """
    Apply a Merge or Replace patch to a pydantic model, returning a new instance.

    Works for both BookingDraft and UserPreferences.
    """
    match patch:
        case None:
            return current
        case Merge(fields=fields):
            return current.model_copy(update=fields)
        case Replace(fields=fields):
            return type(current).model_validate(fields)
    raise TypeError(f"Unsupported patch type: {type(patch).__name__}")


def should_apply_draft_patch(intent: IntentType) -> bool:
    """Only information-bearing intents may mutate the draft."""
    return intent in DRAFT_MUTATING_INTENTS


def get_missing_required_fields(draft: BookingDraft) -> list[str]:
    return [name for name in REQUIRED_SEARCH_FIELDS if not getattr(draft, name)]


def has_draft_changed(previous: BookingDraft, current: BookingDraft) -> bool:
    """True when any key field (date, booking type, pickup location, vehicle type) differs."""
    return any(getattr(previous, name) != getattr(current, name) for name in DRAFT_KEY_FIELDS)


def has_same_location_instruction(message: str) -> bool:
    normalized = _WHITESPACE.sub(" ", message.lower()).strip()
    return any(phrase in normalized for phrase in SAME_LOCATION_PHRASES)


def add_days(iso_date: str, days: int) -> str | None:
    """Shift a YYYY-MM-DD date by ``days``; None when the date does not parse."""
    try:
        start = date.fromisoformat(iso_date)
    except ValueError:
        return None
    return (start + timedelta(days=days)).isoformat()


def apply_derived_fields(draft: BookingDraft, inbound_message: str) -> BookingDraft:
    """
    Fill fields implied by the rest of the draft or by the message wording.

    - "same place" style phrasing copies the pickup location to dropoff
    - a duration computes the dropoff date when none was given
    - night bookings always start at 23:00 and default to one night
    """
    updates: dict[str, Any] = {}

    if (
        not draft.dropoff_location
        and draft.pickup_location
        and has_same_location_instruction(inbound_message)
    ):
        updates["dropoff_location"] = draft.pickup_location

    if not draft.dropoff_date and draft.pickup_date and draft.duration_days:
        dropoff = add_days(draft.pickup_date, draft.duration_days)
        if dropoff:
            updates["dropoff_date"] = dropoff

    if draft.booking_type == BookingType.NIGHT:
        updates["pickup_time"] = NIGHT_PICKUP_TIME
        if not draft.dropoff_date and not updates.get("dropoff_date") and draft.pickup_date:
            dropoff = add_days(draft.pickup_date, draft.duration_days or 1)
            if dropoff:
                updates["dropoff_date"] = dropoff

    if not updates:
        return draft
    return draft.model_copy(update=updates)


def merge_preference_hint(preferences: UserPreferences, hint: str | None) -> UserPreferences:
    """Record a preference hint, mapping price hints to a price preference."""
    if not hint:
        return preferences

    updates: dict[str, Any] = {"notes": [*preferences.notes, hint]}
    if hint in ("cheaper", "budget"):
        updates["price_preference"] = "budget"
    elif hint in ("premium", "luxury"):
        updates["price_preference"] = "premium"

    return apply_patch(preferences, Merge(updates))
