"""
Route decision policy.

``resolve_route_decision`` is a pure function of the conversation state: the
same stage, inbound message, extraction, draft, options and selection always
produce the same RouteDecision. It runs in three layers:

1. Deterministic guards (only while a vehicle is selected): affirmative and
   negative control phrases are honored before any LLM-derived intent.
2. Intent dispatch.
3. Fallback on draft completeness.
"""

import re
from collections.abc import Callable, Sequence

from agent.booking.control_intent import is_affirmative, is_negative
from agent.booking.models import (
    STALE_SESSION_STAGES,
    BookingStage,
    ConversationState,
    IntentType,
    NodeName,
    RouteDecision,
    VehicleSearchOption,
)
from agent.booking.rules import Replace, apply_patch, get_missing_required_fields

_ORDINAL = re.compile(r"^(\d+)(st|nd|rd|th)?$")

ORDINAL_WORDS = {"first": 0, "second": 1, "third": 2}
CHEAPEST_HINTS = frozenset({"cheapest", "most affordable"})
MOST_EXPENSIVE_HINTS = frozenset({"expensive", "most expensive", "premium", "best"})

GuardCondition = Callable[[str], bool]
GuardAction = Callable[[], RouteDecision]


def _book_selected() -> RouteDecision:
    return RouteDecision(next_node=NodeName.CREATE_BOOKING)


def _decline_selected() -> RouteDecision:
    return RouteDecision(
        next_node=NodeName.RESPOND,
        stage=BookingStage.COLLECTING,
        clear_selection=True,
        available_options=(),
    )


# Evaluated in order against the raw inbound message; first match wins
SELECTION_GUARDS: tuple[tuple[GuardCondition, GuardAction], ...] = (
    (is_affirmative, _book_selected),
    (is_negative, _decline_selected),
)


def resolve_route_decision(state: ConversationState) -> RouteDecision:
    """
    Decide the next node and the state overrides for this turn.

    Args:
        state: Conversation state after the merge step

    Returns:
        RouteDecision naming the next node and any stage/draft/option overrides
    """
    if state.extraction is None:
        return RouteDecision(next_node=NodeName.RESPOND, stage=BookingStage.COLLECTING)

    guard_decision = _resolve_selection_guard(state)
    if guard_decision is not None:
        return guard_decision

    intent_decision = _resolve_intent_decision(state)
    if intent_decision is not None:
        return intent_decision

    return _resolve_fallback_decision(state)


def _resolve_selection_guard(state: ConversationState) -> RouteDecision | None:
    if state.selected_option is None:
        return None

    for condition, action in SELECTION_GUARDS:
        if condition(state.inbound_message):
            return action()
    return None


def _resolve_intent_decision(state: ConversationState) -> RouteDecision | None:
    extraction = state.extraction
    assert extraction is not None

    match extraction.intent:
        case IntentType.REQUEST_AGENT:
            return RouteDecision(next_node=NodeName.HANDOFF)
        case IntentType.CANCEL:
            return RouteDecision(next_node=NodeName.RESPOND, stage=BookingStage.CANCELLED)
        case IntentType.RESET:
            return _clear_session_decision(BookingStage.GREETING)
        case IntentType.NEW_BOOKING:
            return RouteDecision(
                next_node=NodeName.RESPOND,
                stage=BookingStage.COLLECTING,
                draft=Replace(extraction.draft_patch.provided_fields()),
                clear_selection=True,
                available_options=(),
                last_shown_options=(),
            )
        case IntentType.GREETING:
            if state.stage in STALE_SESSION_STAGES:
                return _clear_session_decision(BookingStage.GREETING)
            return RouteDecision(next_node=NodeName.RESPOND, stage=BookingStage.GREETING)
        case IntentType.SELECT_OPTION:
            selected = resolve_selection(extraction.selection_hint, state.available_options)
            if selected is None:
                return None
            return RouteDecision(
                next_node=NodeName.RESPOND,
                stage=BookingStage.CONFIRMING,
                selected_option=selected,
            )
        case IntentType.CONFIRM:
            if state.selected_option is None:
                return None
            return RouteDecision(next_node=NodeName.CREATE_BOOKING)
        case IntentType.REJECT:
            return RouteDecision(
                next_node=NodeName.RESPOND,
                stage=BookingStage.COLLECTING,
                clear_selection=True,
                available_options=(),
            )
        case _:
            return None


def _resolve_fallback_decision(state: ConversationState) -> RouteDecision:
    if not get_missing_required_fields(state.draft):
        if not state.available_options:
            return RouteDecision(next_node=NodeName.SEARCH, stage=BookingStage.SEARCHING)
        return RouteDecision(next_node=NodeName.RESPOND, stage=BookingStage.PRESENTING_OPTIONS)

    return RouteDecision(next_node=NodeName.RESPOND, stage=BookingStage.COLLECTING)


def _clear_session_decision(stage: BookingStage) -> RouteDecision:
    return RouteDecision(
        next_node=NodeName.RESPOND,
        stage=stage,
        draft=Replace(),
        preferences=Replace(),
        clear_selection=True,
        available_options=(),
        last_shown_options=(),
    )


def resolve_selection(
    hint: str | None,
    options: Sequence[VehicleSearchOption],
) -> VehicleSearchOption | None:
    """
    Resolve a selection hint against the options on offer.

    Resolution order: ordinal ("2", "2nd", "second") → price extremes
    ("cheapest", "most expensive") → id → make → model → color substring.
    """
    if not hint or not options:
        return None

    hint_lower = hint.strip().lower()

    ordinal = _ORDINAL.match(hint_lower)
    if ordinal:
        index = int(ordinal.group(1)) - 1
        if 0 <= index < len(options):
            return options[index]

    if hint_lower in ORDINAL_WORDS:
        index = ORDINAL_WORDS[hint_lower]
        return options[index] if index < len(options) else None

    if hint_lower in CHEAPEST_HINTS:
        return min(
            options,
            key=lambda option: (
                option.estimated_total_incl_vat
                if option.estimated_total_incl_vat is not None
                else float("inf")
            ),
        )

    if hint_lower in MOST_EXPENSIVE_HINTS:
        return max(options, key=lambda option: option.estimated_total_incl_vat or 0)

    for option in options:
        if option.id == hint.strip():
            return option

    for attribute in ("make", "model", "color"):
        for option in options:
            value = getattr(option, attribute)
            if value and hint_lower in value.lower():
                return option

    return None


def decision_to_state_update(state: ConversationState, decision: RouteDecision) -> dict:
    """Translate a RouteDecision into a partial state update for the graph."""
    update: dict = {"next_node": decision.next_node}
    if decision.stage is not None:
        update["stage"] = decision.stage
    if decision.draft is not None:
        update["draft"] = apply_patch(state.draft, decision.draft)
    if decision.preferences is not None:
        update["preferences"] = apply_patch(state.preferences, decision.preferences)
    if decision.clear_selection:
        update["selected_option"] = None
    elif decision.selected_option is not None:
        update["selected_option"] = decision.selected_option
    if decision.available_options is not None:
        update["available_options"] = list(decision.available_options)
    if decision.last_shown_options is not None:
        update["last_shown_options"] = list(decision.last_shown_options)
    return update
