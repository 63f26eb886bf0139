"""
Prompt builders for the extraction and reply-generation models.

Both prompts are rebuilt every turn: they embed today's date in the business
timezone, the current draft and stage, and the options last shown.
"""

import json
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from agent.booking.constants import (
    MAX_CONTEXT_FIELD_CHARS,
    MAX_DRAFT_CONTEXT_CHARS,
    MAX_OPTION_CONTEXT_ITEMS,
    RECENT_MESSAGES_FOR_LLM,
)
from agent.booking.models import (
    BookingStage,
    ConversationMessage,
    ConversationState,
    ExtractionResult,
    VehicleSearchOption,
)
from agent.booking.rules import get_missing_required_fields


def format_naira(amount: int | None) -> str | None:
    return f"₦{amount:,}" if amount is not None else None


def _truncate(value: str, max_chars: int) -> str:
    return value if len(value) <= max_chars else f"{value[:max_chars]}..."


def _format_history(messages: list[ConversationMessage]) -> str:
    recent = messages[-RECENT_MESSAGES_FOR_LLM:]
    if not recent:
        return "No previous messages"
    return "\n".join(f"{m.role.upper()}: {m.content}" for m in recent)


def _format_options(options: list[VehicleSearchOption]) -> str:
    if not options:
        return "No options shown yet"
    return "\n".join(
        f"{i}. {o.make} {o.model} ({o.color or 'any color'}) - "
        f"{format_naira(o.estimated_total_incl_vat) or 'N/A'}"
        for i, o in enumerate(options, start=1)
    )


def build_extractor_system_prompt(
    state: ConversationState,
    timezone: ZoneInfo,
    brand_city: str = "Lagos, Nigeria",
) -> str:
    now = datetime.now(timezone)
    tomorrow = (now + timedelta(days=1)).strftime("%Y-%m-%d")
    draft_json = json.dumps(state.draft.model_dump(by_alias=True, exclude_none=True, mode="json"), indent=2)

    return f"""You are an extraction assistant for a car booking service in {brand_city}.

TODAY: {now.strftime("%Y-%m-%d")}
CURRENT TIME: {now.strftime("%H:%M")}
TIMEZONE: {timezone.key}

CURRENT BOOKING DRAFT:
{draft_json}

CURRENT STAGE: {state.stage.value}

RECENT CONVERSATION HISTORY:
{_format_history(state.messages)}

LAST SHOWN OPTIONS:
{_format_options(state.last_shown_options)}

BOOKING TYPES (daily service duration - NOT total trip length):
- DAY: 12hrs/day (7am-7pm). Can span multiple days.
- NIGHT: 6hrs/night (11pm-5am). Can span multiple nights.
- FULL_DAY: 24hrs/day - chauffeur stays with customer round the clock.
- AIRPORT_PICKUP: Airport pickup service (requires flight number)

"for X days" ONLY sets durationDays. It does NOT set bookingType.

VEHICLE TYPES: SEDAN, SUV, LUXURY_SEDAN, LUXURY_SUV, VAN, CROSSOVER

Return ONLY a JSON object:
{{
  "intent": "greeting" | "provide_info" | "update_info" | "select_option" | "confirm" | "reject" | "cancel" | "reset" | "new_booking" | "ask_question" | "request_agent" | "unknown",
  "draftPatch": {{
    "bookingType": "DAY" | "NIGHT" | "FULL_DAY" | "AIRPORT_PICKUP",
    "pickupDate": "YYYY-MM-DD",
    "pickupTime": "HH:mm",
    "dropoffDate": "YYYY-MM-DD",
    "durationDays": number,
    "pickupLocation": "string",
    "dropoffLocation": "string",
    "vehicleType": "SEDAN" | "SUV" | "LUXURY_SEDAN" | "LUXURY_SUV" | "VAN" | "CROSSOVER",
    "color": "string",
    "make": "string",
    "model": "string",
    "flightNumber": "string",
    "notes": "string"
  }},
  "selectionHint": "string",
  "preferenceHint": "string",
  "question": "string",
  "confidence": 0.0-1.0
}}

DATE PARSING:
- "tomorrow" -> {tomorrow}
- relative days ("next Monday", "in 3 days") -> absolute YYYY-MM-DD
- "9am" -> "09:00", "2pm" -> "14:00", "morning" -> "09:00", "evening" -> "18:00"

SELECTION HINTS:
- "the first one", "1", "option 1" -> "1"
- "cheapest", "most affordable" -> "cheapest"
- "the Lexus", "the black one" -> the identifying term

PREFERENCE HINTS: "cheaper", "budget", "premium", "luxury", "bigger", a color, or "show_alternatives".

INTENT RULES:
- Greetings -> greeting. Adding details -> provide_info. Changing details -> update_info.
- Starting a fresh request without details ("I need a sedan") -> new_booking.
- Choosing among shown options -> select_option. Confirming a selected vehicle -> confirm.
- "no", "show others" -> reject. "cancel", "never mind" -> cancel. "start over" -> reset.
- Questions -> ask_question. Asking for a person -> request_agent.

RULES:
1. Only include draftPatch fields EXPLICITLY mentioned in the message.
2. Only set dropoffLocation when the user names it or says "same as pickup".
3. Be conservative with confidence; prefer ask_question when ambiguous."""


STAGE_INSTRUCTIONS: dict[BookingStage, str] = {
    BookingStage.GREETING: (
        "INSTRUCTION: Welcome them warmly. Invite them to share their booking details; "
        "they can give everything at once or just tell you what they need.\n"
    ),
    BookingStage.COLLECTING: (
        "INSTRUCTION: Ask for ALL missing fields in one message. "
        "Do NOT ask for confirmation.\n"
    ),
    BookingStage.PRESENTING_OPTIONS: (
        "INSTRUCTION: Write a SHORT intro (1 sentence) saying you found some options. "
        "Do NOT list the vehicles; they are shown as cards.\n"
    ),
    BookingStage.AWAITING_SELECTION: (
        "INSTRUCTION: They're choosing. Help them decide or confirm their selection.\n"
    ),
    BookingStage.CONFIRMING: (
        "INSTRUCTION: Summarize the selection and ask for final confirmation.\n"
    ),
    BookingStage.AWAITING_PAYMENT: (
        "INSTRUCTION: The booking has been created. Tell them the payment link is on its way.\n"
    ),
    BookingStage.CANCELLED: (
        "INSTRUCTION: Acknowledge the cancellation briefly and let them know they can start again anytime.\n"
    ),
}


def build_responder_system_prompt(state: ConversationState, timezone: ZoneInfo, brand_name: str) -> str:
    now = datetime.now(timezone)

    return f"""You are Yomide, a friendly booking assistant for {brand_name}, a premium chauffeur car service in Lagos.

TODAY: {now.strftime("%A, %B %d, %Y")}
TIME: {now.strftime("%I:%M %p")}

YOUR PERSONALITY:
- Warm, professional, but not stiff
- Proactive: make suggestions, anticipate needs
- Reference conversation history naturally

BOOKING TYPES (dropoff time is calculated, never ask for it):
- Day: 12 hours from pickup time
- Night: Fixed 11pm - 5am
- Full Day: 24 hours from pickup time
- Airport Pickup: requires flight number

REQUIRED FIELDS FOR SEARCH:
- pickupDate, dropoffDate (from "for X days" when given)
- bookingType
- pickupLocation, dropoffLocation (user can say "same as pickup")
- pickupTime

YOUR RULES:
1. NEVER invent availability, prices, or booking references
2. Keep messages SHORT (2-3 sentences max)
3. Use WhatsApp formatting: *bold* for emphasis
4. Include prices with "incl. VAT" when mentioning options
5. Be more direct as turns go by (turn {state.turn_count})
6. NEVER ask for contact details or any field not in the required list

RESPONSE FORMAT: short, conversational, end with a question or clear next step. No JSON."""


def _format_extraction(extraction: ExtractionResult | None) -> str:
    if extraction is None:
        return ""
    lines = [f"USER INTENT: {extraction.intent.value}"]
    if extraction.question:
        lines.append(f"USER QUESTION: {extraction.question}")
    if extraction.selection_hint:
        lines.append(f"SELECTION HINT: {extraction.selection_hint}")
    if extraction.preference_hint:
        lines.append(f"PREFERENCE: {extraction.preference_hint}")
    return "\n".join(lines) + "\n"


def build_responder_user_context(state: ConversationState) -> str:
    """Summarize the turn's state for the reply model."""
    missing_fields = get_missing_required_fields(state.draft)
    draft_json = state.draft.model_dump_json(by_alias=True, exclude_none=True)

    context = f"CURRENT STATE: {state.stage.value}\n"
    context += f"TURN: {state.turn_count}\n"
    context += f"DRAFT: {_truncate(draft_json, MAX_DRAFT_CONTEXT_CHARS)}\n"
    context += _format_extraction(state.extraction)
    context += f"LATEST MESSAGE: {_truncate(state.inbound_message, MAX_CONTEXT_FIELD_CHARS)}\n"

    if missing_fields:
        context += f"MISSING REQUIRED FIELDS: {', '.join(missing_fields)}\n"

    if state.error:
        context += f"ISSUE TO EXPLAIN: {_truncate(state.error, MAX_CONTEXT_FIELD_CHARS)}\n"

    options = state.available_options
    if options and state.stage != BookingStage.PRESENTING_OPTIONS:
        context += "AVAILABLE OPTIONS:\n"
        for i, o in enumerate(options[:MAX_OPTION_CONTEXT_ITEMS], start=1):
            price = format_naira(o.estimated_total_incl_vat) or "N/A"
            context += f"{i}. {o.make} {o.model} ({o.color or 'any'}) - {price} incl. VAT\n"
    elif options:
        context += f"FOUND {len(options)} VEHICLE OPTIONS (shown as cards - do NOT list them)\n"

    if state.selected_option:
        selected = state.selected_option
        price = format_naira(selected.estimated_total_incl_vat) or "N/A"
        context += f"SELECTED: {selected.make} {selected.model} - {price}\n"

    context += STAGE_INSTRUCTIONS.get(state.stage, "")
    return context
