"""
Reply generation.

Stages with a fixed message (reset, surfaced errors, option cards, booking
summary, payment instructions) are answered deterministically. Everything
else is written by the response LLM from the turn context, with interactive
buttons attached per stage.
"""

import logging
from datetime import date
from zoneinfo import ZoneInfo

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from agent.booking.concurrency import run_with_timeout
from agent.booking.constants import (
    BUTTON_AGENT,
    BUTTON_CANCEL,
    BUTTON_CONFIRM,
    BUTTON_DAY,
    BUTTON_FULL_DAY,
    BUTTON_NIGHT,
    BUTTON_NO,
    BUTTON_RETRY_BOOKING,
    BUTTON_SHOW_OTHERS,
    CONFIRM_ERROR_SUFFIX,
    MAX_BUTTON_TITLE_CHARS,
    OPTIONS_INTRO_TEXT,
    RECENT_MESSAGES_FOR_LLM,
    RESET_TEXT,
    SELECT_VEHICLE_BUTTON_PREFIX,
)
from agent.booking.errors import ResponseFailed
from agent.booking.models import (
    AgentResponse,
    BookingDraft,
    BookingStage,
    BookingType,
    ConversationState,
    IntentType,
    InteractiveButton,
    InteractivePayload,
    VehicleCard,
    VehicleSearchOption,
)
from agent.booking.prompts import (
    build_responder_system_prompt,
    build_responder_user_context,
    format_naira,
)
from shared.circuit_breaker import call_with_breaker, response_llm_breaker

logger = logging.getLogger(__name__)

RESPONSE_OPERATION = "llm:response"

BOOKING_TYPE_LABELS = {
    BookingType.DAY: "Day Service (12 hours)",
    BookingType.NIGHT: "Night Service (6 hours)",
    BookingType.FULL_DAY: "Full Day (24 hours)",
    BookingType.AIRPORT_PICKUP: "Airport Pickup",
}

CONFIRM_BUTTONS = InteractivePayload(buttons=[
    InteractiveButton(id=BUTTON_CONFIRM, title="✓ Confirm"),
    InteractiveButton(id=BUTTON_NO, title="✕ No"),
    InteractiveButton(id=BUTTON_SHOW_OTHERS, title="↻ Show Others"),
])

CONFIRM_ERROR_BUTTONS = InteractivePayload(buttons=[
    InteractiveButton(id=BUTTON_RETRY_BOOKING, title="↻ Try Again"),
    InteractiveButton(id=BUTTON_SHOW_OTHERS, title="↻ Show Others"),
    InteractiveButton(id=BUTTON_AGENT, title="💬 Talk to Agent"),
])

PAYMENT_BUTTONS = InteractivePayload(buttons=[
    InteractiveButton(id=BUTTON_CANCEL, title="✕ Cancel"),
    InteractiveButton(id=BUTTON_AGENT, title="💬 Talk to Agent"),
])

BOOKING_TYPE_BUTTONS = InteractivePayload(buttons=[
    InteractiveButton(id=BUTTON_DAY, title="Day (12hrs)"),
    InteractiveButton(id=BUTTON_NIGHT, title="Night (6hrs)"),
    InteractiveButton(id=BUTTON_FULL_DAY, title="Full Day (24hrs)"),
])


def booking_type_label(booking_type: BookingType) -> str:
    return BOOKING_TYPE_LABELS.get(booking_type, booking_type.value)


def determine_interactive(
    stage: BookingStage,
    draft: BookingDraft,
    selected_option: VehicleSearchOption | None,
    error: str | None = None,
) -> InteractivePayload | None:
    """Buttons offered alongside a reply in the given stage."""
    if stage == BookingStage.CONFIRMING and selected_option is not None:
        payload = CONFIRM_ERROR_BUTTONS if error else CONFIRM_BUTTONS
        return payload.model_copy(deep=True)

    if stage == BookingStage.AWAITING_PAYMENT:
        return PAYMENT_BUTTONS.model_copy(deep=True)

    if stage == BookingStage.COLLECTING and draft.booking_type is None:
        return BOOKING_TYPE_BUTTONS.model_copy(deep=True)

    return None


def format_vehicle_caption(option: VehicleSearchOption, index: int, draft: BookingDraft) -> str:
    price = format_naira(option.estimated_total_incl_vat) or "Price on request"
    lines = [f"*Option {index}: {option.make} {option.model}*"]
    if option.color:
        lines.append(f"🎨 Color: {option.color}")
    lines.append(f"🚗 Type: {option.vehicle_type}")
    lines.append(f"⭐ Tier: {option.service_tier}")
    if draft.booking_type:
        lines.append(f"📅 {booking_type_label(draft.booking_type)}")
    lines.append("")
    lines.append(f"💰 *{price} incl. VAT*")
    return "\n".join(lines)


def build_vehicle_cards(
    stage: BookingStage,
    options: list[VehicleSearchOption],
    draft: BookingDraft,
) -> list[VehicleCard] | None:
    if stage != BookingStage.PRESENTING_OPTIONS or not options:
        return None

    return [
        VehicleCard(
            vehicle_id=option.id,
            image_url=option.image_url,
            caption=format_vehicle_caption(option, index, draft),
            button_id=f"{SELECT_VEHICLE_BUTTON_PREFIX}{option.id}",
            button_title=f"✓ Select {option.make} {option.model}"[:MAX_BUTTON_TITLE_CHARS],
        )
        for index, option in enumerate(options, start=1)
    ]


def resolve_duration_days(draft: BookingDraft) -> int | None:
    if draft.duration_days and draft.duration_days > 0:
        return draft.duration_days
    if not draft.pickup_date or not draft.dropoff_date:
        return None
    try:
        days = (date.fromisoformat(draft.dropoff_date) - date.fromisoformat(draft.pickup_date)).days
    except ValueError:
        return None
    return max(days, 1)


def build_booking_summary(draft: BookingDraft, selected: VehicleSearchOption) -> str:
    price = format_naira(selected.estimated_total_incl_vat) or "Price on request"
    duration_days = resolve_duration_days(draft)

    lines = ["*📋 Booking Summary*", "", f"*🚗 Vehicle:* {selected.make} {selected.model}"]
    if selected.color:
        lines.append(f"*🎨 Color:* {selected.color}")
    lines.append("")
    if draft.booking_type:
        lines.append(f"*📅 Service:* {booking_type_label(draft.booking_type)}")
    if draft.pickup_date:
        lines.append(f"*📆 Date:* {draft.pickup_date}")
    if duration_days is not None:
        lines.append(f"*🗓️ Duration:* {duration_days} {'day' if duration_days == 1 else 'days'}")
    if draft.pickup_time:
        lines.append(f"*⏰ Pickup Time:* {draft.pickup_time}")
    if draft.pickup_location:
        lines.append(f"*📍 Pickup:* {draft.pickup_location}")
    if draft.dropoff_location:
        lines.append(f"*📍 Drop-off:* {draft.dropoff_location}")
    lines.extend(["", f"*💰 Total:* {price} incl. VAT", "", "Ready to confirm this booking?"])
    return "\n".join(lines)


def build_payment_message(selected: VehicleSearchOption | None) -> str:
    reserved = (
        f"Your *{selected.make} {selected.model}* has been reserved."
        if selected is not None
        else "Your vehicle has been reserved."
    )
    return "\n".join([
        "*✅ Booking Created!*",
        "",
        reserved,
        "",
        "*Complete your payment to confirm:*",
        "I have sent your secure checkout link below.",
        "",
        "_Your reservation will be held while you complete payment._",
    ])


def deterministic_response(state: ConversationState) -> AgentResponse | None:
    """Fixed replies that never need the LLM; None when the LLM should write the reply."""
    stage = state.stage
    options = state.available_options
    error = state.error

    if state.extraction is not None and state.extraction.intent == IntentType.RESET:
        return AgentResponse(text=RESET_TEXT)

    if error and not options and stage == BookingStage.COLLECTING:
        return AgentResponse(text=f"Unfortunately, {error}")

    if stage == BookingStage.PRESENTING_OPTIONS and options:
        return AgentResponse(
            text=f"{error}\n\n{OPTIONS_INTRO_TEXT}" if error else OPTIONS_INTRO_TEXT,
            vehicle_cards=build_vehicle_cards(stage, options, state.draft),
        )

    if stage == BookingStage.CONFIRMING and state.selected_option is not None:
        interactive = determine_interactive(stage, state.draft, state.selected_option, error)
        if error:
            return AgentResponse(text=f"{error}\n\n{CONFIRM_ERROR_SUFFIX}", interactive=interactive)
        return AgentResponse(
            text=build_booking_summary(state.draft, state.selected_option),
            interactive=interactive,
        )

    if stage == BookingStage.AWAITING_PAYMENT and state.payment_link:
        return AgentResponse(text=build_payment_message(state.selected_option))

    return None


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict) and first.get("type") == "text":
            return str(first.get("text") or "")
    return ""


class ReplyGenerator:
    """Writes the customer-facing reply for a turn."""

    def __init__(
        self,
        llm: BaseChatModel,
        timezone: ZoneInfo,
        brand_name: str,
        timeout_seconds: float = 15.0,
    ):
        self.llm = llm
        self.timezone = timezone
        self.brand_name = brand_name
        self.timeout_seconds = timeout_seconds

    async def generate(self, state: ConversationState) -> AgentResponse:
        """
        Generate the reply for the current state.

        Raises:
            ResponseFailed: If the LLM call fails, times out or returns no text
        """
        fixed = deterministic_response(state)
        if fixed is not None:
            return fixed

        messages = [SystemMessage(content=build_responder_system_prompt(state, self.timezone, self.brand_name))]
        for message in state.messages[-RECENT_MESSAGES_FOR_LLM:]:
            message_class = HumanMessage if message.role == "user" else AIMessage
            messages.append(message_class(content=message.content))
        messages.append(HumanMessage(content=build_responder_user_context(state)))

        logger.info(
            f"Generating reply | options={len(state.available_options)} | history={len(state.messages)}",
            extra={"conversation_id": state.conversation_id, "stage": state.stage.value},
        )

        try:
            response = await run_with_timeout(
                call_with_breaker(response_llm_breaker, self.llm.ainvoke, messages),
                RESPONSE_OPERATION,
                self.timeout_seconds,
            )
        except Exception as e:
            logger.error(
                f"Reply generation failed: {type(e).__name__}: {e}",
                extra={"conversation_id": state.conversation_id},
                exc_info=True,
            )
            raise ResponseFailed(state.conversation_id, str(e)) from e

        text = _content_text(response.content).strip()
        if not text:
            logger.error(
                "Reply generation returned empty text",
                extra={"conversation_id": state.conversation_id},
            )
            raise ResponseFailed(state.conversation_id, "empty reply")

        return AgentResponse(
            text=text,
            interactive=determine_interactive(state.stage, state.draft, state.selected_option, state.error),
            vehicle_cards=build_vehicle_cards(state.stage, state.available_options, state.draft),
        )
