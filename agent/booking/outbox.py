"""
Outbox builder.

Turns a generated reply into the ordered list of items the messaging transport
delivers. Dedupe keys are derived from the conversation id and the inbound
message id, so redelivery of the same inbound event yields the same keys.
"""

import logging
import re
from urllib.parse import urlparse

from agent.booking.models import (
    AgentResponse,
    BookingStage,
    ConversationState,
    OutboundMode,
    OutboxItem,
    VehicleSearchOption,
)

logger = logging.getLogger(__name__)

_CHECKOUT_TOKEN = re.compile(r"/pay/([^/]+)/?$")


def build_dedupe_key(conversation_id: str, message_id: str, suffix: str | None = None) -> str:
    key = f"langgraph:{conversation_id}:{message_id}"
    return f"{key}:{suffix}" if suffix else key


def extract_checkout_token(checkout_url: str) -> str | None:
    """Return the token segment of a ``.../pay/{token}`` checkout URL, if present."""
    try:
        path = urlparse(checkout_url).path
    except ValueError:
        return None
    match = _CHECKOUT_TOKEN.search(path)
    return match.group(1) if match else None


def _format_template_price(vehicle: VehicleSearchOption) -> str:
    if vehicle.estimated_total_incl_vat is None:
        return "Price unavailable"
    return f"₦{vehicle.estimated_total_incl_vat:,} incl. VAT"


def _vehicle_card_items(
    state: ConversationState,
    response: AgentResponse,
    vehicle_card_content_sid: str,
) -> list[OutboxItem]:
    options_by_id = {option.id: option for option in state.available_options}
    card_items: list[OutboxItem] = []

    for index, card in enumerate(response.vehicle_cards or []):
        vehicle = options_by_id.get(card.vehicle_id)
        if vehicle is None:
            logger.debug(
                f"Skipping vehicle card {index} with no matching option: {card.vehicle_id}",
                extra={"conversation_id": state.conversation_id},
            )
            continue

        card_items.append(OutboxItem(
            conversation_id=state.conversation_id,
            dedupe_key=build_dedupe_key(state.conversation_id, state.inbound_message_id, f"vehicle:{index}"),
            mode=OutboundMode.TEMPLATE,
            content_sid=vehicle_card_content_sid,
            content_variables={
                "1": f"{vehicle.make} {vehicle.model}",
                "2": _format_template_price(vehicle),
                "3": card.image_url or "",
                "4": "Select",
                "5": vehicle.id,
            },
        ))

    if not card_items:
        return []

    intro = OutboxItem(
        conversation_id=state.conversation_id,
        dedupe_key=build_dedupe_key(state.conversation_id, state.inbound_message_id, "intro"),
        mode=OutboundMode.FREE_FORM,
        text_body=response.text,
    )
    return [intro, *card_items]


def build_outbox_items(
    state: ConversationState,
    response: AgentResponse,
    vehicle_card_content_sid: str,
    checkout_link_content_sid: str,
) -> list[OutboxItem]:
    """
    Build the ordered delivery batch for a reply.

    - Vehicle cards: one intro message, then one template per card that maps
      to an available option. Falls through when none map.
    - Awaiting payment with a link: one checkout template carrying the
      token, or a free-form message embedding the raw link.
    - Otherwise: one free-form message with any interactive buttons.
    """
    if response.vehicle_cards:
        items = _vehicle_card_items(state, response, vehicle_card_content_sid)
        if items:
            return items

    if state.stage == BookingStage.AWAITING_PAYMENT and state.payment_link:
        token = extract_checkout_token(state.payment_link)
        if token is None:
            logger.warning(
                "Checkout token not found in payment link, sending raw link",
                extra={"conversation_id": state.conversation_id},
            )
            return [OutboxItem(
                conversation_id=state.conversation_id,
                dedupe_key=build_dedupe_key(
                    state.conversation_id, state.inbound_message_id, "payment-link-fallback"
                ),
                mode=OutboundMode.FREE_FORM,
                text_body=f"{response.text}\n\n{state.payment_link}",
                interactive=response.interactive,
            )]

        return [OutboxItem(
            conversation_id=state.conversation_id,
            dedupe_key=build_dedupe_key(state.conversation_id, state.inbound_message_id, "payment-link"),
            mode=OutboundMode.TEMPLATE,
            content_sid=checkout_link_content_sid,
            content_variables={"1": response.text, "2": token},
        )]

    return [OutboxItem(
        conversation_id=state.conversation_id,
        dedupe_key=build_dedupe_key(state.conversation_id, state.inbound_message_id),
        mode=OutboundMode.FREE_FORM,
        text_body=response.text,
        interactive=response.interactive,
    )]
