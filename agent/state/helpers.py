"""
Turn-level helpers for ConversationState.

Builds the starting state of a turn (fresh or resumed) and appends messages
with FIFO windowing so history never exceeds the configured limit.
"""

import logging
from datetime import datetime, timezone
from typing import Literal

from agent.booking.models import ConversationMessage, ConversationState, InteractiveReply

logger = logging.getLogger(__name__)

# Maximum character length for a single stored message (prevents token overflow)
MAX_MESSAGE_LENGTH = 2000

# Fields recomputed on every turn; never carried over from the previous one
TRANSIENT_FIELDS = {
    "extraction": None,
    "response": None,
    "outbox_items": [],
    "next_node": None,
    "error": None,
    "payment_link": None,
}


def add_message(
    state: ConversationState,
    role: Literal["user", "assistant"],
    content: str,
    history_limit: int = 10,
) -> ConversationState:
    """
    Append a message, dropping the oldest ones beyond ``history_limit``.

    Messages longer than MAX_MESSAGE_LENGTH keep their beginning and end.
    The input state is not mutated.
    """
    if len(content) > MAX_MESSAGE_LENGTH:
        logger.warning(
            f"Message exceeds {MAX_MESSAGE_LENGTH} chars ({len(content)} chars), truncating",
            extra={"conversation_id": state.conversation_id},
        )
        content = f"{content[:800]}\n\n[... {len(content) - 1600} characters omitted ...]\n\n{content[-800:]}"

    message = ConversationMessage(
        role=role,
        content=content,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    messages = [*state.messages, message][-history_limit:]
    return state.model_copy(update={"messages": messages})


def create_initial_state(
    conversation_id: str,
    message_id: str,
    message: str,
    interactive: InteractiveReply | None = None,
    customer_id: str | None = None,
    customer_phone: str | None = None,
    customer_name: str | None = None,
) -> ConversationState:
    """State for the first turn of a conversation."""
    return ConversationState(
        conversation_id=conversation_id,
        customer_id=customer_id,
        customer_phone=customer_phone,
        customer_name=customer_name,
        inbound_message=message,
        inbound_message_id=message_id,
        inbound_interactive=interactive,
    )


def merge_with_existing(
    existing: ConversationState,
    message_id: str,
    message: str,
    interactive: InteractiveReply | None = None,
    customer_id: str | None = None,
    customer_phone: str | None = None,
    customer_name: str | None = None,
) -> ConversationState:
    """
    Resume a stored conversation for a new turn.

    Keeps draft, stage, options, selection, booking and preferences; bumps the
    turn counter; resets transient fields; replaces the inbound message.
    Customer details already known are kept when the caller omits them.
    """
    return existing.model_copy(update={
        **TRANSIENT_FIELDS,
        "outbox_items": [],
        "turn_count": existing.turn_count + 1,
        "inbound_message": message,
        "inbound_message_id": message_id,
        "inbound_interactive": interactive,
        "customer_id": customer_id or existing.customer_id,
        "customer_phone": customer_phone or existing.customer_phone,
        "customer_name": customer_name or existing.customer_name,
    })
