"""Unit tests for turn-level state helpers (message windowing, turn start)."""

from agent.booking.models import (
    AgentResponse,
    BookingDraft,
    BookingStage,
    ConversationState,
    ExtractionResult,
    IntentType,
    InteractiveReply,
)
from agent.state.helpers import (
    MAX_MESSAGE_LENGTH,
    add_message,
    create_initial_state,
    merge_with_existing,
)


class TestAddMessage:
    """FIFO windowing of conversation history."""

    def test_appends_with_timestamp(self):
        state = ConversationState(conversation_id="conv-1")
        updated = add_message(state, "user", "hello")

        assert [m.content for m in updated.messages] == ["hello"]
        assert updated.messages[0].timestamp.endswith("+00:00")
        assert state.messages == []

    def test_oldest_messages_dropped(self):
        state = ConversationState(conversation_id="conv-1")
        for i in range(12):
            state = add_message(state, "user" if i % 2 == 0 else "assistant", f"msg {i}", history_limit=10)

        assert len(state.messages) == 10
        assert state.messages[0].content == "msg 2"
        assert state.messages[-1].content == "msg 11"

    def test_long_message_keeps_head_and_tail(self):
        content = "a" * 1000 + "b" * 1500
        updated = add_message(ConversationState(conversation_id="conv-1"), "user", content)

        stored = updated.messages[0].content
        assert len(content) > MAX_MESSAGE_LENGTH
        assert stored.startswith("a" * 800)
        assert stored.endswith("b" * 800)
        assert "characters omitted" in stored


class TestCreateInitialState:
    def test_fresh_state(self):
        interactive = InteractiveReply(type="button_reply", id="day")
        state = create_initial_state("conv-1", "wamid-1", "", interactive, customer_phone="+2348012345678")

        assert state.stage == BookingStage.GREETING
        assert state.turn_count == 0
        assert state.inbound_interactive == interactive
        assert state.customer_phone == "+2348012345678"


class TestMergeWithExisting:
    """Resuming a stored conversation."""

    def test_resets_transient_fields_and_bumps_turn(self, two_options):
        existing = ConversationState(
            conversation_id="conv-1",
            stage=BookingStage.AWAITING_PAYMENT,
            turn_count=3,
            draft=BookingDraft(pickup_location="Ikoyi"),
            selected_option=two_options[0],
            booking_id="bk-1",
            payment_link="https://pay.test/pay/tok",
            extraction=ExtractionResult(intent=IntentType.CONFIRM, confidence=1.0),
            response=AgentResponse(text="Booking created"),
            error="old error",
            customer_phone="+2348012345678",
            customer_name="Ada",
        )

        state = merge_with_existing(existing, "wamid-9", "hi again", customer_name="Ada O.")

        assert state.turn_count == 4
        assert state.inbound_message == "hi again"
        assert state.inbound_message_id == "wamid-9"
        assert state.draft.pickup_location == "Ikoyi"
        assert state.selected_option.id == "veh-prado"
        assert state.booking_id == "bk-1"
        assert state.payment_link is None
        assert state.extraction is None
        assert state.response is None
        assert state.error is None
        assert state.outbox_items == []
        assert state.customer_phone == "+2348012345678"
        assert state.customer_name == "Ada O."
