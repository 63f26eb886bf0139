"""Unit tests for the outbox builder."""

from agent.booking.models import (
    AgentResponse,
    BookingStage,
    ConversationState,
    InteractiveButton,
    InteractivePayload,
    OutboundMode,
    VehicleCard,
)
from agent.booking.outbox import build_dedupe_key, build_outbox_items, extract_checkout_token

CARD_SID = "HX-card"
CHECKOUT_SID = "HX-checkout"


def _state(**kwargs):
    return ConversationState(conversation_id="conv-1", inbound_message_id="wamid-1", **kwargs)


def _card(vehicle_id):
    return VehicleCard(
        vehicle_id=vehicle_id,
        image_url=f"https://cdn.test/{vehicle_id}.jpg",
        caption="caption",
        button_id=f"select_vehicle:{vehicle_id}",
        button_title="Select",
    )


class TestBuildDedupeKey:
    def test_without_suffix(self):
        assert build_dedupe_key("conv-1", "wamid-1") == "langgraph:conv-1:wamid-1"

    def test_with_suffix(self):
        assert build_dedupe_key("conv-1", "wamid-1", "intro") == "langgraph:conv-1:wamid-1:intro"


class TestExtractCheckoutToken:
    def test_token(self):
        assert extract_checkout_token("https://pay.test/pay/tok_123") == "tok_123"
        assert extract_checkout_token("https://pay.test/pay/tok_123/") == "tok_123"

    def test_no_token(self):
        assert extract_checkout_token("https://pay.test/checkout?id=1") is None


class TestBuildOutboxItems:
    """Tests for build_outbox_items."""

    def test_plain_reply(self):
        interactive = InteractivePayload(buttons=[InteractiveButton(id="day", title="Day")])
        items = build_outbox_items(
            _state(), AgentResponse(text="Hello!", interactive=interactive), CARD_SID, CHECKOUT_SID
        )

        assert len(items) == 1
        assert items[0].mode == OutboundMode.FREE_FORM
        assert items[0].text_body == "Hello!"
        assert items[0].interactive == interactive
        assert items[0].dedupe_key == "langgraph:conv-1:wamid-1"

    def test_vehicle_cards(self, two_options):
        state = _state(stage=BookingStage.PRESENTING_OPTIONS, available_options=two_options)
        response = AgentResponse(text="Here are your options!", vehicle_cards=[_card("veh-prado"), _card("veh-lx")])

        items = build_outbox_items(state, response, CARD_SID, CHECKOUT_SID)

        assert [item.dedupe_key.rsplit(":", 2)[-2:] for item in items[1:]] == [["vehicle", "0"], ["vehicle", "1"]]
        assert items[0].dedupe_key.endswith(":intro")
        assert items[0].text_body == "Here are your options!"
        assert items[1].mode == OutboundMode.TEMPLATE
        assert items[1].content_sid == CARD_SID
        assert items[1].content_variables == {
            "1": "Toyota Prado",
            "2": "₦80,000 incl. VAT",
            "3": "https://cdn.test/veh-prado.jpg",
            "4": "Select",
            "5": "veh-prado",
        }

    def test_cards_without_matching_options_fall_through(self, two_options):
        state = _state(stage=BookingStage.PRESENTING_OPTIONS, available_options=two_options)
        response = AgentResponse(text="Options", vehicle_cards=[_card("veh-gone")])

        items = build_outbox_items(state, response, CARD_SID, CHECKOUT_SID)

        assert len(items) == 1
        assert items[0].mode == OutboundMode.FREE_FORM

    def test_payment_link_template(self):
        state = _state(stage=BookingStage.AWAITING_PAYMENT, payment_link="https://pay.test/pay/tok_9")
        items = build_outbox_items(state, AgentResponse(text="Booking created"), CARD_SID, CHECKOUT_SID)

        assert len(items) == 1
        assert items[0].mode == OutboundMode.TEMPLATE
        assert items[0].content_sid == CHECKOUT_SID
        assert items[0].content_variables == {"1": "Booking created", "2": "tok_9"}
        assert items[0].dedupe_key.endswith(":payment-link")

    def test_payment_link_without_token(self):
        state = _state(stage=BookingStage.AWAITING_PAYMENT, payment_link="https://pay.test/checkout/abc?x=1")
        items = build_outbox_items(state, AgentResponse(text="Booking created"), CARD_SID, CHECKOUT_SID)

        assert items[0].mode == OutboundMode.FREE_FORM
        assert items[0].text_body == "Booking created\n\nhttps://pay.test/checkout/abc?x=1"
        assert items[0].dedupe_key.endswith(":payment-link-fallback")

    def test_keys_are_stable_for_redelivery(self):
        state = _state()
        first = build_outbox_items(state, AgentResponse(text="Hi"), CARD_SID, CHECKOUT_SID)
        second = build_outbox_items(state, AgentResponse(text="Hi"), CARD_SID, CHECKOUT_SID)

        assert [i.dedupe_key for i in first] == [i.dedupe_key for i in second]
