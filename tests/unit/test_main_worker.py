"""Unit tests for the stream worker."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agent import main
from agent.booking.errors import GraphExecutionFailed
from agent.booking.models import (
    AgentResponse,
    BookingDraft,
    BookingStage,
    OutboundMode,
    OutboxItem,
    TurnResult,
)


def _item(suffix):
    return OutboxItem(
        conversation_id="conv-1",
        dedupe_key=f"langgraph:conv-1:wamid-1:{suffix}",
        mode=OutboundMode.FREE_FORM,
        text_body=f"text {suffix}",
    )


def _turn_result(items):
    return TurnResult(
        reply=AgentResponse(text="hi"),
        outbox_items=items,
        stage=BookingStage.GREETING,
        draft=BookingDraft(),
    )


INBOUND = {
    "conversation_id": "conv-1",
    "message_id": "wamid-1",
    "message_text": "hello",
    "customer_phone": "+2348012345678",
    "interactive": {"type": "button_reply", "id": "confirm"},
}


class TestPublishOutboxItems:
    """Tests for publish_outbox_items."""

    @pytest.mark.asyncio
    async def test_skips_already_claimed(self):
        with patch("agent.main.claim_dedupe_key", AsyncMock(side_effect=[True, False])), \
             patch("agent.main.add_to_stream", AsyncMock()) as mock_add:
            published = await main.publish_outbox_items([_item("a"), _item("b")], 60)

        assert published == 1
        stream, payload = mock_add.await_args.args
        assert stream == main.OUTGOING_STREAM
        assert payload["dedupeKey"] == "langgraph:conv-1:wamid-1:a"
        assert payload["mode"] == "FREE_FORM"
        assert "contentSid" not in payload

    @pytest.mark.asyncio
    async def test_template_item_uses_camel_case_keys(self):
        item = OutboxItem(
            conversation_id="conv-1",
            dedupe_key="langgraph:conv-1:wamid-1:checkout",
            mode=OutboundMode.TEMPLATE,
            content_sid="HX123",
            content_variables={"1": "tok_1"},
        )
        with patch("agent.main.claim_dedupe_key", AsyncMock(return_value=True)), \
             patch("agent.main.add_to_stream", AsyncMock()) as mock_add:
            await main.publish_outbox_items([item], 60)

        _, payload = mock_add.await_args.args
        assert payload == {
            "conversationId": "conv-1",
            "dedupeKey": "langgraph:conv-1:wamid-1:checkout",
            "mode": "TEMPLATE",
            "contentSid": "HX123",
            "contentVariables": {"1": "tok_1"},
        }


class TestProcessStreamMessage:
    """Tests for process_stream_message."""

    @pytest.mark.asyncio
    async def test_runs_turn_and_publishes(self):
        agent = MagicMock()
        agent.invoke = AsyncMock(return_value=_turn_result([_item("a")]))

        with patch("agent.main.publish_outbox_items", AsyncMock(return_value=1)) as mock_publish:
            await main.process_stream_message(agent, INBOUND)

        kwargs = agent.invoke.await_args.kwargs
        assert kwargs["conversation_id"] == "conv-1"
        assert kwargs["message"] == "hello"
        assert kwargs["interactive"].id == "confirm"
        assert kwargs["customer_phone"] == "+2348012345678"
        mock_publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_parse_error_raises(self):
        with pytest.raises(ValueError):
            await main.process_stream_message(MagicMock(), {"_raw": "??", "_parse_error": True})


class TestConsumeIncomingMessages:
    """One pass of the consumer loop."""

    @pytest.fixture(autouse=True)
    def reset_shutdown(self):
        main.shutdown_event.clear()
        yield
        main.shutdown_event.clear()

    def _read_once(self, messages):
        async def read(*_args, **_kwargs):
            main.shutdown_event.set()
            return messages

        return read

    @pytest.mark.asyncio
    async def test_success_is_acknowledged(self):
        agent = MagicMock()

        with patch("agent.main.create_consumer_group", AsyncMock()), \
             patch("agent.main.read_from_stream", self._read_once([("1-0", INBOUND)])), \
             patch("agent.main.process_stream_message", AsyncMock()), \
             patch("agent.main.acknowledge_message", AsyncMock()) as mock_ack, \
             patch("agent.main.move_to_dead_letter", AsyncMock()) as mock_dlq:
            await main.consume_incoming_messages(agent)

        mock_ack.assert_awaited_once_with(main.INCOMING_STREAM, main.CONSUMER_GROUP, "1-0")
        mock_dlq.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_notifies_and_dead_letters(self):
        agent = MagicMock()
        error = GraphExecutionFailed("conv-1", "invoke", "boom")

        with patch("agent.main.create_consumer_group", AsyncMock()), \
             patch("agent.main.read_from_stream", self._read_once([("1-0", INBOUND)])), \
             patch("agent.main.process_stream_message", AsyncMock(side_effect=error)), \
             patch("agent.main.publish_outbox_items", AsyncMock(return_value=1)) as mock_publish, \
             patch("agent.main.acknowledge_message", AsyncMock()) as mock_ack, \
             patch("agent.main.move_to_dead_letter", AsyncMock()) as mock_dlq:
            await main.consume_incoming_messages(agent)

        notice = mock_publish.await_args.args[0][0]
        assert notice.dedupe_key == "langgraph:conv-1:wamid-1:failure"
        assert notice.text_body.startswith("I'm having trouble")
        mock_ack.assert_not_called()
        dlq_args = mock_dlq.await_args.args
        assert dlq_args[2] == "1-0"
        assert dlq_args[4].startswith("GRAPH_EXECUTION_FAILED")

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        agent = MagicMock()

        with patch("agent.main.create_consumer_group", AsyncMock()), \
             patch("agent.main.read_from_stream", AsyncMock(side_effect=asyncio.CancelledError())):
            with pytest.raises(asyncio.CancelledError):
                await main.consume_incoming_messages(agent)
