"""Unit tests for the extraction orchestrator."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from agent.booking.errors import ExtractionFailed
from agent.booking.extractor import (
    ExtractionOrchestrator,
    parse_extraction_response,
    resolve_control_text,
    resolve_interactive_reply,
)
from agent.booking.models import (
    BookingStage,
    BookingType,
    ConversationState,
    IntentType,
    InteractiveReply,
)

LAGOS = ZoneInfo("Africa/Lagos")


def _llm(content=None, side_effect=None):
    """Chat model mock whose ainvoke returns a message with ``content``."""
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=MagicMock(content=content), side_effect=side_effect)
    return llm


def _state(message="", interactive=None, stage=BookingStage.COLLECTING, options=None):
    return ConversationState(
        conversation_id="conv-1",
        inbound_message=message,
        inbound_interactive=interactive,
        stage=stage,
        last_shown_options=options or [],
    )


class TestResolveInteractiveReply:
    """Button taps and list rows never reach the LLM."""

    def test_select_vehicle_button(self, two_options):
        reply = InteractiveReply(type="button_reply", id="select_vehicle:veh-lx")
        result = resolve_interactive_reply(reply, two_options)

        assert result.intent == IntentType.SELECT_OPTION
        assert result.selection_hint == "veh-lx"
        assert result.draft_patch.make == "Lexus"
        assert result.confidence == 1.0

    def test_raw_vehicle_id_button(self, two_options):
        reply = InteractiveReply(type="button_reply", id="veh-prado")
        assert resolve_interactive_reply(reply, two_options).selection_hint == "veh-prado"

    def test_list_row(self, two_options):
        reply = InteractiveReply(type="list_reply", id="vehicle:veh-prado")
        assert resolve_interactive_reply(reply, two_options).intent == IntentType.SELECT_OPTION

    @pytest.mark.parametrize(
        "button_id,intent",
        [
            ("confirm", IntentType.CONFIRM),
            ("retry_booking", IntentType.CONFIRM),
            ("no", IntentType.REJECT),
            ("cancel", IntentType.CANCEL),
            ("agent", IntentType.REQUEST_AGENT),
        ],
    )
    def test_button_map(self, button_id, intent):
        reply = InteractiveReply(type="button_reply", id=button_id)
        assert resolve_interactive_reply(reply, []).intent == intent

    def test_booking_type_button(self):
        reply = InteractiveReply(type="button_reply", id="night")
        result = resolve_interactive_reply(reply, [])

        assert result.intent == IntentType.PROVIDE_INFO
        assert result.draft_patch.booking_type == BookingType.NIGHT

    def test_button_results_are_copies(self):
        reply = InteractiveReply(type="button_reply", id="day")
        first = resolve_interactive_reply(reply, [])
        first.draft_patch.booking_type = BookingType.NIGHT

        assert resolve_interactive_reply(reply, []).draft_patch.booking_type == BookingType.DAY

    def test_unknown_vehicle_is_unresolved(self, two_options):
        reply = InteractiveReply(type="button_reply", id="select_vehicle:veh-gone")
        result = resolve_interactive_reply(reply, two_options)

        assert result.intent == IntentType.UNKNOWN
        assert result.confidence == 0.5


class TestResolveControlText:
    """Tests for deterministic control phrases."""

    def test_agent_request_in_any_stage(self):
        assert resolve_control_text("agent", BookingStage.GREETING).intent == IntentType.REQUEST_AGENT

    def test_cancel_in_any_stage(self):
        assert resolve_control_text("cancel booking", BookingStage.COLLECTING).intent == IntentType.CANCEL

    def test_confirm_only_while_confirming(self):
        assert resolve_control_text("yes", BookingStage.CONFIRMING).intent == IntentType.CONFIRM
        assert resolve_control_text("yes", BookingStage.COLLECTING) is None

    def test_reject_while_confirming(self):
        assert resolve_control_text("nope", BookingStage.CONFIRMING).intent == IntentType.REJECT

    def test_free_text_needs_llm(self):
        assert resolve_control_text("I want an SUV", BookingStage.CONFIRMING) is None


class TestParseExtractionResponse:
    """Tests for parse_extraction_response."""

    def test_plain_json(self):
        result = parse_extraction_response(
            '{"intent": "provide_info", "draftPatch": {"pickupLocation": "Ikeja"}, "confidence": 0.8}'
        )
        assert result.intent == IntentType.PROVIDE_INFO
        assert result.draft_patch.pickup_location == "Ikeja"

    def test_fenced_json(self):
        text = '```json\n{"intent": "greeting", "confidence": 0.9}\n```'
        assert parse_extraction_response(text).intent == IntentType.GREETING

    def test_invalid_json(self):
        with pytest.raises(json.JSONDecodeError):
            parse_extraction_response("not json")


class TestExtractionOrchestrator:
    """Tests for ExtractionOrchestrator.extract."""

    @pytest.mark.asyncio
    async def test_llm_extraction(self):
        payload = {
            "intent": "provide_info",
            "draftPatch": {"bookingType": "DAY", "pickupDate": "2026-03-15"},
            "confidence": 0.92,
        }
        llm = _llm(content=json.dumps(payload))
        orchestrator = ExtractionOrchestrator(llm, LAGOS)

        result = await orchestrator.extract(_state("I need a car on March 15 for the day"))

        assert result.intent == IntentType.PROVIDE_INFO
        assert result.draft_patch.booking_type == BookingType.DAY
        assert result.draft_patch.pickup_date == "2026-03-15"
        llm.ainvoke.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_system_prompt_and_user_message(self):
        llm = _llm(content='{"intent": "greeting", "confidence": 1}')
        await ExtractionOrchestrator(llm, LAGOS).extract(_state("hello there"))

        messages = llm.ainvoke.await_args.args[0]
        assert messages[-1].content == "hello there"
        assert "Africa/Lagos" in messages[0].content

    @pytest.mark.asyncio
    async def test_interactive_skips_llm(self, two_options):
        llm = _llm()
        reply = InteractiveReply(type="button_reply", id="select_vehicle:veh-prado")

        result = await ExtractionOrchestrator(llm, LAGOS).extract(_state(interactive=reply, options=two_options))

        assert result.intent == IntentType.SELECT_OPTION
        llm.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_control_text_skips_llm(self):
        llm = _llm()
        result = await ExtractionOrchestrator(llm, LAGOS).extract(_state("talk to agent"))

        assert result.intent == IntentType.REQUEST_AGENT
        llm.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_output_raises(self):
        llm = _llm(content='{"intent": "teleport", "confidence": 0.9}')

        with pytest.raises(ExtractionFailed) as exc_info:
            await ExtractionOrchestrator(llm, LAGOS).extract(_state("beam me up"))

        assert exc_info.value.code == "EXTRACTION_FAILED"

    @pytest.mark.asyncio
    async def test_out_of_range_confidence_raises(self):
        llm = _llm(content='{"intent": "greeting", "confidence": 1.7}')

        with pytest.raises(ExtractionFailed):
            await ExtractionOrchestrator(llm, LAGOS).extract(_state("hi"))

    @pytest.mark.asyncio
    async def test_llm_error_raises(self):
        llm = _llm(side_effect=RuntimeError("provider down"))

        with pytest.raises(ExtractionFailed) as exc_info:
            await ExtractionOrchestrator(llm, LAGOS).extract(_state("I need a car"))

        assert "provider down" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        async def slow(_messages):
            await asyncio.sleep(1)

        llm = MagicMock()
        llm.ainvoke = slow

        with pytest.raises(ExtractionFailed) as exc_info:
            await ExtractionOrchestrator(llm, LAGOS, timeout_seconds=0.01).extract(_state("I need a car"))

        assert "llm:extraction" in exc_info.value.reason
