"""
Extraction orchestrator.

Turns one inbound interaction into an ExtractionResult:

1. Structured interactions (button taps, list rows) are resolved from a fixed
   button map or against the last-shown vehicle options. No LLM call.
2. Free text is first checked against the control-intent phrases: agent and
   cancel requests in any stage, confirm/reject only while confirming.
3. Everything else goes to the extraction LLM, bounded by a timeout and the
   extraction circuit breaker. The JSON reply must validate against
   ExtractionResult; malformed output raises ExtractionFailed.
"""

import json
import logging
from zoneinfo import ZoneInfo

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from agent.booking.concurrency import run_with_timeout
from agent.booking.constants import (
    BUTTON_AGENT,
    BUTTON_CANCEL,
    BUTTON_CONFIRM,
    BUTTON_DAY,
    BUTTON_FULL_DAY,
    BUTTON_MORE_OPTIONS,
    BUTTON_NIGHT,
    BUTTON_NO,
    BUTTON_REJECT,
    BUTTON_RETRY_BOOKING,
    BUTTON_SHOW_OTHERS,
    BUTTON_YES,
    DETERMINISTIC_CONFIDENCE,
    SELECT_VEHICLE_BUTTON_PREFIX,
    SHOW_ALTERNATIVES_HINT,
    UNRESOLVED_INTERACTIVE_CONFIDENCE,
    VEHICLE_LIST_ROW_PREFIX,
)
from agent.booking.control_intent import (
    is_affirmative,
    is_agent_request,
    is_cancel,
    is_negative,
    normalize_control_text,
)
from agent.booking.errors import ExtractionFailed
from agent.booking.models import (
    BookingDraft,
    BookingStage,
    BookingType,
    ConversationState,
    ExtractionResult,
    IntentType,
    InteractiveReply,
    VehicleSearchOption,
)
from agent.booking.prompts import build_extractor_system_prompt
from shared.circuit_breaker import call_with_breaker, extraction_llm_breaker

logger = logging.getLogger(__name__)

EXTRACTION_OPERATION = "llm:extraction"


def _result(intent: IntentType, **kwargs) -> ExtractionResult:
    return ExtractionResult(intent=intent, confidence=DETERMINISTIC_CONFIDENCE, **kwargs)


BUTTON_RESULTS: dict[str, ExtractionResult] = {
    BUTTON_CONFIRM: _result(IntentType.CONFIRM),
    BUTTON_RETRY_BOOKING: _result(IntentType.CONFIRM),
    BUTTON_YES: _result(IntentType.CONFIRM),
    BUTTON_NO: _result(IntentType.REJECT),
    BUTTON_REJECT: _result(IntentType.REJECT),
    BUTTON_DAY: _result(IntentType.PROVIDE_INFO, draft_patch=BookingDraft(booking_type=BookingType.DAY)),
    BUTTON_NIGHT: _result(IntentType.PROVIDE_INFO, draft_patch=BookingDraft(booking_type=BookingType.NIGHT)),
    BUTTON_FULL_DAY: _result(
        IntentType.PROVIDE_INFO, draft_patch=BookingDraft(booking_type=BookingType.FULL_DAY)
    ),
    BUTTON_SHOW_OTHERS: _result(IntentType.REJECT, preference_hint=SHOW_ALTERNATIVES_HINT),
    BUTTON_MORE_OPTIONS: _result(IntentType.REJECT, preference_hint=SHOW_ALTERNATIVES_HINT),
    BUTTON_CANCEL: _result(IntentType.CANCEL),
    BUTTON_AGENT: _result(IntentType.REQUEST_AGENT),
}


def _unresolved_interactive() -> ExtractionResult:
    return ExtractionResult(intent=IntentType.UNKNOWN, confidence=UNRESOLVED_INTERACTIVE_CONFIDENCE)


def _selection_result(vehicle: VehicleSearchOption) -> ExtractionResult:
    return _result(
        IntentType.SELECT_OPTION,
        draft_patch=BookingDraft(make=vehicle.make, model=vehicle.model, color=vehicle.color),
        selection_hint=vehicle.id,
    )


def _find_option(vehicle_id: str, options: list[VehicleSearchOption]) -> VehicleSearchOption | None:
    return next((option for option in options if option.id == vehicle_id), None)


def resolve_interactive_reply(
    interactive: InteractiveReply,
    last_shown_options: list[VehicleSearchOption],
) -> ExtractionResult:
    """Resolve a button tap or list row selection without calling the LLM."""
    reply_id = interactive.id.strip()

    if interactive.type == "button_reply":
        if reply_id.startswith(SELECT_VEHICLE_BUTTON_PREFIX):
            vehicle = _find_option(reply_id.removeprefix(SELECT_VEHICLE_BUTTON_PREFIX), last_shown_options)
            if vehicle is not None:
                return _selection_result(vehicle)

        # Template card buttons send the bare vehicle id as the payload
        vehicle = _find_option(reply_id, last_shown_options)
        if vehicle is not None:
            logger.info(f"Vehicle selected via raw id button: {vehicle.make} {vehicle.model}")
            return _selection_result(vehicle)

        button_result = BUTTON_RESULTS.get(reply_id)
        if button_result is not None:
            return button_result.model_copy(deep=True)

    if interactive.type == "list_reply" and reply_id.startswith(VEHICLE_LIST_ROW_PREFIX):
        vehicle = _find_option(reply_id.removeprefix(VEHICLE_LIST_ROW_PREFIX), last_shown_options)
        if vehicle is not None:
            return _selection_result(vehicle)

    logger.info(f"Unresolved interactive reply: type={interactive.type} id={reply_id}")
    return _unresolved_interactive()


def resolve_control_text(message: str, stage: BookingStage) -> ExtractionResult | None:
    """
    Deterministic classification of short control phrases.

    Returns None when the message needs the LLM.
    """
    if not normalize_control_text(message):
        return None

    if is_agent_request(message):
        return _result(IntentType.REQUEST_AGENT)
    if is_cancel(message):
        return _result(IntentType.CANCEL)

    if stage == BookingStage.CONFIRMING:
        if is_affirmative(message):
            return _result(IntentType.CONFIRM)
        if is_negative(message):
            return _result(IntentType.REJECT)

    return None


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict) and first.get("type") == "text":
            return str(first.get("text") or "")
        if isinstance(first, str):
            return first
    return ""


def parse_extraction_response(response_text: str) -> ExtractionResult:
    """
    Parse the LLM's JSON reply into an ExtractionResult.

    Raises:
        json.JSONDecodeError: If the reply is not JSON
        pydantic.ValidationError: If the JSON does not match the schema
    """
    # Models sometimes wrap JSON in markdown code fences
    cleaned = response_text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    return ExtractionResult.model_validate(json.loads(cleaned))


class ExtractionOrchestrator:
    """Produces one ExtractionResult per inbound message."""

    def __init__(
        self,
        llm: BaseChatModel,
        timezone: ZoneInfo,
        timeout_seconds: float = 10.0,
    ):
        self.llm = llm
        self.timezone = timezone
        self.timeout_seconds = timeout_seconds

    async def extract(self, state: ConversationState) -> ExtractionResult:
        """
        Extract intent, draft patch and hints for the current inbound message.

        Raises:
            ExtractionFailed: If the LLM call fails, times out, or returns
                output that does not validate
        """
        if state.inbound_interactive is not None:
            return resolve_interactive_reply(state.inbound_interactive, state.last_shown_options)

        control_result = resolve_control_text(state.inbound_message, state.stage)
        if control_result is not None:
            logger.info(
                f"Deterministic control intent: {control_result.intent.value}",
                extra={"conversation_id": state.conversation_id},
            )
            return control_result

        return await self._extract_with_llm(state)

    async def _extract_with_llm(self, state: ConversationState) -> ExtractionResult:
        messages = [
            SystemMessage(content=build_extractor_system_prompt(state, self.timezone)),
            HumanMessage(content=state.inbound_message),
        ]

        try:
            response = await run_with_timeout(
                call_with_breaker(extraction_llm_breaker, self.llm.ainvoke, messages),
                EXTRACTION_OPERATION,
                self.timeout_seconds,
            )
            result = parse_extraction_response(_content_text(response.content))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(
                f"Extraction output did not validate: {e}",
                extra={"conversation_id": state.conversation_id},
            )
            raise ExtractionFailed(state.conversation_id, f"malformed output: {type(e).__name__}") from e
        except Exception as e:
            logger.error(
                f"Extraction call failed: {type(e).__name__}: {e}",
                extra={"conversation_id": state.conversation_id},
                exc_info=True,
            )
            raise ExtractionFailed(state.conversation_id, str(e)) from e

        logger.info(
            f"Intent extracted | intent={result.intent.value} | confidence={result.confidence:.2f} "
            f"| fields={list(result.draft_patch.provided_fields().keys())}",
            extra={"conversation_id": state.conversation_id, "intent": result.intent.value},
        )
        return result
