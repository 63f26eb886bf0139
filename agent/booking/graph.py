"""
LangGraph StateGraph for one booking conversation turn.

The graph is a fixed pipeline with a single branching point:

    extract → merge → route ─┬→ search ─────────┬→ respond → END
                             ├→ create_booking ─┘
                             ├→ respond → END
                             └→ handoff → END

State is a ConversationState; nodes return partial updates keyed by field
name. The graph runs without a checkpointer: the BookingAgent loads state
before the run and persists it once the turn completes.
"""

import logging
from typing import Any
from zoneinfo import ZoneInfo

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from agent.booking.booking_input import build_booking_input, build_guest_identity
from agent.booking.constants import (
    BOOKING_FAILED_TEXT,
    GENERIC_FAILURE_TEXT,
    MISSING_PICKUP_TIME_TEXT,
    NO_RESULTS_TEXT,
    NO_SELECTION_TEXT,
    SEARCH_FAILED_TEXT,
    VEHICLE_UNAVAILABLE_NO_OPTIONS_TEXT,
    VEHICLE_UNAVAILABLE_WITH_OPTIONS_TEXT,
    handoff_text,
)
from agent.booking.errors import (
    BookingAgentError,
    ExtractionFailed,
    GraphExecutionFailed,
    OperationTimedOut,
    ResponseFailed,
    VehicleUnavailable,
)
from agent.booking.extractor import ExtractionOrchestrator
from agent.booking.interfaces import BookingCreator
from agent.booking.models import (
    AgentResponse,
    BookingStage,
    ConversationState,
    ExtractionResult,
    InteractiveReply,
    IntentType,
    NodeName,
    OutboundMode,
    OutboxItem,
    TurnResult,
    VehicleSearchOption,
)
from agent.booking.outbox import build_dedupe_key, build_outbox_items
from agent.booking.responder import ReplyGenerator
from agent.booking.router import decision_to_state_update, resolve_route_decision
from agent.booking.rules import (
    Merge,
    apply_derived_fields,
    apply_patch,
    get_missing_required_fields,
    has_draft_changed,
    merge_preference_hint,
    should_apply_draft_patch,
)
from agent.booking.search.query_builder import VehicleSearchQueryBuilder
from agent.booking.search.ranker import VehicleAlternativeRanker
from agent.booking.search.service import VehicleSearchService
from agent.services.booking_api_client import BookingApiClient
from agent.services.llm_clients import get_extraction_llm, get_response_llm
from agent.state.helpers import add_message, create_initial_state, merge_with_existing
from agent.state.store import ConversationStateStore
from shared.config import get_settings

logger = logging.getLogger(__name__)


def create_booking_graph(
    extractor: ExtractionOrchestrator,
    search_service: VehicleSearchService,
    booking_creator: BookingCreator,
    responder: ReplyGenerator,
    timezone: ZoneInfo,
    brand_name: str,
    guest_email_domain: str,
    vehicle_card_content_sid: str,
    checkout_link_content_sid: str,
    max_presented_options: int = 5,
) -> CompiledStateGraph:
    """
    Create and compile the booking turn StateGraph.

    Args:
        extractor: Turns the inbound message into an ExtractionResult
        search_service: Exact + alternative vehicle search
        booking_creator: Creates the guest booking and checkout link
        responder: Writes the customer-facing reply
        timezone: Business timezone for booking dates
        brand_name: Brand used in the handoff message
        guest_email_domain: Domain for synthetic guest emails
        vehicle_card_content_sid: Messaging template for vehicle cards
        checkout_link_content_sid: Messaging template for checkout links
        max_presented_options: Options kept after a search

    Returns:
        Compiled StateGraph ready for ainvoke
    """

    async def extract(state: ConversationState) -> dict[str, Any]:
        try:
            extraction = await extractor.extract(state)
        except ExtractionFailed as e:
            # The turn continues with an unknown intent; the router falls back on draft completeness
            logger.error(
                f"Extract node failed: {e.reason}",
                extra={"conversation_id": state.conversation_id, "node_name": NodeName.EXTRACT.value},
            )
            return {"extraction": ExtractionResult(intent=IntentType.UNKNOWN, confidence=0.0)}

        logger.info(
            f"Extract node completed: intent={extraction.intent.value} confidence={extraction.confidence}",
            extra={
                "conversation_id": state.conversation_id,
                "node_name": NodeName.EXTRACT.value,
                "intent": extraction.intent.value,
            },
        )
        return {"extraction": extraction}

    def merge(state: ConversationState) -> dict[str, Any]:
        extraction = state.extraction
        if extraction is None:
            return {}

        draft = state.draft
        if should_apply_draft_patch(extraction.intent):
            draft = apply_patch(draft, Merge(extraction.draft_patch.provided_fields()))
        draft = apply_derived_fields(draft, state.inbound_message)

        update: dict[str, Any] = {
            "draft": draft,
            "preferences": merge_preference_hint(state.preferences, extraction.preference_hint),
        }
        if has_draft_changed(state.draft, draft) and state.available_options:
            update["available_options"] = []
            update["last_shown_options"] = []

        logger.debug(
            f"Merge node completed: draft={draft.provided_fields()}",
            extra={"conversation_id": state.conversation_id, "node_name": NodeName.MERGE.value},
        )
        return update

    def route(state: ConversationState) -> dict[str, Any]:
        decision = resolve_route_decision(state)
        logger.info(
            f"Route node decision: next={decision.next_node.value} "
            f"missing={get_missing_required_fields(state.draft)} "
            f"options={len(state.available_options)} selected={state.selected_option is not None}",
            extra={
                "conversation_id": state.conversation_id,
                "node_name": NodeName.ROUTE.value,
                "stage": state.stage.value,
            },
        )
        return decision_to_state_update(state, decision)

    def select_next_node(state: ConversationState) -> str:
        return (state.next_node or NodeName.RESPOND).value

    async def search(state: ConversationState) -> dict[str, Any]:
        try:
            result = await search_service.search(state.draft)
        except OperationTimedOut:
            raise
        except Exception as e:
            logger.error(
                f"Search node failed: {type(e).__name__}: {e}",
                extra={"conversation_id": state.conversation_id, "node_name": NodeName.SEARCH.value},
                exc_info=True,
            )
            return {
                "stage": BookingStage.COLLECTING,
                "available_options": [],
                "error": SEARCH_FAILED_TEXT,
            }

        if result.precondition is not None:
            logger.warning(
                f"Search precondition not met: {result.precondition.missing_field}",
                extra={"conversation_id": state.conversation_id, "node_name": NodeName.SEARCH.value},
            )
            return {
                "stage": BookingStage.COLLECTING,
                "available_options": [],
                "error": result.precondition.prompt,
            }

        options = result.options(max_presented_options)
        logger.info(
            f"Search node completed: exact={len(result.exact_matches)} "
            f"alternatives={len(result.alternatives)} presented={len(options)}",
            extra={"conversation_id": state.conversation_id, "node_name": NodeName.SEARCH.value},
        )
        return {
            "available_options": options,
            "last_shown_options": options,
            "stage": BookingStage.PRESENTING_OPTIONS if options else BookingStage.COLLECTING,
            "error": None if options else NO_RESULTS_TEXT,
        }

    async def fetch_fresh_options(
        state: ConversationState,
        excluded_id: str,
    ) -> list[VehicleSearchOption]:
        try:
            result = await search_service.search(state.draft, exclude_ids={excluded_id})
        except Exception as e:
            logger.warning(
                f"Failed to fetch fresh options after booking unavailability: {e}",
                extra={"conversation_id": state.conversation_id},
            )
            return []
        if result.precondition is not None:
            return []
        return result.options(max_presented_options)

    async def create_booking(state: ConversationState) -> dict[str, Any]:
        selected = state.selected_option
        log_extra = {"conversation_id": state.conversation_id, "node_name": NodeName.CREATE_BOOKING.value}

        if selected is None:
            logger.error("Create booking node called without a selected option", extra=log_extra)
            return {"error": NO_SELECTION_TEXT, "stage": BookingStage.CONFIRMING}

        if not state.draft.pickup_time:
            logger.error("Missing pickup time in draft, cannot create booking", extra=log_extra)
            return {"error": MISSING_PICKUP_TIME_TEXT, "stage": BookingStage.COLLECTING}

        if not state.customer_phone:
            logger.error("Missing customer phone, cannot create guest booking", extra=log_extra)
            return {"error": BOOKING_FAILED_TEXT, "stage": BookingStage.CONFIRMING}

        guest = build_guest_identity(state.customer_phone, state.customer_name, guest_email_domain)
        booking_input = build_booking_input(state.draft, selected, guest, timezone)
        logger.info(
            f"Creating booking: car_id={booking_input.car_id} start={booking_input.start_date.isoformat()} "
            f"end={booking_input.end_date.isoformat()} type={booking_input.booking_type.value}",
            extra=log_extra,
        )

        try:
            confirmation = await booking_creator.create_booking(booking_input)
        except VehicleUnavailable:
            logger.warning(f"Selected vehicle {selected.id} is no longer available", extra=log_extra)
            fresh_options = await fetch_fresh_options(state, selected.id)
            if fresh_options:
                return {
                    "selected_option": None,
                    "available_options": fresh_options,
                    "last_shown_options": fresh_options,
                    "stage": BookingStage.PRESENTING_OPTIONS,
                    "error": VEHICLE_UNAVAILABLE_WITH_OPTIONS_TEXT,
                }
            return {
                "selected_option": None,
                "available_options": [],
                "last_shown_options": [],
                "stage": BookingStage.COLLECTING,
                "error": VEHICLE_UNAVAILABLE_NO_OPTIONS_TEXT,
            }
        except Exception as e:
            logger.error(f"Booking creation failed: {type(e).__name__}: {e}", extra=log_extra, exc_info=True)
            return {"error": BOOKING_FAILED_TEXT, "stage": BookingStage.CONFIRMING}

        logger.info(f"Booking created: booking_id={confirmation.booking_id}", extra=log_extra)
        return {
            "booking_id": confirmation.booking_id,
            "payment_link": confirmation.checkout_url,
            "stage": BookingStage.AWAITING_PAYMENT,
        }

    async def respond(state: ConversationState) -> dict[str, Any]:
        update: dict[str, Any] = {}
        try:
            response = await responder.generate(state)
        except ResponseFailed:
            response = AgentResponse(text=GENERIC_FAILURE_TEXT)
            update["error"] = ResponseFailed.code

        update["response"] = response
        update["outbox_items"] = build_outbox_items(
            state, response, vehicle_card_content_sid, checkout_link_content_sid
        )
        return update

    def handoff(state: ConversationState) -> dict[str, Any]:
        text = handoff_text(brand_name)
        logger.info(
            "Handing conversation off to a human agent",
            extra={"conversation_id": state.conversation_id, "node_name": NodeName.HANDOFF.value},
        )
        return {
            "response": AgentResponse(text=text),
            "outbox_items": [
                OutboxItem(
                    conversation_id=state.conversation_id,
                    dedupe_key=build_dedupe_key(state.conversation_id, state.inbound_message_id, "handoff"),
                    mode=OutboundMode.FREE_FORM,
                    text_body=text,
                )
            ],
            "stage": BookingStage.CANCELLED,
        }

    graph = StateGraph(ConversationState)

    graph.add_node(NodeName.EXTRACT.value, extract)
    graph.add_node(NodeName.MERGE.value, merge)
    graph.add_node(NodeName.ROUTE.value, route)
    graph.add_node(NodeName.SEARCH.value, search)
    graph.add_node(NodeName.CREATE_BOOKING.value, create_booking)
    graph.add_node(NodeName.RESPOND.value, respond)
    graph.add_node(NodeName.HANDOFF.value, handoff)

    graph.set_entry_point(NodeName.EXTRACT.value)
    graph.add_edge(NodeName.EXTRACT.value, NodeName.MERGE.value)
    graph.add_edge(NodeName.MERGE.value, NodeName.ROUTE.value)
    graph.add_conditional_edges(
        NodeName.ROUTE.value,
        select_next_node,
        {
            NodeName.SEARCH.value: NodeName.SEARCH.value,
            NodeName.CREATE_BOOKING.value: NodeName.CREATE_BOOKING.value,
            NodeName.RESPOND.value: NodeName.RESPOND.value,
            NodeName.HANDOFF.value: NodeName.HANDOFF.value,
        },
    )
    graph.add_edge(NodeName.SEARCH.value, NodeName.RESPOND.value)
    graph.add_edge(NodeName.CREATE_BOOKING.value, NodeName.RESPOND.value)
    graph.add_edge(NodeName.RESPOND.value, END)
    graph.add_edge(NodeName.HANDOFF.value, END)

    compiled_graph = graph.compile()
    logger.info("Booking turn graph compiled successfully")
    return compiled_graph


class BookingAgent:
    """
    Turn orchestrator: the single entry point for an inbound event.

    Loads or creates state, runs the turn graph, records the exchange in
    history and persists the final state.
    """

    def __init__(
        self,
        graph: CompiledStateGraph,
        state_store: ConversationStateStore,
        history_limit: int = 10,
    ):
        self.graph = graph
        self.state_store = state_store
        self.history_limit = history_limit

    async def invoke(
        self,
        conversation_id: str,
        message_id: str,
        message: str,
        interactive: InteractiveReply | None = None,
        customer_id: str | None = None,
        customer_phone: str | None = None,
        customer_name: str | None = None,
    ) -> TurnResult:
        """
        Process one inbound message.

        Raises:
            StateLoadFailed: Stored state could not be read or parsed
            OperationTimedOut: The exact vehicle search timed out; nothing is saved
            StatePersistFailed: The final state could not be written
            GraphExecutionFailed: Any other failure while running the turn
        """
        existing = await self.state_store.load(conversation_id)
        if existing is None:
            state = create_initial_state(
                conversation_id, message_id, message, interactive,
                customer_id, customer_phone, customer_name,
            )
        else:
            state = merge_with_existing(
                existing, message_id, message, interactive,
                customer_id, customer_phone, customer_name,
            )

        state = add_message(state, "user", message, self.history_limit)

        try:
            result = await self.graph.ainvoke(dict(state))
        except OperationTimedOut:
            raise
        except BookingAgentError as e:
            logger.error(f"Turn failed: {e}", extra={"conversation_id": conversation_id})
            raise GraphExecutionFailed(conversation_id, "invoke", e.code) from e
        except Exception as e:
            logger.error(
                f"Turn failed: {type(e).__name__}: {e}",
                extra={"conversation_id": conversation_id},
                exc_info=True,
            )
            raise GraphExecutionFailed(conversation_id, "invoke", type(e).__name__) from e

        final_state = ConversationState.model_validate(result)
        if final_state.response is not None:
            final_state = add_message(final_state, "assistant", final_state.response.text, self.history_limit)

        await self.state_store.save(conversation_id, final_state)

        logger.info(
            f"Turn completed: outbox_items={len(final_state.outbox_items)}",
            extra={
                "conversation_id": conversation_id,
                "message_id": message_id,
                "stage": final_state.stage.value,
            },
        )
        return TurnResult(
            reply=final_state.response,
            outbox_items=final_state.outbox_items,
            stage=final_state.stage,
            draft=final_state.draft,
            error=final_state.error,
        )


def build_booking_agent() -> BookingAgent:
    """Wire a BookingAgent from settings, the booking API client and the LLM clients."""
    settings = get_settings()
    timezone = ZoneInfo(settings.TIMEZONE)
    booking_api = BookingApiClient()

    search_service = VehicleSearchService(
        catalog=booking_api,
        rates=booking_api,
        query_builder=VehicleSearchQueryBuilder(max_candidates=settings.MAX_SEARCH_CANDIDATES),
        ranker=VehicleAlternativeRanker(
            max_exact_matches=settings.MAX_EXACT_MATCHES,
            max_alternatives=settings.MAX_ALTERNATIVES,
            price_tolerance=settings.SIMILAR_PRICE_TOLERANCE,
        ),
        search_timeout_seconds=settings.CAR_SEARCH_TIMEOUT_SECONDS,
    )

    graph = create_booking_graph(
        extractor=ExtractionOrchestrator(
            llm=get_extraction_llm(),
            timezone=timezone,
            timeout_seconds=settings.EXTRACTION_TIMEOUT_SECONDS,
        ),
        search_service=search_service,
        booking_creator=booking_api,
        responder=ReplyGenerator(
            llm=get_response_llm(),
            timezone=timezone,
            brand_name=settings.BRAND_NAME,
            timeout_seconds=settings.RESPONSE_TIMEOUT_SECONDS,
        ),
        timezone=timezone,
        brand_name=settings.BRAND_NAME,
        guest_email_domain=settings.GUEST_EMAIL_DOMAIN,
        vehicle_card_content_sid=settings.VEHICLE_CARD_CONTENT_SID,
        checkout_link_content_sid=settings.CHECKOUT_LINK_CONTENT_SID,
        max_presented_options=settings.MAX_PRESENTED_OPTIONS,
    )

    state_store = ConversationStateStore(
        ttl_seconds=settings.STATE_TTL_SECONDS,
        history_limit=settings.HISTORY_LIMIT,
        max_attempts=settings.STATE_SAVE_MAX_ATTEMPTS,
    )
    return BookingAgent(graph, state_store, history_limit=settings.HISTORY_LIMIT)
