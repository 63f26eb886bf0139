"""
Booking conversation engine.

This package contains the per-turn decision logic:
- models / errors / constants: state, results and customer-facing copy
- control_intent: deterministic confirm/reject/cancel/agent phrase matching
- rules: draft patches, derived fields and completeness checks
- router: the pure route decision policy
- search: precondition, query building, ranking and price estimates
- extractor / responder / outbox: LLM-facing steps and delivery batch
- graph: the LangGraph turn pipeline and the BookingAgent entry point

The graph is imported from ``agent.booking.graph`` directly; it pulls in the
LLM and HTTP clients.
"""

from agent.booking.errors import (
    BookingAgentError,
    BookingCreationFailed,
    ExtractionFailed,
    GraphExecutionFailed,
    OperationTimedOut,
    ResponseFailed,
    StateLoadFailed,
    StatePersistFailed,
    VehicleUnavailable,
)
from agent.booking.models import (
    BookingDraft,
    BookingStage,
    ConversationState,
    ExtractionResult,
    IntentType,
    OutboxItem,
    TurnResult,
    VehicleSearchOption,
)

__all__ = [
    # Errors
    "BookingAgentError",
    "BookingCreationFailed",
    "ExtractionFailed",
    "GraphExecutionFailed",
    "OperationTimedOut",
    "ResponseFailed",
    "StateLoadFailed",
    "StatePersistFailed",
    "VehicleUnavailable",
    # Models
    "BookingDraft",
    "BookingStage",
    "ConversationState",
    "ExtractionResult",
    "IntentType",
    "OutboxItem",
    "TurnResult",
    "VehicleSearchOption",
]
