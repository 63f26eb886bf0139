"""
Data models for the booking conversation engine.

This module contains:
- Enums: BookingStage, IntentType, BookingType, VehicleType, NodeName,
  OutboundMode, AlternativeReason
- Pydantic models for everything that is persisted or crosses a service
  boundary: BookingDraft, UserPreferences, ExtractionResult,
  VehicleSearchOption, ConversationState, AgentResponse, OutboxItem, ...
- Dataclasses for transient decision values: SearchPrecondition,
  VehicleSearchResult, RouteDecision, TurnResult
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from agent.booking.rules import DraftPatch


class BookingStage(str, Enum):
    """Stage of the booking dialog. ``completed`` and ``cancelled`` are terminal."""

    GREETING = "greeting"
    COLLECTING = "collecting"
    SEARCHING = "searching"
    PRESENTING_OPTIONS = "presenting_options"
    AWAITING_SELECTION = "awaiting_selection"
    CONFIRMING = "confirming"
    CREATING_HOLD = "creating_hold"
    AWAITING_PAYMENT = "awaiting_payment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STAGES = frozenset({BookingStage.COMPLETED, BookingStage.CANCELLED})

# Stages after which a fresh greeting starts a new booking
STALE_SESSION_STAGES = frozenset({
    BookingStage.COMPLETED,
    BookingStage.CANCELLED,
    BookingStage.AWAITING_PAYMENT,
})


class IntentType(str, Enum):
    """Closed set of intents the extraction step can report."""

    GREETING = "greeting"
    PROVIDE_INFO = "provide_info"
    UPDATE_INFO = "update_info"
    SELECT_OPTION = "select_option"
    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"
    RESET = "reset"
    NEW_BOOKING = "new_booking"
    ASK_QUESTION = "ask_question"
    REQUEST_AGENT = "request_agent"
    UNKNOWN = "unknown"


class BookingType(str, Enum):
    DAY = "DAY"
    NIGHT = "NIGHT"
    FULL_DAY = "FULL_DAY"
    AIRPORT_PICKUP = "AIRPORT_PICKUP"


class VehicleType(str, Enum):
    SEDAN = "SEDAN"
    SUV = "SUV"
    LUXURY_SEDAN = "LUXURY_SEDAN"
    LUXURY_SUV = "LUXURY_SUV"
    VAN = "VAN"
    CROSSOVER = "CROSSOVER"


class NodeName(str, Enum):
    """Nodes of the turn graph."""

    EXTRACT = "extract"
    MERGE = "merge"
    ROUTE = "route"
    SEARCH = "search"
    CREATE_BOOKING = "create_booking"
    RESPOND = "respond"
    HANDOFF = "handoff"


class OutboundMode(str, Enum):
    FREE_FORM = "FREE_FORM"
    TEMPLATE = "TEMPLATE"


class AlternativeReason(str, Enum):
    """Why a non-exact candidate is offered, in descending priority."""

    SAME_MODEL_DIFFERENT_COLOR = "SAME_MODEL_DIFFERENT_COLOR"
    SAME_CLASS_DIFFERENT_MODEL = "SAME_CLASS_DIFFERENT_MODEL"
    SIMILAR_PRICE_RANGE = "SIMILAR_PRICE_RANGE"
    CLOSEST_AVAILABLE = "CLOSEST_AVAILABLE"


class CamelModel(BaseModel):
    """Base model accepting both snake_case names and camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Booking draft and preferences
# =============================================================================


class BookingDraft(CamelModel):
    """Partially filled trip request accumulated across turns."""

    booking_type: BookingType | None = None
    pickup_date: str | None = None
    pickup_time: str | None = None
    dropoff_date: str | None = None
    duration_days: int | None = None
    pickup_location: str | None = None
    dropoff_location: str | None = None
    vehicle_type: VehicleType | None = None
    service_tier: str | None = None
    color: str | None = None
    make: str | None = None
    model: str | None = None
    flight_number: str | None = None
    notes: str | None = None

    def provided_fields(self) -> dict[str, Any]:
        """Fields that carry a value, keyed by field name."""
        return self.model_dump(exclude_none=True)


class UserPreferences(CamelModel):
    price_preference: Literal["budget", "premium"] | None = None
    notes: list[str] = Field(default_factory=list)


# =============================================================================
# Extraction
# =============================================================================


class ExtractionResult(CamelModel):
    """
    Structured interpretation of one inbound message.

    Produced fresh every turn, either deterministically (buttons, control
    phrases) or by the extraction LLM. The same model validates the LLM's
    JSON output, so an out-of-range confidence or an unknown intent, booking
    type or vehicle type is rejected at the boundary.
    """

    intent: IntentType
    draft_patch: BookingDraft = Field(default_factory=BookingDraft)
    selection_hint: str | None = None
    preference_hint: str | None = None
    question: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)


# =============================================================================
# Vehicles
# =============================================================================


class VehicleRates(CamelModel):
    day: float | None = None
    night: float | None = None
    full_day: float | None = None
    airport_pickup: float | None = None


class CatalogVehicle(CamelModel):
    """Vehicle record as returned by the catalog search backend."""

    id: str
    make: str
    model: str
    name: str | None = None
    color: str | None = None
    vehicle_type: str | None = None
    service_tier: str | None = None
    image_url: str | None = None
    day_rate: float | None = None
    night_rate: float | None = None
    full_day_rate: float | None = None
    airport_pickup_rate: float | None = None


class VehicleSearchOption(CamelModel):
    """A vehicle offered to the customer, with the price estimate attached post-ranking."""

    id: str
    make: str
    model: str
    name: str
    color: str | None = None
    vehicle_type: str | None = None
    service_tier: str | None = None
    image_url: str | None = None
    rates: VehicleRates = Field(default_factory=VehicleRates)
    reason: AlternativeReason | None = None
    estimated_subtotal: int | None = None
    estimated_vat_amount: int | None = None
    estimated_total_incl_vat: int | None = None
    estimate_basis: str | None = None


class VehicleSearchQuery(BaseModel):
    """Query sent to the catalog search backend."""

    model_config = ConfigDict(populate_by_name=True)

    page: int = 1
    limit: int
    from_date: str | None = Field(default=None, alias="from")
    to_date: str | None = Field(default=None, alias="to")
    booking_type: BookingType | None = Field(default=None, alias="bookingType")
    pickup_time: str | None = Field(default=None, alias="pickupTime")
    flight_number: str | None = Field(default=None, alias="flightNumber")
    color: str | None = None
    make: str | None = None
    model: str | None = None
    vehicle_type: str | None = Field(default=None, alias="vehicleType")
    service_tier: str | None = Field(default=None, alias="serviceTier")

    def constraint_count(self) -> int:
        """Number of vehicle attributes this query filters on."""
        return sum(
            value is not None
            for value in (self.color, self.make, self.model, self.vehicle_type, self.service_tier)
        )


@dataclass(frozen=True)
class SearchPrecondition:
    """The single field blocking a search, with the prompt to ask the customer."""

    missing_field: str
    prompt: str


@dataclass
class VehicleSearchResult:
    exact_matches: list[VehicleSearchOption] = field(default_factory=list)
    alternatives: list[VehicleSearchOption] = field(default_factory=list)
    precondition: SearchPrecondition | None = None

    def options(self, limit: int) -> list[VehicleSearchOption]:
        return [*self.exact_matches, *self.alternatives][:limit]


# =============================================================================
# Messages, replies and outbox
# =============================================================================


class ConversationMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: str


class InteractiveReply(CamelModel):
    """A structured inbound interaction (button tap or list row selection)."""

    type: Literal["button_reply", "list_reply"]
    id: str
    title: str | None = None


class InteractiveButton(CamelModel):
    id: str
    title: str


class InteractivePayload(CamelModel):
    type: Literal["buttons"] = "buttons"
    buttons: list[InteractiveButton] = Field(default_factory=list)


class VehicleCard(CamelModel):
    vehicle_id: str
    image_url: str | None = None
    caption: str
    button_id: str
    button_title: str


class AgentResponse(CamelModel):
    text: str
    interactive: InteractivePayload | None = None
    vehicle_cards: list[VehicleCard] | None = None


class OutboxItem(CamelModel):
    """One deliverable unit for the messaging transport."""

    conversation_id: str
    dedupe_key: str
    mode: OutboundMode
    text_body: str | None = None
    content_sid: str | None = None
    content_variables: dict[str, str] | None = None
    interactive: InteractivePayload | None = None


# =============================================================================
# Conversation state
# =============================================================================


class ConversationState(CamelModel):
    """
    Per-conversation state, persisted after every turn.

    Doubles as the LangGraph state schema: nodes receive an instance and
    return partial updates keyed by field name.
    """

    conversation_id: str
    customer_id: str | None = None
    customer_phone: str | None = None
    customer_name: str | None = None
    messages: list[ConversationMessage] = Field(default_factory=list)
    inbound_message: str = ""
    inbound_message_id: str = ""
    inbound_interactive: InteractiveReply | None = None
    draft: BookingDraft = Field(default_factory=BookingDraft)
    stage: BookingStage = BookingStage.GREETING
    turn_count: int = 0
    extraction: ExtractionResult | None = None
    available_options: list[VehicleSearchOption] = Field(default_factory=list)
    last_shown_options: list[VehicleSearchOption] = Field(default_factory=list)
    selected_option: VehicleSearchOption | None = None
    hold_id: str | None = None
    hold_expires_at: str | None = None
    booking_id: str | None = None
    payment_link: str | None = None
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    response: AgentResponse | None = None
    outbox_items: list[OutboxItem] = Field(default_factory=list)
    next_node: NodeName | None = None
    error: str | None = None


# =============================================================================
# Decisions and results
# =============================================================================


@dataclass(frozen=True)
class RouteDecision:
    """
    Output of the route decision policy.

    ``None`` on an override field means "leave unchanged". Options use an
    explicit empty tuple to mean "clear"; selection uses ``clear_selection``.
    """

    next_node: NodeName
    stage: BookingStage | None = None
    draft: "DraftPatch | None" = None
    preferences: "DraftPatch | None" = None
    selected_option: VehicleSearchOption | None = None
    clear_selection: bool = False
    available_options: tuple[VehicleSearchOption, ...] | None = None
    last_shown_options: tuple[VehicleSearchOption, ...] | None = None


@dataclass
class TurnResult:
    """What one call to the turn orchestrator hands back to its caller."""

    reply: AgentResponse | None
    outbox_items: list[OutboxItem]
    stage: BookingStage
    draft: BookingDraft
    error: str | None = None
