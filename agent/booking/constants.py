"""Constants for the booking conversation engine."""

STATE_KEY_PREFIX = "langgraph:booking-agent:state:"

# Fields the router requires before it will search
REQUIRED_SEARCH_FIELDS = (
    "pickup_date",
    "booking_type",
    "pickup_location",
    "pickup_time",
    "dropoff_date",
    "dropoff_location",
)

# Draft fields whose change invalidates previously shown options
DRAFT_KEY_FIELDS = (
    "pickup_date",
    "dropoff_date",
    "booking_type",
    "pickup_location",
    "vehicle_type",
)

NIGHT_PICKUP_TIME = "23:00"

# Inbound button identifiers
BUTTON_CONFIRM = "confirm"
BUTTON_YES = "yes"
BUTTON_NO = "no"
BUTTON_REJECT = "reject"
BUTTON_SHOW_OTHERS = "show_others"
BUTTON_MORE_OPTIONS = "more_options"
BUTTON_CANCEL = "cancel"
BUTTON_AGENT = "agent"
BUTTON_DAY = "day"
BUTTON_NIGHT = "night"
BUTTON_FULL_DAY = "fullday"
BUTTON_RETRY_BOOKING = "retry_booking"

SELECT_VEHICLE_BUTTON_PREFIX = "select_vehicle:"
VEHICLE_LIST_ROW_PREFIX = "vehicle:"

SHOW_ALTERNATIVES_HINT = "show_alternatives"

# Extraction / reply context sizes
RECENT_MESSAGES_FOR_LLM = 6
MAX_CONTEXT_FIELD_CHARS = 300
MAX_DRAFT_CONTEXT_CHARS = 600
MAX_OPTION_CONTEXT_ITEMS = 5
MAX_BUTTON_TITLE_CHARS = 20

# Confidence of deterministic extraction paths
DETERMINISTIC_CONFIDENCE = 1.0
UNRESOLVED_INTERACTIVE_CONFIDENCE = 0.5

# Customer-facing copy
GENERIC_FAILURE_TEXT = (
    "I'm having trouble right now. Please try again or type AGENT to speak with someone."
)
NO_RESULTS_TEXT = (
    "No vehicles matching your criteria are available for the selected date. "
    "Would you like to try a different date, vehicle type, or booking type?"
)
SEARCH_FAILED_TEXT = (
    "I couldn't check vehicle availability just now. Please try again in a moment."
)
BOOKING_FAILED_TEXT = (
    "I couldn't create your booking just now. Please try again or type AGENT to speak with someone."
)
NO_SELECTION_TEXT = "No vehicle selected for booking"
MISSING_PICKUP_TIME_TEXT = "Missing pickup time - please specify when you need the vehicle"
VEHICLE_UNAVAILABLE_WITH_OPTIONS_TEXT = (
    "That vehicle is no longer available for your selected date and time. "
    "Here are updated available options."
)
VEHICLE_UNAVAILABLE_NO_OPTIONS_TEXT = (
    "That vehicle is no longer available for your selected date and time. "
    "Please adjust your date, booking type, or vehicle preference."
)
RESET_TEXT = "Done! I've cleared your booking details. Ready to start fresh! What do you need?"
OPTIONS_INTRO_TEXT = "Here are your options! Tap Select on the one you'd like to book."
CONFIRM_ERROR_SUFFIX = "Would you like me to try again or connect you to an agent?"


def handoff_text(brand_name: str) -> str:
    return (
        f"A {brand_name} agent will join this chat shortly. "
        "Please share your booking reference if available."
    )
