"""
Exceptions raised by the booking conversation engine.

Every exception carries a stable ``code`` so callers (the stream worker,
monitoring) can classify failures without parsing messages. Messages are for
logs only; customer-facing text never includes them.
"""


class BookingAgentError(Exception):
    """Base exception for booking agent errors."""

    code = "BOOKING_AGENT_ERROR"


class ExtractionFailed(BookingAgentError):
    """Raised when the extraction service fails or returns malformed output."""

    code = "EXTRACTION_FAILED"

    def __init__(self, conversation_id: str, reason: str):
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(f"Extraction failed for conversation {conversation_id}: {reason}")


class ResponseFailed(BookingAgentError):
    """Raised when reply generation fails."""

    code = "RESPONSE_FAILED"

    def __init__(self, conversation_id: str, reason: str):
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(f"Response generation failed for conversation {conversation_id}: {reason}")


class GraphExecutionFailed(BookingAgentError):
    """Raised when a conversation turn cannot be completed."""

    code = "GRAPH_EXECUTION_FAILED"

    def __init__(self, conversation_id: str, node: str, reason: str):
        self.conversation_id = conversation_id
        self.node = node
        self.reason = reason
        super().__init__(f"Turn failed for conversation {conversation_id} in {node}: {reason}")


class StatePersistFailed(BookingAgentError):
    """Raised when conversation state could not be written after all attempts."""

    code = "STATE_PERSIST_FAILED"

    def __init__(self, conversation_id: str, attempts: int):
        self.conversation_id = conversation_id
        self.attempts = attempts
        super().__init__(
            f"Failed to persist state for conversation {conversation_id} after {attempts} attempts"
        )


class StateLoadFailed(BookingAgentError):
    """Raised when persisted state exists but cannot be read or deserialized."""

    code = "STATE_LOAD_FAILED"

    def __init__(self, conversation_id: str, reason: str):
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(f"Failed to load state for conversation {conversation_id}: {reason}")


class OperationTimedOut(BookingAgentError):
    """Raised when an external call exceeds its time limit."""

    code = "TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timed out after {int(timeout_seconds * 1000)}ms during {operation}")


class VehicleUnavailable(BookingAgentError):
    """Raised by booking creation when the selected vehicle can no longer be booked."""

    code = "VEHICLE_UNAVAILABLE"

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} is not available for the requested period")


class BookingCreationFailed(BookingAgentError):
    """Raised when the booking backend rejects or fails a booking request."""

    code = "BOOKING_CREATION_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Booking creation failed: {reason}")
