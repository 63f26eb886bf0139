"""
Circuit Breaker Pattern Implementation.

Circuit breakers protect the booking agent's external collaborators (the two
LLM providers and the booking backend) so a degraded service fails fast
instead of stalling every conversation turn.

Circuit breaker states:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is down, requests fail fast without calling the service
- HALF_OPEN: Testing if service recovered, limited requests allowed

Usage:
    from shared.circuit_breaker import booking_api_breaker, call_with_breaker

    result = await call_with_breaker(booking_api_breaker, client.search_vehicles, query)
"""

import logging
from datetime import UTC, datetime
from typing import Any, Callable

import pybreaker

logger = logging.getLogger(__name__)


class CircuitBreakerLogger(pybreaker.CircuitBreakerListener):
    """Log circuit breaker state changes and failures."""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        """Log state transitions."""
        if new_state.name == "open":
            logger.warning(
                f"Circuit breaker '{cb.name}' OPENED - "
                f"service appears down, failing fast for {cb.reset_timeout}s"
            )
        elif new_state.name == "half-open":
            logger.info(f"Circuit breaker '{cb.name}' HALF-OPEN - testing if service recovered")
        elif new_state.name == "closed":
            logger.info(f"Circuit breaker '{cb.name}' CLOSED - resuming normal operation")
        else:
            logger.info(
                f"Circuit breaker '{cb.name}' state: {old_state.name} -> {new_state.name}"
            )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        """Log failures that count toward opening the circuit."""
        logger.warning(
            f"Circuit breaker '{cb.name}' recorded failure: {type(exc).__name__}: {exc}"
        )


# Singleton registry of circuit breakers
_breakers: dict[str, pybreaker.CircuitBreaker] = {}
_logger_instance = CircuitBreakerLogger()


def get_circuit_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 30,
    exclude: list[type] | None = None,
) -> pybreaker.CircuitBreaker:
    """
    Get or create a circuit breaker for a service.

    Args:
        name: Unique identifier for the circuit breaker
        fail_max: Number of consecutive failures before opening circuit
        reset_timeout: Seconds before attempting recovery (half-open)
        exclude: Exception types that should NOT count as failures

    Returns:
        CircuitBreaker instance (singleton per name)
    """
    if name not in _breakers:
        _breakers[name] = pybreaker.CircuitBreaker(
            name=name,
            fail_max=fail_max,
            reset_timeout=reset_timeout,
            exclude=exclude or [],
            listeners=[_logger_instance],
        )
        logger.info(
            f"Created circuit breaker '{name}' | "
            f"fail_max={fail_max} | reset_timeout={reset_timeout}s"
        )
    return _breakers[name]


# =============================================================================
# PRE-CONFIGURED CIRCUIT BREAKERS FOR EXTERNAL SERVICES
# =============================================================================

# Extraction LLM (OpenRouter) - consulted on most free-text turns
extraction_llm_breaker = get_circuit_breaker(
    name="extraction_llm",
    fail_max=5,
    reset_timeout=30,
)

# Reply generation LLM (Anthropic)
response_llm_breaker = get_circuit_breaker(
    name="response_llm",
    fail_max=5,
    reset_timeout=30,
)

# Booking backend - catalog search, VAT rates and booking creation.
# A vehicle being unavailable is a business answer, not an outage.
booking_api_breaker = get_circuit_breaker(
    name="booking_api",
    fail_max=5,
    reset_timeout=15,
)


def _allow_request(breaker: pybreaker.CircuitBreaker) -> bool:
    """Return False while OPEN; move to HALF_OPEN once reset_timeout has elapsed."""
    if breaker.current_state != pybreaker.STATE_OPEN:
        return True

    opened_at = breaker._state_storage.opened_at
    if opened_at is None:
        return False

    now = datetime.now(UTC)
    if opened_at.tzinfo is None:
        now = now.replace(tzinfo=None)

    if (now - opened_at).total_seconds() >= breaker.reset_timeout:
        breaker.half_open()
        return True
    return False


async def call_with_breaker(
    breaker: pybreaker.CircuitBreaker,
    func: Callable,
    *args,
    **kwargs,
) -> Any:
    """
    Call async function with circuit breaker protection (native asyncio).

    pybreaker's call_async() requires Tornado, so failures are tracked here:
    the circuit fails fast while OPEN, counts system errors, opens once
    ``fail_max`` consecutive failures are reached and closes again after a
    successful call in HALF_OPEN.

    Relies on the pybreaker 1.x storage internals (``_state_storage.opened_at``,
    ``increment_counter()``, ``reset_counter()``); the dependency is pinned
    below 2.0 accordingly.

    Raises:
        pybreaker.CircuitBreakerError: If circuit is open
        Exception: Any exception raised by func
    """
    if not _allow_request(breaker):
        logger.warning(f"Circuit breaker '{breaker.name}' is OPEN, failing fast")
        raise pybreaker.CircuitBreakerError(breaker)

    try:
        result = await func(*args, **kwargs)
    except Exception as e:
        if breaker.is_system_error(e):
            _logger_instance.failure(breaker, e)
            if breaker.current_state == pybreaker.STATE_HALF_OPEN:
                breaker.open()
            else:
                breaker._state_storage.increment_counter()
                if breaker.fail_counter >= breaker.fail_max:
                    breaker.open()
        raise

    if breaker.current_state == pybreaker.STATE_HALF_OPEN:
        breaker.close()
    elif breaker.fail_counter:
        breaker._state_storage.reset_counter()

    return result


def get_breaker_status() -> dict[str, dict[str, Any]]:
    """
    Get status of all circuit breakers for monitoring/health checks.

    Returns:
        Dict of {name: {state, fail_counter, reset_timeout}}
    """
    return {
        name: {
            "state": breaker.current_state,
            "fail_counter": breaker.fail_counter,
            "reset_timeout": breaker.reset_timeout,
        }
        for name, breaker in _breakers.items()
    }
