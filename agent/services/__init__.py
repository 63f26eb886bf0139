"""
Agent services module.

Clients for the external systems the booking agent talks to.

Services:
- booking_api_client: vehicle catalog search, VAT rates and guest booking creation
- llm_clients: extraction (OpenRouter) and reply generation (Anthropic) chat models
"""

from agent.services.booking_api_client import BookingApiClient
from agent.services.llm_clients import get_extraction_llm, get_response_llm

__all__ = [
    "BookingApiClient",
    "get_extraction_llm",
    "get_response_llm",
]
