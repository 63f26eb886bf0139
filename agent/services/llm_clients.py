"""
Chat model factories.

Extraction runs on a small, fast model through OpenRouter at temperature 0 so
the same message yields the same structured output. Replies are written by
Claude at a slightly higher temperature for natural phrasing.
"""

from functools import lru_cache

from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI

from shared.config import get_settings


@lru_cache
def get_extraction_llm() -> ChatOpenAI:
    """Get LLM client for structured intent extraction."""
    settings = get_settings()

    return ChatOpenAI(
        model=settings.EXTRACTION_MODEL,
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        temperature=0,
        request_timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
        max_retries=1,
        default_headers={"X-Title": f"{settings.BRAND_NAME} Booking Agent"},
    )


@lru_cache
def get_response_llm() -> ChatAnthropic:
    """Get LLM client for customer-facing reply generation."""
    settings = get_settings()

    return ChatAnthropic(
        model=settings.RESPONSE_MODEL,
        api_key=settings.ANTHROPIC_API_KEY,
        temperature=0.3,
        max_tokens=1024,
        timeout=settings.RESPONSE_TIMEOUT_SECONDS,
        max_retries=1,
    )
