"""
Redis-backed conversation state store.

One JSON document per conversation, written with a TTL so abandoned
conversations expire on their own. Turns for a conversation id are serialized
by the stream consumer, so no locking happens here.
"""

import logging
from typing import Any

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    stop_after_attempt,
    wait_exponential,
)

from agent.booking.constants import STATE_KEY_PREFIX
from agent.booking.errors import StateLoadFailed, StatePersistFailed
from agent.booking.models import ConversationState
from shared.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def build_state_key(conversation_id: str) -> str:
    return f"{STATE_KEY_PREFIX}{conversation_id}"


class ConversationStateStore:
    """
    Load, save and clear conversation state by conversation id.

    Args:
        redis_client: Async Redis client (defaults to the shared singleton)
        ttl_seconds: Expiry applied on every save
        history_limit: Messages kept on save, most recent last
        max_attempts: Write attempts before StatePersistFailed is raised
        retry_wait_seconds: Base of the exponential backoff between attempts
    """

    def __init__(
        self,
        redis_client: Any = None,
        ttl_seconds: int = 86400,
        history_limit: int = 10,
        max_attempts: int = 3,
        retry_wait_seconds: float = 0.1,
    ):
        self.redis = redis_client if redis_client is not None else get_redis_client()
        self.ttl_seconds = ttl_seconds
        self.history_limit = history_limit
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds

    async def load(self, conversation_id: str) -> ConversationState | None:
        """
        Load persisted state.

        Returns:
            The stored ConversationState, or None if nothing is stored

        Raises:
            StateLoadFailed: If the read fails or the stored document is malformed
        """
        key = build_state_key(conversation_id)
        try:
            raw = await self.redis.get(key)
            if not raw:
                return None
            return ConversationState.model_validate_json(raw)
        except ValidationError as e:
            logger.error(
                f"Stored state is malformed: {e.error_count()} validation errors",
                extra={"conversation_id": conversation_id},
            )
            raise StateLoadFailed(conversation_id, "malformed state document") from e
        except Exception as e:
            logger.error(
                f"Failed to load state: {type(e).__name__}: {e}",
                extra={"conversation_id": conversation_id},
            )
            raise StateLoadFailed(conversation_id, str(e)) from e

    async def save(self, conversation_id: str, state: ConversationState) -> None:
        """
        Persist state, keeping only the most recent ``history_limit`` messages.

        Raises:
            StatePersistFailed: If every write attempt fails
        """
        key = build_state_key(conversation_id)
        trimmed = state.model_copy(update={"messages": state.messages[-self.history_limit:]})
        payload = trimmed.model_dump_json(by_alias=True)

        def log_failed_attempt(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                f"Failed to persist state (attempt {retry_state.attempt_number}/{self.max_attempts}): {error}",
                extra={"conversation_id": conversation_id},
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.retry_wait_seconds, max=2),
                after=log_failed_attempt,
            ):
                with attempt:
                    await self.redis.setex(key, self.ttl_seconds, payload)
        except RetryError as e:
            logger.error(
                f"Giving up persisting state after {self.max_attempts} attempts",
                extra={"conversation_id": conversation_id},
            )
            raise StatePersistFailed(conversation_id, self.max_attempts) from e

    async def clear(self, conversation_id: str) -> None:
        """Delete stored state. Failures are logged, never raised."""
        try:
            await self.redis.delete(build_state_key(conversation_id))
        except Exception as e:
            logger.warning(
                f"Failed to clear state: {type(e).__name__}: {e}",
                extra={"conversation_id": conversation_id},
            )
