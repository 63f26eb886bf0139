"""
Redis client singleton for conversation state, stream messaging and outbox dedupe.

This module provides a singleton Redis client configured for production reliability
with connection pooling, retry logic, and health checks, plus the Redis Streams
helpers used by the agent worker:

- incoming_messages_stream: inbound channel events waiting for a conversation turn
- outgoing_messages_stream: outbox items handed to the messaging transport
- dead_letter_stream: inbound events whose turn failed
"""

import json
import logging
from datetime import datetime, UTC
from functools import lru_cache
from typing import Any

import redis.asyncio as redis
from redis import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError as RedisResponseError

from shared.config import get_settings

# Redis Streams constants
INCOMING_STREAM = "incoming_messages_stream"
OUTGOING_STREAM = "outgoing_messages_stream"
CONSUMER_GROUP = "booking_agent_workers"
DEAD_LETTER_STREAM = "dead_letter_stream"
STREAM_MAX_LEN = 10000  # Approximate trim to keep stream bounded

OUTBOX_DEDUPE_KEY_PREFIX = "outbox:dedupe:"

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> "redis.Redis[str]":
    """
    Get cached Redis client instance with production-ready configuration.

    Redis Key Patterns:
        - Conversation state: langgraph:booking-agent:state:{conversation_id}
        - Outbox dedupe claims: outbox:dedupe:{dedupe_key}
        - TTL: 24 hours (86400 seconds) for both

    Returns:
        Redis async client configured with connection pool and retry logic
    """
    settings = get_settings()

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            max_connections=20,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        logger.info(
            f"Redis client initialized: {settings.REDIS_URL} "
            f"(max_connections=20, retry_on_timeout=True, health_check_interval=30s)"
        )
        return client

    except RedisConnectionError as e:
        logger.error(
            f"Redis connection failed: {e}. Conversation state unavailable.",
            exc_info=True
        )
        raise


async def close_redis_client() -> None:
    """Close Redis connection gracefully during shutdown."""
    try:
        client = get_redis_client()
        await client.aclose()
        logger.info("Redis client closed")
    except RedisConnectionError as e:
        logger.warning(f"Error closing Redis client: {e}")


# =============================================================================
# Redis Streams Functions (Persistent Message Delivery)
# =============================================================================


async def add_to_stream(
    stream: str,
    message: dict[str, Any],
    max_len: int = STREAM_MAX_LEN,
) -> str:
    """
    Add a message to a Redis Stream with automatic trimming.

    Args:
        stream: Name of the Redis Stream
        message: Message dict to add (will be JSON-serialized)
        max_len: Maximum stream length (approximate trimming for performance)

    Returns:
        Stream message ID (e.g., "1234567890123-0")
    """
    client = get_redis_client()

    try:
        json_message = json.dumps(message)

        message_id = await client.xadd(
            stream,
            {"data": json_message},
            maxlen=max_len,
            approximate=True,
        )

        logger.debug(
            f"Message added to stream '{stream}': id={message_id}, "
            f"data={json_message[:100]}..."
        )
        return message_id

    except RedisConnectionError as e:
        logger.error(f"Redis connection error adding to stream '{stream}': {e}")
        raise


async def create_consumer_group(
    stream: str,
    group: str,
    start_id: str = "0",
) -> bool:
    """
    Create a consumer group for a Redis Stream.

    Returns:
        True if group was created, False if it already exists
    """
    client = get_redis_client()

    try:
        await client.xgroup_create(
            stream,
            group,
            id=start_id,
            mkstream=True,
        )
        logger.info(f"Consumer group '{group}' created for stream '{stream}'")
        return True

    except RedisResponseError as e:
        if "BUSYGROUP" in str(e):
            logger.debug(f"Consumer group '{group}' already exists for stream '{stream}'")
            return False
        logger.error(f"Error creating consumer group '{group}': {e}")
        raise


async def read_from_stream(
    stream: str,
    group: str,
    consumer: str,
    count: int = 1,
    block_ms: int = 5000,
) -> list[tuple[str, dict[str, Any]]]:
    """
    Read messages from a Redis Stream using consumer group.

    Messages are claimed by this consumer until acknowledged (XACK).

    Returns:
        List of tuples: [(message_id, message_data), ...]
        Empty list if no messages available
    """
    client = get_redis_client()

    try:
        messages = await client.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={stream: ">"},
            count=count,
            block=block_ms,
        )
    except RedisResponseError as e:
        if "NOGROUP" in str(e):
            logger.warning(f"Consumer group '{group}' doesn't exist for stream '{stream}'")
            return []
        raise

    result: list[tuple[str, dict[str, Any]]] = []

    for _stream_name, stream_messages in messages or []:
        for msg_id, msg_data in stream_messages:
            raw_data = msg_data.get("data", "{}")
            try:
                parsed_data = json.loads(raw_data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON in message {msg_id}: {raw_data[:100]}")
                parsed_data = {"_raw": raw_data, "_parse_error": True}

            result.append((msg_id, parsed_data))

    if result:
        logger.debug(
            f"Read {len(result)} messages from stream '{stream}' (consumer={consumer})"
        )

    return result


async def acknowledge_message(
    stream: str,
    group: str,
    message_id: str,
) -> int:
    """
    Acknowledge successful message processing (XACK).

    Returns:
        Number of messages acknowledged (usually 1, 0 if already acked)
    """
    client = get_redis_client()

    ack_count = await client.xack(stream, group, message_id)

    if ack_count > 0:
        logger.debug(f"Acknowledged message {message_id} in stream '{stream}'")
    else:
        logger.warning(f"Message {message_id} was already acknowledged or doesn't exist")

    return ack_count


async def move_to_dead_letter(
    source_stream: str,
    group: str,
    message_id: str,
    message_data: dict[str, Any],
    error: str,
) -> str:
    """
    Move a failed message to the dead letter stream for later inspection/retry.

    Returns:
        Dead letter message ID
    """
    client = get_redis_client()

    dlq_message = {
        "original_stream": source_stream,
        "original_id": message_id,
        "data": json.dumps(message_data),
        "error": str(error)[:1000],
        "failed_at": datetime.now(UTC).isoformat(),
        "consumer_group": group,
    }

    dlq_id = await client.xadd(
        DEAD_LETTER_STREAM,
        dlq_message,
        maxlen=STREAM_MAX_LEN,
        approximate=True,
    )

    # Remove from pending once preserved
    await client.xack(source_stream, group, message_id)

    logger.warning(
        f"Message {message_id} moved to dead letter queue: {error[:100]}... "
        f"(dlq_id={dlq_id})"
    )

    return dlq_id


# =============================================================================
# Outbox Dedupe
# =============================================================================


async def claim_dedupe_key(dedupe_key: str, ttl_seconds: int) -> bool:
    """
    Claim an outbox dedupe key (SET NX EX).

    Returns:
        True the first time a key is claimed, False if it was already claimed
        (the item was handed to the transport by an earlier delivery).
    """
    client = get_redis_client()
    claimed = await client.set(
        f"{OUTBOX_DEDUPE_KEY_PREFIX}{dedupe_key}",
        "1",
        nx=True,
        ex=ttl_seconds,
    )
    return bool(claimed)
