"""
Booking Agent Service Entry Point
Background worker consuming inbound messages from Redis Streams
"""
import asyncio
import logging
import os
import signal
from typing import Any

from agent.booking.constants import GENERIC_FAILURE_TEXT
from agent.booking.graph import BookingAgent, build_booking_agent
from agent.booking.models import InteractiveReply, OutboundMode, OutboxItem
from agent.booking.outbox import build_dedupe_key
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.redis_client import (
    CONSUMER_GROUP,
    INCOMING_STREAM,
    OUTGOING_STREAM,
    acknowledge_message,
    add_to_stream,
    claim_dedupe_key,
    close_redis_client,
    create_consumer_group,
    move_to_dead_letter,
    read_from_stream,
)

# Configure structured JSON logging
configure_logging()
logger = logging.getLogger(__name__)

# Global flag for graceful shutdown
shutdown_event = asyncio.Event()


async def publish_outbox_items(items: list[OutboxItem], dedupe_ttl_seconds: int) -> int:
    """
    Hand outbox items to the transport stream in order.

    Items whose dedupe key was already claimed (redelivery of the same
    inbound event) are skipped.

    Returns:
        Number of items published
    """
    published = 0
    for item in items:
        if not await claim_dedupe_key(item.dedupe_key, dedupe_ttl_seconds):
            logger.info(
                f"Skipping already delivered outbox item {item.dedupe_key}",
                extra={"conversation_id": item.conversation_id},
            )
            continue
        await add_to_stream(OUTGOING_STREAM, item.model_dump(mode="json", by_alias=True, exclude_none=True))
        published += 1
    return published


def _parse_interactive(data: dict[str, Any]) -> InteractiveReply | None:
    raw = data.get("interactive")
    if not raw:
        return None
    return InteractiveReply.model_validate(raw)


async def process_stream_message(agent: BookingAgent, data: dict[str, Any]) -> None:
    """
    Run one turn for an inbound stream message and publish its outbox.

    Message format (incoming stream):
        {
            "conversation_id": "conv-123",
            "message_id": "wamid-456",
            "message_text": "I need a car tomorrow",
            "customer_phone": "+2348012345678",
            "customer_name": "Ada",
            "customer_id": null,
            "interactive": {"type": "button_reply", "id": "confirm"}
        }
    """
    if data.get("_parse_error"):
        raise ValueError("Unparseable stream payload")

    conversation_id = data["conversation_id"]
    message_id = data["message_id"]

    result = await agent.invoke(
        conversation_id=conversation_id,
        message_id=message_id,
        message=data.get("message_text") or "",
        interactive=_parse_interactive(data),
        customer_id=data.get("customer_id"),
        customer_phone=data.get("customer_phone"),
        customer_name=data.get("customer_name"),
    )

    settings = get_settings()
    published = await publish_outbox_items(result.outbox_items, settings.OUTBOX_DEDUPE_TTL_SECONDS)

    logger.info(
        f"Turn published: items={published}/{len(result.outbox_items)} stage={result.stage.value}",
        extra={"conversation_id": conversation_id, "message_id": message_id},
    )


async def send_failure_notice(data: dict[str, Any]) -> None:
    """Tell the customer the turn failed. Best effort; the original message goes to the DLQ."""
    conversation_id = data.get("conversation_id")
    message_id = data.get("message_id")
    if not conversation_id or not message_id:
        return

    notice = OutboxItem(
        conversation_id=conversation_id,
        dedupe_key=build_dedupe_key(conversation_id, message_id, "failure"),
        mode=OutboundMode.FREE_FORM,
        text_body=GENERIC_FAILURE_TEXT,
    )
    try:
        await publish_outbox_items([notice], get_settings().OUTBOX_DEDUPE_TTL_SECONDS)
    except Exception as e:
        logger.error(
            f"Failed to send failure notice: {e}",
            extra={"conversation_id": conversation_id},
        )


async def consume_incoming_messages(agent: BookingAgent) -> None:
    """
    Consume the incoming stream and process each message as one turn.

    Messages are acknowledged after their outbox is published; failures are
    moved to the dead letter stream. Turns for the same conversation are
    processed in stream order by this consumer.
    """
    consumer_name = f"booking-agent-{os.getpid()}"

    logger.info(
        f"Initializing Redis Streams consumer | stream={INCOMING_STREAM} | "
        f"group={CONSUMER_GROUP} | consumer={consumer_name}"
    )
    await create_consumer_group(INCOMING_STREAM, CONSUMER_GROUP)

    while not shutdown_event.is_set():
        try:
            messages = await read_from_stream(
                INCOMING_STREAM,
                CONSUMER_GROUP,
                consumer_name,
                count=10,  # Process up to 10 messages at a time
                block_ms=5000,  # 5 second block
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error reading from stream: {e}", exc_info=True)
            # Brief backoff on error before retrying
            await asyncio.sleep(1)
            continue

        for stream_msg_id, data in messages:
            extra = {"conversation_id": data.get("conversation_id"), "stream_msg_id": stream_msg_id}
            try:
                await process_stream_message(agent, data)
                await acknowledge_message(INCOMING_STREAM, CONSUMER_GROUP, stream_msg_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Error processing stream message {stream_msg_id}: {type(e).__name__}: {e}",
                    extra=extra,
                    exc_info=True,
                )
                await send_failure_notice(data)
                try:
                    await move_to_dead_letter(
                        INCOMING_STREAM,
                        CONSUMER_GROUP,
                        stream_msg_id,
                        data,
                        f"{getattr(e, 'code', type(e).__name__)}: {e}",
                    )
                except Exception as dlq_error:
                    logger.error(f"Failed to move to DLQ: {dlq_error}", extra=extra)


async def main():
    """Agent worker main entry point"""
    logger.info("Booking agent service started")

    # Get the current event loop for signal handling
    loop = asyncio.get_running_loop()

    def handle_shutdown_signal():
        logger.info("Received shutdown signal, initiating graceful shutdown...")
        shutdown_event.set()

    # Register signal handlers using loop.add_signal_handler (Unix only)
    try:
        loop.add_signal_handler(signal.SIGTERM, handle_shutdown_signal)
        loop.add_signal_handler(signal.SIGINT, handle_shutdown_signal)
        logger.info("Signal handlers registered")
    except NotImplementedError:
        logger.warning("Signal handlers not supported on this platform")

    agent = build_booking_agent()
    consumer_task = asyncio.create_task(consume_incoming_messages(agent))

    try:
        # Wait for shutdown signal or for the consumer to stop on its own
        await asyncio.wait(
            [consumer_task, asyncio.create_task(shutdown_event.wait())],
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        logger.info("Main loop cancelled")
    finally:
        logger.info("Shutting down booking agent service...")
        consumer_task.cancel()
        await asyncio.gather(consumer_task, return_exceptions=True)
        await close_redis_client()
        logger.info("Booking agent service stopped")


if __name__ == "__main__":
    logger.info("Starting Booking Agent Service")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        logger.info("Booking agent service exited")
