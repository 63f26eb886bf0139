"""
Timeout and fan-out helpers for external calls made during a turn.

A timed-out call is abandoned rather than cancelled: the caller gets
OperationTimedOut immediately, the underlying task keeps running, and its late
result (or error) is logged and discarded when it eventually arrives.
"""

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import TypeVar

from agent.booking.errors import OperationTimedOut

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references to abandoned tasks until they settle
_abandoned_tasks: set[asyncio.Future] = set()


def _discard_late_result(task: asyncio.Future) -> None:
    _abandoned_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Discarded late failure from abandoned call: {type(error).__name__}: {error}")
    else:
        logger.debug("Discarded late result from abandoned call")


async def run_with_timeout(awaitable: Awaitable[T], operation: str, timeout_seconds: float) -> T:
    """
    Await ``awaitable`` for at most ``timeout_seconds``.

    Raises:
        OperationTimedOut: If the call has not completed in time
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    _abandoned_tasks.add(task)
    task.add_done_callback(_discard_late_result)
    logger.warning(
        f"Operation timed out after {timeout_seconds}s, abandoning call",
        extra={"operation": operation},
    )
    raise OperationTimedOut(operation, timeout_seconds)


async def gather_settled(awaitables: Sequence[Awaitable[T]]) -> list[T | BaseException]:
    """
    Run awaitables concurrently and collect a result or an exception for each.

    Never raises for a child failure; results keep the input order.
    """
    if not awaitables:
        return []
    return await asyncio.gather(*awaitables, return_exceptions=True)
