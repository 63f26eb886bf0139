"""Unit tests for timeout and fan-out helpers."""

import asyncio

import pytest

from agent.booking.concurrency import gather_settled, run_with_timeout
from agent.booking.errors import OperationTimedOut


async def _value(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


async def _fail(message):
    raise ValueError(message)


class TestRunWithTimeout:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        assert await run_with_timeout(_value(42), "test:op", 1.0) == 42

    @pytest.mark.asyncio
    async def test_propagates_error(self):
        with pytest.raises(ValueError):
            await run_with_timeout(_fail("boom"), "test:op", 1.0)

    @pytest.mark.asyncio
    async def test_times_out(self):
        with pytest.raises(OperationTimedOut) as exc_info:
            await run_with_timeout(_value(1, delay=0.5), "test:slow", 0.01)

        assert exc_info.value.operation == "test:slow"
        assert exc_info.value.code == "TIMEOUT"
        assert "10ms" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_abandoned_call_keeps_running(self):
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.05)
            finished.set()

        with pytest.raises(OperationTimedOut):
            await run_with_timeout(slow(), "test:abandoned", 0.01)

        await asyncio.wait_for(finished.wait(), timeout=1.0)
        assert finished.is_set()


class TestGatherSettled:
    @pytest.mark.asyncio
    async def test_mixed_outcomes_keep_order(self):
        results = await gather_settled([_value("a", 0.02), _fail("b"), _value("c")])

        assert results[0] == "a"
        assert isinstance(results[1], ValueError)
        assert results[2] == "c"

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await gather_settled([]) == []
