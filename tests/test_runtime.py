import asyncio

import pytest

from errors import CancellationError
from runtime import RunContext, Ticker, fan_out


def test_guard_returns_result():
    async def scenario():
        ctx = RunContext()
        try:
            return await ctx.guard(asyncio.sleep(0, result="done"))
        finally:
            ctx.close()

    assert asyncio.run(scenario()) == "done"


def test_deadline_cancels_guarded_wait():
    async def scenario():
        ctx = RunContext(timeout=0.05)
        try:
            await ctx.guard(asyncio.sleep(10))
        finally:
            ctx.close()

    with pytest.raises(CancellationError, match="deadline"):
        asyncio.run(scenario())


def test_cancel_interrupts_sleep_and_keeps_first_reason():
    async def scenario():
        ctx = RunContext()
        asyncio.get_running_loop().call_later(0.01, ctx.cancel, "first")
        asyncio.get_running_loop().call_later(0.02, ctx.cancel, "second")
        try:
            await ctx.sleep(10)
        finally:
            await asyncio.sleep(0.03)
            assert ctx.reason == "first"

    with pytest.raises(CancellationError, match="first"):
        asyncio.run(scenario())


def test_guard_cancels_inner_task():
    state = {"cancelled": False}

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    async def scenario():
        ctx = RunContext()
        asyncio.get_running_loop().call_later(0.01, ctx.cancel, "stop")
        await ctx.guard(slow())

    with pytest.raises(CancellationError):
        asyncio.run(scenario())
    assert state["cancelled"] is True


def test_ticker_spaces_waits():
    async def scenario():
        loop = asyncio.get_running_loop()
        async with Ticker(0.02) as ticker:
            start = loop.time()
            for _ in range(3):
                await ticker.wait()
            return loop.time() - start

    assert asyncio.run(scenario()) >= 0.05


def test_ticker_disabled_returns_immediately():
    async def scenario():
        async with Ticker(0) as ticker:
            await ticker.wait()
            await ticker.wait()

    asyncio.run(scenario())


def test_fan_out_bounds_concurrency_and_collects_all():
    state = {"active": 0, "max": 0}

    async def worker(index, item):
        state["active"] += 1
        state["max"] = max(state["max"], state["active"])
        await asyncio.sleep(0.01)
        state["active"] -= 1
        return item * 2

    async def scenario():
        ctx = RunContext()
        return await fan_out(ctx, list(range(10)), worker, 3, on_cancel=lambda i, item, e: None)

    outcomes = asyncio.run(scenario())
    assert sorted(outcomes) == [i * 2 for i in range(10)]
    assert state["max"] <= 3


def test_fan_out_reports_undispatched_items_on_cancel():
    async def worker(index, item):
        await asyncio.sleep(0.05)
        return ("done", item)

    async def scenario():
        ctx = RunContext()
        asyncio.get_running_loop().call_later(0.01, ctx.cancel, "stop")
        return await fan_out(
            ctx, ["a", "b", "c"], worker, 1,
            on_cancel=lambda i, item, e: ("cancelled", item),
        )

    outcomes = asyncio.run(scenario())
    assert len(outcomes) == 3
    assert ("cancelled", "b") in outcomes
    assert ("cancelled", "c") in outcomes
