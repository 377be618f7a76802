from __future__ import annotations

import asyncio

import pytest

from codeseek.memo import AsyncOnce


def test_concurrent_callers_share_one_computation():
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return 42

    async def main():
        memo = AsyncOnce(factory)
        values = await asyncio.gather(*(memo.get() for _ in range(10)))
        again = await memo.get()
        return values, again, memo

    values, again, memo = asyncio.run(main())
    assert values == [42] * 10
    assert again == 42
    assert calls == 1
    assert memo.is_set


def test_failure_leaves_memo_unset():
    attempts = 0

    async def factory():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("boom")
        return "ok"

    async def main():
        memo = AsyncOnce(factory)
        with pytest.raises(RuntimeError):
            await memo.get()
        assert not memo.is_set
        return await memo.get()

    assert asyncio.run(main()) == "ok"
    assert attempts == 2


def test_concurrent_waiters_all_see_the_failure():
    async def factory():
        await asyncio.sleep(0.01)
        raise ValueError("nope")

    async def main():
        memo = AsyncOnce(factory)
        return await asyncio.gather(memo.get(), memo.get(), return_exceptions=True), memo

    results, memo = asyncio.run(main())
    assert all(isinstance(r, ValueError) for r in results)
    assert not memo.is_set


def test_cancelled_computation_leaves_memo_unset():
    calls = 0
    running = []

    async def slow():
        nonlocal calls
        calls += 1
        running.append(asyncio.current_task())
        await asyncio.sleep(10)
        return 1

    async def main():
        memo = AsyncOnce(slow)
        waiter = asyncio.ensure_future(memo.get())
        await asyncio.sleep(0.01)
        running[0].cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        return memo

    memo = asyncio.run(main())
    assert not memo.is_set
    assert memo.peek("default") == "default"
    assert calls == 1


def test_reset_during_computation_does_not_cancel_waiters():
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        n = calls
        await asyncio.sleep(0.02)
        return n

    async def main():
        memo = AsyncOnce(factory)
        waiter = asyncio.ensure_future(memo.get())
        await asyncio.sleep(0.005)
        memo.reset()
        value = await waiter
        return value, memo

    value, memo = asyncio.run(main())
    # The first result was computed for the old state and is discarded.
    assert value == 2
    assert memo.peek() == 2
    assert calls == 2


def test_set_during_computation_wins_over_pending_result():
    async def factory():
        await asyncio.sleep(0.02)
        return "computed"

    async def main():
        memo = AsyncOnce(factory)
        waiters = [asyncio.ensure_future(memo.get()) for _ in range(3)]
        await asyncio.sleep(0.005)
        memo.set("given")
        values = await asyncio.gather(*waiters)
        # Let the detached computation finish; it must not overwrite the value.
        await asyncio.sleep(0.03)
        return values, memo

    values, memo = asyncio.run(main())
    assert values == ["given"] * 3
    assert memo.peek() == "given"


def test_failure_of_detached_computation_is_not_reported():
    attempts = 0

    async def factory():
        nonlocal attempts
        attempts += 1
        await asyncio.sleep(0.01)
        if attempts == 1:
            raise RuntimeError("stale")
        return "fresh"

    async def main():
        memo = AsyncOnce(factory)
        waiter = asyncio.ensure_future(memo.get())
        await asyncio.sleep(0.002)
        memo.reset()
        return await waiter

    assert asyncio.run(main()) == "fresh"
    assert attempts == 2


def test_cancelled_caller_does_not_cancel_shared_computation():
    async def factory():
        await asyncio.sleep(0.02)
        return "v"

    async def main():
        memo = AsyncOnce(factory)
        first = asyncio.ensure_future(memo.get())
        second = asyncio.ensure_future(memo.get())
        await asyncio.sleep(0.005)
        first.cancel()
        value = await second
        return first, value

    first, value = asyncio.run(main())
    assert first.cancelled()
    assert value == "v"


def test_set_and_reset():
    async def factory():
        return 7

    async def main():
        memo = AsyncOnce(factory)
        memo.set(3)
        assert await memo.get() == 3
        memo.reset()
        return await memo.get()

    assert asyncio.run(main()) == 7


def test_value_survives_across_event_loops():
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        return "x"

    memo = AsyncOnce(factory)
    assert asyncio.run(memo.get()) == "x"
    assert asyncio.run(memo.get()) == "x"
    assert calls == 1
