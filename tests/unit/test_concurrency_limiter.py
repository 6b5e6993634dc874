"""
Unit tests for ConcurrencyLimiter

Covers FIFO admission, runtime capacity changes and release on every
exit path.
"""
import asyncio

import pytest

from app.services.concurrency_limiter import ConcurrencyLimiter


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestAcquireRelease:

    @pytest.mark.asyncio
    async def test_acquire_within_capacity_does_not_wait(self):
        limiter = ConcurrencyLimiter(2)

        await limiter.acquire()
        await limiter.acquire()

        assert limiter.active == 2
        assert limiter.waiting == 0

    @pytest.mark.asyncio
    async def test_third_caller_waits_until_release(self):
        limiter = ConcurrencyLimiter(2)
        await limiter.acquire()
        await limiter.acquire()

        waiter = asyncio.create_task(limiter.acquire())
        await _settle()
        assert not waiter.done()
        assert limiter.waiting == 1

        limiter.release()
        await _settle()
        assert waiter.done()
        assert limiter.active == 2

    @pytest.mark.asyncio
    async def test_waiters_are_admitted_in_fifo_order(self):
        limiter = ConcurrencyLimiter(1)
        await limiter.acquire()
        order = []

        async def worker(name):
            async with limiter.permit():
                order.append(name)

        tasks = [asyncio.create_task(worker(name)) for name in ("a", "b", "c")]
        await _settle()
        limiter.release()
        await asyncio.gather(*tasks)

        assert order == ["a", "b", "c"]
        assert limiter.active == 0

    @pytest.mark.asyncio
    async def test_permit_released_when_block_raises(self):
        limiter = ConcurrencyLimiter(1)

        with pytest.raises(RuntimeError):
            async with limiter.permit():
                raise RuntimeError("boom")

        assert limiter.active == 0

    def test_over_release_raises(self):
        limiter = ConcurrencyLimiter(1)
        with pytest.raises(RuntimeError):
            limiter.release()

    def test_capacity_below_one_rejected(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(0)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_queue(self):
        limiter = ConcurrencyLimiter(1)
        await limiter.acquire()

        waiter = asyncio.create_task(limiter.acquire())
        await _settle()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert limiter.waiting == 0
        limiter.release()
        assert limiter.active == 0


class TestSetCapacity:

    @pytest.mark.parametrize("requested, applied", [(0, 1), (-5, 1), (11, 10), (5, 5)])
    def test_capacity_is_clamped(self, requested, applied):
        limiter = ConcurrencyLimiter(3)
        assert limiter.set_capacity(requested) == applied
        assert limiter.capacity == applied

    @pytest.mark.asyncio
    async def test_increase_wakes_waiters(self):
        limiter = ConcurrencyLimiter(1)
        await limiter.acquire()
        waiters = [asyncio.create_task(limiter.acquire()) for _ in range(2)]
        await _settle()

        limiter.set_capacity(3)
        await _settle()

        assert all(w.done() for w in waiters)
        assert limiter.active == 3

    @pytest.mark.asyncio
    async def test_decrease_keeps_granted_permits_and_withholds_new_ones(self):
        limiter = ConcurrencyLimiter(3)
        for _ in range(3):
            await limiter.acquire()

        limiter.set_capacity(1)
        assert limiter.active == 3

        waiter = asyncio.create_task(limiter.acquire())
        limiter.release()
        limiter.release()
        await _settle()
        # active == 1 == capacity, still no room
        assert not waiter.done()

        limiter.release()
        await _settle()
        assert waiter.done()
        assert limiter.active == 1
