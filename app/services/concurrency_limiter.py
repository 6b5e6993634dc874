"""
Concurrency Limiter - bounds simultaneously active ingestion tasks.

A FIFO permit pool for a single asyncio event loop. The capacity can be
swapped at runtime on the same instance, so permits granted before the
change stay accounted for:

- Increasing capacity wakes as many queued callers as the new headroom allows.
- Decreasing capacity never revokes granted permits; new grants are
  withheld until enough of them have been released.
"""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Deque

logger = logging.getLogger(__name__)

MIN_CAPACITY = 1
MAX_CAPACITY = 10


class ConcurrencyLimiter:
    """
    FIFO admission control for ingestion workers.

    Usage:
        limiter = ConcurrencyLimiter(3)

        async with limiter.permit():
            await process_file(...)
    """

    def __init__(self, capacity: int):
        if capacity < MIN_CAPACITY:
            raise ValueError(f"capacity must be >= {MIN_CAPACITY}, got {capacity}")
        self._capacity = capacity
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active(self) -> int:
        """Permits currently held."""
        return self._active

    @property
    def waiting(self) -> int:
        """Callers queued for a permit."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        """Suspend until a permit is free, then take exactly one."""
        if self._active < self._capacity and not self._waiters:
            self._active += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The permit was handed over just before we were cancelled
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        """Return a permit and wake the oldest waiter if there is room."""
        if self._active <= 0:
            raise RuntimeError("release() called more times than acquire()")
        self._active -= 1
        self._wake_waiters()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        """Hold one permit for the duration of the block, released on every exit path."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def set_capacity(self, capacity: int) -> int:
        """
        Swap capacity at runtime (clamped to [1, 10]).

        Returns the capacity actually applied.
        """
        applied = max(MIN_CAPACITY, min(MAX_CAPACITY, capacity))
        previous = self._capacity
        self._capacity = applied
        logger.info(
            f"Concurrency limiter capacity {previous} -> {applied} "
            f"(active={self._active}, waiting={self.waiting})"
        )
        self._wake_waiters()
        return applied

    def _wake_waiters(self) -> None:
        while self._waiters and self._active < self._capacity:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._active += 1
            waiter.set_result(None)
