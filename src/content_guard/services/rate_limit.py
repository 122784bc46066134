# src/content_guard/services/rate_limit.py
"""Bounded-concurrency gate for calls into the moderation model."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

T = TypeVar("T")

DEFAULT_CAPACITY = 5


class RateLimitedExecutor:
    """Counting gate that limits how many operations are in flight at once.

    Waiters are woken by asyncio's semaphore, which hands released slots to
    waiting tasks in arrival order, so no waiter starves. A task cancelled
    while waiting never receives a slot, and releasing a slot that was never
    acquired raises instead of inflating the capacity.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._semaphore = asyncio.BoundedSemaphore(capacity)
        self._in_flight = 0
        self._peak_in_flight = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        return self._peak_in_flight

    @property
    def available(self) -> int:
        return self._capacity - self._in_flight

    async def acquire(self) -> None:
        """Wait until a slot is free and take it."""
        await self._semaphore.acquire()
        self._in_flight += 1
        self._peak_in_flight = max(self._peak_in_flight, self._in_flight)

    def release(self) -> None:
        """Return a slot taken by ``acquire``."""
        if self._in_flight <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self._in_flight -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` while holding a slot."""
        async with self.slot():
            return await operation()
