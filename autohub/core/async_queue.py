"""
Serialization queue for read/modify/write cycles on a JSON document.

Each store owns one queue. Tasks run one at a time in submission order; a
task that raises only fails its own caller.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class AsyncQueue:
    """FIFO runner: ``await queue.run(task)`` where task is a coroutine function."""

    def __init__(self) -> None:
        # asyncio.Lock wakes waiters in the order they blocked.
        self._lock = asyncio.Lock()
        self._pending = 0

    @property
    def pending(self) -> int:
        """Tasks submitted but not yet finished (running one included)."""
        return self._pending

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        self._pending += 1
        try:
            async with self._lock:
                return await task()
        finally:
            self._pending -= 1


def create_async_queue() -> Callable[[Callable[[], Awaitable[T]]], Awaitable[T]]:
    """Return the bound ``run`` of a fresh queue."""
    return AsyncQueue().run
