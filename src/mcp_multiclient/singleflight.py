"""Per-key single-flight guard for coroutines.

Concurrent callers asking for the same key share one in-flight task
instead of each starting their own.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class SingleFlight:
    """
    Cache of in-flight tasks keyed by string.

    A key is forgotten as soon as its task completes, so a failed
    attempt can be retried by the next caller.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``factory()`` for ``key`` unless a run is already in flight.

        Args:
            key: Deduplication key
            factory: Zero-argument callable returning the awaitable to run

        Returns:
            The shared task's result (its exception is re-raised to every waiter)
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        # A cancelled waiter must not cancel the shared task
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters already received it
            task.exception()

    def forget(self, key: str) -> None:
        """Drop the in-flight entry for ``key`` without cancelling it."""
        self._inflight.pop(key, None)

    def clear(self) -> None:
        """Drop all in-flight entries without cancelling them."""
        self._inflight.clear()
