"""
Coalesce concurrent identical async operations.

Callers that ask for the same key while an operation for that key is running
await the running operation instead of starting their own. Nothing is cached:
the key is forgotten as soon as the operation finishes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class _Flight:
    __slots__ = ("task", "waiters")

    def __init__(self, task: asyncio.Task):
        self.task = task
        self.waiters = 0


class SingleFlight:
    """
    Keyed in-flight request map.

    The lock only guards map mutation; the work itself runs unlocked in its own
    task. Each caller awaits the shared task through ``asyncio.shield`` so one
    cancelled caller does not cancel the others. When the last waiting caller
    is cancelled, the shared task is cancelled too.
    """

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, _Flight] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: Hashable, func: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            flight = self._inflight.get(key)
            if flight is None or flight.task.done():
                task = asyncio.ensure_future(func())
                flight = _Flight(task)
                self._inflight[key] = flight
                task.add_done_callback(lambda _t, k=key, f=flight: self._forget(k, f))
            else:
                logger.debug(f"Joining in-flight operation for {key}")
            flight.waiters += 1

        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if not flight.task.done() and flight.waiters == 1:
                # Callers arriving during cleanup start a fresh attempt.
                self._forget(key, flight)
                flight.task.cancel()
                # Let the shared task run its cleanup before we report back.
                await asyncio.gather(flight.task, return_exceptions=True)
            raise
        finally:
            flight.waiters -= 1

    def _forget(self, key: Hashable, flight: _Flight) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
