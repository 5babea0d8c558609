"""Async coordination utilities for slotbot_lite.

Provides the two primitives the availability engine is built on:

- ``gather_settled()``: fork/join over a list of coroutines. Every task is
  awaited before returning, failures are returned in place of results so a
  single failing unit cannot leak un-joined siblings.
- ``AsyncRWLock``: reader/writer lock for asyncio. Readers share the lock,
  a writer holds it exclusively. Writers are preferred once waiting so a
  steady stream of readers cannot starve a sync.

Usage Example:
    ```python
    results = await gather_settled([fetch(d) for d in dates], timeout=30.0)

    lock = AsyncRWLock()
    async with lock.read():
        value = cache[key]
    async with lock.write():
        cache.update(batch)
    ```
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Iterable
from contextlib import asynccontextmanager
from typing import Any, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_settled(
    coroutines: Iterable[Awaitable[T]],
    timeout: Optional[float] = None,
) -> list[T | BaseException]:
    """Run coroutines concurrently and wait for all of them.

    Args:
        coroutines: Awaitables to run, one task each
        timeout: Optional per-task timeout in seconds. A task exceeding it
            is cancelled and yields ``asyncio.TimeoutError`` in its slot.

    Returns:
        Results in input order; exceptions are returned, not raised.
    """

    async def _bounded(aw: Awaitable[T]) -> T:
        if timeout is None:
            return await aw
        return await asyncio.wait_for(aw, timeout=timeout)

    tasks = [asyncio.ensure_future(_bounded(c)) for c in coroutines]
    if not tasks:
        return []

    try:
        return await asyncio.gather(*tasks, return_exceptions=True)
    except asyncio.CancelledError:
        # Caller was cancelled: take the children down with it before propagating.
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class AsyncRWLock:
    """Writer-preferring reader/writer lock for a single event loop."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def locked_for_write(self) -> bool:
        return self._writer

    async def acquire_read(self) -> None:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1

    async def release_read(self) -> None:
        async with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    async def acquire_write(self) -> None:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
                # Readers blocked on a waiting writer must re-check if this one gave up.
                self._cond.notify_all()
            self._writer = True

    async def release_write(self) -> None:
        async with self._cond:
            self._writer = False
            self._cond.notify_all()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """Hold the lock shared for the duration of the block."""
        await self.acquire_read()
        try:
            yield
        finally:
            await self.release_read()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        """Hold the lock exclusively for the duration of the block."""
        await self.acquire_write()
        try:
            yield
        finally:
            await self.release_write()


def describe_failure(exc: BaseException) -> str:
    """Short log-friendly description of a gathered failure."""
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    text: Any = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
