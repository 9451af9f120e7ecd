"""Async fan-out primitives used by the context assembler."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

T = TypeVar("T")
R = TypeVar("R")


class BoundedSemaphore:
    """Small wrapper over ``asyncio.Semaphore`` with usage diagnostics."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        return self._peak

    @property
    def available(self) -> int:
        return self._limit - self._in_use

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1
        self._peak = max(self._peak, self._in_use)

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def snapshot(self) -> dict[str, int]:
        return {
            "limit": self._limit,
            "in_use": self._in_use,
            "available": self.available,
            "peak": self._peak,
        }


async def gather_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    semaphore: BoundedSemaphore,
) -> list[R | BaseException]:
    """Run ``worker`` over ``items`` under ``semaphore`` and return results in input order.

    Exceptions raised by a worker are returned in its slot instead of
    propagating; cancellation of the caller still propagates.
    """

    async def _run(item: T) -> R:
        async with semaphore.permit():
            return await worker(item)

    results = await asyncio.gather(*(_run(item) for item in items), return_exceptions=True)
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
    return list(results)


__all__ = ["BoundedSemaphore", "gather_bounded"]
