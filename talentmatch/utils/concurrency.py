"""Async helpers shared by the query path and the batch jobs."""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from talentmatch.utils.exceptions import OperationTimeout

T = TypeVar("T")
R = TypeVar("R")


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    operation: str,
) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        OperationTimeout: if the deadline passes first.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise OperationTimeout(
            f"{operation} timed out after {timeout:g}s",
            details={"operation": operation, "timeout_seconds": timeout},
        ) from e


async def bounded_map(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrent: int,
) -> list[R]:
    """
    Run ``worker`` over ``items`` with at most ``max_concurrent`` in flight.

    Results keep the order of ``items``. The worker is expected to capture
    its own failures; an exception escaping it propagates.
    """
    if max_concurrent < 1:
        raise ValueError("max_concurrent must be at least 1")

    sem = asyncio.Semaphore(max_concurrent)

    async def run(item: T) -> R:
        async with sem:
            return await worker(item)

    return list(await asyncio.gather(*[run(item) for item in items]))
