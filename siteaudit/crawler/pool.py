"""Bounded-concurrency runner shared by the validation and fetch stages.

A fixed number of worker coroutines race over a shared index.  Claiming an
index never yields to the event loop, so two workers can never claim the same
slot, and each result is written back to the slot of its input item.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], None]


async def run_pool(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[Optional[R]]],
    limit: int,
    on_progress: Optional[ProgressCallback] = None,
) -> list[Optional[R]]:
    """Apply *operation* to every item with at most *limit* in flight.

    Args:
        items: Inputs, processed in claim order.
        operation: Coroutine function run once per item.  An exception is
            recorded as ``None`` for that item and never cancels siblings.
        limit: Requested concurrency; clamped to ``min(limit, len(items))``.
        on_progress: Called as ``(completed, total)`` after every item.

    Returns:
        A list where index ``i`` holds the result for ``items[i]``.
    """
    total = len(items)
    results: list[Optional[R]] = [None] * total
    if total == 0:
        return results

    next_index = 0
    completed = 0

    async def worker() -> None:
        nonlocal next_index, completed
        while next_index < total:
            index = next_index
            next_index += 1
            try:
                results[index] = await operation(items[index])
            except Exception as exc:  # noqa: BLE001
                logger.debug("[pool] item %d failed: %r", index, exc)
                results[index] = None
            completed += 1
            if on_progress is not None:
                on_progress(completed, total)

    worker_count = max(1, min(limit, total))
    await asyncio.gather(*(worker() for _ in range(worker_count)))
    return results
