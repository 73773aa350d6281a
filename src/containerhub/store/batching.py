"""
Wave-based concurrency limiting.

Items are processed in fixed-size waves: every request of a wave runs
concurrently, and the next wave starts only once the whole wave settled.
Expected per-item failures are returned in place of results so one bad item
never cancels its siblings.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from ..registry.errors import RegistryError

__all__ = ["run_in_batches", "batched"]

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def batched(items: Sequence[T], size: int) -> List[Sequence[T]]:
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[T], Awaitable[R]],
    *,
    on_batch: Optional[Callable[[int], None]] = None,
    isolate: Tuple[Type[BaseException], ...] = (RegistryError,),
) -> List[Union[R, BaseException]]:
    """
    Run ``worker`` over ``items`` in sequential waves of ``batch_size``.

    Args:
        items: Items to process, results keep their order
        batch_size: Maximum concurrent calls per wave
        worker: Coroutine function applied to each item
        on_batch: Called with the wave's size after each wave settles
        isolate: Exception types captured as per-item results

    Returns:
        One entry per item: the worker's result or the captured exception

    Raises:
        Any exception not listed in ``isolate``, after its wave settled
    """
    results: List[Union[R, BaseException]] = []
    for wave in batched(items, batch_size):
        outcomes = await asyncio.gather(*(worker(item) for item in wave), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(outcome, isolate):
                raise outcome
        results.extend(outcomes)
        if on_batch is not None:
            on_batch(len(wave))
    return results
