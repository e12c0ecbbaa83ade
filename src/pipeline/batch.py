"""
Card Price Cache — Batch Scheduler

Throttles detail-page fetches to respect the target site's rate limits.

Items are processed in fixed-size batches. Within a batch items run
concurrently, each started after a staggered delay (item i waits
i × inter_request_delay); between batches the scheduler pauses for
inter_batch_delay. Results come back in input order regardless of which
fetch finishes first.

A per-item exception becomes a degraded result via ``fallback``. A
HardBlockError cancels the in-flight batch and propagates.
"""

from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog

from src.scraper.fetcher import HardBlockError

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    batch_size: int,
    inter_request_delay: float,
    inter_batch_delay: float,
    fallback: Callable[[T, Exception], R],
) -> list[R]:
    """
    Run ``worker`` over ``items`` in throttled batches.

    Args:
        items: Inputs, processed in order.
        worker: Async function producing one result per item.
        batch_size: Maximum concurrent workers (>= 1).
        inter_request_delay: Stagger step between starts inside a batch, seconds.
        inter_batch_delay: Pause between batches, seconds.
        fallback: Builds the degraded result for an item whose worker raised.

    Returns:
        One result per item, positionally aligned with ``items``.

    Raises:
        HardBlockError: a worker hit an access-denied response.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    total_batches = math.ceil(len(items) / batch_size)
    results: list[R] = []

    async def _run_one(index: int, item: T) -> R:
        if index > 0 and inter_request_delay > 0:
            await asyncio.sleep(inter_request_delay * index)
        try:
            return await worker(item)
        except HardBlockError:
            raise
        except Exception as e:
            logger.warning(
                "batch_item_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback(item, e)

    for batch_number, start in enumerate(range(0, len(items), batch_size), start=1):
        batch = items[start:start + batch_size]
        logger.info(
            "batch_start",
            batch=batch_number,
            total_batches=total_batches,
            size=len(batch),
        )

        tasks = [asyncio.ensure_future(_run_one(i, item)) for i, item in enumerate(batch)]
        try:
            batch_results = await asyncio.gather(*tasks)
        except HardBlockError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("batch_aborted_hard_block", batch=batch_number)
            raise

        results.extend(batch_results)

        if start + batch_size < len(items) and inter_batch_delay > 0:
            await asyncio.sleep(inter_batch_delay)

    return results
