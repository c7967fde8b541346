"""
Rate-limited batch scheduler.

Runs an async worker over a list of items in small fixed-size batches with a
cooldown between batches, so remote generative calls stay under provider rate
limits. A failing item never aborts its batch or the run: every item yields a
BatchOutcome carrying either a result or the exception it raised.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[Any]]
BatchCallback = Callable[[int, int], Awaitable[Any]]


@dataclass
class BatchOutcome(Generic[T]):
    item: T
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RateLimitedScheduler:
    """Fixed-size batches, cooldown between batches, per-item isolation"""

    def __init__(self, batch_size: int = 2, cooldown_seconds: float = 1.0, sleep: Sleeper = asyncio.sleep):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if cooldown_seconds < 0:
            raise ValueError(f"cooldown_seconds must be non-negative, got {cooldown_seconds}")
        self.batch_size = batch_size
        self.cooldown_seconds = cooldown_seconds
        self._sleep = sleep

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[Any]],
        on_batch: Optional[BatchCallback] = None,
    ) -> List[BatchOutcome[T]]:
        """
        Process items in order.

        Args:
            items: Work items; outcomes come back in the same order
            worker: Coroutine function applied to each item
            on_batch: Awaited after each batch with (completed_batches, total_batches)

        Returns:
            One BatchOutcome per item
        """
        batches = [list(items[i:i + self.batch_size]) for i in range(0, len(items), self.batch_size)]
        outcomes: List[BatchOutcome[T]] = []

        for index, batch in enumerate(batches):
            if index and self.cooldown_seconds:
                await self._sleep(self.cooldown_seconds)

            results = await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
            for item, result in zip(batch, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    logger.warning(f"Batch item {item!r} failed: {type(result).__name__}: {result}")
                    outcomes.append(BatchOutcome(item=item, error=result))
                else:
                    outcomes.append(BatchOutcome(item=item, result=result))

            if on_batch is not None:
                await on_batch(index + 1, len(batches))

        failed = sum(1 for o in outcomes if not o.ok)
        logger.debug(f"Scheduler finished {len(outcomes)} items in {len(batches)} batches ({failed} failed)")
        return outcomes
