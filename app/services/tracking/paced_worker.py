"""Single-worker task queue with a fixed pause between tasks.

GeoGuessr has no published rate limit; the tracker keeps to one request at a
time with a pause between players. The pause is a constructor argument so
the tracker job, scripts and tests can each choose it, and the sleep
function is injectable so tests don't wait.
"""
import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


class PacedWorker:
    """
    Drains a queue with exactly one worker.

    The worker sleeps ``delay_seconds`` between consecutive tasks, never
    before the first or after the last one. Tasks never overlap.
    """

    def __init__(self, delay_seconds: float, sleep: Optional[Sleep] = None):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.delay_seconds = delay_seconds
        self._sleep = sleep or asyncio.sleep

    async def run(self, items: Iterable[T], handler: Callable[[T], Awaitable[R]]) -> List[R]:
        """
        Run ``handler`` over ``items`` in order, one at a time.

        An exception raised by ``handler`` stops the queue and propagates;
        handlers that must not abort the run catch their own errors.

        Returns:
            Handler results in input order
        """
        queue: asyncio.Queue = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        results: List[R] = []
        total = queue.qsize()

        async def worker() -> None:
            processed = 0
            while not queue.empty():
                item = queue.get_nowait()
                try:
                    if processed and self.delay_seconds:
                        await self._sleep(self.delay_seconds)
                    results.append(await handler(item))
                    processed += 1
                finally:
                    queue.task_done()

        logger.debug(f"Paced worker starting: {total} tasks, {self.delay_seconds}s apart")
        await worker()
        return results
