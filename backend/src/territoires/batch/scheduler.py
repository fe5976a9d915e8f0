"""Bounded work queue for batch processing.

Accepting a batch (recording it as pending) is decoupled from running
it: submissions are enqueued here and claimed by a fixed pool of worker
tasks running on the event loop.
"""

import asyncio
from typing import Awaitable, Callable
from uuid import UUID

from ..logging import get_context_logger

logger = get_context_logger(__name__)

BatchJob = Callable[[UUID], Awaitable[None]]


class BatchQueueFullError(Exception):
    """The scheduler already holds as many waiting batches as it accepts."""


class BatchScheduler:
    """Runs batch jobs with a bounded queue and a fixed number of workers."""

    def __init__(self, workers: int = 2, queue_size: int = 100):
        self.workers = workers
        self._queue: asyncio.Queue[tuple[UUID, BatchJob]] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def full(self) -> bool:
        return self._queue.full()

    @property
    def pending(self) -> int:
        """Jobs accepted but not yet claimed by a worker."""
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"batch-worker-{n}")
            for n in range(self.workers)
        ]
        logger.info(f"Batch scheduler started with {self.workers} workers")

    async def stop(self) -> None:
        """Cancel the workers. Jobs still queued are dropped."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Batch scheduler stopped")

    async def enqueue(self, request_id: UUID, job: BatchJob) -> None:
        """Queue a job without waiting for room.

        Raises:
            BatchQueueFullError: If ``queue_size`` jobs are already waiting
        """
        try:
            self._queue.put_nowait((request_id, job))
        except asyncio.QueueFull:
            raise BatchQueueFullError(
                f"Batch queue is full ({self._queue.maxsize} batches waiting)"
            ) from None

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _worker(self, number: int) -> None:
        while True:
            request_id, job = await self._queue.get()
            try:
                await job(request_id)
            except Exception:
                logger.exception(f"Batch worker {number} failed on {request_id}")
            finally:
                self._queue.task_done()
