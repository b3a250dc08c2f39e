"""
Background generation worker.

Runs follow-up question generation outside the request path. Jobs are
asyncio tasks owned by the worker, bounded by a semaphore, and never
awaited by the code that submits them. Job failures are logged and
counted; they cannot reach the caller that triggered the job.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[str]]


@dataclass
class WorkerStats:
    """Counters describing what the worker has done so far."""

    submitted: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    outcomes: Counter[str] = field(default_factory=Counter)

    @property
    def in_flight(self) -> int:
        return self.submitted - self.completed - self.failed - self.cancelled


class GenerationWorker:
    """
    Pool of detached background jobs.

    Each job is a coroutine factory returning an outcome label
    (e.g. "generated", "fallback"), which is tallied in ``stats``.
    """

    def __init__(self, concurrency: int = 4) -> None:
        """
        Initialize the worker.

        Args:
            concurrency: Maximum number of jobs running at once.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self.stats = WorkerStats()

    @property
    def pending(self) -> int:
        """Number of jobs submitted but not finished."""
        return len(self._tasks)

    def submit(self, name: str, job: JobFactory) -> asyncio.Task[None]:
        """
        Schedule ``job`` and return immediately.

        Args:
            name: Label used in logs.
            job: Coroutine factory; its return value is the outcome label.

        Returns:
            The scheduled task.

        Raises:
            RuntimeError: If the worker has been shut down.
        """
        if self._closed:
            raise RuntimeError("GenerationWorker has been shut down")

        task = asyncio.create_task(self._run(name, job), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.stats.submitted += 1
        logger.debug(f"Scheduled background job {name}")
        return task

    async def _run(self, name: str, job: JobFactory) -> None:
        try:
            async with self._semaphore:
                outcome = await job()
        except asyncio.CancelledError:
            self.stats.cancelled += 1
            logger.warning(f"Background job {name} cancelled")
            raise
        except Exception:
            self.stats.failed += 1
            logger.exception(f"Background job {name} failed")
            return

        self.stats.completed += 1
        self.stats.outcomes[outcome] += 1
        logger.info(f"Background job {name} finished: {outcome}")

    async def drain(self) -> None:
        """Wait until every submitted job, including ones submitted meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, cancel: bool = True) -> None:
        """
        Stop accepting jobs and finish outstanding ones.

        Args:
            cancel: Cancel outstanding jobs instead of waiting for them.
        """
        self._closed = True
        if cancel:
            for task in list(self._tasks):
                task.cancel()
        await self.drain()
        logger.info(
            f"Generation worker stopped: {self.stats.completed} completed, "
            f"{self.stats.failed} failed, {self.stats.cancelled} cancelled"
        )
