# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""In-process job queue served by a fixed pool of asyncio workers."""

import asyncio
import logging

from typing import Awaitable, Callable, Optional

from .job import Job
from ..config import settings

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

JobHandler = Callable[[Job], Awaitable[None]]


class JobQueue:
    """
    FIFO queue of jobs. With one worker, jobs run strictly one at a time in
    arrival order; more workers allow several jobs in flight.

    A handler that raises is logged and the worker moves on to the next job.
    """

    def __init__(self, handler: JobHandler, worker_count: Optional[int] = None):
        self.handler = handler
        self.worker_count = worker_count or settings.WORKER_COUNT
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def enqueue(self, job: Job) -> Job:
        self._queue.put_nowait(job)
        logger.info(f"[{job.id}] queued ({self._queue.qsize()} pending)")
        return job

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"job-worker-{i}")
            for i in range(self.worker_count)
        ]

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            logger.debug(f"Worker {index} picked up job {job.id}")
            try:
                await self.handler(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"[{job.id}] job handler failed: {e}")
                if not job.is_done:
                    job.complete("error", error=str(e))
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued job has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def __aenter__(self) -> "JobQueue":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
