"""In-process background job queue.

Jobs are ``asyncio`` tasks throttled by a semaphore.  A job's identifier is
allocated before the job is enqueued so callers can register it elsewhere
(for example with the worker registry) before the job has any chance to run.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[object]]


class JobQueue:
    """Runs background jobs as ``asyncio`` tasks.

    A job body that raises is logged and dropped; it never propagates into
    the code that enqueued it nor affects other jobs.

    Parameters
    ----------
    max_concurrency:
        Maximum number of job bodies running at the same time.
    """

    def __init__(self, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._failed = 0

    @staticmethod
    def new_job_id() -> str:
        """Allocate an opaque job identifier."""
        return uuid.uuid4().hex

    @property
    def pending(self) -> int:
        """Number of jobs enqueued but not yet finished."""
        return len(self._tasks)

    @property
    def failed(self) -> int:
        """Number of job bodies that raised since the queue was created."""
        return self._failed

    def enqueue(self, name: str, job: JobFactory, *, job_id: str | None = None) -> str:
        """Schedule *job* to run in the background and return its id.

        Must be called from within a running event loop.
        """
        job_id = job_id or self.new_job_id()
        if job_id in self._tasks:
            raise ValueError(f"Job {job_id} is already enqueued")
        task = asyncio.get_running_loop().create_task(self._run(name, job_id, job), name=f"{name}:{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))
        logger.debug("Enqueued %s job %s", name, job_id, extra={"job_id": job_id})
        return job_id

    async def _run(self, name: str, job_id: str, job: JobFactory) -> None:
        async with self._semaphore:
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                self._failed += 1
                logger.exception("%s job %s failed", name, job_id, extra={"job_id": job_id})

    async def drain(self) -> None:
        """Wait until every job, including ones enqueued by other jobs, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and wait for them to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Job queue shut down (%d job(s) cancelled)", len(tasks))
