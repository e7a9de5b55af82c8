"""In-process runner for background export tasks.

Each scheduled export runs as its own asyncio task, tracked by job id so it
can be cancelled individually and so shutdown can cancel everything still in
flight. A semaphore bounds how many exports execute at once; the rest wait
in PENDING until a slot frees up.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

import structlog

from export_service.core.logging import reset_export_id, set_export_id
from export_service.core.metrics import MetricsCollector

logger = structlog.get_logger(__name__)

ExportTaskFactory = Callable[[], Awaitable[None]]


class ExportRunner:
    """Schedules and supervises background export tasks."""

    def __init__(self, max_concurrent: int = 5) -> None:
        """Initialize the runner.

        Args:
            max_concurrent: Maximum number of exports executing at once.
        """
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._executing: int = 0
        self._accepting = True

        logger.debug("export_runner_initialized", max_concurrent=max_concurrent)

    def submit(self, job_id: str, factory: ExportTaskFactory) -> asyncio.Task:
        """Schedule an export task without awaiting it.

        A task still registered for the same job (a cancelled attempt that
        has not unwound yet) is replaced; its own bookkeeping is left alone.

        Raises:
            RuntimeError: If the runner has been stopped.
        """
        if not self._accepting:
            raise RuntimeError("Export runner is stopped")

        task = asyncio.create_task(self._run(job_id, factory), name=f"export-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._forget(job_id, t))
        MetricsCollector.set_active_exports(len(self._tasks))

        logger.info(
            "export_scheduled",
            export_id=job_id,
            active_count=len(self._tasks),
        )
        return task

    async def _run(self, job_id: str, factory: ExportTaskFactory) -> None:
        async with self._semaphore:
            token = set_export_id(job_id)
            self._executing += 1
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("export_task_cancelled", export_id=job_id)
                raise
            except Exception as e:
                # Detached from any request: there is no caller to propagate to
                logger.error(
                    "export_task_crashed",
                    export_id=job_id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._executing -= 1
                reset_export_id(token)

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        MetricsCollector.set_active_exports(len(self._tasks))

    def cancel(self, job_id: str) -> bool:
        """Cancel the in-flight task of a job.

        Returns:
            True if a running task was signalled, False if none was tracked.
        """
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False

        task.cancel()
        logger.info("export_task_cancel_requested", export_id=job_id)
        return True

    def is_active(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def active_job_ids(self) -> List[str]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    def get_active_count(self) -> int:
        return len(self.active_job_ids())

    @property
    def accepting(self) -> bool:
        return self._accepting

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait until every tracked task has finished, including tasks
        submitted while waiting."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            pending = [task for task in self._tasks.values() if not task.done()]
            if not pending:
                return
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            done, _ = await asyncio.wait(pending, timeout=remaining)
            if deadline is not None and loop.time() >= deadline and len(done) < len(pending):
                raise asyncio.TimeoutError("Export tasks did not finish in time")

    async def stop(self) -> None:
        """Stop accepting work and cancel every in-flight export."""
        self._accepting = False
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("export_runner_stopped", cancelled=len(tasks))

    def get_stats(self) -> Dict[str, int]:
        active = self.get_active_count()
        return {
            "scheduled": active,
            "executing": self._executing,
            "waiting": max(active - self._executing, 0),
            "max_concurrent": self.max_concurrent,
        }
