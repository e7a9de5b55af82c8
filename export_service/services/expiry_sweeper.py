"""Periodic sweep that expires stale export artifacts."""

import asyncio
import contextlib
from typing import Optional

import structlog

from export_service.services.export_job_service import ExportJobService

logger = structlog.get_logger(__name__)


class ExpirySweeper:
    """Runs ExportJobService.expire_stale_exports on a fixed interval.

    A failed sweep is logged and the loop keeps going; the next sweep picks
    up whatever was left behind.
    """

    def __init__(self, export_service: ExportJobService, interval: int = 3600) -> None:
        """Initialize the sweeper.

        Args:
            export_service: Service that performs the expiry.
            interval: Seconds between sweeps.
        """
        self.export_service = export_service
        self.interval = interval
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_expired_count: Optional[int] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start sweeping in the background."""
        if self._running:
            logger.warning("expiry_sweeper_already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())

        logger.info("expiry_sweeper_started", interval_seconds=self.interval)

    async def stop(self) -> None:
        """Stop the sweeper, cancelling a sweep in progress."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        logger.info("expiry_sweeper_stopped")

    async def sweep_once(self) -> int:
        """Run a single sweep and return the number of expired jobs."""
        count = await self.export_service.expire_stale_exports()
        self.last_expired_count = count

        logger.debug("expiry_sweep_completed", expired=count)
        return count

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)

            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("expiry_sweep_failed", error=str(e), exc_info=True)
