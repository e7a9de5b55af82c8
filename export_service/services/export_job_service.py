"""Export job service: lifecycle orchestration for export jobs.

Creates jobs, hands processing to the runner, validates every user-driven
transition (cancel, retry), serves cached reads of terminal jobs, prepares
download metadata and expires stale artifacts.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from export_service.core.config import ExportsConfig
from export_service.core.metrics import MetricsCollector
from export_service.models.export_job import (
    ExportFormat,
    ExportJob,
    ExportStatus,
    InvalidTransitionError,
    utcnow,
)
from export_service.producers.base import ArtifactProducer, get_extension, get_mime_type
from export_service.producers.exceptions import ProducerError
from export_service.services.exceptions import (
    ExportError,
    ExportExpiredError,
    ExportForbiddenError,
    ExportInternalError,
    ExportNotFoundError,
    ExportStateError,
    StaleGenerationError,
)
from export_service.services.export_cache import ExportCache, deserialize_job, serialize_job
from export_service.services.export_runner import ExportRunner
from export_service.services.export_store import ExportFilters, ExportJobStore, ExportResult
from export_service.services.storage import ArtifactStorage, StorageError

logger = structlog.get_logger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"
DEFAULT_FILENAME = "export"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9 ._-]")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class DownloadMeta:
    """Everything the transport layer needs to stream an artifact."""

    export_id: str
    filename: str
    mime_type: str
    file_path: str
    file_size: int


def build_download_filename(name: str, export_format: ExportFormat) -> str:
    """Derive a safe download filename from a display name.

    Unsafe characters are dropped and whitespace runs become underscores:
    ``"Q3 Revenue / EU"`` -> ``"Q3_Revenue_EU.csv"``.
    """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("", name).strip()
    cleaned = _WHITESPACE.sub("_", cleaned).strip("._") or DEFAULT_FILENAME
    return f"{cleaned}.{get_extension(export_format)}"


class ExportJobService:
    """Orchestrates the export job lifecycle.

    All collaborators are injected. Processing never runs inside the calling
    request: create and retry persist the PENDING state, submit ``process``
    to the runner and return immediately.
    """

    def __init__(
        self,
        store: ExportJobStore,
        cache: ExportCache,
        storage: ArtifactStorage,
        producer: ArtifactProducer,
        runner: ExportRunner,
        config: Optional[ExportsConfig] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.storage = storage
        self.producer = producer
        self.runner = runner
        self.config = config or ExportsConfig()
        self.expiry_window = timedelta(hours=self.config.expiry_hours)

        logger.debug(
            "export_job_service_initialized",
            expiry_hours=self.config.expiry_hours,
            max_rows=self.config.max_rows,
            producer=getattr(producer, "name", type(producer).__name__),
        )

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def create(
        self,
        name: str,
        export_format: ExportFormat,
        requested_by: str,
        parameters: Optional[Dict[str, Any]] = None,
        report_id: Optional[str] = None,
    ) -> ExportJob:
        """Persist a PENDING export and schedule its processing.

        Returns:
            The pending job, before any processing has happened.
        """
        job = await self.store.create(
            name=name,
            export_format=export_format,
            requested_by=requested_by,
            parameters=parameters,
            report_id=report_id,
            expires_at=utcnow() + self.expiry_window,
        )

        logger.info(
            "export_created",
            export_id=job.id,
            format=job.format.value,
            requested_by=requested_by,
            report_id=report_id,
        )

        self._schedule(job)
        return job

    async def process(self, job_id: str, generation: int) -> None:
        """Run one attempt of an export. Scheduled by create/retry only.

        Producer and disk failures become a FAILED job; they are never
        raised. Writes carrying a superseded generation are discarded, so a
        cancel always wins over a late completion.

        Raises:
            ExportInternalError: If the job no longer exists.
        """
        start_time = time.monotonic()
        export_format = "unknown"
        outcome = "failed"
        size = 0
        artifact_path: Optional[Path] = None

        try:
            try:
                job = await self.store.mark_processing(job_id, generation)
            except ExportNotFoundError as e:
                logger.error("export_missing_for_processing", export_id=job_id)
                raise ExportInternalError(f"Export disappeared before processing: {job_id}") from e
            except (StaleGenerationError, InvalidTransitionError) as e:
                outcome = "discarded"
                logger.info("export_run_skipped", export_id=job_id, reason=str(e))
                return

            export_format = job.format.value
            logger.info(
                "export_processing_started",
                export_id=job_id,
                format=export_format,
                generation=generation,
            )

            max_rows = self.config.max_rows
            try:
                produced = await asyncio.wait_for(
                    self.producer.produce(job.format, dict(job.parameters), max_rows),
                    timeout=self.config.producer_timeout,
                )
                if produced.rows > max_rows:
                    raise ProducerError(
                        f"Producer returned {produced.rows} rows, above the cap of {max_rows}"
                    )
                artifact_path = self.storage.artifact_path(
                    job.id, get_extension(job.format), attempt=generation
                )
                file_size = await self.storage.write_artifact(artifact_path, produced.content)
            except asyncio.TimeoutError:
                await self._fail(
                    job_id,
                    generation,
                    f"Export timed out after {self.config.producer_timeout:g} seconds",
                    artifact_path,
                )
                return
            except (ProducerError, StorageError) as e:
                await self._fail(job_id, generation, str(e), artifact_path)
                return
            except Exception as e:
                logger.error("export_unexpected_error", export_id=job_id, exc_info=True)
                await self._fail(job_id, generation, f"Unexpected error: {e}", artifact_path)
                return

            try:
                await self.store.mark_completed(
                    job_id,
                    generation,
                    ExportResult(
                        file_path=str(artifact_path),
                        file_size=file_size,
                        row_count=produced.rows,
                    ),
                )
            except (StaleGenerationError, InvalidTransitionError, ExportNotFoundError) as e:
                outcome = "discarded"
                self._discard_artifact(artifact_path)
                logger.warning("export_completion_discarded", export_id=job_id, reason=str(e))
                return

            self.cache.invalidate(job_id)
            outcome = "completed"
            size = file_size

            logger.info(
                "export_completed",
                export_id=job_id,
                format=export_format,
                rows=produced.rows,
                file_size=file_size,
            )

        except asyncio.CancelledError:
            outcome = "cancelled"
            if artifact_path is not None:
                self._discard_artifact(artifact_path)
            raise

        finally:
            MetricsCollector.record_export(
                export_format=export_format,
                status=outcome,
                duration=time.monotonic() - start_time,
                size=size,
            )

    async def get_export_by_id(
        self, job_id: str, requested_by: Optional[str] = None
    ) -> ExportJob:
        """Get a job, serving terminal jobs from cache.

        Raises:
            ExportNotFoundError: If the job does not exist.
            ExportForbiddenError: If requested_by does not own the job.
        """
        cached = self.cache.get(job_id)
        if cached is not None:
            job = deserialize_job(cached)
            self._check_owner(job, requested_by)
            logger.debug("export_cache_hit", export_id=job_id)
            return job

        job = await self._find_or_raise(job_id)
        self._check_owner(job, requested_by)

        if job.is_cacheable():
            self.cache.set(job_id, serialize_job(job))

        return job

    async def list_exports(
        self,
        filters: Optional[ExportFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[ExportJob], int]:
        """List jobs newest first; returns the page and the total match count."""
        return await self.store.find_all(filters, page=page, limit=limit)

    async def get_download_meta(
        self, job_id: str, requested_by: Optional[str] = None
    ) -> DownloadMeta:
        """Validate that a job can be downloaded and describe its artifact.

        A completed job whose file has disappeared is expired on the spot.

        Raises:
            ExportNotFoundError: If the job does not exist.
            ExportForbiddenError: If requested_by does not own the job.
            ExportExpiredError: If the job has expired or its file is gone.
            ExportStateError: If the job is not completed.
            ExportInternalError: If a completed job lacks its file details.
        """
        job = await self._find_or_raise(job_id)
        self._check_owner(job, requested_by)

        if job.status == ExportStatus.EXPIRED:
            raise ExportExpiredError(f"Export has expired: {job_id}")
        if job.status != ExportStatus.COMPLETED:
            raise ExportStateError(f"Export is not ready for download (status: {job.status.value})")
        if not job.file_path or job.file_size is None:
            logger.error("export_completed_without_file", export_id=job_id)
            raise ExportInternalError(f"Completed export is missing its file details: {job_id}")

        if not self.storage.exists(job.file_path):
            logger.warning("export_file_missing", export_id=job_id, file_path=job.file_path)
            try:
                await self.store.mark_expired(job_id)
            except InvalidTransitionError:
                # Expired concurrently by the sweep
                pass
            self.cache.invalidate(job_id)
            MetricsCollector.record_expired("missing_file")
            raise ExportExpiredError(f"Export has expired: {job_id}")

        return DownloadMeta(
            export_id=job.id,
            filename=build_download_filename(job.name, job.format),
            mime_type=get_mime_type(job.format),
            file_path=job.file_path,
            file_size=job.file_size,
        )

    async def cancel_export(self, job_id: str, requested_by: Optional[str] = None) -> ExportJob:
        """Cancel a pending or processing export.

        Raises:
            ExportNotFoundError: If the job does not exist.
            ExportForbiddenError: If requested_by does not own the job.
            ExportStateError: If the job is not pending or processing.
        """
        job = await self._find_or_raise(job_id)
        self._check_owner(job, requested_by)

        if not job.is_active():
            raise ExportStateError(f"Cannot cancel export in status '{job.status.value}'")

        try:
            cancelled = await self.store.cancel(job_id, CANCELLED_MESSAGE)
        except InvalidTransitionError as e:
            # Finished between the read and the write
            raise ExportStateError(f"Cannot cancel export in status '{e.current.value}'") from e

        self.cache.invalidate(job_id)
        self.runner.cancel(job_id)

        logger.info("export_cancelled", export_id=job_id, previous_status=job.status.value)
        return cancelled

    async def retry_export(self, job_id: str, requested_by: Optional[str] = None) -> ExportJob:
        """Reset a failed export to PENDING and schedule a fresh attempt.

        The expiry clock restarts from the retry time.

        Raises:
            ExportNotFoundError: If the job does not exist.
            ExportForbiddenError: If requested_by does not own the job.
            ExportStateError: If the job is not failed.
        """
        job = await self._find_or_raise(job_id)
        self._check_owner(job, requested_by)

        if job.status != ExportStatus.FAILED:
            raise ExportStateError(f"Cannot retry export in status '{job.status.value}'")

        try:
            retried = await self.store.reset_for_retry(
                job_id, expires_at=utcnow() + self.expiry_window
            )
        except InvalidTransitionError as e:
            raise ExportStateError(f"Cannot retry export in status '{e.current.value}'") from e

        self.cache.invalidate(job_id)

        logger.info(
            "export_retried",
            export_id=job_id,
            generation=retried.generation,
            previous_error=job.error,
        )

        self._schedule(retried)
        return retried

    async def expire_stale_exports(self) -> int:
        """Expire completed jobs past their expiry and delete their files.

        A job whose file cannot be removed is left completed and retried on
        the next sweep.

        Returns:
            Number of jobs expired.
        """
        stale = await self.store.find_expired(utcnow())
        expired = 0

        for job in stale:
            try:
                if job.file_path:
                    self.storage.delete_artifact(job.file_path)
                await self.store.mark_expired(job.id)
            except (StorageError, ExportError, InvalidTransitionError) as e:
                logger.warning("export_expiry_failed", export_id=job.id, error=str(e))
                continue

            self.cache.invalidate(job.id)
            expired += 1

        MetricsCollector.record_expired("sweep", expired)
        if expired:
            logger.info("stale_exports_expired", count=expired, candidates=len(stale))

        return expired

    async def resume_pending(self) -> int:
        """Reschedule work left behind by a previous process.

        PROCESSING jobs have lost their task and are requeued first; then
        every PENDING job is scheduled.

        Returns:
            Number of jobs scheduled.
        """
        for job in await self.store.find_processing():
            await self.store.requeue(job.id)
            logger.warning("orphaned_export_requeued", export_id=job.id)

        pending = await self.store.find_pending()
        for job in pending:
            if not self.runner.is_active(job.id):
                self._schedule(job)

        if pending:
            logger.info("pending_exports_resumed", count=len(pending))
        return len(pending)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _schedule(self, job: ExportJob) -> None:
        self.runner.submit(job.id, partial(self.process, job.id, job.generation))

    async def _find_or_raise(self, job_id: str) -> ExportJob:
        job = await self.store.find_by_id(job_id)
        if job is None:
            raise ExportNotFoundError(f"Export not found: {job_id}")
        return job

    @staticmethod
    def _check_owner(job: ExportJob, requested_by: Optional[str]) -> None:
        if not job.is_owned_by(requested_by):
            logger.warning(
                "export_access_denied",
                export_id=job.id,
                requested_by=requested_by,
            )
            raise ExportForbiddenError(f"Export {job.id} belongs to another user")

    async def _fail(
        self,
        job_id: str,
        generation: int,
        message: str,
        artifact_path: Optional[Path],
    ) -> None:
        if artifact_path is not None:
            self._discard_artifact(artifact_path)

        try:
            await self.store.mark_failed(job_id, message, generation=generation)
        except (StaleGenerationError, InvalidTransitionError) as e:
            logger.info("export_failure_discarded", export_id=job_id, reason=str(e))
            return
        except Exception:
            # Not retried: the job stays PROCESSING until resumed on restart
            logger.error("export_failure_not_persisted", export_id=job_id, exc_info=True)
            return

        self.cache.invalidate(job_id)
        logger.error("export_failed", export_id=job_id, error=message)

    def _discard_artifact(self, path: Path) -> None:
        try:
            self.storage.delete_artifact(path)
        except StorageError as e:
            logger.warning("artifact_discard_failed", filepath=str(path), error=str(e))
