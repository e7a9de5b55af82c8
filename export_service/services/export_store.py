"""Export job store: repository contract and in-memory implementation.

The store exposes one narrow operation per lifecycle transition instead of a
generic update, so every write is checked against the transition table and no
caller can persist an invalid field combination.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from export_service.models.export_job import (
    ExportFormat,
    ExportJob,
    ExportStatus,
    ensure_transition,
    utcnow,
)
from export_service.services.exceptions import ExportNotFoundError, StaleGenerationError

logger = structlog.get_logger(__name__)


@dataclass
class ExportFilters:
    """Optional filters for listing export jobs."""

    status: Optional[ExportStatus] = None
    format: Optional[ExportFormat] = None
    requested_by: Optional[str] = None

    def matches(self, job: ExportJob) -> bool:
        if self.status is not None and job.status != self.status:
            return False
        if self.format is not None and job.format != self.format:
            return False
        if self.requested_by is not None and job.requested_by != self.requested_by:
            return False
        return True


@dataclass
class ExportResult:
    """Artifact details recorded when a job completes."""

    file_path: str
    file_size: int
    row_count: int


class ExportJobStore(ABC):
    """Keyed persistence for export jobs.

    Every method returns a detached copy of the stored job. Mutations raise
    ExportNotFoundError for unknown ids, InvalidTransitionError for illegal
    status changes and StaleGenerationError when a generation is supplied
    that no longer matches the stored one.
    """

    @abstractmethod
    async def create(
        self,
        name: str,
        export_format: ExportFormat,
        requested_by: str,
        parameters: Optional[Dict[str, Any]] = None,
        report_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> ExportJob:
        """Persist a new PENDING job."""

    @abstractmethod
    async def find_by_id(self, job_id: str) -> Optional[ExportJob]:
        """Get a job by id, None if absent."""

    @abstractmethod
    async def find_all(
        self,
        filters: Optional[ExportFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[ExportJob], int]:
        """List jobs newest first; returns the page and the filtered total."""

    @abstractmethod
    async def mark_processing(self, job_id: str, generation: int) -> ExportJob:
        """PENDING -> PROCESSING, recording started_at."""

    @abstractmethod
    async def mark_completed(
        self, job_id: str, generation: int, result: ExportResult
    ) -> ExportJob:
        """PROCESSING -> COMPLETED with artifact details."""

    @abstractmethod
    async def mark_failed(
        self, job_id: str, message: str, generation: Optional[int] = None
    ) -> ExportJob:
        """PROCESSING -> FAILED with an error message."""

    @abstractmethod
    async def mark_expired(self, job_id: str) -> ExportJob:
        """COMPLETED -> EXPIRED, clearing the file path."""

    @abstractmethod
    async def cancel(self, job_id: str, message: str) -> ExportJob:
        """PENDING/PROCESSING -> FAILED, superseding the running attempt."""

    @abstractmethod
    async def reset_for_retry(
        self, job_id: str, expires_at: Optional[datetime] = None
    ) -> ExportJob:
        """FAILED -> PENDING, clearing all attempt fields."""

    @abstractmethod
    async def requeue(self, job_id: str) -> ExportJob:
        """PROCESSING -> PENDING for a job orphaned by a restart."""

    @abstractmethod
    async def find_expired(self, now: Optional[datetime] = None) -> List[ExportJob]:
        """COMPLETED jobs whose expires_at is before ``now``."""

    @abstractmethod
    async def find_pending(self) -> List[ExportJob]:
        """PENDING jobs, oldest first."""

    @abstractmethod
    async def find_processing(self) -> List[ExportJob]:
        """PROCESSING jobs, oldest first."""


class InMemoryExportJobStore(ExportJobStore):
    """Process-local store; a single asyncio lock makes each write atomic."""

    def __init__(self) -> None:
        self._jobs: Dict[str, ExportJob] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        name: str,
        export_format: ExportFormat,
        requested_by: str,
        parameters: Optional[Dict[str, Any]] = None,
        report_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> ExportJob:
        now = utcnow()
        job = ExportJob(
            id=str(uuid.uuid4()),
            name=name,
            format=export_format,
            requested_by=requested_by,
            report_id=report_id,
            parameters=dict(parameters or {}),
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._jobs[job.id] = job
        return job.copy()

    async def find_by_id(self, job_id: str) -> Optional[ExportJob]:
        job = self._jobs.get(job_id)
        return job.copy() if job else None

    async def find_all(
        self,
        filters: Optional[ExportFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[ExportJob], int]:
        filters = filters or ExportFilters()
        jobs = [j for j in self._jobs.values() if filters.matches(j)]
        jobs.sort(key=lambda j: j.created_at, reverse=True)

        offset = (max(page, 1) - 1) * limit
        return [j.copy() for j in jobs[offset : offset + limit]], len(jobs)

    async def mark_processing(self, job_id: str, generation: int) -> ExportJob:
        def apply(job: ExportJob) -> None:
            job.started_at = utcnow()

        return await self._transition(job_id, ExportStatus.PROCESSING, apply, generation)

    async def mark_completed(
        self, job_id: str, generation: int, result: ExportResult
    ) -> ExportJob:
        def apply(job: ExportJob) -> None:
            job.file_path = result.file_path
            job.file_size = result.file_size
            job.row_count = result.row_count
            job.error = None
            job.completed_at = utcnow()

        return await self._transition(job_id, ExportStatus.COMPLETED, apply, generation)

    async def mark_failed(
        self, job_id: str, message: str, generation: Optional[int] = None
    ) -> ExportJob:
        def apply(job: ExportJob) -> None:
            self._clear_artifact(job)
            job.error = message
            job.completed_at = utcnow()

        return await self._transition(job_id, ExportStatus.FAILED, apply, generation)

    async def mark_expired(self, job_id: str) -> ExportJob:
        def apply(job: ExportJob) -> None:
            job.file_path = None

        return await self._transition(job_id, ExportStatus.EXPIRED, apply)

    async def cancel(self, job_id: str, message: str) -> ExportJob:
        def apply(job: ExportJob) -> None:
            self._clear_artifact(job)
            job.error = message
            job.completed_at = utcnow()
            job.generation += 1

        return await self._transition(job_id, ExportStatus.FAILED, apply)

    async def reset_for_retry(
        self, job_id: str, expires_at: Optional[datetime] = None
    ) -> ExportJob:
        def apply(job: ExportJob) -> None:
            self._clear_artifact(job)
            job.error = None
            job.started_at = None
            job.completed_at = None
            job.generation += 1
            if expires_at is not None:
                job.expires_at = expires_at

        return await self._transition(job_id, ExportStatus.PENDING, apply)

    async def requeue(self, job_id: str) -> ExportJob:
        def apply(job: ExportJob) -> None:
            job.started_at = None
            job.generation += 1

        return await self._transition(job_id, ExportStatus.PENDING, apply)

    async def find_expired(self, now: Optional[datetime] = None) -> List[ExportJob]:
        now = now or utcnow()
        return self._select(
            lambda j: j.status == ExportStatus.COMPLETED
            and j.expires_at is not None
            and j.expires_at < now
        )

    async def find_pending(self) -> List[ExportJob]:
        return self._select(lambda j: j.status == ExportStatus.PENDING)

    async def find_processing(self) -> List[ExportJob]:
        return self._select(lambda j: j.status == ExportStatus.PROCESSING)

    def count(self) -> int:
        return len(self._jobs)

    def _select(self, predicate: Callable[[ExportJob], bool]) -> List[ExportJob]:
        jobs = sorted(
            (j for j in self._jobs.values() if predicate(j)),
            key=lambda j: j.created_at,
        )
        return [j.copy() for j in jobs]

    async def _transition(
        self,
        job_id: str,
        target: ExportStatus,
        apply: Callable[[ExportJob], None],
        generation: Optional[int] = None,
    ) -> ExportJob:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise ExportNotFoundError(f"Export not found: {job_id}")

            if generation is not None and job.generation != generation:
                raise StaleGenerationError(
                    f"Export {job_id} attempt {generation} superseded by {job.generation}"
                )

            ensure_transition(job.status, target)

            old_status = job.status
            apply(job)
            job.status = target
            job.updated_at = utcnow()

            logger.debug(
                "export_status_updated",
                export_id=job_id,
                old_status=old_status.value,
                new_status=target.value,
                generation=job.generation,
            )

            return job.copy()

    @staticmethod
    def _clear_artifact(job: ExportJob) -> None:
        job.file_path = None
        job.file_size = None
        job.row_count = None
