"""Service layer implementations."""

from export_service.services.exceptions import (
    ExportError,
    ExportExpiredError,
    ExportForbiddenError,
    ExportInternalError,
    ExportNotFoundError,
    ExportStateError,
    StaleGenerationError,
)
from export_service.services.expiry_sweeper import ExpirySweeper
from export_service.services.export_cache import ExportCache, deserialize_job, serialize_job
from export_service.services.export_job_service import (
    CANCELLED_MESSAGE,
    DownloadMeta,
    ExportJobService,
    build_download_filename,
)
from export_service.services.export_runner import ExportRunner
from export_service.services.export_store import (
    ExportFilters,
    ExportJobStore,
    ExportResult,
    InMemoryExportJobStore,
)
from export_service.services.storage import ArtifactStorage, DiskUsage, StorageError

__all__ = [
    # Errors
    "ExportError",
    "ExportExpiredError",
    "ExportForbiddenError",
    "ExportInternalError",
    "ExportNotFoundError",
    "ExportStateError",
    "StaleGenerationError",
    # Store
    "ExportFilters",
    "ExportJobStore",
    "ExportResult",
    "InMemoryExportJobStore",
    # Cache
    "ExportCache",
    "deserialize_job",
    "serialize_job",
    # Orchestration
    "CANCELLED_MESSAGE",
    "DownloadMeta",
    "ExportJobService",
    "ExportRunner",
    "ExpirySweeper",
    "build_download_filename",
    # Storage
    "ArtifactStorage",
    "DiskUsage",
    "StorageError",
]
